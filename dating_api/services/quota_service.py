"""
Daily quota use cases: consume a unit, reset one user, reset everyone due.

The service is the only place that combines the store with the policy. Each
read-modify-write for a user runs under that user's lock and is written back
with the store's conditional upsert, so concurrent requests for the same user
are linearized both inside this process and across processes sharing the DB.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from dating_api.core.locks import KeyedLock
from dating_api.domain.quota import (
    Allowed,
    QuotaDecision,
    QuotaNotFoundError,
    QuotaPolicy,
    QuotaRecord,
)
from dating_api.repositories.quota_store import QuotaStore, StoreError, WriteConflictError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaService:
    def __init__(
        self,
        store: QuotaStore,
        policy: QuotaPolicy,
        user_exists: Callable[[int], bool],
        *,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = 3,
    ) -> None:
        self.store = store
        self.policy = policy
        self.user_exists = user_exists
        self.clock = clock
        self.max_retries = max(1, max_retries)
        self._locks = KeyedLock()

    # -------------------------------------- consumption --------------------------------------
    def consume(self, user_id: int, amount: int = 1, now: Optional[datetime] = None) -> QuotaDecision:
        """
        Take `amount` units from the user's current window.

        Returns Allowed(remaining) or Denied(INSUFFICIENT_QUOTA). A user without
        a record gets a fresh one first. Raises QuotaValidationError for a
        non-positive amount or one above the capacity stored on the record,
        QuotaNotFoundError for an unknown user and StoreError when the
        write cannot be completed; in none of those cases is quota granted.
        """
        self.policy.validate_amount(amount)
        when = now or self.clock()

        def mutate(record: Optional[QuotaRecord]) -> Tuple[QuotaRecord, QuotaDecision]:
            if record is None:
                if not self.user_exists(user_id):
                    raise QuotaNotFoundError(f"user {user_id} does not exist")
                record = self.policy.new_record(user_id, when)
                logger.info("Created quota record for user=%s capacity=%d", user_id, record.capacity)
            # Records keep the capacity they were created with.
            self.policy.validate_amount(amount, record.capacity)
            return self.policy.try_consume(record, when, amount)

        decision = self._read_modify_write(user_id, mutate)
        if isinstance(decision, Allowed):
            logger.debug("Quota consumed: user=%s amount=%d remaining=%d", user_id, amount, decision.remaining)
        else:
            logger.info("Quota denied: user=%s amount=%d remaining=%d", user_id, amount, decision.remaining)
        return decision

    # -------------------------------------- resets --------------------------------------
    def reset_one(self, user_id: int, now: Optional[datetime] = None) -> QuotaRecord:
        """Replenish a single user's record if its window has elapsed."""
        when = now or self.clock()

        def mutate(record: Optional[QuotaRecord]) -> Tuple[QuotaRecord, QuotaRecord]:
            if record is None:
                raise QuotaNotFoundError(f"no quota record for user {user_id}")
            updated = self.policy.compute_reset(record, when)
            return updated, updated

        return self._read_modify_write(user_id, mutate)

    def reset_all_due(self, now: Optional[datetime] = None) -> int:
        """
        Replenish every record whose window has elapsed; returns how many changed.

        A store failure for one user is logged and skipped so the rest of the
        population still gets its reset.
        """
        when = now or self.clock()
        reset_count = 0
        failed = 0
        for listed in self.store.list_all():
            if not self.policy.is_due(listed, when):
                continue
            try:
                if self._reset_if_due(listed.user_id, when):
                    reset_count += 1
            except StoreError as exc:
                failed += 1
                logger.error("Quota reset failed for user=%s: %s", listed.user_id, exc)
        if failed:
            logger.warning("Quota reset pass finished: reset=%d failed=%d", reset_count, failed)
        else:
            logger.info("Quota reset pass finished: reset=%d", reset_count)
        return reset_count

    def _reset_if_due(self, user_id: int, when: datetime) -> bool:
        def mutate(record: Optional[QuotaRecord]) -> Tuple[QuotaRecord, bool]:
            # The row may have been reset by a consumption since it was listed.
            if record is None:
                return record, False
            updated = self.policy.compute_reset(record, when)
            return updated, updated != record

        return self._read_modify_write(user_id, mutate)

    # -------------------------------------- reads --------------------------------------
    def get_quota(self, user_id: int, now: Optional[datetime] = None) -> QuotaRecord:
        """Current view of the user's quota, including an implicit reset; never writes."""
        when = now or self.clock()
        record = self.store.get(user_id)
        if record is None:
            if not self.user_exists(user_id):
                raise QuotaNotFoundError(f"user {user_id} does not exist")
            return self.policy.new_record(user_id, when)
        return self.policy.compute_reset(record, when)

    # -------------------------------------- helpers --------------------------------------
    def _read_modify_write(self, user_id: int, mutate):
        """
        Run mutate(current) -> (new_record, result) under the user's lock and
        persist new_record when it differs from what was read. Retries on
        WriteConflictError up to max_retries attempts, then re-raises it.
        """
        with self._locks.hold(user_id):
            for attempt in range(1, self.max_retries + 1):
                current = self.store.get(user_id)
                updated, result = mutate(current)
                if updated is None or (current is not None and updated == current):
                    return result
                try:
                    self.store.upsert(updated)
                except WriteConflictError as exc:
                    if attempt >= self.max_retries:
                        logger.error(
                            "Quota write for user=%s conflicted %d times; giving up", user_id, attempt
                        )
                        raise
                    logger.warning("Quota write conflict for user=%s (attempt %d): %s", user_id, attempt, exc)
                    continue
                return result
