"""Daily selection quota: record type, decisions and the pure replenishment policy."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union


class QuotaError(Exception):
    """Base class for quota-related exceptions."""


class QuotaValidationError(QuotaError):
    """Raised for a malformed consumption request; nothing was read or written."""


class QuotaNotFoundError(QuotaError):
    """Raised when the user (or, for a reset, the record) does not exist."""


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class QuotaRecord:
    user_id: int
    remaining: int
    capacity: int
    window_start: datetime
    window_end: datetime
    last_reset_at: datetime
    # Managed by the store; None until the record has been persisted once.
    version: Optional[int] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {self.capacity}")
        if not 0 <= self.remaining <= self.capacity:
            raise ValueError(f"remaining must be within [0, {self.capacity}], got {self.remaining}")
        if self.window_end <= self.window_start:
            raise ValueError("window_end must be after window_start")

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0


class DenialReason(str, enum.Enum):
    INSUFFICIENT_QUOTA = "insufficient_quota"


@dataclass(frozen=True)
class Allowed:
    remaining: int


@dataclass(frozen=True)
class Denied:
    reason: DenialReason
    remaining: int


QuotaDecision = Union[Allowed, Denied]


class QuotaPolicy:
    """
    Computes replenished quotas and consumption outcomes.

    No I/O and no shared mutable state: every method maps (record, now) to a
    new record, so the service can call it while holding a per-user lock.
    """

    def __init__(self, capacity: int, interval: timedelta = timedelta(hours=24)) -> None:
        if capacity < 1:
            raise ValueError("capacity must be a positive integer")
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self.capacity = capacity
        self.interval = interval

    def new_record(self, user_id: int, now: datetime) -> QuotaRecord:
        now = as_utc(now)
        return QuotaRecord(
            user_id=user_id,
            remaining=self.capacity,
            capacity=self.capacity,
            window_start=now,
            window_end=now + self.interval,
            last_reset_at=now,
        )

    def is_due(self, record: QuotaRecord, now: datetime) -> bool:
        return as_utc(now) >= as_utc(record.window_end)

    def compute_reset(self, record: QuotaRecord, now: datetime) -> QuotaRecord:
        if not self.is_due(record, now):
            return record
        now = as_utc(now)
        return replace(
            record,
            remaining=record.capacity,
            window_start=now,
            window_end=now + self.interval,
            last_reset_at=now,
        )

    def try_consume(
        self, record: QuotaRecord, now: datetime, amount: int = 1
    ) -> Tuple[QuotaRecord, QuotaDecision]:
        current = self.compute_reset(record, now)
        if current.remaining >= amount:
            updated = replace(current, remaining=current.remaining - amount)
            return updated, Allowed(remaining=updated.remaining)
        return current, Denied(reason=DenialReason.INSUFFICIENT_QUOTA, remaining=current.remaining)

    def validate_amount(self, amount: int, capacity: Optional[int] = None) -> None:
        """Reject non-integer or non-positive amounts, and amounts above `capacity` when given."""
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise QuotaValidationError(f"amount must be an integer, got {amount!r}")
        if amount < 1:
            raise QuotaValidationError(f"amount must be positive, got {amount}")
        if capacity is not None and amount > capacity:
            raise QuotaValidationError(f"amount {amount} exceeds the quota capacity of {capacity}")
