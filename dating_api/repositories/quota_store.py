"""
Persistence for daily quota records.

Both stores implement the same optimistic contract: a record read with
version N can only be written back while the stored row is still at version
N. Losing that race raises WriteConflictError; retrying is the caller's job.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dating_api.db.models import DailyQuota
from dating_api.db.session import get_session
from dating_api.domain.quota import QuotaRecord, as_utc


class StoreError(Exception):
    """Raised when the backing store cannot complete an operation."""


class WriteConflictError(StoreError):
    """Raised when a conditional write finds the record changed since it was read."""


class QuotaStore(ABC):
    @abstractmethod
    def get(self, user_id: int) -> Optional[QuotaRecord]:
        """Return the current record for user_id, or None."""

    @abstractmethod
    def upsert(self, record: QuotaRecord) -> QuotaRecord:
        """Insert or replace the record; returns it with its new version."""

    @abstractmethod
    def list_all(self) -> Iterator[QuotaRecord]:
        """Lazily yield every record in user_id order."""


def _to_record(row: DailyQuota) -> QuotaRecord:
    return QuotaRecord(
        user_id=row.user_id,
        remaining=row.remaining,
        capacity=row.capacity,
        window_start=as_utc(row.window_start),
        window_end=as_utc(row.window_end),
        last_reset_at=as_utc(row.last_reset_at),
        version=row.version,
    )


class SQLQuotaStore(QuotaStore):
    """Quota records in the daily_quotas table."""

    def __init__(self, page_size: int = 200) -> None:
        self.page_size = max(1, page_size)

    def get(self, user_id: int) -> Optional[QuotaRecord]:
        try:
            with get_session() as session:
                row = session.get(DailyQuota, user_id)
                return _to_record(row) if row else None
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to read quota for user {user_id}: {exc}") from exc

    def upsert(self, record: QuotaRecord) -> QuotaRecord:
        try:
            if record.version is None:
                return self._insert(record)
            return self._update(record)
        except StoreError:
            raise
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to write quota for user {record.user_id}: {exc}") from exc

    def _insert(self, record: QuotaRecord) -> QuotaRecord:
        entity = DailyQuota(
            user_id=record.user_id,
            remaining=record.remaining,
            capacity=record.capacity,
            window_start=record.window_start,
            window_end=record.window_end,
            last_reset_at=record.last_reset_at,
            version=1,
        )
        with get_session() as session:
            session.add(entity)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if session.get(DailyQuota, record.user_id) is not None:
                    raise WriteConflictError(f"quota for user {record.user_id} was created concurrently") from exc
                raise StoreError(f"constraint violation writing quota for user {record.user_id}: {exc}") from exc
        return replace(record, version=1)

    def _update(self, record: QuotaRecord) -> QuotaRecord:
        next_version = record.version + 1
        stmt = (
            update(DailyQuota)
            .where(DailyQuota.user_id == record.user_id, DailyQuota.version == record.version)
            .values(
                remaining=record.remaining,
                capacity=record.capacity,
                window_start=record.window_start,
                window_end=record.window_end,
                last_reset_at=record.last_reset_at,
                version=next_version,
            )
        )
        with get_session() as session:
            result = session.execute(stmt)
            if result.rowcount != 1:
                session.rollback()
                raise WriteConflictError(
                    f"quota for user {record.user_id} changed since version {record.version}"
                )
            session.commit()
        return replace(record, version=next_version)

    def list_all(self) -> Iterator[QuotaRecord]:
        # Keyset pages, each in its own short session, so writers are never
        # blocked behind an open cursor for the length of a reset pass.
        last_user_id: Optional[int] = None
        while True:
            stmt = select(DailyQuota).order_by(DailyQuota.user_id).limit(self.page_size)
            if last_user_id is not None:
                stmt = stmt.where(DailyQuota.user_id > last_user_id)
            try:
                with get_session() as session:
                    page = [_to_record(row) for row in session.execute(stmt).scalars().all()]
            except SQLAlchemyError as exc:
                raise StoreError(f"failed to list quotas: {exc}") from exc
            yield from page
            if len(page) < self.page_size:
                return
            last_user_id = page[-1].user_id


class InMemoryQuotaStore(QuotaStore):
    """Process-local store with the same conditional-write semantics."""

    def __init__(self) -> None:
        self._records: Dict[int, QuotaRecord] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> Optional[QuotaRecord]:
        with self._lock:
            return self._records.get(user_id)

    def upsert(self, record: QuotaRecord) -> QuotaRecord:
        with self._lock:
            current = self._records.get(record.user_id)
            current_version = current.version if current else None
            if current_version != record.version:
                raise WriteConflictError(
                    f"quota for user {record.user_id} is at version {current_version}, write expected {record.version}"
                )
            stored = replace(record, version=(record.version or 0) + 1)
            self._records[record.user_id] = stored
            return stored

    def list_all(self) -> Iterator[QuotaRecord]:
        with self._lock:
            user_ids = sorted(self._records)
        for user_id in user_ids:
            record = self.get(user_id)
            if record is not None:
                yield record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
