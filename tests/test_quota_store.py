"""
Smoke tests for the SQL quota store against a temporary SQLite database.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from dating_api.domain.quota import Allowed, Denied, QuotaPolicy, QuotaRecord
from dating_api.repositories.quota_store import SQLQuotaStore, WriteConflictError
from dating_api.repositories.sql_repository import SQLRepository
from dating_api.services.quota_service import QuotaService

T = datetime(2024, 5, 10, 6, 30, tzinfo=timezone.utc)
DAY = timedelta(hours=24)


def _make_users(count: int) -> list[int]:
    repo = SQLRepository()
    ids = []
    for i in range(count):
        _, user = repo.create_account_with_user(f"user{i}", f"user{i}@example.com", "hash", {})
        ids.append(user.user_id)
    return ids


def _record(user_id: int, remaining: int = 3) -> QuotaRecord:
    return QuotaRecord(
        user_id=user_id,
        remaining=remaining,
        capacity=3,
        window_start=T,
        window_end=T + DAY,
        last_reset_at=T,
    )


def test_upsert_then_get_round_trips(db_env):
    (user_id,) = _make_users(1)
    store = SQLQuotaStore()
    record = _record(user_id, remaining=2)

    stored = store.upsert(record)
    loaded = store.get(user_id)

    assert loaded == record
    assert loaded.version == stored.version == 1
    assert loaded.window_start.tzinfo is not None
    assert loaded.window_end - loaded.window_start == DAY


def test_get_missing_returns_none(db_env):
    assert SQLQuotaStore().get(12345) is None


def test_update_requires_current_version(db_env):
    (user_id,) = _make_users(1)
    store = SQLQuotaStore()
    first = store.upsert(_record(user_id))
    second = store.upsert(replace(first, remaining=2))
    assert second.version == 2

    with pytest.raises(WriteConflictError):
        store.upsert(replace(first, remaining=1))
    assert store.get(user_id).remaining == 2


def test_second_insert_for_same_user_conflicts(db_env):
    (user_id,) = _make_users(1)
    store = SQLQuotaStore()
    store.upsert(_record(user_id))
    with pytest.raises(WriteConflictError):
        store.upsert(_record(user_id, remaining=0))
    assert store.get(user_id).remaining == 3


def test_list_all_pages_through_every_record(db_env):
    user_ids = _make_users(7)
    store = SQLQuotaStore(page_size=3)
    for user_id in user_ids:
        store.upsert(_record(user_id))

    listed = [record.user_id for record in store.list_all()]
    assert listed == sorted(user_ids)
    # a second enumeration starts over
    assert [record.user_id for record in store.list_all()] == listed


def test_list_all_allows_writes_between_pages(db_env):
    user_ids = _make_users(4)
    store = SQLQuotaStore(page_size=2)
    for user_id in user_ids:
        store.upsert(_record(user_id))

    seen = []
    for record in store.list_all():
        store.upsert(replace(record, remaining=0))
        seen.append(record.user_id)

    assert seen == sorted(user_ids)
    assert all(store.get(user_id).remaining == 0 for user_id in user_ids)


def test_list_all_on_empty_table(db_env):
    assert list(SQLQuotaStore().list_all()) == []


def test_services_sharing_the_table_never_overdraw(db_env):
    (user_id,) = _make_users(1)
    store = SQLQuotaStore()
    policy = QuotaPolicy(capacity=5, interval=DAY)
    repo = SQLRepository()
    # separate services have separate in-process locks, so only the versioned write keeps them apart
    services = [
        QuotaService(store, policy, repo.user_exists, clock=lambda: T + timedelta(hours=1), max_retries=10)
        for _ in range(2)
    ]
    workers = 12
    barrier = threading.Barrier(workers)
    decisions = []
    errors = []

    def worker(index: int) -> None:
        barrier.wait()
        try:
            decisions.append(services[index % 2].consume(user_id, 1))
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sum(isinstance(d, Allowed) for d in decisions) == 5
    assert sum(isinstance(d, Denied) for d in decisions) == workers - 5
    assert store.get(user_id).remaining == 0
