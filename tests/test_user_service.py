from __future__ import annotations

import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from dating_api.domain.quota import Denied, DenialReason, QuotaPolicy
from dating_api.repositories.quota_store import SQLQuotaStore, StoreError
from dating_api.repositories.sql_repository import SQLRepository
from dating_api.services.quota_service import QuotaService
from dating_api.services.user_service import (
    CandidateResult,
    NoCandidateError,
    ProfileValidationError,
    UserNotFoundError,
    UserService,
)


def _make_users(repo: SQLRepository, count: int) -> list[int]:
    ids = []
    for i in range(count):
        _, user = repo.create_account_with_user(f"member{i}", f"member{i}@example.com", "hash", {"display_name": f"Member {i}"})
        ids.append(user.user_id)
    return ids


def _user_service(capacity: int = 3) -> UserService:
    repo = SQLRepository()
    quota = QuotaService(SQLQuotaStore(), QuotaPolicy(capacity=capacity, interval=timedelta(hours=24)), repo.user_exists)
    return UserService(quota, repo)


def test_user_exists_and_random_candidate_exclusions(db_env):
    repo = SQLRepository()
    me, other, third = _make_users(repo, 3)
    assert repo.user_exists(me)
    assert not repo.user_exists(9999)

    for _ in range(10):
        picked = repo.pick_random_candidate(me, exclude=[other])
        assert picked.user_id == third
    assert repo.pick_random_candidate(me, exclude=[other, third]) is None


def test_selected_candidate_ids_respects_since(db_env):
    repo = SQLRepository()
    me, a, b = _make_users(repo, 3)
    now = datetime.now(timezone.utc)
    repo.add_selection(me, a, now - timedelta(days=2))
    repo.add_selection(me, b, now)
    assert repo.selected_candidate_ids(me, since=now - timedelta(hours=1)) == {b}
    assert repo.selected_candidate_ids(me, since=now - timedelta(days=3)) == {a, b}


def test_next_candidate_consumes_quota_until_denied(db_env):
    repo = SQLRepository()
    me, *others = _make_users(repo, 6)
    svc = _user_service(capacity=3)

    shown = []
    for expected_remaining in (2, 1, 0):
        result = svc.next_candidate(me)
        assert isinstance(result, CandidateResult)
        assert result.remaining == expected_remaining
        shown.append(result.candidate["user_id"])

    denied = svc.next_candidate(me)
    assert isinstance(denied, Denied)
    assert denied.reason is DenialReason.INSUFFICIENT_QUOTA

    assert len(set(shown)) == 3
    assert me not in shown
    history = svc.selection_history(me)
    assert sorted(item.candidate_id for item in history) == sorted(shown)


def test_next_candidate_without_anyone_left_charges_nothing(db_env):
    repo = SQLRepository()
    me, other = _make_users(repo, 2)
    svc = _user_service(capacity=3)

    assert svc.next_candidate(me).candidate["user_id"] == other
    with pytest.raises(NoCandidateError):
        svc.next_candidate(me)
    assert svc.quota_service.get_quota(me).remaining == 2


def test_profile_update_and_validation(db_env):
    repo = SQLRepository()
    (me,) = _make_users(repo, 1)
    svc = _user_service()

    profile = svc.update_profile(me, {"bio": "hiking", "date_of_birth": date(1990, 6, 1), "gender": "other"})
    assert profile["bio"] == "hiking"
    assert profile["date_of_birth"] == "1990-06-01"
    assert profile["age"] >= 30
    assert svc.get_profile(me)["gender"] == "other"

    with pytest.raises(ProfileValidationError):
        svc.update_profile(me, {"display_name": "   "})
    with pytest.raises(ProfileValidationError):
        svc.update_profile(me, {"gender": "robot"})
    with pytest.raises(UserNotFoundError):
        svc.get_profile(9999)


def test_failed_charge_leaves_no_selection_behind(db_env):
    class UnwritableStore(SQLQuotaStore):
        def upsert(self, record):
            raise StoreError("database unavailable")

    repo = SQLRepository()
    me, _ = _make_users(repo, 2)
    quota = QuotaService(UnwritableStore(), QuotaPolicy(capacity=3, interval=timedelta(hours=24)), repo.user_exists)
    svc = UserService(quota, repo)

    with pytest.raises(StoreError):
        svc.next_candidate(me)
    assert svc.selection_history(me) == []


def test_parallel_requests_for_one_user_show_distinct_candidates(db_env):
    repo = SQLRepository()
    me, *others = _make_users(repo, 9)
    svc = _user_service(capacity=5)
    workers = 6
    barrier = threading.Barrier(workers)
    results = []

    def worker() -> None:
        barrier.wait()
        results.append(svc.next_candidate(me))

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    shown = [r.candidate["user_id"] for r in results if isinstance(r, CandidateResult)]
    assert len(shown) == 5
    assert len(set(shown)) == 5
    assert sum(isinstance(r, Denied) for r in results) == 1
    assert sorted(item.candidate_id for item in svc.selection_history(me)) == sorted(shown)
