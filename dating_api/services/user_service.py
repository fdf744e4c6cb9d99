"""
Profile and candidate-selection use cases.

Viewing the next candidate is the quota-consuming action: every candidate
shown costs one unit of the viewer's daily quota and is written to the
selection history, which also keeps a candidate from being shown twice in
the same quota window.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Union

from dating_api.core.locks import KeyedLock
from dating_api.db.models import User
from dating_api.domain.accounts import GENDERS, age_on, is_adult
from dating_api.domain.quota import Denied
from dating_api.repositories.sql_repository import SQLRepository
from dating_api.services.quota_service import QuotaService


class UserError(Exception):
    """Base exception for profile/candidate workflows."""


class UserNotFoundError(UserError):
    pass


class ProfileValidationError(UserError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoCandidateError(UserError):
    """Raised when every other user was already shown in the current window."""


@dataclass
class CandidateResult:
    candidate: dict
    remaining: int


@dataclass
class SelectionRecord:
    candidate_id: int
    selected_at: datetime


def _entity_to_profile_dict(entity: User, today: Optional[date] = None) -> dict:
    today = today or datetime.now(timezone.utc).date()
    birth = entity.date_of_birth
    return {
        "user_id": entity.user_id,
        "display_name": entity.display_name or "",
        "gender": entity.gender,
        "date_of_birth": birth.isoformat() if birth else None,
        "age": age_on(birth, today) if birth else None,
        "bio": entity.bio or "",
        "photo_url": entity.photo_url or "",
    }


class UserService:
    def __init__(self, quota_service: QuotaService, repository: Optional[SQLRepository] = None) -> None:
        self.quota_service = quota_service
        self.repository = repository or SQLRepository()
        self._selection_locks = KeyedLock()

    def user_id_for_account(self, account_id: int) -> int:
        user = self.repository.get_user_by_account(account_id)
        if not user:
            raise UserNotFoundError(f"No profile for account {account_id}")
        return user.user_id

    def get_profile(self, user_id: int) -> dict:
        user = self.repository.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return _entity_to_profile_dict(user)

    def update_profile(self, user_id: int, values: dict) -> dict:
        changes = dict(values)
        if "display_name" in changes:
            name = (changes["display_name"] or "").strip()
            if not name:
                raise ProfileValidationError("Display name cannot be empty")
            changes["display_name"] = name
        if changes.get("gender") is not None and changes["gender"] not in GENDERS:
            raise ProfileValidationError("Invalid gender")
        if "date_of_birth" in changes and not is_adult(changes["date_of_birth"], datetime.now(timezone.utc).date()):
            raise ProfileValidationError("You must be at least 18 years old")
        user = self.repository.update_user_profile(user_id, changes)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return _entity_to_profile_dict(user)

    def next_candidate(self, user_id: int) -> Union[CandidateResult, Denied]:
        """
        Pick a random candidate not yet shown in the current window and charge
        one quota unit for it. Returns the Denied decision untouched when the
        quota is exhausted; raises NoCandidateError without charging anything
        when there is nobody left to show.

        The selection row is written before the charge and removed again if
        the charge is denied or fails, so a charged unit always has a
        recorded selection. Calls for the same user are serialized within
        this process; two processes serving the same user at the same
        instant may still show the same candidate twice.
        """
        with self._selection_locks.hold(user_id):
            quota = self.quota_service.get_quota(user_id)
            shown = self.repository.selected_candidate_ids(user_id, since=quota.window_start)
            candidate = self.repository.pick_random_candidate(user_id, exclude=shown)
            if candidate is None:
                raise NoCandidateError("No more candidates available right now")

            # same instant for both, so a window opened by this charge still covers the selection
            when = self.quota_service.clock()
            selection = self.repository.add_selection(user_id, candidate.user_id, when)
            try:
                decision = self.quota_service.consume(user_id, 1, now=when)
            except Exception:
                self.repository.delete_selection(selection.selection_history_id)
                raise
            if isinstance(decision, Denied):
                self.repository.delete_selection(selection.selection_history_id)
                return decision
            return CandidateResult(candidate=_entity_to_profile_dict(candidate), remaining=decision.remaining)

    def selection_history(self, user_id: int, limit: int = 50) -> list[SelectionRecord]:
        return [
            SelectionRecord(candidate_id=row.candidate_id, selected_at=row.selected_at)
            for row in self.repository.list_selections(user_id, limit=limit)
        ]
