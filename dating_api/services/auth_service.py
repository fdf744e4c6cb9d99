"""
Authentication and identity related use cases.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

from dating_api.core.security import hash_password, needs_rehash, verify_password
from dating_api.domain.accounts import (
    GENDERS,
    MIN_PASSWORD_LENGTH,
    is_adult,
    is_valid_email,
    is_valid_username,
)
from dating_api.repositories.sql_repository import SQLRepository
from dating_api.services.session_service import delete_session, issue_session

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for authentication-related exceptions."""


class RegistrationError(AuthError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AccountExistsError(AuthError):
    pass


class InvalidCredentialsError(AuthError):
    pass


@dataclass
class RegisterResult:
    account_id: int
    user_id: int
    username: str
    email: str


@dataclass
class LoginSuccess:
    account_id: int
    user_id: Optional[int]
    username: str
    session_token: str


@dataclass
class LoginRecord:
    ip_address: str
    user_agent: str
    logged_in_at: datetime


@dataclass
class AuthService:
    """Handles registration, login, logout and login history."""

    def __post_init__(self):
        self.repository = SQLRepository()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    # -------------------------------------- registration --------------------------------------
    def register(
        self,
        username: str,
        email: str,
        password: str,
        *,
        display_name: str = "",
        gender: Optional[str] = None,
        date_of_birth: Optional[date] = None,
        bio: str = "",
    ) -> RegisterResult:
        username_value = (username or "").strip().lower()
        email_value = (email or "").strip().lower()
        if not is_valid_username(username_value):
            raise RegistrationError("Invalid username. Use 3-30 characters [a-z0-9_]")
        if not is_valid_email(email_value):
            raise RegistrationError("Invalid email address")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise RegistrationError(f"Password too short. Use at least {MIN_PASSWORD_LENGTH} characters")
        if gender is not None and gender not in GENDERS:
            raise RegistrationError("Invalid gender")
        if not is_adult(date_of_birth, self._now().date()):
            raise RegistrationError("You must be at least 18 years old")
        if self.repository.account_exists(username=username_value, email=email_value):
            raise AccountExistsError("Email or username already exists")

        profile = {
            "display_name": (display_name or "").strip(),
            "gender": gender,
            "date_of_birth": date_of_birth,
            "bio": (bio or "").strip(),
        }
        try:
            account, user = self.repository.create_account_with_user(
                username_value, email_value, hash_password(password), profile
            )
        except IntegrityError as exc:
            # lost a race against a concurrent registration with the same email/username
            raise AccountExistsError("Email or username already exists") from exc
        logger.info("Registered account=%s user=%s", account.account_id, user.user_id)
        return RegisterResult(
            account_id=account.account_id,
            user_id=user.user_id,
            username=account.username,
            email=account.email,
        )

    # -------------------------------------- login --------------------------------------
    def login(self, identifier: str, password: str, *, ip_address: str = "", user_agent: str = "") -> LoginSuccess:
        account = self.repository.get_account_by_login(identifier)
        if not account or not verify_password(password, account.password_hash):
            logger.info("Failed login attempt for %r from %s", (identifier or "").strip(), ip_address or "unknown")
            raise InvalidCredentialsError("Invalid credentials")
        if needs_rehash(account.password_hash):
            self.repository.update_account_password(account.account_id, hash_password(password))

        self.repository.add_login_history(account.account_id, ip_address, user_agent, self._now())
        token = issue_session(account.account_id)
        user = self.repository.get_user_by_account(account.account_id)
        logger.info("Account %s logged in from %s", account.account_id, ip_address or "unknown")
        return LoginSuccess(
            account_id=account.account_id,
            user_id=user.user_id if user else None,
            username=account.username,
            session_token=token,
        )

    def logout(self, session_token: Optional[str]):
        if not session_token:
            return
        delete_session(session_token)

    def login_history(self, account_id: int, limit: int = 50) -> list[LoginRecord]:
        return [
            LoginRecord(ip_address=row.ip_address, user_agent=row.user_agent, logged_in_at=row.logged_in_at)
            for row in self.repository.list_login_history(account_id, limit=limit)
        ]
