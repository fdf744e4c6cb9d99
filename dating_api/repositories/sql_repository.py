"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

import secrets
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, func, or_, select, update

from dating_api.db.models import (
    Account,
    LoginHistory,
    SelectionHistory,
    User,
    UserSession,
)
from dating_api.db.session import get_session


class SQLRepository:
    """CRUD helpers wrapping the SQLAlchemy session."""

    # -------------------------- accounts --------------------------
    def get_account(self, account_id: int) -> Optional[Account]:
        with get_session() as session:
            return session.get(Account, account_id)

    def get_account_by_login(self, identifier: str) -> Optional[Account]:
        """Look an account up by username or email."""
        value = (identifier or "").strip().lower()
        if not value:
            return None
        with get_session() as session:
            stmt = select(Account).where(or_(Account.username == value, Account.email == value))
            return session.execute(stmt).scalars().first()

    def account_exists(self, *, username: str = "", email: str = "") -> bool:
        clauses = []
        if username:
            clauses.append(Account.username == username)
        if email:
            clauses.append(Account.email == email)
        if not clauses:
            return False
        with get_session() as session:
            stmt = select(Account.account_id).where(or_(*clauses)).limit(1)
            return session.execute(stmt).first() is not None

    def create_account_with_user(self, username: str, email: str, password_hash: str, profile: dict) -> tuple[Account, User]:
        """Insert the account and its profile row in one transaction."""
        now = datetime.now(timezone.utc)
        account = Account(
            username=username,
            email=email,
            password_hash=password_hash,
            verified=False,
            created_at=now,
            updated_at=now,
        )
        user = User(
            account=account,
            display_name=profile.get("display_name") or username,
            gender=profile.get("gender"),
            date_of_birth=profile.get("date_of_birth"),
            bio=profile.get("bio") or "",
            photo_url=profile.get("photo_url") or "",
            created_at=now,
            updated_at=now,
        )
        with get_session() as session:
            session.add(account)
            session.add(user)
            session.commit()
            session.refresh(account)
            session.refresh(user)
            return account, user

    def update_account_password(self, account_id: int, password_hash: str) -> None:
        with get_session() as session:
            stmt = (
                update(Account)
                .where(Account.account_id == account_id)
                .values(password_hash=password_hash, updated_at=datetime.now(timezone.utc))
            )
            session.execute(stmt)
            session.commit()

    def delete_account(self, account_id: int) -> None:
        with get_session() as session:
            account = session.get(Account, account_id)
            if account:
                session.delete(account)
                session.commit()

    # -------------------------- users --------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        with get_session() as session:
            return session.get(User, user_id)

    def get_user_by_account(self, account_id: int) -> Optional[User]:
        with get_session() as session:
            stmt = select(User).where(User.account_id == account_id)
            return session.execute(stmt).scalar_one_or_none()

    def user_exists(self, user_id: int) -> bool:
        with get_session() as session:
            stmt = select(User.user_id).where(User.user_id == user_id).limit(1)
            return session.execute(stmt).first() is not None

    def update_user_profile(self, user_id: int, values: dict) -> Optional[User]:
        allowed = {"display_name", "gender", "date_of_birth", "bio", "photo_url"}
        changes = {k: v for k, v in values.items() if k in allowed}
        with get_session() as session:
            user = session.get(User, user_id)
            if not user:
                return None
            for key, value in changes.items():
                setattr(user, key, value)
            user.updated_at = datetime.now(timezone.utc)
            session.commit()
            session.refresh(user)
            return user

    def pick_random_candidate(self, user_id: int, exclude: Iterable[int]) -> Optional[User]:
        excluded = set(exclude)
        excluded.add(user_id)
        with get_session() as session:
            stmt = (
                select(User)
                .where(User.user_id.notin_(sorted(excluded)))
                .order_by(func.random())
                .limit(1)
            )
            return session.execute(stmt).scalars().first()

    # -------------------------- sessions --------------------------
    def create_session(self, account_id: int, expires_at: datetime) -> str:
        token = secrets.token_urlsafe(32)
        with get_session() as session:
            session.add(UserSession(token=token, account_id=account_id, expires_at=expires_at))
            session.commit()
        return token

    def get_user_session(self, token: str) -> Optional[UserSession]:
        with get_session() as session:
            return session.get(UserSession, token)

    def delete_session(self, token: str) -> None:
        with get_session() as session:
            session.execute(delete(UserSession).where(UserSession.token == token))
            session.commit()

    def delete_account_sessions(self, account_id: int) -> None:
        with get_session() as session:
            session.execute(delete(UserSession).where(UserSession.account_id == account_id))
            session.commit()

    # -------------------------- login history --------------------------
    def add_login_history(self, account_id: int, ip_address: str, user_agent: str, logged_in_at: datetime) -> LoginHistory:
        entity = LoginHistory(
            account_id=account_id,
            ip_address=(ip_address or "")[:64],
            user_agent=(user_agent or "")[:512],
            logged_in_at=logged_in_at,
        )
        with get_session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def list_login_history(self, account_id: int, limit: int = 50) -> list[LoginHistory]:
        with get_session() as session:
            stmt = (
                select(LoginHistory)
                .where(LoginHistory.account_id == account_id)
                .order_by(LoginHistory.logged_in_at.desc(), LoginHistory.login_history_id.desc())
                .limit(limit)
            )
            return session.execute(stmt).scalars().all()

    # -------------------------- selection history --------------------------
    def add_selection(self, user_id: int, candidate_id: int, selected_at: datetime) -> SelectionHistory:
        entity = SelectionHistory(user_id=user_id, candidate_id=candidate_id, selected_at=selected_at)
        with get_session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def delete_selection(self, selection_history_id: int) -> None:
        with get_session() as session:
            session.execute(
                delete(SelectionHistory).where(SelectionHistory.selection_history_id == selection_history_id)
            )
            session.commit()

    def selected_candidate_ids(self, user_id: int, since: datetime) -> set[int]:
        with get_session() as session:
            stmt = select(SelectionHistory.candidate_id).where(
                SelectionHistory.user_id == user_id,
                SelectionHistory.selected_at >= since,
            )
            return set(session.execute(stmt).scalars().all())

    def list_selections(self, user_id: int, limit: int = 50) -> list[SelectionHistory]:
        with get_session() as session:
            stmt = (
                select(SelectionHistory)
                .where(SelectionHistory.user_id == user_id)
                .order_by(SelectionHistory.selected_at.desc(), SelectionHistory.selection_history_id.desc())
                .limit(limit)
            )
            return session.execute(stmt).scalars().all()

