"""Session helpers (issue tokens, cookies, validation)."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi import Request, Response

from dating_api.core.config import get_settings
from dating_api.domain.quota import as_utc
from dating_api.repositories.sql_repository import SQLRepository

SESSION_COOKIE_NAME = "session"

_repo = SQLRepository()


def issue_session(account_id: int) -> str:
    """Create a new session token and persist it."""
    settings = get_settings()
    ttl = max(60, settings.session_ttl_seconds)
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
    return _repo.create_session(account_id, expires_at)


def request_session_token(request: Request) -> str | None:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        token = auth[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE_NAME)


def current_account_id(request: Request) -> int | None:
    """Return the account bound to the request's session cookie or bearer token, if any."""
    token = request_session_token(request)
    if not token:
        return None

    entity = _repo.get_user_session(token)
    if not entity:
        return None
    if entity.expires_at and as_utc(entity.expires_at) < datetime.now(timezone.utc):
        _repo.delete_session(token)
        return None
    return entity.account_id


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    secure_cookie = settings.app_env == "prod"
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        httponly=True,
        secure=secure_cookie,
        samesite="strict",
        max_age=settings.session_ttl_seconds,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")


def delete_session(token: str) -> None:
    """Remove a session token from the store."""
    if not token:
        return
    _repo.delete_session(token)
