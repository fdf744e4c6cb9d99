"""Request-scoped lookups shared by the routers."""
from __future__ import annotations

from fastapi import HTTPException, Request

from dating_api.services.auth_service import AuthService
from dating_api.services.quota_service import QuotaService
from dating_api.services.session_service import current_account_id
from dating_api.services.user_service import UserNotFoundError, UserService


def _state(request: Request, name: str):
    value = getattr(getattr(request.app, "state", None), name, None)
    if value is None:
        raise RuntimeError(f"{name} is not configured")
    return value


def get_auth_service(request: Request) -> AuthService:
    return _state(request, "auth_service")


def get_user_service(request: Request) -> UserService:
    return _state(request, "user_service")


def get_quota_service(request: Request) -> QuotaService:
    return _state(request, "quota_service")


def require_account_id(request: Request) -> int:
    account_id = current_account_id(request)
    if account_id is None:
        raise HTTPException(401, "Authentication required")
    return account_id


def require_user_id(request: Request) -> int:
    account_id = require_account_id(request)
    try:
        return get_user_service(request).user_id_for_account(account_id)
    except UserNotFoundError:
        raise HTTPException(404, "Profile not found")
