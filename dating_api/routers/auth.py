from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, Field

from dating_api.core.rate_limiter import client_ip, limit_by_ip
from dating_api.routers.deps import get_auth_service, require_account_id
from dating_api.services.auth_service import (
    AccountExistsError,
    AuthService,
    InvalidCredentialsError,
    RegistrationError,
)
from dating_api.services.session_service import (
    clear_session_cookie,
    request_session_token,
    set_session_cookie,
)

router = APIRouter(prefix="/auth", tags=["auth"])

_register_limit = limit_by_ip("auth:register", "register_rate_limit")
_login_limit = limit_by_ip("auth:login", "login_rate_limit")


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=30)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=128)
    display_name: str = Field(default="", max_length=100)
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    bio: str = Field(default="", max_length=2000)


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, max_length=255, description="Username or email")
    password: str = Field(min_length=1, max_length=128)


@router.post("/register", status_code=201, dependencies=[Depends(_register_limit)])
def register(payload: RegisterRequest, auth_service: AuthService = Depends(get_auth_service)):
    try:
        result = auth_service.register(
            payload.username,
            payload.email,
            payload.password,
            display_name=payload.display_name,
            gender=payload.gender,
            date_of_birth=payload.date_of_birth,
            bio=payload.bio,
        )
    except RegistrationError as exc:
        raise HTTPException(400, exc.message)
    except AccountExistsError as exc:
        raise HTTPException(409, str(exc))
    return {
        "account_id": result.account_id,
        "user_id": result.user_id,
        "username": result.username,
        "email": result.email,
    }


@router.post("/login", dependencies=[Depends(_login_limit)])
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
):
    try:
        result = auth_service.login(
            payload.identifier,
            payload.password,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
        )
    except InvalidCredentialsError as exc:
        raise HTTPException(401, str(exc))
    set_session_cookie(response, result.session_token)
    return {
        "account_id": result.account_id,
        "user_id": result.user_id,
        "username": result.username,
        "token": result.session_token,
    }


@router.post("/logout")
def logout(request: Request, response: Response, auth_service: AuthService = Depends(get_auth_service)):
    auth_service.logout(request_session_token(request))
    clear_session_cookie(response)
    return {"ok": True}


@router.get("/logins")
def login_history(
    account_id: int = Depends(require_account_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    return {
        "logins": [
            {
                "ip_address": item.ip_address,
                "user_agent": item.user_agent,
                "logged_in_at": item.logged_in_at.isoformat(),
            }
            for item in auth_service.login_history(account_id)
        ]
    }
