from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dating_api.domain.quota import Denied
from dating_api.routers.deps import get_user_service, require_user_id
from dating_api.services.user_service import (
    NoCandidateError,
    ProfileValidationError,
    UserNotFoundError,
    UserService,
)

router = APIRouter(prefix="/users", tags=["users"])


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=100)
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    bio: Optional[str] = Field(default=None, max_length=2000)
    photo_url: Optional[str] = Field(default=None, max_length=512)


@router.get("/me")
def read_profile(user_id: int = Depends(require_user_id), user_service: UserService = Depends(get_user_service)):
    try:
        return user_service.get_profile(user_id)
    except UserNotFoundError:
        raise HTTPException(404, "Profile not found")


@router.put("/me")
def update_profile(
    payload: ProfileUpdate,
    user_id: int = Depends(require_user_id),
    user_service: UserService = Depends(get_user_service),
):
    try:
        return user_service.update_profile(user_id, payload.model_dump(exclude_unset=True))
    except ProfileValidationError as exc:
        raise HTTPException(400, exc.message)
    except UserNotFoundError:
        raise HTTPException(404, "Profile not found")


@router.get("/candidates/next")
def next_candidate(user_id: int = Depends(require_user_id), user_service: UserService = Depends(get_user_service)):
    try:
        result = user_service.next_candidate(user_id)
    except NoCandidateError as exc:
        raise HTTPException(404, str(exc))
    if isinstance(result, Denied):
        return JSONResponse(
            status_code=429,
            content={"detail": "Daily quota exhausted", "reason": result.reason.value, "remaining": result.remaining},
        )
    return {"candidate": result.candidate, "remaining": result.remaining}


@router.get("/me/selections")
def selection_history(user_id: int = Depends(require_user_id), user_service: UserService = Depends(get_user_service)):
    return {
        "selections": [
            {"candidate_id": item.candidate_id, "selected_at": item.selected_at.isoformat()}
            for item in user_service.selection_history(user_id)
        ]
    }
