from __future__ import annotations

import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from dating_api.domain.quota import QuotaNotFoundError, QuotaRecord
from dating_api.routers.deps import get_quota_service, require_user_id
from dating_api.services.quota_service import QuotaService

router = APIRouter(prefix="/quota", tags=["quota"])


def _record_to_dict(record: QuotaRecord) -> dict:
    return {
        "user_id": record.user_id,
        "remaining": record.remaining,
        "capacity": record.capacity,
        "window_start": record.window_start.isoformat(),
        "window_end": record.window_end.isoformat(),
        "last_reset_at": record.last_reset_at.isoformat(),
    }


def require_admin(request: Request, x_admin_token: str = Header(default="")) -> None:
    expected = request.app.state.settings.admin_token
    if not expected:
        raise HTTPException(404, "Not found")
    if not x_admin_token or not secrets.compare_digest(expected, x_admin_token):
        raise HTTPException(403, "Invalid admin token")


@router.get("")
def read_quota(user_id: int = Depends(require_user_id), quota_service: QuotaService = Depends(get_quota_service)):
    try:
        return _record_to_dict(quota_service.get_quota(user_id))
    except QuotaNotFoundError:
        raise HTTPException(404, "Profile not found")


@router.post("/admin/{user_id}/reset", dependencies=[Depends(require_admin)])
def reset_user_quota(user_id: int, quota_service: QuotaService = Depends(get_quota_service)):
    try:
        return _record_to_dict(quota_service.reset_one(user_id))
    except QuotaNotFoundError as exc:
        raise HTTPException(404, str(exc))


@router.post("/admin/reset-due", dependencies=[Depends(require_admin)])
def run_reset_pass(request: Request):
    scheduler = request.app.state.quota_scheduler
    ok = scheduler.run_once()
    return {"ok": ok, "reset": scheduler.last_result if ok else None}
