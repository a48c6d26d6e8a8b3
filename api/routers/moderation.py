from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

import moderation
from models import CurrentUser
from routers.auth import require_admin

router = APIRouter(prefix="/moderation")


class Decision(BaseModel):
    comment: str | None = Field(default=None, max_length=1000)


@router.get("/pending")
def pending(admin: CurrentUser = Depends(require_admin)):
    return {"tracks": moderation.list_pending()}


@router.get("/history")
def history(admin: CurrentUser = Depends(require_admin)):
    return {"moderations": moderation.list_history()}


@router.get("/tracks/{track_id}")
def review(track_id: int, admin: CurrentUser = Depends(require_admin)):
    return moderation.review(track_id)


@router.post("/tracks/{track_id}/approve")
def approve(track_id: int, decision: Decision | None = None, admin: CurrentUser = Depends(require_admin)):
    comment = decision.comment if decision else None
    return {"moderation": moderation.approve(track_id, comment, moderator_id=admin.id)}


@router.post("/tracks/{track_id}/reject")
def reject(track_id: int, decision: Decision | None = None, admin: CurrentUser = Depends(require_admin)):
    comment = decision.comment if decision else None
    return {"moderation": moderation.reject(track_id, comment, moderator_id=admin.id)}
