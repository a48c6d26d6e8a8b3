import logging

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field

import accounts
from models import CurrentUser
from routers.auth import require_user

logger = logging.getLogger(__name__)
router = APIRouter()

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: str = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=128)


class LoginRequest(BaseModel):
    username_or_email: str = Field(min_length=1)
    password: str = Field(min_length=1)


@router.post("/accounts/register", status_code=201)
def register(req: RegisterRequest):
    return accounts.register(req.username.strip(), req.email, req.password)


@router.post("/accounts/login")
def login(req: LoginRequest):
    token, user = accounts.login(req.username_or_email.strip(), req.password)
    return {"token": token, "user": {"id": user.id, "username": user.username, "role": user.role}}


@router.post("/accounts/logout")
def logout(x_session_token: str = Header(...), user: CurrentUser = Depends(require_user)):
    accounts.logout(x_session_token)
    logger.info(f"User {user.username} logged out")
    return {"ok": True}


@router.get("/accounts/profile")
def get_profile(user: CurrentUser = Depends(require_user)):
    """Profile view; downgrades a subscriber whose subscriptions have all lapsed."""
    return accounts.profile(user.id)
