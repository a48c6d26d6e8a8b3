from fastapi import Depends, Header, HTTPException

import accounts
from models import ROLE_ADMIN, ROLE_MUSICIAN, CurrentUser


def current_user(x_session_token: str = Header(None)) -> CurrentUser | None:
    """Caller identity, or None for a guest."""
    if not x_session_token:
        return None
    user = accounts.resolve_session(x_session_token)
    if user is None:
        raise HTTPException(401, "Invalid or expired session token")
    return user


def require_user(user: CurrentUser | None = Depends(current_user)) -> CurrentUser:
    if user is None:
        raise HTTPException(401, "Authentication required")
    return user


def require_roles(*roles: str):
    def _require(user: CurrentUser = Depends(require_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(403, "Insufficient role")
        return user

    return _require


require_admin = require_roles(ROLE_ADMIN)
require_uploader = require_roles(ROLE_MUSICIAN, ROLE_ADMIN)
