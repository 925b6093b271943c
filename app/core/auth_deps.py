#app/core/auth_deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.core.security import decode_token, secret_matches
from app.models.enums import UserRole
from app.policies.rbac import Principal

bearer = HTTPBearer(auto_error=True)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid
    - user_id and role are present
    - role is a valid UserRole
    """

    try:
        payload = decode_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    role = payload.get("role")
    user_id = payload.get("user_id")
    name = payload.get("name") or "Unknown"

    if not role or not user_id:
        raise HTTPException(status_code=401, detail="Token missing required claims.")

    try:
        role_enum = UserRole(role)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid role in token.")

    principal = Principal(user_id=str(user_id), role=role_enum, name=str(name))

    # Make principal available to downstream middleware / handlers
    request.state.principal = principal

    return principal


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin only.")
    return principal


def require_watcher(x_watcher_token: Optional[str] = Header(default=None)) -> None:
    """Shared-secret check for the blockchain watcher."""
    expected = get_settings().payment_watcher_token
    if not expected:
        raise HTTPException(status_code=503, detail="Payment intake not configured.")
    if not secret_matches(x_watcher_token, expected):
        raise HTTPException(status_code=401, detail="Invalid watcher token.")
