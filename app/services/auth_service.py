# app/services/auth_service.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.security import create_access_token, verify_password
from app.models.enums import UserRole
from app.models.user import User
from app.policies.rbac import Principal


def authenticate(db: Session, email: str, password: str) -> Optional[Principal]:
    u = db.execute(
        select(User).where(
            User.email == email.strip().lower(),
            User.is_active.is_(True),
        )
    ).scalar_one_or_none()

    if not u:
        return None

    if not verify_password(password, u.password_hash):
        return None

    return principal_for(u)


def principal_for(u: User) -> Principal:
    return Principal(user_id=str(u.id), role=UserRole(u.role), name=u.name)


def issue_token(principal: Principal) -> str:
    return create_access_token(
        subject=principal.user_id,
        claims={
            "user_id": principal.user_id,
            "role": principal.role.value,
            "name": principal.name,
        },
    )
