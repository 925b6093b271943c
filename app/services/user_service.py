# app/services/user_service.py
from __future__ import annotations

import logging
import random
import string
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.db.types import utcnow
from app.models.enums import UserRole
from app.models.user import User
from app.policies.user_policies import referral_code_prefix, run_user_guards

logger = logging.getLogger(__name__)

AGENT_TITLE = "Independent Land Agent"
AGENT_COMMISSION_RATE = "0.25"

# fields the ordinary update path may write
UPDATABLE_FIELDS = frozenset({"name", "wallet_address", "role", "is_active", "referral_code", "referred_by"})


class UserService:
    MAX_CODE_ATTEMPTS = 50

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    # ─────────────────────────────────────────────
    # LOOKUPS
    # ─────────────────────────────────────────────

    def get(self, db: Session, *, user_id: uuid.UUID) -> Optional[User]:
        return db.get(User, user_id)

    def get_by_email(self, db: Session, *, email: str) -> Optional[User]:
        return db.execute(
            select(User).where(User.email == email.strip().lower())
        ).scalar_one_or_none()

    def get_by_referral_code(self, db: Session, *, code: str) -> Optional[User]:
        return db.execute(
            select(User).where(User.referral_code == code.strip().upper())
        ).scalar_one_or_none()

    # ─────────────────────────────────────────────
    # REFERRAL CODES
    # ─────────────────────────────────────────────

    def _candidate_code(self, name: str) -> str:
        digit = self.rng.choice(string.digits)
        letter = self.rng.choice(string.ascii_uppercase)
        return f"WT-{referral_code_prefix(name)}{digit}{letter}"

    def generate_referral_code(self, db: Session, *, name: str) -> str:
        """
        WT-<first four letters of name><digit><letter>, checked against
        existing codes. The unique index remains the final arbiter.
        """
        for _ in range(self.MAX_CODE_ATTEMPTS):
            code = self._candidate_code(name)
            taken = db.execute(select(User.id).where(User.referral_code == code)).first()
            if not taken:
                return code
        raise RuntimeError(f"Could not allocate a referral code for {name!r}.")

    # ─────────────────────────────────────────────
    # REGISTRATION / UPDATES
    # ─────────────────────────────────────────────

    def register(
        self,
        db: Session,
        *,
        name: str,
        email: str,
        password: str,
        wallet_address: Optional[str] = None,
        referral_code: Optional[str] = None,
    ) -> User:
        email_norm = email.strip().lower()
        if self.get_by_email(db, email=email_norm):
            raise ValueError("Email already registered.")

        referrer: Optional[User] = None
        if referral_code:
            referrer = self.get_by_referral_code(db, code=referral_code)
            if not referrer:
                raise ValueError("Unknown referral code.")

        user = User(
            id=uuid.uuid4(),
            name=name.strip(),
            email=email_norm,
            password_hash=hash_password(password),
            wallet_address=wallet_address,
            role=UserRole.USER.value,
            referral_code=self.generate_referral_code(db, name=name),
            referred_by=referrer.id if referrer else None,
        )
        db.add(user)

        if referrer:
            referrer.total_referrals = (referrer.total_referrals or 0) + 1
            referrer.updated_at = utcnow()

        db.commit()
        db.refresh(user)
        logger.info("[users] registered user=%s referred_by=%s", user.id, user.referred_by)
        return user

    def update_user(self, db: Session, *, user_id: uuid.UUID, changes: Dict[str, Any]) -> User:
        """
        Ordinary write path. Guards reject ADMIN elevation, referral
        identity rewrites and direct stat edits.
        """
        user = self.get(db, user_id=user_id)
        if not user:
            raise ValueError("User not found.")

        run_user_guards(user, changes)

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown fields: {sorted(unknown)}")

        for field, value in changes.items():
            if field == "role":
                value = UserRole(value).value
            setattr(user, field, value)
        user.updated_at = utcnow()

        db.commit()
        db.refresh(user)
        return user

    def promote_to_agent(self, db: Session, *, user_id: uuid.UUID) -> bool:
        """
        USER -> AGENT with the default agent profile. Idempotent; never
        touches AGENT or ADMIN accounts. Does not commit.
        """
        now = utcnow()
        result = db.execute(
            update(User)
            .where(User.id == user_id, User.role == UserRole.USER.value)
            .values(
                role=UserRole.AGENT.value,
                agent_title=AGENT_TITLE,
                agent_commission_rate=AGENT_COMMISSION_RATE,
                agent_joined_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount:
            logger.info("[users] promoted to agent user=%s", user_id)
        return bool(result.rowcount)

    def grant_admin(self, db: Session, *, email: str) -> User:
        """
        Privileged, out-of-band elevation. Only reachable from the
        maintenance command line, never from the HTTP surface.
        """
        user = self.get_by_email(db, email=email)
        if not user:
            raise ValueError("User not found.")

        if user.role != UserRole.ADMIN.value:
            user.role = UserRole.ADMIN.value
            user.updated_at = utcnow()
            db.commit()
            db.refresh(user)
            logger.warning("[users] ADMIN granted user=%s", user.id)
        return user
