# app/models/user.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow
from app.models.enums import UserRole


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)

    # 🔐 AUTH
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, server_default=text("true"), default=True)

    # EVM address that receives minted deeds
    wallet_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    role: Mapped[str] = mapped_column(
        String(16), nullable=False, default=UserRole.USER.value, server_default=text(f"'{UserRole.USER.value}'")
    )

    # Referral identity
    referral_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    referred_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Cached aggregates; recomputable from orders / referral_earnings
    total_referrals: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    total_earnings: Mapped[str] = mapped_column(
        String(32), nullable=False, default="0.000000", server_default=text("'0.000000'")
    )

    # Agent profile (set on promotion)
    agent_title: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    agent_commission_rate: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    agent_joined_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        UniqueConstraint("referral_code", name="uq_users_referral_code"),
        CheckConstraint("total_referrals >= 0", name="ck_users_total_referrals_nonneg"),
        CheckConstraint("role IN ('USER', 'AGENT', 'ADMIN')", name="ck_users_role"),
        Index("ix_users_role", "role"),
        Index("ix_users_referred_by", "referred_by"),
    )
