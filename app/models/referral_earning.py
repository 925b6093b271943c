#app/models/referral_earning.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List

from sqlalchemy import String, ForeignKey, UniqueConstraint, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import JSONType, UTCDateTime, utcnow
from app.models.enums import ReferralEarningStatus


class ReferralEarning(Base):
    """
    Commission earned by a referrer on a PAID order. Exactly one per order.
    """

    __tablename__ = "referral_earnings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    referrer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    referred_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False
    )

    unit_ids: Mapped[List[str]] = mapped_column(JSONType, nullable=False)
    purchase_amount: Mapped[str] = mapped_column(String(32), nullable=False)
    commission_rate: Mapped[str] = mapped_column(String(16), nullable=False)
    commission_amount: Mapped[str] = mapped_column(String(32), nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ReferralEarningStatus.EARNED.value,
        server_default=text(f"'{ReferralEarningStatus.EARNED.value}'"),
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_referral_earning_order"),
        Index("ix_referral_earning_referrer_status", "referrer_id", "status"),
    )
