#app/models/order.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    String,
    Integer,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import JSONType, UTCDateTime, utcnow
from app.models.enums import OrderStatus


# Columns making up the referral snapshot. Written once at creation.
REFERRAL_SNAPSHOT_FIELDS = frozenset({"referrer_id", "commission_rate", "commission_amount"})


class Order(Base):
    """
    Reservation of one or more inventory units against a buyer.

    Payment, expiry and referral data live in one canonical set of columns:
      payment_*  : expected / paid / overpaid amounts, tx hash, confirmations
      expiry     : expires_at / expired_at
      referral   : referrer_id / commission_rate / commission_amount (immutable)

    Amounts are canonical decimal strings ("100.000000").
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    buyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    state_key: Mapped[str] = mapped_column(String(64), nullable=False)
    area_key: Mapped[str] = mapped_column(String(64), nullable=False)

    unit_ids: Mapped[List[str]] = mapped_column(JSONType, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=OrderStatus.PENDING.value,
        server_default=text(f"'{OrderStatus.PENDING.value}'"),
    )

    pay_to_address: Mapped[str] = mapped_column(String(64), nullable=False)
    network: Mapped[str] = mapped_column(String(16), nullable=False, default="TRC20")

    # ── payment ──
    expected_amount: Mapped[str] = mapped_column(String(32), nullable=False)
    paid_amount: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    overpaid_amount: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    confirmations: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    observed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # ── expiry ──
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expired_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # ── referral snapshot (immutable) ──
    referrer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    commission_rate: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    commission_amount: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    failure_reason: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("tx_hash", name="uq_orders_tx_hash"),
        CheckConstraint("quantity >= 1", name="ck_orders_quantity_pos"),
        CheckConstraint("confirmations >= 0", name="ck_orders_confirmations_nonneg"),
        CheckConstraint(
            "status IN ('PENDING', 'PAID', 'FAILED', 'EXPIRED', 'LATE_PAYMENT')",
            name="ck_orders_status",
        ),
        Index("ix_orders_buyer_status", "buyer_id", "status"),
        Index("ix_orders_status_expires", "status", "expires_at"),
    )
