#app/models/payment_transaction.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Integer, ForeignKey, UniqueConstraint, CheckConstraint, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import JSONType, UTCDateTime, utcnow


class PaymentTransaction(Base):
    """
    Audit record of the transfer that settled an order. Written in the same
    commit as the PAID transition; one row per transaction hash.
    """

    __tablename__ = "payment_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tx_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    from_address: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    to_address: Mapped[str] = mapped_column(String(128), nullable=False)
    token_contract: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    amount_usdt: Mapped[str] = mapped_column(String(32), nullable=False)
    confirmations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    observed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # watcher payload as received
    raw: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("tx_hash", name="uq_payment_transaction_tx_hash"),
        CheckConstraint("confirmations >= 0", name="ck_payment_transaction_confirmations"),
        Index("ix_payment_transaction_order", "order_id"),
        Index("ix_payment_transaction_user", "user_id"),
    )
