# app/models/unit_inventory.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String, Integer, Float, ForeignKey, Uuid,
    UniqueConstraint, CheckConstraint, Index, text
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow
from app.models.enums import UnitStatus


class InventoryUnit(Base):
    """
    One sellable land slot.

    SOLD implies owner_id is set and the reservation lock is cleared.
    """
    __tablename__ = "inventory_units"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # business key, e.g. "karnataka_whitefield_001"
    unit_id: Mapped[str] = mapped_column(String(128), nullable=False)

    state_key: Mapped[str] = mapped_column(String(64), nullable=False)
    state_name: Mapped[str] = mapped_column(String(128), nullable=False)
    area_key: Mapped[str] = mapped_column(String(64), nullable=False)
    area_name: Mapped[str] = mapped_column(String(128), nullable=False)
    slot_number: Mapped[int] = mapped_column(Integer, nullable=False)

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=UnitStatus.AVAILABLE.value,
        server_default=text(f"'{UnitStatus.AVAILABLE.value}'"),
    )

    # reservation
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    locked_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    lock_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # ownership
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )
    owned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("unit_id", name="uq_inventory_unit_id"),
        UniqueConstraint("area_key", "slot_number", name="uq_inventory_area_slot"),
        CheckConstraint("slot_number >= 1", name="ck_inventory_slot_number_pos"),
        CheckConstraint(
            "status IN ('AVAILABLE', 'RESERVED', 'SOLD')", name="ck_inventory_status"
        ),
        CheckConstraint(
            "status <> 'SOLD' OR (owner_id IS NOT NULL AND locked_by IS NULL AND lock_expires_at IS NULL)",
            name="ck_inventory_sold_has_owner",
        ),
        Index("ix_inventory_area_status", "area_key", "status"),
        Index("ix_inventory_status_lock", "status", "lock_expires_at"),
        Index("ix_inventory_order", "order_id"),
    )
