# app/services/order_expiry_service.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.db.types import utcnow
from app.models.enums import OrderStatus
from app.models.order import Order
from app.services.unit_inventory_service import UnitInventoryService

logger = logging.getLogger(__name__)


class OrderExpiryService:
    """
    Best-effort expiry sweep. PENDING orders past expires_at become EXPIRED
    and their units go back to AVAILABLE. Triggered externally (admin
    endpoint, maintenance command) and lazily on order reads.
    """

    def __init__(self, inventory: Optional[UnitInventoryService] = None):
        self.inventory = inventory or UnitInventoryService()

    def expire_order(self, db: Session, *, order: Order, now: Optional[datetime] = None) -> bool:
        """
        PENDING -> EXPIRED for one order, if still PENDING and past due.
        Commits. Returns False when another writer got there first.
        """
        now = now or utcnow()
        if order.status != OrderStatus.PENDING.value or order.expires_at >= now:
            return False

        result = db.execute(
            update(Order)
            .where(
                Order.id == order.id,
                Order.status == OrderStatus.PENDING.value,
                Order.expires_at < now,
            )
            .values(status=OrderStatus.EXPIRED.value, expired_at=now, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            db.rollback()
            return False

        released = self.inventory.release(db, unit_ids=order.unit_ids, order_id=order.id)
        db.commit()
        db.refresh(order)

        logger.info("[expiry] order expired order=%s released=%s", order.id, released)
        return True

    def expire_due_orders(self, db: Session, *, now: Optional[datetime] = None, limit: int = 500) -> int:
        now = now or utcnow()
        due = (
            db.execute(
                select(Order)
                .where(Order.status == OrderStatus.PENDING.value, Order.expires_at < now)
                .order_by(Order.expires_at.asc())
                .limit(limit)
            )
            .scalars()
            .all()
        )

        expired = 0
        for order in due:
            if self.expire_order(db, order=order, now=now):
                expired += 1

        logger.info("[expiry] sweep done due=%s expired=%s", len(due), expired)
        return expired
