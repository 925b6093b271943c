# app/services/orders_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.errors import InvalidOrderError, MissingOrderError, MissingUnitError
from app.core.money import format_usdt, to_decimal
from app.db.types import utcnow
from app.models.enums import OrderStatus
from app.models.order import Order
from app.models.user import User
from app.policies.order_policies import run_order_guards, validate_unit_selection
from app.services.order_expiry_service import OrderExpiryService
from app.services.referral_service import ReferralService
from app.services.unit_inventory_service import UnitInventoryService

logger = logging.getLogger(__name__)

# statuses whose units go back to the pool when set through update_order
RELEASING_STATUSES = frozenset({OrderStatus.EXPIRED.value, OrderStatus.FAILED.value})


class OrdersService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        inventory: Optional[UnitInventoryService] = None,
    ):
        self.settings = settings or get_settings()
        self.inventory = inventory or UnitInventoryService()
        self.expiry = OrderExpiryService(inventory=self.inventory)
        self.referrals = ReferralService()

    # ─────────────────────────────────────────────
    # CREATE
    # ─────────────────────────────────────────────

    def create_order(
        self,
        db: Session,
        *,
        buyer_id: uuid.UUID,
        state_key: str,
        area_key: str,
        quantity: int,
        unit_ids: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Validate, price server-side, snapshot referral terms and reserve the
        units, all in one transaction. A reservation conflict leaves nothing
        behind (ConflictError).
        """
        now = now or utcnow()

        buyer = db.get(User, buyer_id)
        if not buyer or not buyer.is_active:
            raise InvalidOrderError("Buyer not found or inactive.")

        if unit_ids is None:
            unit_ids = self.inventory.allot(db, state_key=state_key, area_key=area_key, quantity=quantity)
        ids = validate_unit_selection(unit_ids, quantity)

        units = self.inventory.get_units(db, unit_ids=ids)
        found = {u.unit_id: u for u in units}
        missing = [u for u in ids if u not in found]
        if missing:
            raise MissingUnitError("Unknown unit ids.", meta={"unit_ids": missing})

        foreign = [u.unit_id for u in units if u.state_key != state_key or u.area_key != area_key]
        if foreign:
            raise InvalidOrderError(
                "Units do not belong to the requested area.",
                meta={"unit_ids": foreign, "state_key": state_key, "area_key": area_key},
            )

        expected = format_usdt(to_decimal(self.settings.unit_price_usdt) * quantity)

        # referral snapshot, frozen from here on
        referrer_id = buyer.referred_by
        if referrer_id is not None and referrer_id == buyer.id:
            raise InvalidOrderError("Self-referral is not allowed.")
        commission_rate = None
        commission_amount = None
        if referrer_id is not None:
            commission_rate = str(self.settings.referral_commission_rate)
            commission_amount = self.referrals.commission_for(expected, commission_rate)

        expires_at = now + timedelta(minutes=self.settings.order_ttl_minutes)

        order = Order(
            id=uuid.uuid4(),
            buyer_id=buyer.id,
            state_key=state_key,
            area_key=area_key,
            unit_ids=ids,
            quantity=quantity,
            status=OrderStatus.PENDING.value,
            pay_to_address=self.settings.usdt_receive_address,
            network=self.settings.payment_network,
            expected_amount=expected,
            confirmations=0,
            expires_at=expires_at,
            referrer_id=referrer_id,
            commission_rate=commission_rate,
            commission_amount=commission_amount,
            created_at=now,
            updated_at=now,
        )
        db.add(order)
        db.flush()

        # rolls the whole unit of work back on conflict
        self.inventory.reserve(
            db,
            unit_ids=ids,
            order_id=order.id,
            buyer_id=buyer.id,
            lock_until=expires_at,
        )

        db.commit()
        db.refresh(order)
        logger.info(
            "[orders] created order=%s buyer=%s units=%s expected=%s",
            order.id, buyer.id, ids, expected,
        )
        return order

    # ─────────────────────────────────────────────
    # READ
    # ─────────────────────────────────────────────

    def require_order(self, db: Session, *, order_id: uuid.UUID) -> Order:
        order = db.get(Order, order_id)
        if not order:
            raise MissingOrderError("Order not found.", meta={"order_id": str(order_id)})
        return order

    def get_order(self, db: Session, *, order_id: uuid.UUID, now: Optional[datetime] = None) -> Order:
        """Read with lazy expiry: an overdue PENDING order is expired on the spot."""
        order = self.require_order(db, order_id=order_id)
        if order.status == OrderStatus.PENDING.value:
            self.expiry.expire_order(db, order=order, now=now)
            order = self.require_order(db, order_id=order_id)
        return order

    def list_for_buyer(
        self,
        db: Session,
        *,
        buyer_id: uuid.UUID,
        status: Optional[str] = None,
    ) -> List[Order]:
        stmt = select(Order).where(Order.buyer_id == buyer_id)
        if status:
            stmt = stmt.where(Order.status == OrderStatus(status).value)
        return list(db.execute(stmt.order_by(Order.created_at.desc())).scalars().all())

    # ─────────────────────────────────────────────
    # GENERAL UPDATE (guarded)
    # ─────────────────────────────────────────────

    def update_order(self, db: Session, *, order_id: uuid.UUID, changes: Dict[str, Any]) -> Order:
        """
        General write path. The guard pipeline runs before anything is
        applied, so a rejected update leaves the row untouched even when it
        also carries valid fields.
        """
        order = self.require_order(db, order_id=order_id)
        run_order_guards(order, changes)

        releasing = changes.get("status") in RELEASING_STATUSES and order.status == OrderStatus.PENDING.value

        now = utcnow()
        for field, value in changes.items():
            setattr(order, field, value)
        if changes.get("status") == OrderStatus.EXPIRED.value and order.expired_at is None:
            order.expired_at = now
        order.updated_at = now

        if releasing:
            db.flush()
            self.inventory.release(db, unit_ids=order.unit_ids, order_id=order.id)

        db.commit()
        db.refresh(order)
        return order
