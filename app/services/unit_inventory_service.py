# app/services/unit_inventory_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InvariantError
from app.db.types import utcnow
from app.models.enums import UnitStatus
from app.models.unit_inventory import InventoryUnit

logger = logging.getLogger(__name__)


class UnitInventoryService:
    """
    Inventory ledger: the single shared mutable resource across orders.

    Every status change is a conditional UPDATE ("set if currently in the
    expected prior state"); the affected row count decides who won.
    These methods do not commit. Callers own the unit of work.
    """

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_units(self, db: Session, *, unit_ids: Sequence[str]) -> List[InventoryUnit]:
        if not unit_ids:
            return []
        return list(
            db.execute(select(InventoryUnit).where(InventoryUnit.unit_id.in_(list(unit_ids))))
            .scalars()
            .all()
        )

    def get_unit(self, db: Session, *, unit_id: str) -> Optional[InventoryUnit]:
        return db.execute(
            select(InventoryUnit).where(InventoryUnit.unit_id == unit_id)
        ).scalar_one_or_none()

    def list_available(
        self,
        db: Session,
        *,
        state_key: str,
        area_key: str,
        limit: Optional[int] = None,
    ) -> List[InventoryUnit]:
        stmt = (
            select(InventoryUnit)
            .where(
                InventoryUnit.state_key == state_key,
                InventoryUnit.area_key == area_key,
                InventoryUnit.status == UnitStatus.AVAILABLE.value,
            )
            .order_by(InventoryUnit.slot_number.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(db.execute(stmt).scalars().all())

    def allot(self, db: Session, *, state_key: str, area_key: str, quantity: int) -> List[str]:
        """
        Pick the lowest-numbered AVAILABLE units in an area.
        Nothing is held here; `reserve` settles any race.
        """
        if quantity < 1:
            raise ValueError("quantity must be >= 1.")

        units = self.list_available(db, state_key=state_key, area_key=area_key, limit=quantity)
        if len(units) < quantity:
            raise ConflictError(
                "Not enough available units in area.",
                meta={"area_key": area_key, "requested": quantity, "available": len(units)},
            )
        return [u.unit_id for u in units]

    def count_held_by_order(self, db: Session, *, unit_ids: Sequence[str], order_id: uuid.UUID) -> int:
        """Units RESERVED by, or already SOLD to, the given order."""
        return db.execute(
            select(func.count())
            .select_from(InventoryUnit)
            .where(
                InventoryUnit.unit_id.in_(list(unit_ids)),
                InventoryUnit.order_id == order_id,
                InventoryUnit.status.in_([UnitStatus.RESERVED.value, UnitStatus.SOLD.value]),
            )
        ).scalar_one()

    # ─────────────────────────────────────────────
    # WRITES
    # ─────────────────────────────────────────────

    def reserve(
        self,
        db: Session,
        *,
        unit_ids: Sequence[str],
        order_id: uuid.UUID,
        buyer_id: uuid.UUID,
        lock_until: datetime,
    ) -> int:
        """
        AVAILABLE -> RESERVED for the whole batch, or nothing.

        A unit already RESERVED by the same order is re-locked (extends the
        lock). On any shortfall the session is rolled back and
        ConflictError raised, so no partial hold survives.
        """
        ids = list(unit_ids)
        if not ids:
            raise ValueError("unit_ids must not be empty.")

        now = utcnow()
        result = db.execute(
            update(InventoryUnit)
            .where(
                InventoryUnit.unit_id.in_(ids),
                or_(
                    InventoryUnit.status == UnitStatus.AVAILABLE.value,
                    and_(
                        InventoryUnit.status == UnitStatus.RESERVED.value,
                        InventoryUnit.order_id == order_id,
                    ),
                ),
            )
            .values(
                status=UnitStatus.RESERVED.value,
                order_id=order_id,
                locked_by=buyer_id,
                lock_expires_at=lock_until,
                updated_at=now,
            )
            .execution_options(synchronize_session="evaluate")
        )

        if result.rowcount != len(ids):
            db.rollback()
            logger.info(
                "[inventory] reservation conflict order=%s wanted=%s got=%s",
                order_id, len(ids), result.rowcount,
            )
            raise ConflictError(
                "One or more units are not available.",
                meta={"order_id": str(order_id), "unit_ids": ids},
            )

        logger.info("[inventory] reserved order=%s units=%s", order_id, ids)
        return result.rowcount

    def release(
        self,
        db: Session,
        *,
        unit_ids: Sequence[str],
        order_id: Optional[uuid.UUID] = None,
    ) -> int:
        """
        RESERVED -> AVAILABLE. SOLD units are never touched.
        When order_id is given only that order's holds are released.
        """
        ids = list(unit_ids)
        if not ids:
            return 0

        conditions = [
            InventoryUnit.unit_id.in_(ids),
            InventoryUnit.status == UnitStatus.RESERVED.value,
        ]
        if order_id is not None:
            conditions.append(InventoryUnit.order_id == order_id)

        result = db.execute(
            update(InventoryUnit)
            .where(*conditions)
            .values(
                status=UnitStatus.AVAILABLE.value,
                order_id=None,
                locked_by=None,
                lock_expires_at=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount:
            logger.info("[inventory] released order=%s count=%s", order_id, result.rowcount)
        return result.rowcount

    def mark_sold(
        self,
        db: Session,
        *,
        unit_ids: Sequence[str],
        order_id: uuid.UUID,
        owner_id: uuid.UUID,
        owned_at: datetime,
    ) -> int:
        """
        RESERVED-by-order -> SOLD. Units already SOLD to the same order and
        owner count as done, so a repeated call is a no-op.
        """
        ids = list(unit_ids)
        if not ids:
            return 0

        result = db.execute(
            update(InventoryUnit)
            .where(
                InventoryUnit.unit_id.in_(ids),
                InventoryUnit.status == UnitStatus.RESERVED.value,
                InventoryUnit.order_id == order_id,
            )
            .values(
                status=UnitStatus.SOLD.value,
                owner_id=owner_id,
                owned_at=owned_at,
                locked_by=None,
                lock_expires_at=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session="evaluate")
        )
        changed = result.rowcount

        if changed == len(ids):
            return changed

        # counts the rows just updated as well
        sold = db.execute(
            select(func.count())
            .select_from(InventoryUnit)
            .where(
                InventoryUnit.unit_id.in_(ids),
                InventoryUnit.status == UnitStatus.SOLD.value,
                InventoryUnit.order_id == order_id,
                InventoryUnit.owner_id == owner_id,
            )
        ).scalar_one()

        if sold != len(ids):
            raise InvariantError(
                "Units are not reserved by this order.",
                meta={"order_id": str(order_id), "unit_ids": ids},
            )
        return changed
