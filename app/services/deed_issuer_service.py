# app/services/deed_issuer_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.errors import DomainError, InvariantError, MissingOrderError, MissingUnitError
from app.models.deed import Deed
from app.models.enums import OrderStatus
from app.models.order import Order
from app.models.user import User
from app.policies.deed_policies import generate_seal_no, placeholder_token_for
from app.services.deed_repository import DeedRepository
from app.services.unit_inventory_service import UnitInventoryService

logger = logging.getLogger(__name__)


@dataclass
class IssuanceReport:
    order_id: uuid.UUID
    issued: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    deed_ids: List[uuid.UUID] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing and not self.failed


@dataclass(frozen=True)
class _OrderSnapshot:
    id: uuid.UUID
    buyer_id: uuid.UUID
    unit_ids: List[str]
    tx_hash: str
    pay_to_address: str
    paid_at: datetime
    owner_name: str


class DeedIssuerService:
    """
    One deed per unit of a PAID order.

    Each unit is its own transaction: deed insert + mark_sold commit
    together. A unit that already has a deed is skipped; a missing unit is
    reported and the loop carries on. Re-running after a crash picks up
    where the last run stopped.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        inventory: Optional[UnitInventoryService] = None,
        deeds: Optional[DeedRepository] = None,
    ):
        self.settings = settings or get_settings()
        self.inventory = inventory or UnitInventoryService()
        self.deeds = deeds or DeedRepository()

    def _snapshot(self, db: Session, order_id: uuid.UUID) -> _OrderSnapshot:
        order = db.get(Order, order_id)
        if not order:
            raise MissingOrderError("Order not found.", meta={"order_id": str(order_id)})
        if order.status != OrderStatus.PAID.value:
            raise InvariantError(
                "Deeds are only issued for PAID orders.",
                meta={"order_id": str(order_id), "status": order.status},
            )
        if not order.tx_hash or order.paid_at is None:
            raise InvariantError("PAID order lacks payment data.", meta={"order_id": str(order_id)})

        buyer = db.get(User, order.buyer_id)
        return _OrderSnapshot(
            id=order.id,
            buyer_id=order.buyer_id,
            unit_ids=list(order.unit_ids),
            tx_hash=order.tx_hash,
            pay_to_address=order.pay_to_address,
            paid_at=order.paid_at,
            owner_name=buyer.name if buyer else "Unknown",
        )

    def _ensure_sold(self, db: Session, snap: _OrderSnapshot, unit_id: str) -> None:
        self.inventory.mark_sold(
            db,
            unit_ids=[unit_id],
            order_id=snap.id,
            owner_id=snap.buyer_id,
            owned_at=snap.paid_at,
        )
        db.commit()

    def _issue_unit(self, db: Session, snap: _OrderSnapshot, unit_id: str) -> tuple[str, uuid.UUID]:
        existing = self.deeds.get_by_unit(db, unit_id=unit_id)
        if existing:
            if existing.order_id != snap.id:
                raise InvariantError(
                    "Unit already deeded to another order.",
                    meta={"unit_id": unit_id, "deed_order_id": str(existing.order_id)},
                )
            deed_id = existing.id
            self._ensure_sold(db, snap, unit_id)
            return "skipped", deed_id

        unit = self.inventory.get_unit(db, unit_id=unit_id)
        if not unit:
            raise MissingUnitError("Unit not found.", meta={"unit_id": unit_id, "order_id": str(snap.id)})

        # issuance time is the payment time, so a rerun yields the same seal
        issued_at = snap.paid_at
        deed = Deed(
            id=uuid.uuid4(),
            order_id=snap.id,
            unit_id=unit.unit_id,
            owner_id=snap.buyer_id,
            payment_tx_hash=snap.tx_hash,
            pay_to_address=snap.pay_to_address,
            owner_name=snap.owner_name,
            plot_id=unit.unit_id,
            city=unit.area_name,
            state_name=unit.state_name,
            latitude=unit.latitude,
            longitude=unit.longitude,
            issued_at=issued_at,
            seal_no=generate_seal_no(unit.unit_id, issued_at),
            nft_token_id=placeholder_token_for(unit.unit_id),
            nft_contract_address=self.settings.nft_contract_address,
            nft_chain=self.settings.nft_chain,
            nft_standard=self.settings.nft_standard,
        )
        deed_id = deed.id
        db.add(deed)
        try:
            db.flush()
        except IntegrityError:
            # unique unit / seal already taken: a concurrent or earlier run won
            db.rollback()
            existing = self.deeds.get_by_unit(db, unit_id=unit_id)
            if existing is None or existing.order_id != snap.id:
                raise InvariantError("Deed insert conflicted.", meta={"unit_id": unit_id})
            self._ensure_sold(db, snap, unit_id)
            return "skipped", existing.id

        self.inventory.mark_sold(
            db,
            unit_ids=[unit_id],
            order_id=snap.id,
            owner_id=snap.buyer_id,
            owned_at=snap.paid_at,
        )
        db.commit()
        return "issued", deed_id

    def issue_for_order(self, db: Session, *, order_id: uuid.UUID) -> IssuanceReport:
        snap = self._snapshot(db, order_id)
        # close the read transaction; every unit gets its own
        db.commit()

        report = IssuanceReport(order_id=snap.id)
        for unit_id in snap.unit_ids:
            try:
                outcome, deed_id = self._issue_unit(db, snap, unit_id)
            except MissingUnitError:
                db.rollback()
                report.missing.append(unit_id)
                logger.warning("[deeds] unit missing order=%s unit=%s", snap.id, unit_id)
                continue
            except DomainError as e:
                db.rollback()
                report.failed[unit_id] = e.message
                logger.error("[deeds] issuance failed order=%s unit=%s err=%s", snap.id, unit_id, e.message)
                continue

            report.deed_ids.append(deed_id)
            if outcome == "issued":
                report.issued.append(unit_id)
            else:
                report.skipped.append(unit_id)

        logger.info(
            "[deeds] issuance order=%s issued=%s skipped=%s missing=%s failed=%s",
            snap.id, len(report.issued), len(report.skipped), len(report.missing), len(report.failed),
        )
        return report
