# app/services/payment_reconciler_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.errors import (
    ConflictError,
    DuplicatePaymentError,
    InvariantError,
    MissingOrderError,
    StaleObservationError,
    UnitsNoLongerReservedError,
)
from app.core.money import format_usdt, to_decimal, usdt_gte
from app.db.types import utcnow
from app.models.enums import OrderStatus
from app.models.order import Order
from app.models.payment_transaction import PaymentTransaction
from app.policies.order_policies import is_promotable, require_transition
from app.services.referral_service import ReferralService
from app.services.unit_inventory_service import UnitInventoryService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentObservation:
    tx_hash: str
    amount_usdt: str
    confirmations: int
    observed_at: datetime
    order_id: Optional[uuid.UUID] = None
    from_address: Optional[str] = None
    token_contract: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None


class ObservationOutcome(str, Enum):
    PAID = "PAID"
    AWAITING_CONFIRMATIONS = "AWAITING_CONFIRMATIONS"
    LATE_PAYMENT = "LATE_PAYMENT"
    UNDERPAID = "UNDERPAID"
    CONFIRMATIONS_UPDATED = "CONFIRMATIONS_UPDATED"
    DUPLICATE = "DUPLICATE"
    ALREADY_PAID = "ALREADY_PAID"
    FAILED = "FAILED"
    NOOP = "NOOP"


@dataclass(frozen=True)
class ReconcileResult:
    order_id: uuid.UUID
    status: str
    outcome: ObservationOutcome
    became_paid: bool = False


class PaymentReconcilerService:
    """
    Order state machine driven by payment observations and operator actions.

    PENDING --(on time, enough amount + confirmations)--> PAID
    PENDING --(under threshold)--> PENDING (hash claimed, awaiting confirmations)
    PENDING --(amount short)--> FAILED (units released)
    PENDING/EXPIRED --(observed after expires_at)--> LATE_PAYMENT
    LATE_PAYMENT/EXPIRED/FAILED --(promote_late_payment)--> PAID

    Every transition is a conditional UPDATE on the prior status. At most
    one writer moves an order to PAID; the loser gets a NOOP result.
    Nothing here issues deeds; callers act on `became_paid`.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        inventory: Optional[UnitInventoryService] = None,
        users: Optional[UserService] = None,
        referrals: Optional[ReferralService] = None,
    ):
        self.settings = settings or get_settings()
        self.inventory = inventory or UnitInventoryService()
        self.users = users or UserService()
        self.referrals = referrals or ReferralService()

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    @staticmethod
    def _result(order: Order, outcome: ObservationOutcome, became_paid: bool = False) -> ReconcileResult:
        return ReconcileResult(order_id=order.id, status=order.status, outcome=outcome, became_paid=became_paid)

    @staticmethod
    def _validate(obs: PaymentObservation) -> None:
        if not obs.tx_hash or not obs.tx_hash.strip():
            raise ValueError("tx_hash is required.")
        if isinstance(obs.confirmations, bool) or not isinstance(obs.confirmations, int) or obs.confirmations < 0:
            raise ValueError("confirmations must be an integer >= 0.")
        if obs.observed_at.tzinfo is None:
            raise ValueError("observed_at must be timezone-aware.")
        if to_decimal(obs.amount_usdt) < 0:
            raise ValueError("amount_usdt must be >= 0.")

    @staticmethod
    def _overpaid(amount: str, expected: str) -> Optional[str]:
        extra = to_decimal(amount) - to_decimal(expected)
        return format_usdt(extra) if extra > Decimal("0") else None

    def _locate(self, db: Session, obs: PaymentObservation, tx_hash: str) -> Order:
        if obs.order_id is not None:
            order = db.get(Order, obs.order_id)
        else:
            order = db.execute(select(Order).where(Order.tx_hash == tx_hash)).scalar_one_or_none()
        if not order:
            raise MissingOrderError(
                "No order for observation.",
                meta={"order_id": str(obs.order_id) if obs.order_id else None, "tx_hash": tx_hash},
            )
        return order

    def _check_hash_ownership(self, db: Session, order: Order, tx_hash: str) -> None:
        holder = db.execute(
            select(Order.id).where(Order.tx_hash == tx_hash, Order.id != order.id)
        ).scalar_one_or_none()
        if holder is not None:
            raise DuplicatePaymentError(
                "Transaction hash already claimed by another order.",
                meta={"tx_hash": tx_hash, "order_id": str(order.id), "claimed_by": str(holder)},
            )
        if order.tx_hash and order.tx_hash != tx_hash:
            raise InvariantError(
                "Order already holds a different transaction hash.",
                meta={"order_id": str(order.id), "tx_hash": tx_hash},
            )

    def _execute_claim(self, db: Session, stmt, *, order: Order, tx_hash: str) -> bool:
        """Run a conditional order UPDATE. False when the row moved underneath us."""
        try:
            result = db.execute(stmt.execution_options(synchronize_session="evaluate"))
        except IntegrityError:
            db.rollback()
            raise DuplicatePaymentError(
                "Transaction hash already claimed by another order.",
                meta={"tx_hash": tx_hash, "order_id": str(order.id)},
            )
        if result.rowcount != 1:
            db.rollback()
            logger.info("[reconciler] lost race order=%s tx=%s", order.id, tx_hash)
            return False
        return True

    def _record_claim(
        self,
        db: Session,
        order: Order,
        *,
        obs: PaymentObservation,
        tx_hash: str,
        amount: str,
        status: str,
        now: datetime,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """Store the observation on the order and move it to `status`. Does not commit."""
        if status != order.status:
            require_transition(order.status, status)

        stmt = (
            update(Order)
            .where(
                Order.id == order.id,
                Order.status == order.status,
                Order.confirmations <= obs.confirmations,
                or_(Order.tx_hash.is_(None), Order.tx_hash == tx_hash),
            )
            .values(
                status=status,
                tx_hash=tx_hash,
                paid_amount=amount,
                overpaid_amount=self._overpaid(amount, order.expected_amount),
                confirmations=obs.confirmations,
                observed_at=obs.observed_at,
                failure_reason=failure_reason,
                updated_at=now,
            )
        )
        return self._execute_claim(db, stmt, order=order, tx_hash=tx_hash)

    def _record_payment_transaction(
        self,
        db: Session,
        order: Order,
        *,
        tx_hash: str,
        amount: str,
        confirmations: int,
        observed_at: Optional[datetime],
        obs: Optional[PaymentObservation],
    ) -> None:
        """Audit row for the settling transfer. Flushed, not committed."""
        db.add(
            PaymentTransaction(
                tx_hash=tx_hash,
                order_id=order.id,
                user_id=order.buyer_id,
                from_address=obs.from_address if obs else None,
                to_address=order.pay_to_address,
                token_contract=obs.token_contract if obs else None,
                amount_usdt=amount,
                confirmations=confirmations,
                observed_at=observed_at,
                raw=dict(obs.raw or {}) if obs else {"source": "late_payment_promotion"},
            )
        )
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise DuplicatePaymentError(
                "Transaction hash already recorded for another payment.",
                meta={"tx_hash": tx_hash, "order_id": str(order.id)},
            )

    def _settle(
        self,
        db: Session,
        order: Order,
        *,
        from_statuses: Iterable[str],
        tx_hash: str,
        amount: str,
        confirmations: int,
        observed_at: Optional[datetime],
        now: datetime,
        obs: Optional[PaymentObservation] = None,
    ) -> ReconcileResult:
        """
        The PAID transition. Either everything below lands in one commit or
        nothing does.

        The conditional status UPDATE runs first, so a writer that lost the
        race sees a no-op before it ever looks at the units.
        """
        order_id = order.id
        unit_ids = list(order.unit_ids)

        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.status.in_(list(from_statuses)),
                Order.confirmations <= confirmations,
                or_(Order.tx_hash.is_(None), Order.tx_hash == tx_hash),
            )
            .values(
                status=OrderStatus.PAID.value,
                tx_hash=tx_hash,
                paid_amount=amount,
                overpaid_amount=self._overpaid(amount, order.expected_amount),
                confirmations=confirmations,
                observed_at=observed_at,
                paid_at=now,
                failure_reason=None,
                updated_at=now,
            )
        )
        if not self._execute_claim(db, stmt, order=order, tx_hash=tx_hash):
            order = db.get(Order, order_id)
            outcome = ObservationOutcome.ALREADY_PAID if order.status == OrderStatus.PAID.value else ObservationOutcome.NOOP
            return self._result(order, outcome)

        # released units are never re-taken; every unit must still be held by this order
        held = self.inventory.count_held_by_order(db, unit_ids=unit_ids, order_id=order_id)
        if held != len(unit_ids):
            db.rollback()
            raise UnitsNoLongerReservedError(
                "Units are no longer reserved for this order.",
                meta={"order_id": str(order_id), "held": held, "expected": len(unit_ids)},
            )

        order = db.get(Order, order_id)
        self._record_payment_transaction(
            db, order, tx_hash=tx_hash, amount=amount,
            confirmations=confirmations, observed_at=observed_at, obs=obs,
        )
        self.referrals.record_earning(db, order=order)
        if order.referrer_id is not None:
            self.users.promote_to_agent(db, user_id=order.referrer_id)

        db.commit()
        db.refresh(order)
        logger.info(
            "[reconciler] order PAID order=%s tx=%s amount=%s overpaid=%s",
            order.id, tx_hash, amount, order.overpaid_amount,
        )
        return self._result(order, ObservationOutcome.PAID, became_paid=True)

    def _decide(self, db: Session, order: Order, *, obs: PaymentObservation, tx_hash: str, now: datetime) -> ReconcileResult:
        amount = format_usdt(obs.amount_usdt)
        required = self.settings.required_confirmations

        if not usdt_gte(amount, order.expected_amount):
            if not self._record_claim(
                db, order, obs=obs, tx_hash=tx_hash, amount=amount,
                status=OrderStatus.FAILED.value, now=now, failure_reason="payment mismatch",
            ):
                return self._result(db.get(Order, order.id), ObservationOutcome.NOOP)
            self.inventory.release(db, unit_ids=order.unit_ids, order_id=order.id)
            db.commit()
            logger.info("[reconciler] underpaid order=%s tx=%s amount=%s", order.id, tx_hash, amount)
            return self._result(db.get(Order, order.id), ObservationOutcome.UNDERPAID)

        late = order.status == OrderStatus.EXPIRED.value or obs.observed_at > order.expires_at
        if late:
            if not self._record_claim(
                db, order, obs=obs, tx_hash=tx_hash, amount=amount,
                status=OrderStatus.LATE_PAYMENT.value, now=now,
            ):
                return self._result(db.get(Order, order.id), ObservationOutcome.NOOP)
            db.commit()
            logger.warning("[reconciler] late payment order=%s tx=%s", order.id, tx_hash)
            if self.settings.auto_honor_late_payments and obs.confirmations >= required:
                return self.promote_late_payment(db, order_id=order.id, now=now)
            return self._result(db.get(Order, order.id), ObservationOutcome.LATE_PAYMENT)

        if obs.confirmations < required:
            if not self._record_claim(
                db, order, obs=obs, tx_hash=tx_hash, amount=amount,
                status=order.status, now=now,
            ):
                return self._result(db.get(Order, order.id), ObservationOutcome.NOOP)
            db.commit()
            return self._result(db.get(Order, order.id), ObservationOutcome.AWAITING_CONFIRMATIONS)

        return self._settle(
            db,
            order,
            from_statuses=[OrderStatus.PENDING.value],
            tx_hash=tx_hash,
            amount=amount,
            confirmations=obs.confirmations,
            observed_at=obs.observed_at,
            now=now,
            obs=obs,
        )

    def _fail(
        self,
        db: Session,
        *,
        order_id: uuid.UUID,
        from_statuses: Iterable[str],
        reason: str,
        now: Optional[datetime] = None,
    ) -> Order:
        now = now or utcnow()
        order = db.get(Order, order_id)
        if not order:
            raise MissingOrderError("Order not found.", meta={"order_id": str(order_id)})

        allowed = set(from_statuses)
        if order.status not in allowed:
            raise InvariantError(
                f"Order in status {order.status} cannot be failed here.",
                meta={"order_id": str(order_id), "status": order.status},
            )
        require_transition(order.status, OrderStatus.FAILED.value)

        result = db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_(list(allowed)))
            .values(status=OrderStatus.FAILED.value, failure_reason=reason, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            db.rollback()
            raise ConflictError("Order changed concurrently.", meta={"order_id": str(order_id)})

        self.inventory.release(db, unit_ids=order.unit_ids, order_id=order_id)
        db.commit()
        db.refresh(order)
        logger.info("[reconciler] order failed order=%s reason=%s", order_id, reason)
        return order

    # ─────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────

    def apply_observation(
        self,
        db: Session,
        *,
        observation: PaymentObservation,
        now: Optional[datetime] = None,
    ) -> ReconcileResult:
        now = now or utcnow()
        self._validate(observation)
        tx_hash = observation.tx_hash.strip()

        order = self._locate(db, observation, tx_hash)
        self._check_hash_ownership(db, order, tx_hash)

        if order.tx_hash == tx_hash:
            if observation.confirmations < order.confirmations:
                raise StaleObservationError(
                    "Confirmations may only increase.",
                    meta={
                        "order_id": str(order.id),
                        "stored": order.confirmations,
                        "observed": observation.confirmations,
                    },
                )
            if observation.confirmations == order.confirmations:
                return self._result(order, ObservationOutcome.DUPLICATE)

        if order.status in (OrderStatus.PENDING.value, OrderStatus.EXPIRED.value):
            return self._decide(db, order, obs=observation, tx_hash=tx_hash, now=now)

        if order.tx_hash != tx_hash:
            raise InvariantError(
                f"Order is {order.status} and accepts no new payment.",
                meta={"order_id": str(order.id), "status": order.status},
            )

        # same hash, more confirmations, order already past PENDING
        stmt = (
            update(Order)
            .where(Order.id == order.id, Order.confirmations < observation.confirmations)
            .values(confirmations=observation.confirmations, updated_at=now)
        )
        if not self._execute_claim(db, stmt, order=order, tx_hash=tx_hash):
            raise StaleObservationError(
                "Confirmations may only increase.",
                meta={"order_id": str(order.id), "observed": observation.confirmations},
            )
        db.commit()
        order = db.get(Order, order.id)

        if (
            order.status == OrderStatus.LATE_PAYMENT.value
            and self.settings.auto_honor_late_payments
            and order.confirmations >= self.settings.required_confirmations
        ):
            return self.promote_late_payment(db, order_id=order.id, now=now)

        return self._result(order, ObservationOutcome.CONFIRMATIONS_UPDATED)

    def promote_late_payment(
        self,
        db: Session,
        *,
        order_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> ReconcileResult:
        """
        Honor a recorded payment on a LATE_PAYMENT / EXPIRED / FAILED order.
        Same path as the on-time settlement; fails with
        UnitsNoLongerReservedError when any unit was released or resold.
        """
        now = now or utcnow()
        order = db.get(Order, order_id)
        if not order:
            raise MissingOrderError("Order not found.", meta={"order_id": str(order_id)})

        if order.status == OrderStatus.PAID.value:
            return self._result(order, ObservationOutcome.ALREADY_PAID)
        if not is_promotable(order.status):
            raise InvariantError(
                f"Order in status {order.status} cannot be promoted.",
                meta={"order_id": str(order_id), "status": order.status},
            )
        if not order.tx_hash or order.paid_amount is None:
            raise InvariantError("Order has no recorded payment.", meta={"order_id": str(order_id)})
        if not usdt_gte(order.paid_amount, order.expected_amount):
            raise InvariantError(
                "Recorded payment is below the expected amount.",
                meta={"order_id": str(order_id), "paid": order.paid_amount, "expected": order.expected_amount},
            )
        if order.confirmations < self.settings.required_confirmations:
            raise InvariantError(
                "Recorded payment lacks confirmations.",
                meta={"order_id": str(order_id), "confirmations": order.confirmations},
            )

        return self._settle(
            db,
            order,
            from_statuses=[order.status],
            tx_hash=order.tx_hash,
            amount=order.paid_amount,
            confirmations=order.confirmations,
            observed_at=order.observed_at,
            now=now,
        )

    def reject_late_payment(
        self,
        db: Session,
        *,
        order_id: uuid.UUID,
        reason: str = "late payment rejected",
        now: Optional[datetime] = None,
    ) -> Order:
        return self._fail(
            db,
            order_id=order_id,
            from_statuses=[OrderStatus.LATE_PAYMENT.value],
            reason=reason,
            now=now,
        )

    def fail_order(
        self,
        db: Session,
        *,
        order_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
    ) -> Order:
        return self._fail(
            db,
            order_id=order_id,
            from_statuses=[
                OrderStatus.PENDING.value,
                OrderStatus.EXPIRED.value,
                OrderStatus.LATE_PAYMENT.value,
            ],
            reason=reason,
            now=now,
        )
