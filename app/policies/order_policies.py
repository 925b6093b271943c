#app/policies/order_policies.py
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Sequence

from app.core.errors import ImmutableFieldError, InvalidOrderError, InvariantError
from app.models.enums import OrderStatus, PROMOTABLE_ORDER_STATES
from app.models.order import Order, REFERRAL_SNAPSHOT_FIELDS


# Allowed lifecycle edges. PAID has no outgoing edge.
ORDER_TRANSITIONS: Dict[str, frozenset] = {
    OrderStatus.PENDING.value: frozenset(
        {
            OrderStatus.PAID.value,
            OrderStatus.EXPIRED.value,
            OrderStatus.LATE_PAYMENT.value,
            OrderStatus.FAILED.value,
        }
    ),
    OrderStatus.EXPIRED.value: frozenset(
        {OrderStatus.PAID.value, OrderStatus.LATE_PAYMENT.value, OrderStatus.FAILED.value}
    ),
    OrderStatus.LATE_PAYMENT.value: frozenset({OrderStatus.PAID.value, OrderStatus.FAILED.value}),
    OrderStatus.FAILED.value: frozenset({OrderStatus.PAID.value}),
    OrderStatus.PAID.value: frozenset(),
}

# Columns the general update path never writes
SYSTEM_FIELDS = frozenset(
    {
        "id",
        "buyer_id",
        "created_at",
        "expected_amount",
        "paid_amount",
        "overpaid_amount",
        "tx_hash",
        "confirmations",
        "observed_at",
        "paid_at",
        # unit holds and pricing are fixed by order creation
        "state_key",
        "area_key",
        "unit_ids",
        "quantity",
        "pay_to_address",
        "network",
        "expires_at",
        "expired_at",
    }
)

OrderGuard = Callable[[Order, Dict[str, Any]], None]


def validate_unit_selection(unit_ids: Sequence[str], quantity: int) -> List[str]:
    """
    Pure validation of a requested unit list.
    Returns the list unchanged on success.
    """
    ids = list(unit_ids or [])
    if not ids:
        raise InvalidOrderError("At least one unit is required.")
    if any(not isinstance(u, str) or not u.strip() for u in ids):
        raise InvalidOrderError("Unit ids must be non-empty strings.")
    if len(set(ids)) != len(ids):
        raise InvalidOrderError("Duplicate unit ids in order.")
    if quantity != len(ids):
        raise InvalidOrderError(
            "quantity must equal the number of units.",
            meta={"quantity": quantity, "units": len(ids)},
        )
    return ids


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def require_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvariantError(
            f"Order cannot move from {current} to {target}.",
            meta={"from": current, "to": target},
        )


def is_promotable(status: str) -> bool:
    return status in PROMOTABLE_ORDER_STATES


# ───── Guards (run in order) ─────

def reject_referral_snapshot_change(order: Order, changes: Dict[str, Any]) -> None:
    touched = sorted(REFERRAL_SNAPSHOT_FIELDS.intersection(changes))
    if touched:
        raise ImmutableFieldError(
            "Referral snapshot is immutable once the order is created.",
            meta={"fields": touched},
        )


def reject_unknown_fields(order: Order, changes: Dict[str, Any]) -> None:
    unknown = sorted(set(changes) - set(Order.__table__.columns.keys()))
    if unknown:
        raise InvalidOrderError("Unknown order fields.", meta={"fields": unknown})


def reject_system_fields(order: Order, changes: Dict[str, Any]) -> None:
    touched = sorted(SYSTEM_FIELDS.intersection(changes))
    if touched:
        raise ImmutableFieldError("Fields are not writable through order updates.", meta={"fields": touched})


def reject_paid_changes(order: Order, changes: Dict[str, Any]) -> None:
    if order.status != OrderStatus.PAID.value:
        return
    if any(getattr(order, field) != value for field, value in changes.items()):
        raise InvariantError("PAID orders are terminal.", meta={"fields": sorted(changes)})


def reject_illegal_transition(order: Order, changes: Dict[str, Any]) -> None:
    target = changes.get("status")
    if target is None or target == order.status:
        return
    if target == OrderStatus.PAID.value:
        # settlement only happens through the payment reconciler
        raise InvariantError("Orders become PAID only through payment settlement.")
    require_transition(order.status, target)


ORDER_UPDATE_GUARDS: Sequence[OrderGuard] = (
    reject_referral_snapshot_change,
    reject_unknown_fields,
    reject_system_fields,
    reject_paid_changes,
    reject_illegal_transition,
)


def run_order_guards(
    order: Order,
    changes: Dict[str, Any],
    guards: Iterable[OrderGuard] = ORDER_UPDATE_GUARDS,
) -> None:
    for guard in guards:
        guard(order, changes)
