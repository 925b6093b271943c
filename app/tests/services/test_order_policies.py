import uuid
import pytest

from app.core.errors import ImmutableFieldError, InvalidOrderError, InvariantError
from app.models.enums import OrderStatus
from app.models.order import Order
from app.policies.order_policies import (
    can_transition,
    run_order_guards,
    validate_unit_selection,
)


def _order(status=OrderStatus.PENDING.value):
    return Order(
        id=uuid.uuid4(),
        buyer_id=uuid.uuid4(),
        state_key="karnataka",
        area_key="whitefield",
        unit_ids=["a", "b"],
        quantity=2,
        status=status,
        expected_amount="100.000000",
        confirmations=0,
    )


def test_unit_selection_requires_matching_quantity():
    assert validate_unit_selection(["a", "b"], 2) == ["a", "b"]

    with pytest.raises(InvalidOrderError):
        validate_unit_selection(["a", "b"], 3)


def test_unit_selection_rejects_empty_and_duplicates():
    with pytest.raises(InvalidOrderError):
        validate_unit_selection([], 0)
    with pytest.raises(InvalidOrderError):
        validate_unit_selection(["a", "a"], 2)


def test_paid_has_no_outgoing_edges():
    for target in OrderStatus:
        assert can_transition(OrderStatus.PAID.value, target.value) is False


def test_late_payment_can_be_promoted_or_failed_only():
    assert can_transition(OrderStatus.LATE_PAYMENT.value, OrderStatus.PAID.value)
    assert can_transition(OrderStatus.LATE_PAYMENT.value, OrderStatus.FAILED.value)
    assert not can_transition(OrderStatus.LATE_PAYMENT.value, OrderStatus.PENDING.value)


def test_referral_snapshot_change_rejected_even_with_valid_fields():
    order = _order()
    with pytest.raises(ImmutableFieldError):
        run_order_guards(order, {"failure_reason": "x", "commission_rate": "0.5"})


def test_unknown_and_system_fields_rejected():
    with pytest.raises(InvalidOrderError):
        run_order_guards(_order(), {"colour": "red"})
    with pytest.raises(ImmutableFieldError):
        run_order_guards(_order(), {"tx_hash": "0xabc"})


def test_paid_order_never_reverts():
    with pytest.raises(InvariantError):
        run_order_guards(_order(OrderStatus.PAID.value), {"status": OrderStatus.FAILED.value})


def test_status_paid_only_through_settlement():
    with pytest.raises(InvariantError):
        run_order_guards(_order(), {"status": OrderStatus.PAID.value})


def test_unit_list_and_layout_are_fixed_after_creation():
    for changes in (
        {"unit_ids": ["c"], "quantity": 1},
        {"quantity": 3},
        {"area_key": "indiranagar"},
        {"pay_to_address": "TOther"},
        {"expires_at": None},
    ):
        with pytest.raises(ImmutableFieldError):
            run_order_guards(_order(), changes)


def test_paid_order_rejects_any_change():
    with pytest.raises(InvariantError):
        run_order_guards(_order(OrderStatus.PAID.value), {"failure_reason": "x"})
    # restating the current status is a no-op
    run_order_guards(_order(OrderStatus.PAID.value), {"status": OrderStatus.PAID.value})
