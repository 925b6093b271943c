import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ConflictError, ImmutableFieldError, InvalidOrderError, InvariantError, MissingUnitError
from app.models.enums import OrderStatus, UnitStatus
from app.services.orders_service import OrdersService
from app.services.payment_reconciler_service import PaymentObservation, PaymentReconcilerService
from app.services.unit_inventory_service import UnitInventoryService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_create_order_prices_and_reserves(db, settings, make_user, make_units):
    buyer = make_user()
    units = make_units(count=3)

    order = OrdersService(settings=settings).create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=2, unit_ids=units[:2], now=NOW,
    )

    assert order.status == OrderStatus.PENDING.value
    assert order.expected_amount == "100.000000"
    assert order.expires_at == NOW + timedelta(minutes=15)
    assert order.pay_to_address == "TTestReceiveAddress"
    assert order.referrer_id is None and order.commission_amount is None

    inv = UnitInventoryService()
    for unit_id in units[:2]:
        unit = inv.get_unit(db, unit_id=unit_id)
        assert unit.status == UnitStatus.RESERVED.value
        assert unit.order_id == order.id
    assert inv.get_unit(db, unit_id=units[2]).status == UnitStatus.AVAILABLE.value


def test_create_order_allots_when_no_units_given(db, settings, make_user, make_units):
    buyer = make_user()
    make_units(count=3)

    order = OrdersService(settings=settings).create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield", quantity=2, now=NOW,
    )
    assert order.unit_ids == ["karnataka_whitefield_001", "karnataka_whitefield_002"]


def test_quantity_must_match_units(db, settings, make_user, make_units):
    buyer = make_user()
    units = make_units(count=3)

    with pytest.raises(InvalidOrderError):
        OrdersService(settings=settings).create_order(
            db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
            quantity=3, unit_ids=units[:2], now=NOW,
        )


def test_unknown_and_foreign_units_rejected(db, settings, make_user, make_units):
    buyer = make_user()
    make_units(count=1)
    (other,) = make_units(state_key="maharashtra", area_key="bandra", count=1)
    svc = OrdersService(settings=settings)

    with pytest.raises(MissingUnitError):
        svc.create_order(
            db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
            quantity=1, unit_ids=["nope_001"], now=NOW,
        )
    with pytest.raises(InvalidOrderError):
        svc.create_order(
            db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
            quantity=1, unit_ids=[other], now=NOW,
        )


def test_conflicting_order_leaves_nothing_behind(db, settings, make_user, make_units):
    alice, bob = make_user(), make_user(name="Bob")
    a, b = make_units(count=2)
    svc = OrdersService(settings=settings)

    svc.create_order(
        db, buyer_id=alice.id, state_key="karnataka", area_key="whitefield",
        quantity=1, unit_ids=[b], now=NOW,
    )
    with pytest.raises(ConflictError):
        svc.create_order(
            db, buyer_id=bob.id, state_key="karnataka", area_key="whitefield",
            quantity=2, unit_ids=[a, b], now=NOW,
        )

    assert svc.list_for_buyer(db, buyer_id=bob.id) == []
    assert UnitInventoryService().get_unit(db, unit_id=a).status == UnitStatus.AVAILABLE.value


def test_referral_terms_are_snapshotted(db, settings, make_user, make_units):
    referrer = make_user(name="Ravi")
    buyer = make_user(referred_by=referrer.id)
    units = make_units(count=2)

    order = OrdersService(settings=settings).create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=2, unit_ids=units, now=NOW,
    )
    assert order.referrer_id == referrer.id
    assert order.commission_rate == "0.25"
    assert order.commission_amount == "25.000000"


def test_update_with_referral_field_is_rejected_whole(db, settings, make_user, make_units):
    buyer = make_user()
    units = make_units(count=1)
    svc = OrdersService(settings=settings)
    order = svc.create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=1, unit_ids=units, now=NOW,
    )

    with pytest.raises(ImmutableFieldError):
        svc.update_order(db, order_id=order.id, changes={"failure_reason": "x", "referrer_id": uuid.uuid4()})

    db.expire_all()
    assert svc.require_order(db, order_id=order.id).failure_reason is None


def test_update_to_failed_releases_units(db, settings, make_user, make_units):
    buyer = make_user()
    units = make_units(count=1)
    svc = OrdersService(settings=settings)
    order = svc.create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=1, unit_ids=units, now=NOW,
    )

    order = svc.update_order(
        db, order_id=order.id, changes={"status": OrderStatus.FAILED.value, "failure_reason": "cancelled"},
    )
    assert order.status == OrderStatus.FAILED.value
    assert UnitInventoryService().get_unit(db, unit_id=units[0]).status == UnitStatus.AVAILABLE.value


def test_get_order_expires_lazily(db, settings, make_user, make_units):
    buyer = make_user()
    units = make_units(count=1)
    svc = OrdersService(settings=settings)
    order = svc.create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=1, unit_ids=units, now=NOW,
    )

    fresh = svc.get_order(db, order_id=order.id, now=NOW + timedelta(minutes=5))
    assert fresh.status == OrderStatus.PENDING.value

    stale = svc.get_order(db, order_id=order.id, now=NOW + timedelta(minutes=16))
    assert stale.status == OrderStatus.EXPIRED.value
    assert stale.expired_at == NOW + timedelta(minutes=16)
    assert UnitInventoryService().get_unit(db, unit_id=units[0]).status == UnitStatus.AVAILABLE.value


def test_update_cannot_repoint_units(db, settings, make_user, make_units):
    buyer = make_user()
    units = make_units(count=3)
    svc = OrdersService(settings=settings)
    order = svc.create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=2, unit_ids=units[:2], now=NOW,
    )

    with pytest.raises(ImmutableFieldError):
        svc.update_order(db, order_id=order.id, changes={"unit_ids": [units[2]], "quantity": 1})

    db.expire_all()
    assert svc.require_order(db, order_id=order.id).unit_ids == units[:2]
    assert UnitInventoryService().get_unit(db, unit_id=units[2]).status == UnitStatus.AVAILABLE.value


def test_paid_order_is_not_writable(db, settings, make_user, make_units):
    buyer = make_user()
    units = make_units(count=3)
    svc = OrdersService(settings=settings)
    order = svc.create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=2, unit_ids=units[:2], now=NOW,
    )
    PaymentReconcilerService(settings=settings).apply_observation(
        db,
        observation=PaymentObservation(
            tx_hash="0xpaid", amount_usdt="100", confirmations=3,
            observed_at=NOW + timedelta(minutes=1), order_id=order.id,
        ),
        now=NOW + timedelta(minutes=1),
    )

    with pytest.raises(InvariantError):
        svc.update_order(db, order_id=order.id, changes={"unit_ids": [units[2]], "quantity": 1})
    with pytest.raises(InvariantError):
        svc.update_order(db, order_id=order.id, changes={"failure_reason": "chargeback"})

    db.expire_all()
    paid = svc.require_order(db, order_id=order.id)
    assert paid.status == OrderStatus.PAID.value
    assert paid.unit_ids == units[:2]
    assert paid.failure_reason is None
