from datetime import datetime, timedelta, timezone

from app.models.enums import OrderStatus, UnitStatus
from app.models.order import Order
from app.services.order_expiry_service import OrderExpiryService
from app.services.orders_service import OrdersService
from app.services.payment_reconciler_service import PaymentObservation, PaymentReconcilerService
from app.services.unit_inventory_service import UnitInventoryService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _order(db, settings, buyer, unit_ids, now=NOW):
    return OrdersService(settings=settings).create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=len(unit_ids), unit_ids=unit_ids, now=now,
    )


def test_sweep_expires_only_overdue_pending_orders(db, settings, make_user, make_units):
    buyer = make_user()
    a, b, c = make_units(count=3)
    overdue = _order(db, settings, buyer, [a])
    fresh = _order(db, settings, buyer, [b], now=NOW + timedelta(minutes=10))
    paid = _order(db, settings, buyer, [c])
    PaymentReconcilerService(settings=settings).apply_observation(
        db,
        observation=PaymentObservation(
            tx_hash="0xsweep", amount_usdt="50", confirmations=3,
            observed_at=NOW + timedelta(minutes=1), order_id=paid.id,
        ),
    )

    expired = OrderExpiryService().expire_due_orders(db, now=NOW + timedelta(minutes=16))

    assert expired == 1
    db.expire_all()
    assert db.get(Order, overdue.id).status == OrderStatus.EXPIRED.value
    assert db.get(Order, fresh.id).status == OrderStatus.PENDING.value
    assert db.get(Order, paid.id).status == OrderStatus.PAID.value

    inv = UnitInventoryService()
    assert inv.get_unit(db, unit_id=a).status == UnitStatus.AVAILABLE.value
    assert inv.get_unit(db, unit_id=b).status == UnitStatus.RESERVED.value


def test_sweep_is_repeatable(db, settings, make_user, make_units):
    buyer = make_user()
    _order(db, settings, buyer, make_units(count=1))
    svc = OrderExpiryService()

    assert svc.expire_due_orders(db, now=NOW + timedelta(minutes=20)) == 1
    assert svc.expire_due_orders(db, now=NOW + timedelta(minutes=21)) == 0
