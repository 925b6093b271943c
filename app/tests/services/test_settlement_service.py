from datetime import datetime, timedelta, timezone

from app.models.deed import Deed
from app.models.enums import OrderStatus, UnitStatus
from app.models.order import Order
from app.models.unit_inventory import InventoryUnit
from app.services.nft_minting_service import NftMintingService
from app.services.orders_service import OrdersService
from app.services.payment_reconciler_service import ObservationOutcome, PaymentObservation
from app.services.settlement_service import SettlementService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def deeds_issued(self, *, buyer, order, deeds):
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append((buyer.id, order.id, [d.unit_id for d in deeds]))


def _order(db, settings, buyer, unit_ids):
    return OrdersService(settings=settings).create_order(
        db, buyer_id=buyer.id, state_key="karnataka", area_key="whitefield",
        quantity=len(unit_ids), unit_ids=unit_ids, now=NOW,
    )


def _obs(order, minutes=5, amount="100"):
    return PaymentObservation(
        tx_hash="0xsettle",
        amount_usdt=amount,
        confirmations=3,
        observed_at=NOW + timedelta(minutes=minutes),
        order_id=order.id,
    )


def test_two_unit_order_settles_end_to_end(db, settings, make_user, make_units, fake_minter):
    buyer = make_user()
    units = make_units(count=2)
    order = _order(db, settings, buyer, units)
    notifier = RecordingNotifier()
    svc = SettlementService(
        settings=settings,
        minting=NftMintingService(fake_minter, settings=settings),
        notifier=notifier,
    )

    result = svc.record_observation(db, observation=_obs(order))

    assert result.reconcile.outcome == ObservationOutcome.PAID
    assert len(result.issuance.issued) == 2
    assert result.mints.minted == 2

    assert db.get(Order, order.id).status == OrderStatus.PAID.value
    rows = db.query(InventoryUnit).filter(InventoryUnit.unit_id.in_(units)).all()
    assert {u.status for u in rows} == {UnitStatus.SOLD.value}

    deeds = db.query(Deed).filter_by(order_id=order.id).all()
    assert len(deeds) == 2
    assert {d.payment_tx_hash for d in deeds} == {"0xsettle"}
    assert all(d.nft_marketplace_url for d in deeds)
    assert len(notifier.sent) == 1
    assert notifier.sent[0][:2] == (buyer.id, order.id)
    assert sorted(notifier.sent[0][2]) == sorted(units)


def test_non_paid_outcome_issues_nothing(db, settings, make_user, make_units):
    buyer = make_user()
    order = _order(db, settings, buyer, make_units(count=2))

    result = SettlementService(settings=settings).record_observation(db, observation=_obs(order, minutes=20))

    assert result.reconcile.outcome == ObservationOutcome.LATE_PAYMENT
    assert result.issuance is None
    assert db.query(Deed).count() == 0


def test_notification_failure_does_not_undo_settlement(db, settings, make_user, make_units):
    buyer = make_user()
    order = _order(db, settings, buyer, make_units(count=1))
    svc = SettlementService(settings=settings, notifier=RecordingNotifier(fail=True))

    result = svc.record_observation(db, observation=_obs(order, amount="50"))

    assert result.reconcile.became_paid
    assert db.query(Deed).filter_by(order_id=order.id).count() == 1


def test_mint_failure_leaves_deed_for_retry(db, settings, make_user, make_units, fake_minter):
    fake_minter.fail = True
    buyer = make_user()
    order = _order(db, settings, buyer, make_units(count=1))
    svc = SettlementService(settings=settings, minting=NftMintingService(fake_minter, settings=settings))

    result = svc.record_observation(db, observation=_obs(order, amount="50"))

    assert result.reconcile.became_paid
    assert result.mints.failed == 1
    (deed,) = db.query(Deed).filter_by(order_id=order.id).all()
    assert deed.has_placeholder_token


def test_late_promotion_runs_issuance(db, settings, make_user, make_units):
    buyer = make_user()
    order = _order(db, settings, buyer, make_units(count=2))
    svc = SettlementService(settings=settings)
    svc.record_observation(db, observation=_obs(order, minutes=20))

    result = svc.promote_late_payment(db, order_id=order.id)

    assert result.reconcile.became_paid
    assert len(result.issuance.issued) == 2
