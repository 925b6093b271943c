import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.models.audit_log import AdminActionLog
from app.models.enums import UserRole
from app.models.order import Order

WATCHER = {"X-Watcher-Token": "watcher-test-token"}


def _order(client, headers, quantity=1):
    r = client.post(
        "/api/v1/orders",
        json={"stateKey": "karnataka", "areaKey": "whitefield", "quantity": quantity},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


def _pay(client, order, observed_at=None, tx_hash="0xadmin-pay"):
    observed_at = observed_at or datetime.now(timezone.utc)
    return client.post(
        "/api/v1/payments/observations",
        json={
            "orderId": order["orderId"],
            "txHash": tx_hash,
            "amountUSDT": order["payment"]["expectedAmountUSDT"],
            "confirmations": 25,
            "observedAt": observed_at.isoformat(),
        },
        headers=WATCHER,
    )


def _actions(db):
    return [row.action for row in db.execute(select(AdminActionLog)).scalars().all()]


def test_admin_routes_need_admin_role(client, make_user, auth_headers):
    buyer = make_user()

    assert client.post("/api/v1/admin/orders/expire", headers=auth_headers(buyer)).status_code == 403
    assert client.post("/api/v1/admin/mints/retry", json={}, headers=auth_headers(buyer)).status_code == 403


def test_expiry_sweep(client, db, make_user, make_units, auth_headers):
    buyer, admin = make_user(), make_user(name="Ops", role=UserRole.ADMIN.value)
    make_units(count=1)
    order = _order(client, auth_headers(buyer))

    row = db.get(Order, uuid.UUID(order["orderId"]))
    row.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()

    r = client.post("/api/v1/admin/orders/expire", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json() == {"expired": 1}
    assert _actions(db) == ["EXPIRY_SWEEP"]

    got = client.get(f"/api/v1/orders/{order['orderId']}", headers=auth_headers(buyer))
    assert got.json()["status"] == "EXPIRED"


def test_promote_late_payment(client, db, make_user, make_units, auth_headers):
    buyer, admin = make_user(), make_user(name="Ops", role=UserRole.ADMIN.value)
    make_units(count=1)
    order = _order(client, auth_headers(buyer))

    late = datetime.now(timezone.utc) + timedelta(hours=1)
    assert _pay(client, order, observed_at=late).json()["status"] == "LATE_PAYMENT"

    r = client.post(
        f"/api/v1/admin/orders/{order['orderId']}/promote-late-payment",
        headers=auth_headers(admin),
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "PAID"
    assert r.json()["issuance"]["issued"] == 1
    assert _actions(db) == ["LATE_PAYMENT_PROMOTED"]

    deeds = client.get("/api/v1/deeds/mine", headers=auth_headers(buyer)).json()["deeds"]
    assert [d["unitId"] for d in deeds] == order["unitIds"]


def test_promote_rejected_when_not_late(client, db, make_user, make_units, auth_headers):
    buyer, admin = make_user(), make_user(name="Ops", role=UserRole.ADMIN.value)
    make_units(count=1)
    order = _order(client, auth_headers(buyer))

    r = client.post(
        f"/api/v1/admin/orders/{order['orderId']}/promote-late-payment",
        headers=auth_headers(admin),
    )
    assert r.status_code == 409
    log = db.execute(select(AdminActionLog)).scalars().one()
    assert log.status == "rejected"


def test_fail_order_with_reason(client, db, make_user, make_units, auth_headers):
    buyer, admin = make_user(), make_user(name="Ops", role=UserRole.ADMIN.value)
    make_units(count=1)
    order = _order(client, auth_headers(buyer))

    r = client.post(
        f"/api/v1/admin/orders/{order['orderId']}/fail",
        json={"reason": "buyer cancelled"},
        headers=auth_headers(admin),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "FAILED"
    assert r.json()["failureReason"] == "buyer cancelled"

    # units are back on sale
    listing = client.get(
        "/api/v1/inventory/available",
        params={"stateKey": "karnataka", "areaKey": "whitefield"},
        headers=auth_headers(buyer),
    )
    assert [u["unitId"] for u in listing.json()["units"]] == order["unitIds"]


def test_reissue_deeds_is_idempotent(client, db, make_user, make_units, auth_headers):
    buyer, admin = make_user(), make_user(name="Ops", role=UserRole.ADMIN.value)
    make_units(count=2)
    order = _order(client, auth_headers(buyer), quantity=2)
    assert _pay(client, order).json()["becamePaid"] is True

    r = client.post(
        f"/api/v1/admin/orders/{order['orderId']}/reissue-deeds",
        headers=auth_headers(admin),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "PAID"
    assert body["outcome"] == "NOOP"
    assert body["issuance"]["issued"] == 0
    assert body["issuance"]["skipped"] == 2


def test_mint_retry_after_engine_outage(client, db, make_user, make_units, auth_headers, fake_minter):
    buyer, admin = make_user(), make_user(name="Ops", role=UserRole.ADMIN.value)
    make_units(count=1)
    order = _order(client, auth_headers(buyer))

    fake_minter.fail = True
    paid = _pay(client, order).json()
    assert paid["mints"]["failed"] == 1

    fake_minter.fail = False
    r = client.post("/api/v1/admin/mints/retry", json={}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json() == {"found": 1, "minted": 1, "failed": 0, "skipped": 0}
    assert _actions(db) == ["MINT_RETRY"]

    deed = client.get("/api/v1/deeds/mine", headers=auth_headers(buyer)).json()["deeds"][0]
    assert deed["nft"]["minted"] is True
    assert deed["nft"]["marketplaceUrl"].endswith(f"/{deed['nft']['tokenId']}")
