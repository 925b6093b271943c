import uuid

import pytest

from app.models.enums import OrderStatus
from app.models.order import Order
from app.services.legacy_migration_service import (
    LegacyMigrationService,
    legacy_uuid,
    normalize_legacy_order,
)


def _doc(buyer_id, **overrides):
    doc = {
        "_id": "64f0c0ffee0000000000abcd",
        "userId": str(buyer_id),
        "state": "karnataka",
        "place": "whitefield",
        "landSlotIds": ["karnataka_whitefield_001", "karnataka_whitefield_002"],
        "quantity": 2,
        "status": "PAID",
        "payToAddress": "TLegacyAddress",
        "expectedAmountUSDT": "16",
        "txHash": "0xflat",
        "payment": {"txHash": "0xnested", "paidAmountUSDT": "16.5", "confirmations": 20},
        "expiry": {"expiresAt": "2025-01-01T10:15:00Z"},
        "createdAt": "2025-01-01T10:00:00Z",
    }
    doc.update(overrides)
    return doc


def test_nested_payment_fields_win():
    values = normalize_legacy_order(_doc(uuid.uuid4()))

    assert values["tx_hash"] == "0xnested"
    assert values["expected_amount"] == "16.000000"
    assert values["paid_amount"] == "16.500000"
    assert values["confirmations"] == 20
    assert values["status"] == OrderStatus.PAID.value
    assert values["expires_at"].isoformat() == "2025-01-01T10:15:00+00:00"


def test_legacy_object_ids_map_to_stable_uuids():
    assert legacy_uuid("64f0c0ffee0000000000abcd") == legacy_uuid("64f0c0ffee0000000000abcd")
    real = uuid.uuid4()
    assert legacy_uuid(str(real)) == real


def test_quantity_mismatch_is_invalid():
    with pytest.raises(ValueError):
        normalize_legacy_order(_doc(uuid.uuid4(), quantity=3))


def test_import_is_idempotent(db, make_user):
    buyer = make_user()
    svc = LegacyMigrationService()
    docs = [_doc(buyer.id), {"_id": "broken", "userId": str(buyer.id)}]

    first = svc.import_orders(db, docs=docs)
    second = svc.import_orders(db, docs=docs)

    assert first.imported == ["64f0c0ffee0000000000abcd"]
    assert "broken" in first.invalid
    assert second.imported == []
    assert second.skipped == ["64f0c0ffee0000000000abcd"]
    assert db.query(Order).count() == 1
