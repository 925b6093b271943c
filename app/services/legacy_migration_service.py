# app/services/legacy_migration_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.money import format_usdt
from app.models.enums import OrderStatus
from app.models.order import Order

logger = logging.getLogger(__name__)

# stable namespace so the same legacy id always maps to the same UUID
LEGACY_NAMESPACE = uuid.UUID("6f1c8f0e-4a53-4d0b-9a55-2f4f1f7d9c11")


def legacy_uuid(value: Any) -> Optional[uuid.UUID]:
    if value in (None, ""):
        return None
    if isinstance(value, uuid.UUID):
        return value
    text = str(value)
    try:
        return uuid.UUID(text)
    except ValueError:
        return uuid.uuid5(LEGACY_NAMESPACE, text)


def _parse_dt(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _amount(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return format_usdt(str(value))


def _pick(nested: Dict[str, Any], nested_key: str, doc: Dict[str, Any], flat_key: str) -> Any:
    """Nested value wins; the flat legacy field is the fallback."""
    value = nested.get(nested_key)
    if value not in (None, ""):
        return value
    return doc.get(flat_key)


def normalize_legacy_order(doc: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn a legacy order document carrying both flat fields
    (expectedAmountUSDT, txHash, expiresAt, ...) and nested sub-documents
    (payment, expiry, referral) into canonical Order column values.
    """
    payment = doc.get("payment") or {}
    expiry = doc.get("expiry") or {}
    referral = doc.get("referral") or {}

    unit_ids = list(doc.get("landSlotIds") or doc.get("unitIds") or [])
    if not unit_ids:
        raise ValueError(f"Legacy order {doc.get('_id')}: no units.")
    quantity = int(doc.get("quantity") or len(unit_ids))
    if quantity != len(unit_ids):
        raise ValueError(f"Legacy order {doc.get('_id')}: quantity {quantity} != {len(unit_ids)} units.")

    status = OrderStatus(doc.get("status") or OrderStatus.PENDING.value).value
    created_at = _parse_dt(doc.get("createdAt")) or datetime.now(timezone.utc)
    expires_at = _parse_dt(_pick(expiry, "expiresAt", doc, "expiresAt")) or created_at

    confirmations = _pick(payment, "confirmations", doc, "confirmations")

    values = {
        "id": legacy_uuid(doc.get("_id") or doc.get("id")),
        "buyer_id": legacy_uuid(doc.get("userId")),
        "state_key": doc.get("state") or doc.get("stateKey"),
        "area_key": doc.get("place") or doc.get("areaKey"),
        "unit_ids": unit_ids,
        "quantity": quantity,
        "status": status,
        "pay_to_address": doc.get("payToAddress") or "",
        "network": doc.get("network") or "TRC20",
        "expected_amount": _amount(_pick(payment, "expectedAmountUSDT", doc, "expectedAmountUSDT")) or "0.000000",
        "paid_amount": _amount(_pick(payment, "paidAmountUSDT", doc, "paidAmountUSDT")),
        "overpaid_amount": _amount(_pick(payment, "overpaidAmountUSDT", doc, "overpaidAmountUSDT")),
        "tx_hash": _pick(payment, "txHash", doc, "txHash") or None,
        "confirmations": int(confirmations or 0),
        "paid_at": _parse_dt(_pick(payment, "paidAt", doc, "paidAt")),
        "expires_at": expires_at,
        "expired_at": _parse_dt(expiry.get("expiredAt")),
        "referrer_id": legacy_uuid(referral.get("referrerId")),
        "commission_rate": str(referral["commissionRate"]) if referral.get("commissionRate") is not None else None,
        "commission_amount": _amount(referral.get("commissionAmountUSDT")),
        "created_at": created_at,
        "updated_at": _parse_dt(doc.get("updatedAt")) or created_at,
    }
    missing = [k for k in ("id", "buyer_id", "state_key", "area_key") if not values[k]]
    if missing:
        raise ValueError(f"Legacy order {doc.get('_id')}: missing {missing}.")
    return values


@dataclass
class LegacyImportReport:
    imported: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    invalid: Dict[str, str] = field(default_factory=dict)


class LegacyMigrationService:
    """
    One-shot conversion of legacy order documents into canonical rows.
    Re-running it is safe: orders already present are skipped untouched.
    """

    def import_orders(self, db: Session, *, docs: Iterable[Dict[str, Any]]) -> LegacyImportReport:
        report = LegacyImportReport()
        for doc in docs:
            key = str(doc.get("_id") or doc.get("id"))
            try:
                values = normalize_legacy_order(doc)
            except (ValueError, TypeError) as e:
                report.invalid[key] = str(e)
                logger.warning("[legacy] invalid order doc=%s err=%s", key, e)
                continue

            if db.get(Order, values["id"]) is not None:
                report.skipped.append(key)
                continue

            db.add(Order(**values))
            try:
                db.commit()
            except IntegrityError as e:
                # unknown buyer or a tx hash already claimed by another order
                db.rollback()
                report.invalid[key] = str(e.orig)
                logger.warning("[legacy] rejected order doc=%s err=%s", key, e.orig)
                continue
            report.imported.append(key)

        logger.info(
            "[legacy] import done imported=%s skipped=%s invalid=%s",
            len(report.imported), len(report.skipped), len(report.invalid),
        )
        return report
