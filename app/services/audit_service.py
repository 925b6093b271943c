from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.hashing import payload_digest
from app.models.audit_log import AdminActionLog


class AdminAction:
    # Order review
    LATE_PAYMENT_PROMOTED = "LATE_PAYMENT_PROMOTED"
    LATE_PAYMENT_REJECTED = "LATE_PAYMENT_REJECTED"
    ORDER_FAILED = "ORDER_FAILED"

    # Maintenance
    EXPIRY_SWEEP = "EXPIRY_SWEEP"
    MINT_RETRY = "MINT_RETRY"
    MARKETPLACE_URL_BACKFILL = "MARKETPLACE_URL_BACKFILL"
    DEEDS_REISSUED = "DEEDS_REISSUED"
    LEGACY_ORDERS_IMPORTED = "LEGACY_ORDERS_IMPORTED"

    # Accounts
    ADMIN_GRANTED = "ADMIN_GRANTED"
    REFERRAL_STATS_RECOMPUTED = "REFERRAL_STATS_RECOMPUTED"


class AuditService:
    def record(
        self,
        db: Session,
        *,
        actor: str,
        action: str,
        target_type: str,
        target_id: Optional[str],
        payload_summary: Dict[str, Any],
        request_id: Optional[str] = None,
        status: str = "ok",
    ) -> AdminActionLog:
        """
        Append-only insert. payload_summary must be JSON-safe (strings,
        numbers, lists); it is hashed canonically.
        """
        row = AdminActionLog(
            request_id=request_id,
            actor=actor,
            action=action,
            target_type=target_type,
            target_id=target_id,
            status=status,
            payload_hash=payload_digest(payload_summary),
            payload_summary_json=payload_summary,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    def list_for_target(self, db: Session, *, target_type: str, target_id: str) -> List[AdminActionLog]:
        return list(
            db.execute(
                select(AdminActionLog)
                .where(AdminActionLog.target_type == target_type, AdminActionLog.target_id == target_id)
                .order_by(AdminActionLog.created_at.asc())
            )
            .scalars()
            .all()
        )
