"""
Operator commands. Run as `python -m app.maintenance <command>`.

Every command that changes state leaves an admin_action_logs row with
actor "maintenance".
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import DomainError
from app.core.logging import configure_logging
from app.db.session import session_scope
from app.services.audit_service import AdminAction, AuditService
from app.services.legacy_migration_service import LegacyMigrationService
from app.services.minting_client import EngineMintingClient
from app.services.nft_minting_service import NftMintingService
from app.services.order_expiry_service import OrderExpiryService
from app.services.referral_service import ReferralService
from app.services.settlement_service import SettlementService
from app.services.user_service import UserService

logger = logging.getLogger("app.maintenance")

ACTOR = "maintenance"


def _audit(db: Session, action: str, target_type: str, target_id, payload: Dict[str, Any], status: str = "ok"):
    AuditService().record(
        db,
        actor=ACTOR,
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        payload_summary=payload,
        status=status,
    )


def _minting_service(settings) -> NftMintingService:
    return NftMintingService(EngineMintingClient.from_settings(settings), settings=settings)


def _load_docs(path: str) -> List[Dict[str, Any]]:
    """JSON array, or one JSON document per line."""
    with open(path, "r", encoding="utf-8") as fh:
        raw = fh.read().strip()
    if not raw:
        return []
    if raw.startswith("["):
        return json.loads(raw)
    return [json.loads(line) for line in raw.splitlines() if line.strip()]


# ─────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────

def cmd_expire_orders(db: Session, args) -> int:
    expired = OrderExpiryService().expire_due_orders(db, limit=args.limit)
    _audit(db, AdminAction.EXPIRY_SWEEP, "order", None, {"expired": expired})
    print(f"expired {expired} order(s)")
    return 0


def cmd_retry_mints(db: Session, args) -> int:
    settings = get_settings()
    minting = _minting_service(settings)
    try:
        summary = minting.retry_failed_mints(db, unit_id=args.unit_id, limit=args.limit)
    finally:
        if minting.client is not None:
            minting.client.close()
    payload = {
        "found": summary.found,
        "minted": summary.minted,
        "failed": summary.failed,
        "skipped": summary.skipped,
    }
    _audit(db, AdminAction.MINT_RETRY, "deed", args.unit_id, payload)
    print(json.dumps(payload))
    return 0 if summary.failed == 0 else 1


def cmd_backfill_urls(db: Session, args) -> int:
    settings = get_settings()
    updated = NftMintingService(None, settings=settings).backfill_marketplace_urls(db, limit=args.limit)
    _audit(db, AdminAction.MARKETPLACE_URL_BACKFILL, "deed", None, {"updated": updated})
    print(f"updated {updated} deed(s)")
    return 0


def cmd_grant_admin(db: Session, args) -> int:
    user = UserService().grant_admin(db, email=args.email)
    _audit(db, AdminAction.ADMIN_GRANTED, "user", user.id, {"email": user.email})
    print(f"{user.email} is ADMIN")
    return 0


def cmd_promote_late(db: Session, args) -> int:
    settings = get_settings()
    minting = _minting_service(settings)
    settlement = SettlementService(settings=settings, minting=minting)
    try:
        result = settlement.promote_late_payment(db, order_id=uuid.UUID(args.order_id))
    finally:
        if minting.client is not None:
            minting.client.close()
    rec = result.reconcile
    _audit(
        db,
        AdminAction.LATE_PAYMENT_PROMOTED,
        "order",
        args.order_id,
        {"outcome": rec.outcome.value, "status": rec.status},
    )
    print(f"order {args.order_id}: {rec.status} ({rec.outcome.value})")
    return 0


def cmd_reissue(db: Session, args) -> int:
    settings = get_settings()
    minting = _minting_service(settings)
    settlement = SettlementService(settings=settings, minting=minting)
    try:
        result = settlement.finalize(db, order_id=uuid.UUID(args.order_id))
    finally:
        if minting.client is not None:
            minting.client.close()
    report = result.issuance
    payload = {
        "issued": report.issued,
        "skipped": report.skipped,
        "missing": report.missing,
        "failed": sorted(report.failed),
    }
    _audit(db, AdminAction.DEEDS_REISSUED, "order", args.order_id, payload)
    print(json.dumps(payload))
    return 0 if report.complete else 1


def cmd_recompute_referrals(db: Session, args) -> int:
    user = ReferralService().recompute_stats(db, user_id=uuid.UUID(args.user_id))
    payload = {"totalReferrals": user.total_referrals, "totalEarnings": user.total_earnings}
    _audit(db, AdminAction.REFERRAL_STATS_RECOMPUTED, "user", user.id, payload)
    print(json.dumps(payload))
    return 0


def cmd_import_legacy_orders(db: Session, args) -> int:
    docs = _load_docs(args.file)
    report = LegacyMigrationService().import_orders(db, docs=docs)
    payload = {
        "imported": len(report.imported),
        "skipped": len(report.skipped),
        "invalid": sorted(report.invalid),
    }
    _audit(db, AdminAction.LEGACY_ORDERS_IMPORTED, "order", None, payload)
    print(json.dumps(payload))
    return 0 if not report.invalid else 1


# ─────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m app.maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("expire-orders", help="expire overdue PENDING orders and release their units")
    p.add_argument("--limit", type=int, default=500)
    p.set_defaults(func=cmd_expire_orders)

    p = sub.add_parser("retry-mints", help="mint deeds still carrying a placeholder token")
    p.add_argument("--unit-id", default=None)
    p.add_argument("--limit", type=int, default=100)
    p.set_defaults(func=cmd_retry_mints)

    p = sub.add_parser("backfill-urls", help="fill missing marketplace urls on minted deeds")
    p.add_argument("--limit", type=int, default=500)
    p.set_defaults(func=cmd_backfill_urls)

    p = sub.add_parser("grant-admin", help="grant the ADMIN role")
    p.add_argument("email")
    p.set_defaults(func=cmd_grant_admin)

    p = sub.add_parser("promote-late", help="honor a late payment and issue deeds")
    p.add_argument("order_id")
    p.set_defaults(func=cmd_promote_late)

    p = sub.add_parser("reissue", help="re-run deed issuance for a PAID order")
    p.add_argument("order_id")
    p.set_defaults(func=cmd_reissue)

    p = sub.add_parser("recompute-referrals", help="recompute a referrer's cached stats")
    p.add_argument("user_id")
    p.set_defaults(func=cmd_recompute_referrals)

    p = sub.add_parser("import-legacy-orders", help="import legacy order documents (JSON / JSON lines)")
    p.add_argument("file")
    p.set_defaults(func=cmd_import_legacy_orders)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(get_settings())

    try:
        with session_scope() as db:
            return args.func(db, args)
    except (DomainError, ValueError) as e:
        logger.error("[maintenance] %s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
