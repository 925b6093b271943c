#app/api/v1/admin/mints.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth_deps import require_admin
from app.core.deps import get_minting_service, get_request_id
from app.db.session import get_db
from app.policies.rbac import Principal
from app.schemas.admin import BackfillResponse, MintRetryRequest
from app.schemas.payments import MintSummary
from app.services.audit_service import AdminAction, AuditService
from app.services.nft_minting_service import NftMintingService

router = APIRouter(prefix="/admin/mints", tags=["admin"])


@router.post("/retry", response_model=MintSummary)
def retry_failed_mints(
    req: MintRetryRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    minting: NftMintingService = Depends(get_minting_service),
    request_id=Depends(get_request_id),
):
    summary = minting.retry_failed_mints(db, unit_id=req.unitId, limit=req.limit)
    payload = {
        "found": summary.found,
        "minted": summary.minted,
        "failed": summary.failed,
        "skipped": summary.skipped,
    }
    AuditService().record(
        db,
        actor=principal.user_id,
        action=AdminAction.MINT_RETRY,
        target_type="deed",
        target_id=req.unitId,
        payload_summary=payload,
        request_id=request_id,
    )
    return payload


@router.post("/backfill-marketplace-urls", response_model=BackfillResponse)
def backfill_marketplace_urls(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    minting: NftMintingService = Depends(get_minting_service),
    request_id=Depends(get_request_id),
):
    updated = minting.backfill_marketplace_urls(db)
    AuditService().record(
        db,
        actor=principal.user_id,
        action=AdminAction.MARKETPLACE_URL_BACKFILL,
        target_type="deed",
        target_id=None,
        payload_summary={"updated": updated},
        request_id=request_id,
    )
    return {"updated": updated}
