#app/api/v1/payments.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.http_errors import parse_uuid, to_http
from app.core.auth_deps import require_watcher
from app.core.deps import get_settlement_service
from app.core.errors import DomainError
from app.db.session import get_db
from app.schemas.payments import PaymentObservationRequest, SettlementResponse
from app.services.payment_reconciler_service import PaymentObservation
from app.services.settlement_service import SettlementResult, SettlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments")


def settlement_resp(result: SettlementResult) -> dict:
    rec = result.reconcile
    issuance = None
    if result.issuance is not None:
        issuance = {
            "issued": len(result.issuance.issued),
            "skipped": len(result.issuance.skipped),
            "missing": len(result.issuance.missing),
            "failed": len(result.issuance.failed),
        }
    mints = None
    if result.mints is not None:
        mints = {
            "found": result.mints.found,
            "minted": result.mints.minted,
            "failed": result.mints.failed,
            "skipped": result.mints.skipped,
        }
    return {
        "orderId": str(rec.order_id),
        "status": rec.status,
        "outcome": rec.outcome.value,
        "becamePaid": rec.became_paid,
        "issuance": issuance,
        "mints": mints,
    }


@router.post(
    "/observations",
    response_model=SettlementResponse,
    dependencies=[Depends(require_watcher)],
)
def record_observation(
    req: PaymentObservationRequest,
    db: Session = Depends(get_db),
    settlement: SettlementService = Depends(get_settlement_service),
):
    observation = PaymentObservation(
        tx_hash=req.txHash,
        amount_usdt=req.amountUSDT,
        confirmations=req.confirmations,
        observed_at=req.observedAt,
        order_id=parse_uuid(req.orderId, "orderId") if req.orderId else None,
        from_address=req.fromAddress,
        token_contract=req.tokenContract,
        raw=req.raw,
    )
    try:
        result = settlement.record_observation(db, observation=observation)
    except DomainError as e:
        logger.warning("[payments] observation rejected tx=%s: %s", req.txHash, e.message)
        raise to_http(e)

    return settlement_resp(result)
