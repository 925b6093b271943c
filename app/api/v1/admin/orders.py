#app/api/v1/admin/orders.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.http_errors import parse_uuid, to_http
from app.api.v1.orders import order_resp
from app.api.v1.payments import settlement_resp
from app.core.auth_deps import require_admin
from app.core.deps import get_request_id, get_settlement_service
from app.core.errors import DomainError
from app.db.session import get_db
from app.models.order import Order
from app.policies.rbac import Principal
from app.schemas.admin import ExpirySweepResponse, OrderReasonRequest
from app.schemas.orders import OrderResponse
from app.schemas.payments import SettlementResponse
from app.services.audit_service import AdminAction, AuditService
from app.services.order_expiry_service import OrderExpiryService
from app.services.payment_reconciler_service import ObservationOutcome, ReconcileResult
from app.services.settlement_service import SettlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.post("/expire", response_model=ExpirySweepResponse)
def expire_due_orders(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    request_id=Depends(get_request_id),
):
    expired = OrderExpiryService().expire_due_orders(db)
    AuditService().record(
        db,
        actor=principal.user_id,
        action=AdminAction.EXPIRY_SWEEP,
        target_type="order",
        target_id=None,
        payload_summary={"expired": expired},
        request_id=request_id,
    )
    return {"expired": expired}


@router.post("/{orderId}/promote-late-payment", response_model=SettlementResponse)
def promote_late_payment(
    orderId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    settlement: SettlementService = Depends(get_settlement_service),
    request_id=Depends(get_request_id),
):
    order_id = parse_uuid(orderId, "orderId")
    try:
        result = settlement.promote_late_payment(db, order_id=order_id)
    except DomainError as e:
        AuditService().record(
            db,
            actor=principal.user_id,
            action=AdminAction.LATE_PAYMENT_PROMOTED,
            target_type="order",
            target_id=orderId,
            payload_summary={"error": type(e).__name__, "message": e.message},
            request_id=request_id,
            status="rejected",
        )
        raise to_http(e)

    AuditService().record(
        db,
        actor=principal.user_id,
        action=AdminAction.LATE_PAYMENT_PROMOTED,
        target_type="order",
        target_id=orderId,
        payload_summary={"outcome": result.reconcile.outcome.value, "status": result.reconcile.status},
        request_id=request_id,
    )
    return settlement_resp(result)


@router.post("/{orderId}/reject-late-payment", response_model=OrderResponse)
def reject_late_payment(
    orderId: str,
    req: OrderReasonRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    settlement: SettlementService = Depends(get_settlement_service),
    request_id=Depends(get_request_id),
):
    order_id = parse_uuid(orderId, "orderId")
    try:
        order = settlement.reconciler.reject_late_payment(db, order_id=order_id, reason=req.reason)
    except DomainError as e:
        raise to_http(e)

    AuditService().record(
        db,
        actor=principal.user_id,
        action=AdminAction.LATE_PAYMENT_REJECTED,
        target_type="order",
        target_id=orderId,
        payload_summary={"reason": req.reason},
        request_id=request_id,
    )
    return order_resp(order)


@router.post("/{orderId}/fail", response_model=OrderResponse)
def fail_order(
    orderId: str,
    req: OrderReasonRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    settlement: SettlementService = Depends(get_settlement_service),
    request_id=Depends(get_request_id),
):
    order_id = parse_uuid(orderId, "orderId")
    try:
        order = settlement.reconciler.fail_order(db, order_id=order_id, reason=req.reason)
    except DomainError as e:
        raise to_http(e)

    AuditService().record(
        db,
        actor=principal.user_id,
        action=AdminAction.ORDER_FAILED,
        target_type="order",
        target_id=orderId,
        payload_summary={"reason": req.reason},
        request_id=request_id,
    )
    return order_resp(order)


@router.post("/{orderId}/reissue-deeds", response_model=SettlementResponse)
def reissue_deeds(
    orderId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
    settlement: SettlementService = Depends(get_settlement_service),
    request_id=Depends(get_request_id),
):
    """Re-run issuance for a PAID order. Deeds already issued are skipped."""
    order_id = parse_uuid(orderId, "orderId")
    try:
        result = settlement.finalize(db, order_id=order_id)
    except DomainError as e:
        raise to_http(e)

    report = result.issuance
    AuditService().record(
        db,
        actor=principal.user_id,
        action=AdminAction.DEEDS_REISSUED,
        target_type="order",
        target_id=orderId,
        payload_summary={
            "issued": report.issued,
            "skipped": report.skipped,
            "missing": report.missing,
            "failed": sorted(report.failed),
        },
        request_id=request_id,
    )
    order = db.get(Order, order_id)
    result.reconcile = ReconcileResult(order_id=order_id, status=order.status, outcome=ObservationOutcome.NOOP)
    return settlement_resp(result)
