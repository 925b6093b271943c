#app/api/v1/orders.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.v1.http_errors import parse_uuid, to_http
from app.core.auth_deps import get_current_principal
from app.core.errors import DomainError
from app.db.session import get_db
from app.models.enums import OrderStatus
from app.policies.rbac import Principal
from app.schemas.orders import OrderCreateRequest, OrderListResponse, OrderResponse
from app.services.orders_service import OrdersService

router = APIRouter(prefix="/orders")


def _iso(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def order_resp(o) -> dict:
    return {
        "orderId": str(o.id),
        "buyerId": str(o.buyer_id),
        "stateKey": o.state_key,
        "areaKey": o.area_key,
        "unitIds": list(o.unit_ids),
        "quantity": o.quantity,
        "status": o.status,
        "payToAddress": o.pay_to_address,
        "network": o.network,
        "payment": {
            "expectedAmountUSDT": o.expected_amount,
            "paidAmountUSDT": o.paid_amount,
            "overpaidAmountUSDT": o.overpaid_amount,
            "txHash": o.tx_hash,
            "confirmations": o.confirmations,
            "observedAtIso": _iso(o.observed_at),
            "paidAtIso": _iso(o.paid_at),
        },
        "expiresAtIso": o.expires_at.isoformat(),
        "expiredAtIso": _iso(o.expired_at),
        "referral": {
            "referrerId": str(o.referrer_id) if o.referrer_id else None,
            "commissionRate": o.commission_rate,
            "commissionAmountUSDT": o.commission_amount,
        },
        "failureReason": o.failure_reason,
        "createdAtIso": o.created_at.isoformat(),
    }


# ─────────────────────────────────────────────
# CREATE
# ─────────────────────────────────────────────

@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    req: OrderCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    try:
        order = OrdersService().create_order(
            db,
            buyer_id=parse_uuid(principal.user_id, "user_id"),
            state_key=req.stateKey,
            area_key=req.areaKey,
            quantity=req.quantity,
            unit_ids=req.unitIds,
        )
    except DomainError as e:
        raise to_http(e)

    return order_resp(order)


# ─────────────────────────────────────────────
# READ
# ─────────────────────────────────────────────

@router.get("/mine", response_model=OrderListResponse)
def list_my_orders(
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    if status is not None and status not in {s.value for s in OrderStatus}:
        raise HTTPException(status_code=400, detail=f"Unknown status {status}.")

    orders = OrdersService().list_for_buyer(
        db, buyer_id=parse_uuid(principal.user_id, "user_id"), status=status
    )
    return {"orders": [order_resp(o) for o in orders]}


@router.get("/{orderId}", response_model=OrderResponse)
def get_order(
    orderId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    order_id = parse_uuid(orderId, "orderId")
    try:
        order = OrdersService().get_order(db, order_id=order_id)
    except DomainError as e:
        raise to_http(e)

    if not principal.can_read(order.buyer_id):
        # same answer as a missing order
        raise HTTPException(status_code=404, detail="Order not found.")

    return order_resp(order)
