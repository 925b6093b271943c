#app/schemas/orders.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OrderCreateRequest(BaseModel):
    """
    Either list the units explicitly or give a quantity and let the server
    pick the lowest-numbered available slots in the area.
    """
    model_config = ConfigDict(extra="forbid")

    stateKey: str = Field(..., min_length=1, max_length=64)
    areaKey: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., ge=1, le=100)
    unitIds: Optional[List[str]] = None

    @model_validator(mode="after")
    def _quantity_matches_units(self):
        if self.unitIds is not None and len(self.unitIds) != self.quantity:
            raise ValueError("quantity must equal the number of unitIds.")
        return self


class PaymentInfo(BaseModel):
    expectedAmountUSDT: str
    paidAmountUSDT: Optional[str] = None
    overpaidAmountUSDT: Optional[str] = None
    txHash: Optional[str] = None
    confirmations: int
    observedAtIso: Optional[str] = None
    paidAtIso: Optional[str] = None


class ReferralInfo(BaseModel):
    referrerId: Optional[str] = None
    commissionRate: Optional[str] = None
    commissionAmountUSDT: Optional[str] = None


class OrderResponse(BaseModel):
    orderId: str
    buyerId: str
    stateKey: str
    areaKey: str
    unitIds: List[str]
    quantity: int
    status: str
    payToAddress: str
    network: str
    payment: PaymentInfo
    expiresAtIso: str
    expiredAtIso: Optional[str] = None
    referral: ReferralInfo
    failureReason: Optional[str] = None
    createdAtIso: str


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
