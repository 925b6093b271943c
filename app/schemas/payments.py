from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


class PaymentObservationRequest(BaseModel):
    """Pushed by the blockchain watcher. Amounts are decimal strings."""
    model_config = ConfigDict(extra="forbid")

    orderId: Optional[str] = None
    txHash: str = Field(..., min_length=1, max_length=128)
    amountUSDT: str = Field(..., pattern=r"^\d+(\.\d{1,18})?$")
    confirmations: int = Field(..., ge=0)
    observedAt: AwareDatetime
    fromAddress: Optional[str] = Field(default=None, max_length=128)
    tokenContract: Optional[str] = Field(default=None, max_length=128)
    raw: Optional[Dict[str, Any]] = None


class IssuanceSummary(BaseModel):
    issued: int
    skipped: int
    missing: int
    failed: int


class MintSummary(BaseModel):
    found: int
    minted: int
    failed: int
    skipped: int


class SettlementResponse(BaseModel):
    orderId: str
    status: str
    outcome: str
    becamePaid: bool
    issuance: Optional[IssuanceSummary] = None
    mints: Optional[MintSummary] = None
