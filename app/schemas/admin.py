from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderReasonRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str = Field(..., min_length=1, max_length=256)


class MintRetryRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    unitId: Optional[str] = None
    limit: int = Field(default=100, ge=1, le=1000)


class ExpirySweepResponse(BaseModel):
    expired: int


class BackfillResponse(BaseModel):
    updated: int
