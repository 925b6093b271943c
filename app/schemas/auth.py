from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=256)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    walletAddress: Optional[str] = Field(default=None, pattern=r"^0x[a-fA-F0-9]{40}$")
    referralCode: Optional[str] = Field(default=None, max_length=16)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    userId: str
    name: str
    email: str
    role: str
    walletAddress: Optional[str] = None
    referralCode: Optional[str] = None
    totalReferrals: int
    totalEarningsUSDT: str
    agentTitle: Optional[str] = None
