#app/api/v1/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.auth_deps import get_current_principal
from app.db.session import get_db
from app.api.v1.http_errors import parse_uuid
from app.policies.rbac import Principal
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from app.services.auth_service import authenticate, issue_token, principal_for
from app.services.user_service import UserService

router = APIRouter(prefix="/auth")


def _user_resp(u) -> dict:
    return {
        "userId": str(u.id),
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "walletAddress": u.wallet_address,
        "referralCode": u.referral_code,
        "totalReferrals": u.total_referrals,
        "totalEarningsUSDT": u.total_earnings,
        "agentTitle": u.agent_title,
    }


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    try:
        user = UserService().register(
            db,
            name=req.name,
            email=req.email,
            password=req.password,
            wallet_address=req.walletAddress,
            referral_code=req.referralCode,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return TokenResponse(access_token=issue_token(principal_for(user)))


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    principal = authenticate(db, req.email, req.password)
    if not principal:
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    return TokenResponse(access_token=issue_token(principal))


@router.get("/me", response_model=UserResponse)
def get_me(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    user = UserService().get(db, user_id=parse_uuid(principal.user_id, "user_id"))
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _user_resp(user)
