# /app/core/deps.py
from typing import Optional

from fastapi import HTTPException, Request

from app.services.nft_minting_service import NftMintingService
from app.services.settlement_service import SettlementService


def get_settlement_service(request: Request) -> SettlementService:
    """
    Resolution order:
    1. app.state.settlement (built in create_app)
    2. a fresh SettlementService without minting
    """
    svc = getattr(request.app.state, "settlement", None)
    if svc is None:
        svc = SettlementService()
        request.app.state.settlement = svc
    return svc


def get_minting_service(request: Request) -> NftMintingService:
    svc: Optional[NftMintingService] = getattr(request.app.state, "minting", None)
    if svc is None:
        raise HTTPException(status_code=503, detail="NFT minting is not configured.")
    return svc


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)
