#app/api/v1/deeds.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.v1.http_errors import parse_uuid
from app.core.auth_deps import get_current_principal
from app.db.session import get_db
from app.policies.rbac import Principal
from app.schemas.deeds import DeedListResponse, DeedResponse
from app.services.deed_repository import DeedRepository

router = APIRouter(prefix="/deeds")


def deed_resp(d) -> dict:
    return {
        "deedId": str(d.id),
        "orderId": str(d.order_id),
        "unitId": d.unit_id,
        "ownerId": str(d.owner_id),
        "ownerName": d.owner_name,
        "plotId": d.plot_id,
        "city": d.city,
        "stateName": d.state_name,
        "latitude": d.latitude,
        "longitude": d.longitude,
        "paymentTxHash": d.payment_tx_hash,
        "payToAddress": d.pay_to_address,
        "sealNo": d.seal_no,
        "issuedAtIso": d.issued_at.isoformat(),
        "nft": {
            "tokenId": d.nft_token_id,
            "contractAddress": d.nft_contract_address,
            "chain": d.nft_chain,
            "standard": d.nft_standard,
            "mintTxHash": d.nft_mint_tx_hash,
            "marketplaceUrl": d.nft_marketplace_url,
            "minted": not d.has_placeholder_token,
        },
    }


@router.get("/mine", response_model=DeedListResponse)
def list_my_deeds(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    deeds = DeedRepository().list_for_owner(db, owner_id=parse_uuid(principal.user_id, "user_id"))
    return {"deeds": [deed_resp(d) for d in deeds]}


@router.get("/by-unit/{unitId}", response_model=DeedResponse)
def get_deed_by_unit(
    unitId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    deed = DeedRepository().get_by_unit(db, unit_id=unitId)
    if not deed or not principal.can_read(deed.owner_id):
        raise HTTPException(status_code=404, detail="Deed not found.")
    return deed_resp(deed)
