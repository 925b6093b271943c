from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class NftInfo(BaseModel):
    tokenId: str
    contractAddress: str
    chain: str
    standard: str
    mintTxHash: Optional[str] = None
    marketplaceUrl: Optional[str] = None
    minted: bool


class DeedResponse(BaseModel):
    deedId: str
    orderId: str
    unitId: str
    ownerId: str
    ownerName: str
    plotId: str
    city: str
    stateName: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    paymentTxHash: str
    payToAddress: str
    sealNo: str
    issuedAtIso: str
    nft: NftInfo


class DeedListResponse(BaseModel):
    deeds: List[DeedResponse]
