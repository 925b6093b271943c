# app/services/nft_minting_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.errors import ExternalServiceError, MissingDeedError
from app.models.deed import Deed
from app.models.user import User
from app.policies.deed_policies import is_placeholder_token
from app.services.deed_repository import DeedRepository, MintResult
from app.services.minting_client import MintingClient

logger = logging.getLogger(__name__)

OPENSEA_MAINNET_BASE = "https://opensea.io/assets/matic"
OPENSEA_TESTNET_BASE = "https://testnets.opensea.io/assets/mumbai"


def generate_opensea_url(contract_address: str, token_id: str, base_url: str = OPENSEA_MAINNET_BASE) -> str:
    return f"{base_url.rstrip('/')}/{contract_address}/{token_id}"


def generate_opensea_testnet_url(contract_address: str, token_id: str) -> str:
    return generate_opensea_url(contract_address, token_id, base_url=OPENSEA_TESTNET_BASE)


class MintStatus(str, Enum):
    MINTED = "MINTED"
    ALREADY_MINTED = "ALREADY_MINTED"
    NO_WALLET = "NO_WALLET"
    FAILED = "FAILED"
    DISABLED = "DISABLED"


@dataclass
class MintRetrySummary:
    found: int = 0
    minted: int = 0
    failed: int = 0
    skipped: int = 0


class NftMintingService:
    """
    Mint one NFT per deed and record the result on the deed's NFT fields.

    A deed whose token is still "NFT-<unit_id>" has not been minted. The
    client is only called for such deeds, and the result is patched only
    while the placeholder is still in place.
    """

    def __init__(
        self,
        client: Optional[MintingClient],
        settings: Optional[Settings] = None,
        deeds: Optional[DeedRepository] = None,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self.deeds = deeds or DeedRepository()

    def build_metadata(self, deed: Deed) -> Dict[str, Any]:
        return {
            "name": f"WorldTile Deed - {deed.unit_id}",
            "description": f"Virtual land deed for {deed.city}, Plot ID: {deed.plot_id}",
            "attributes": [
                {"trait_type": "Plot ID", "value": deed.plot_id},
                {"trait_type": "City", "value": deed.city},
                {"trait_type": "State", "value": deed.state_name},
                {"trait_type": "Owner", "value": deed.owner_name},
                {"trait_type": "Seal Number", "value": deed.seal_no},
            ],
        }

    def marketplace_url_for(self, contract_address: str, token_id: str) -> str:
        return generate_opensea_url(contract_address, token_id, base_url=self.settings.opensea_base_url)

    def mint_deed(self, db: Session, *, deed_id: uuid.UUID) -> MintStatus:
        deed = self.deeds.get(db, deed_id=deed_id)
        if not deed:
            raise MissingDeedError("Deed not found.", meta={"deed_id": str(deed_id)})

        if not is_placeholder_token(deed.nft_token_id):
            return MintStatus.ALREADY_MINTED

        if self.client is None:
            logger.warning("[minting] no client configured deed=%s", deed_id)
            return MintStatus.DISABLED

        owner = db.get(User, deed.owner_id)
        wallet = owner.wallet_address if owner else None
        if not wallet:
            logger.warning("[minting] owner has no wallet deed=%s owner=%s", deed_id, deed.owner_id)
            return MintStatus.NO_WALLET

        metadata = self.build_metadata(deed)
        contract = self.settings.nft_contract_address
        # no transaction stays open across the external call
        db.commit()

        try:
            resp = self.client.mint(to_address=wallet, metadata=metadata)
        except Exception as e:
            err = e if isinstance(e, ExternalServiceError) else ExternalServiceError(str(e))
            logger.warning("[minting] mint failed deed=%s err=%s", deed_id, err.message)
            return MintStatus.FAILED

        patched = self.deeds.patch_mint_result(
            db,
            deed_id=deed_id,
            result=MintResult(
                token_id=str(resp.token_id),
                contract_address=contract,
                chain=self.settings.nft_chain,
                standard=self.settings.nft_standard,
                mint_tx_hash=resp.transaction_hash,
                marketplace_url=self.marketplace_url_for(contract, str(resp.token_id)),
            ),
            require_placeholder=True,
        )
        if not patched:
            logger.warning("[minting] deed minted concurrently deed=%s tx=%s", deed_id, resp.transaction_hash)
            return MintStatus.ALREADY_MINTED

        logger.info("[minting] deed minted deed=%s token=%s", deed_id, resp.token_id)
        return MintStatus.MINTED

    def retry_failed_mints(
        self,
        db: Session,
        *,
        unit_id: Optional[str] = None,
        limit: int = 100,
    ) -> MintRetrySummary:
        pending = self.deeds.find_pending_mints(db, unit_id=unit_id, limit=limit)
        deed_ids = [d.id for d in pending]
        summary = MintRetrySummary(found=len(deed_ids))

        for deed_id in deed_ids:
            try:
                status = self.mint_deed(db, deed_id=deed_id)
            except Exception:
                db.rollback()
                logger.exception("[minting] retry crashed deed=%s", deed_id)
                summary.failed += 1
                continue

            if status == MintStatus.MINTED:
                summary.minted += 1
            elif status == MintStatus.FAILED:
                summary.failed += 1
            else:
                summary.skipped += 1

        logger.info(
            "[minting] retry done found=%s minted=%s failed=%s skipped=%s",
            summary.found, summary.minted, summary.failed, summary.skipped,
        )
        return summary

    def backfill_marketplace_urls(self, db: Session, *, limit: int = 500) -> int:
        """Minted deeds without a marketplace URL get one derived from their stored fields."""
        targets = [
            (d.id, d.nft_contract_address, d.nft_token_id)
            for d in self.deeds.find_missing_marketplace_urls(db, limit=limit)
        ]
        updated = 0
        for deed_id, contract, token_id in targets:
            if self.deeds.patch_mint_result(
                db,
                deed_id=deed_id,
                result=MintResult(marketplace_url=self.marketplace_url_for(contract, token_id)),
            ):
                updated += 1
        logger.info("[minting] marketplace urls backfilled count=%s", updated)
        return updated
