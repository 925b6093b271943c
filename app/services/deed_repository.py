# app/services/deed_repository.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.errors import MissingDeedError
from app.models.deed import Deed, PLACEHOLDER_TOKEN_PREFIX
from app.policies.deed_policies import reject_deed_update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MintResult:
    """
    NFT sub-record patch. None means "leave as is".
    """
    token_id: Optional[str] = None
    contract_address: Optional[str] = None
    chain: Optional[str] = None
    standard: Optional[str] = None
    mint_tx_hash: Optional[str] = None
    marketplace_url: Optional[str] = None

    def column_values(self) -> Dict[str, Any]:
        return {
            f"nft_{f.name}": getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


class DeedRepository:
    """
    Deed persistence. Deeds are written once by the issuer; afterwards the
    only write path is patch_mint_result.
    """

    def get(self, db: Session, *, deed_id: uuid.UUID) -> Optional[Deed]:
        return db.get(Deed, deed_id)

    def get_by_unit(self, db: Session, *, unit_id: str) -> Optional[Deed]:
        return db.execute(select(Deed).where(Deed.unit_id == unit_id)).scalar_one_or_none()

    def list_for_order(self, db: Session, *, order_id: uuid.UUID) -> List[Deed]:
        return list(
            db.execute(select(Deed).where(Deed.order_id == order_id).order_by(Deed.unit_id.asc()))
            .scalars()
            .all()
        )

    def list_for_owner(self, db: Session, *, owner_id: uuid.UUID) -> List[Deed]:
        return list(
            db.execute(select(Deed).where(Deed.owner_id == owner_id).order_by(Deed.issued_at.desc()))
            .scalars()
            .all()
        )

    def find_pending_mints(
        self,
        db: Session,
        *,
        unit_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[Deed]:
        """Placeholder token and no marketplace URL: mint never landed."""
        stmt = select(Deed).where(
            Deed.nft_token_id.like(f"{PLACEHOLDER_TOKEN_PREFIX}%"),
            Deed.nft_marketplace_url.is_(None),
        )
        if unit_id:
            stmt = stmt.where(Deed.unit_id == unit_id)
        return list(db.execute(stmt.order_by(Deed.issued_at.asc()).limit(limit)).scalars().all())

    def find_missing_marketplace_urls(self, db: Session, *, limit: int = 500) -> List[Deed]:
        stmt = select(Deed).where(
            Deed.nft_token_id.not_like(f"{PLACEHOLDER_TOKEN_PREFIX}%"),
            Deed.nft_marketplace_url.is_(None),
        )
        return list(db.execute(stmt.order_by(Deed.issued_at.asc()).limit(limit)).scalars().all())

    def update(self, db: Session, *, deed_id: uuid.UUID, changes: Dict[str, Any]) -> Deed:
        """General update path: always rejects field changes."""
        reject_deed_update(changes)
        deed = self.get(db, deed_id=deed_id)
        if not deed:
            raise MissingDeedError("Deed not found.", meta={"deed_id": str(deed_id)})
        return deed

    def patch_mint_result(
        self,
        db: Session,
        *,
        deed_id: uuid.UUID,
        result: MintResult,
        require_placeholder: bool = False,
    ) -> bool:
        """
        Write NFT sub-record fields and nothing else. Commits.

        With require_placeholder the write only lands while the token is
        still a placeholder, so a concurrent minter cannot be overwritten.
        """
        values = result.column_values()
        if not values:
            return False

        conditions = [Deed.id == deed_id]
        if require_placeholder:
            conditions.append(Deed.nft_token_id.like(f"{PLACEHOLDER_TOKEN_PREFIX}%"))

        res = db.execute(
            update(Deed)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.rollback()
            logger.info("[deeds] mint patch skipped deed=%s", deed_id)
            return False

        db.commit()
        logger.info("[deeds] mint patched deed=%s fields=%s", deed_id, sorted(values))
        return True
