#app/models/deed.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Float,
    ForeignKey,
    UniqueConstraint,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


# Placeholder tokens look like "NFT-<unit_id>" until the real mint lands
PLACEHOLDER_TOKEN_PREFIX = "NFT-"

# The only columns that may change after a deed is created
NFT_FIELDS = frozenset(
    {
        "nft_token_id",
        "nft_contract_address",
        "nft_chain",
        "nft_standard",
        "nft_mint_tx_hash",
        "nft_marketplace_url",
    }
)


class Deed(Base):
    """
    Certificate of ownership, one per inventory unit.

    Immutability rule:
      - Every column except the nft_* sub-record is frozen at insert.
      - nft_* columns are written only through DeedRepository.patch_mint_result.
    """

    __tablename__ = "deeds"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False
    )
    unit_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("inventory_units.unit_id", ondelete="RESTRICT"), nullable=False
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    payment_tx_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    pay_to_address: Mapped[str] = mapped_column(String(64), nullable=False)

    # owner / location snapshot at issuance
    owner_name: Mapped[str] = mapped_column(String(256), nullable=False)
    plot_id: Mapped[str] = mapped_column(String(128), nullable=False)
    city: Mapped[str] = mapped_column(String(128), nullable=False)
    state_name: Mapped[str] = mapped_column(String(128), nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    seal_no: Mapped[str] = mapped_column(String(192), nullable=False)

    # NFT sub-record
    nft_token_id: Mapped[str] = mapped_column(String(160), nullable=False)
    nft_contract_address: Mapped[str] = mapped_column(String(64), nullable=False)
    nft_chain: Mapped[str] = mapped_column(String(32), nullable=False)
    nft_standard: Mapped[str] = mapped_column(String(16), nullable=False)
    nft_mint_tx_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    nft_marketplace_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("unit_id", name="uq_deeds_unit"),
        UniqueConstraint("seal_no", name="uq_deeds_seal_no"),
        Index("ix_deeds_owner_issued", "owner_id", "issued_at"),
        Index("ix_deeds_order", "order_id"),
        Index("ix_deeds_payment_tx", "payment_tx_hash"),
    )

    @property
    def has_placeholder_token(self) -> bool:
        return self.nft_token_id.startswith(PLACEHOLDER_TOKEN_PREFIX)
