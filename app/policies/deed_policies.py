#app/policies/deed_policies.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from app.core.errors import ImmutableFieldError
from app.models.deed import PLACEHOLDER_TOKEN_PREFIX


def placeholder_token_for(unit_id: str) -> str:
    return f"{PLACEHOLDER_TOKEN_PREFIX}{unit_id}"


def is_placeholder_token(token_id: str | None) -> bool:
    return not token_id or token_id.startswith(PLACEHOLDER_TOKEN_PREFIX)


def generate_seal_no(unit_id: str, issued_at: datetime) -> str:
    """
    Deterministic seal number: DEED-<UNIT_ID>-<issued_at epoch millis>.

    Same unit + same timestamp always gives the same seal, so a retried
    issuance collides on the unique index instead of minting a second seal.
    """
    millis = int(issued_at.timestamp() * 1000)
    return f"DEED-{unit_id.upper()}-{millis}"


def reject_deed_update(changes: Dict[str, Any]) -> None:
    """
    General deed write path. Every field is frozen after creation;
    mint results go through DeedRepository.patch_mint_result instead.
    """
    if changes:
        raise ImmutableFieldError(
            "Deeds are immutable after issuance.",
            meta={"fields": sorted(changes)},
        )
