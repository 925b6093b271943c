#app/api/v1/http_errors.py
from __future__ import annotations

import uuid

from fastapi import HTTPException

from app.core.errors import (
    ConflictError,
    DomainError,
    DuplicatePaymentError,
    ExternalServiceError,
    InvalidOrderError,
    InvariantError,
    MissingDeedError,
    MissingOrderError,
    MissingUnitError,
)


def to_http(e: DomainError) -> HTTPException:
    """Domain error -> HTTP status. Unknown subclasses map to 409."""
    if isinstance(e, (MissingDeedError, MissingOrderError, MissingUnitError)):
        status = 404
    elif isinstance(e, InvalidOrderError):
        status = 400
    elif isinstance(e, ExternalServiceError):
        status = 502
    elif isinstance(e, (ConflictError, DuplicatePaymentError, InvariantError)):
        status = 409
    else:
        status = 409
    return HTTPException(
        status_code=status,
        detail={"error": type(e).__name__, "message": e.message, "meta": e.meta},
    )


def parse_uuid(raw: str, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except Exception:
        raise HTTPException(status_code=400, detail=f"{field} must be UUID.")
