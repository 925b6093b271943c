from __future__ import annotations

from typing import Any, Dict, Optional


class DomainError(Exception):
    """
    Base class for settlement / issuance errors.

    `meta` carries machine-readable context (ids, counts) for logs and API
    responses.
    """

    def __init__(self, message: str, meta: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.meta = meta or {}


class ConflictError(DomainError):
    """A concurrent reservation or claim was lost."""


class InvariantError(DomainError):
    """The target entity is not in the state the operation requires."""


class StaleObservationError(InvariantError):
    """Payment observation with fewer confirmations than already recorded."""


class UnitsNoLongerReservedError(InvariantError):
    """Units were released or resold before the order could be settled."""


class ImmutableFieldError(InvariantError):
    """An update touched a field that is frozen after creation."""


class DuplicatePaymentError(DomainError):
    """The same transaction hash was claimed by a second order."""


class MissingUnitError(DomainError):
    pass


class MissingOrderError(DomainError):
    pass


class MissingDeedError(DomainError):
    pass


class ExternalServiceError(DomainError):
    """Minting / notification collaborator failure. Always retryable."""


class InvalidOrderError(DomainError, ValueError):
    pass
