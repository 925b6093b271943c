# app/services/deed_notifier.py
from __future__ import annotations

import logging
from typing import List, Protocol

from app.models.deed import Deed
from app.models.order import Order
from app.models.user import User

logger = logging.getLogger(__name__)


class DeedNotifier(Protocol):
    """Delivers the confirmation for finalized deeds. Failures never affect settlement."""

    def deeds_issued(self, *, buyer: User, order: Order, deeds: List[Deed]) -> None:
        ...


class LoggingDeedNotifier:
    def deeds_issued(self, *, buyer: User, order: Order, deeds: List[Deed]) -> None:
        logger.info(
            "[notify] deeds issued order=%s buyer=%s email=%s seals=%s",
            order.id, buyer.id, buyer.email, [d.seal_no for d in deeds],
        )
