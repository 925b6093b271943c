# app/services/settlement_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.models.order import Order
from app.models.user import User
from app.services.deed_issuer_service import DeedIssuerService, IssuanceReport
from app.services.deed_notifier import DeedNotifier, LoggingDeedNotifier
from app.services.deed_repository import DeedRepository
from app.services.nft_minting_service import MintRetrySummary, MintStatus, NftMintingService
from app.services.payment_reconciler_service import (
    PaymentObservation,
    PaymentReconcilerService,
    ReconcileResult,
)

logger = logging.getLogger(__name__)


@dataclass
class SettlementResult:
    reconcile: Optional[ReconcileResult] = None
    issuance: Optional[IssuanceReport] = None
    mints: Optional[MintRetrySummary] = None


class SettlementService:
    """
    Orchestrates PAID -> deeds -> mints -> notification.

    The PAID transition is the only trigger for issuance. Everything after
    the PAID commit is retryable and never rolls settlement back.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        reconciler: Optional[PaymentReconcilerService] = None,
        issuer: Optional[DeedIssuerService] = None,
        minting: Optional[NftMintingService] = None,
        notifier: Optional[DeedNotifier] = None,
    ):
        self.settings = settings or get_settings()
        self.reconciler = reconciler or PaymentReconcilerService(settings=self.settings)
        self.issuer = issuer or DeedIssuerService(settings=self.settings)
        self.minting = minting
        self.notifier = notifier or LoggingDeedNotifier()
        self.deeds = DeedRepository()

    def _notify(self, db: Session, *, order_id: uuid.UUID) -> None:
        try:
            order = db.get(Order, order_id)
            buyer = db.get(User, order.buyer_id)
            deeds = self.deeds.list_for_order(db, order_id=order_id)
            self.notifier.deeds_issued(buyer=buyer, order=order, deeds=deeds)
        except Exception:
            db.rollback()
            logger.exception("[settlement] notification failed order=%s", order_id)

    def finalize(self, db: Session, *, order_id: uuid.UUID) -> SettlementResult:
        """Issue deeds for a PAID order, mint them, notify. Safe to re-run."""
        report = self.issuer.issue_for_order(db, order_id=order_id)
        result = SettlementResult(issuance=report)

        if self.settings.mint_on_settlement and self.minting is not None:
            summary = MintRetrySummary(found=len(report.deed_ids))
            for deed_id in report.deed_ids:
                status = self.minting.mint_deed(db, deed_id=deed_id)
                if status == MintStatus.MINTED:
                    summary.minted += 1
                elif status == MintStatus.FAILED:
                    summary.failed += 1
                else:
                    summary.skipped += 1
            result.mints = summary

        if report.issued:
            self._notify(db, order_id=order_id)
        return result

    def record_observation(
        self,
        db: Session,
        *,
        observation: PaymentObservation,
        now: Optional[datetime] = None,
    ) -> SettlementResult:
        outcome = self.reconciler.apply_observation(db, observation=observation, now=now)
        if not outcome.became_paid:
            return SettlementResult(reconcile=outcome)

        result = self.finalize(db, order_id=outcome.order_id)
        result.reconcile = outcome
        return result

    def promote_late_payment(
        self,
        db: Session,
        *,
        order_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> SettlementResult:
        outcome = self.reconciler.promote_late_payment(db, order_id=order_id, now=now)
        if not outcome.became_paid:
            return SettlementResult(reconcile=outcome)

        result = self.finalize(db, order_id=order_id)
        result.reconcile = outcome
        return result
