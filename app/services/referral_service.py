# app/services/referral_service.py
from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.money import format_usdt, to_decimal
from app.db.types import utcnow
from app.models.enums import ReferralEarningStatus
from app.models.order import Order
from app.models.referral_earning import ReferralEarning
from app.models.user import User

logger = logging.getLogger(__name__)


class ReferralService:
    """
    Referral earnings and the cached per-user aggregates.

    total_referrals / total_earnings on User are a cache. recompute_stats
    rebuilds them from users.referred_by and referral_earnings.
    """

    def commission_for(self, expected_amount: str, rate: str) -> str:
        return format_usdt(to_decimal(expected_amount) * to_decimal(rate))

    def record_earning(self, db: Session, *, order: Order) -> Optional[ReferralEarning]:
        """
        One earning per PAID order that carries a referrer. Runs inside the
        PAID transaction; does not commit.
        """
        if order.referrer_id is None:
            return None

        existing = db.execute(
            select(ReferralEarning).where(ReferralEarning.order_id == order.id)
        ).scalar_one_or_none()
        if existing:
            return existing

        earning = ReferralEarning(
            referrer_id=order.referrer_id,
            referred_user_id=order.buyer_id,
            order_id=order.id,
            unit_ids=list(order.unit_ids),
            purchase_amount=order.expected_amount,
            commission_rate=order.commission_rate,
            commission_amount=order.commission_amount,
            tx_hash=order.tx_hash,
            status=ReferralEarningStatus.EARNED.value,
        )
        db.add(earning)

        referrer = db.get(User, order.referrer_id)
        if referrer is not None:
            total = to_decimal(referrer.total_earnings or "0") + to_decimal(order.commission_amount or "0")
            referrer.total_earnings = format_usdt(total)
            referrer.updated_at = utcnow()

        db.flush()
        logger.info(
            "[referrals] earning order=%s referrer=%s amount=%s",
            order.id, order.referrer_id, order.commission_amount,
        )
        return earning

    def recompute_stats(self, db: Session, *, user_id: uuid.UUID) -> User:
        user = db.get(User, user_id)
        if not user:
            raise ValueError("User not found.")

        referrals = db.execute(
            select(func.count()).select_from(User).where(User.referred_by == user_id)
        ).scalar_one()

        amounts = db.execute(
            select(ReferralEarning.commission_amount).where(ReferralEarning.referrer_id == user_id)
        ).scalars().all()
        total = sum((to_decimal(a) for a in amounts), Decimal("0"))

        user.total_referrals = referrals
        user.total_earnings = format_usdt(total)
        user.updated_at = utcnow()
        db.commit()
        db.refresh(user)
        return user
