#app/models/enums.py
from __future__ import annotations
from enum import Enum


class UserRole(str, Enum):
    USER = "USER"
    AGENT = "AGENT"
    ADMIN = "ADMIN"


class UnitStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    LATE_PAYMENT = "LATE_PAYMENT"


# states from which an order may still be settled to PAID
PROMOTABLE_ORDER_STATES = frozenset(
    {
        OrderStatus.LATE_PAYMENT.value,
        OrderStatus.EXPIRED.value,
        OrderStatus.FAILED.value,
    }
)


class ReferralEarningStatus(str, Enum):
    PENDING = "PENDING"
    EARNED = "EARNED"
    PAID = "PAID"
