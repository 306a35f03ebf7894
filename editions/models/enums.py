"""
String enums stored as plain String columns.
"""
from enum import Enum


class EditionStatus(str, Enum):
    PENDING = "PENDING"
    PREORDER_OPEN = "PREORDER_OPEN"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


RELEASED_EDITION_STATUSES = (EditionStatus.ACTIVE.value, EditionStatus.CLOSED.value)
RELEASABLE_EDITION_STATUSES = (EditionStatus.PENDING.value, EditionStatus.PREORDER_OPEN.value)


class AccessStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class PlanType(str, Enum):
    DIGITAL = "DIGITAL"
    PHYSICAL = "PHYSICAL"
    FULL = "FULL"

    @property
    def includes_digital(self) -> bool:
        return self in (PlanType.DIGITAL, PlanType.FULL)

    @property
    def includes_physical(self) -> bool:
        return self in (PlanType.PHYSICAL, PlanType.FULL)


class LedgerStatus(str, Enum):
    PROCESSING = "PROCESSING"
    HANDLED = "HANDLED"
    FAILED = "FAILED"


class UserStatus(str, Enum):
    PENDING_PREORDER = "PENDING_PREORDER"
    PENDING_SUBSCRIPTION = "PENDING_SUBSCRIPTION"
    PENDING_RETRY = "PENDING_RETRY"
    ACTIVE = "ACTIVE"


class OrderType(str, Enum):
    PREORDER = "PREORDER"
    SUBSCRIPTION_RENEWAL = "SUBSCRIPTION_RENEWAL"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class PaymentStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class SubscriptionStatus(str, Enum):
    PENDING = "PENDING"
    AWAITING_PAYMENT = "AWAITING_PAYMENT"
    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"


class ShipmentStatus(str, Enum):
    PENDING = "PENDING"
    SHIPPED = "SHIPPED"
