"""
Import every model so Base.metadata is complete for create_all / migrations.
"""
from editions.models.edition import Edition
from editions.models.edition_access import EditionAccess
from editions.models.email_log import EmailLog
from editions.models.failed_job import FailedJob
from editions.models.order import Order, Payment, Preorder, Shipment
from editions.models.payment_event import PaymentEventRecord
from editions.models.subscription import Subscription, SubscriptionPlan
from editions.models.user import User

__all__ = [
    "Edition",
    "EditionAccess",
    "EmailLog",
    "FailedJob",
    "Order",
    "Payment",
    "PaymentEventRecord",
    "Preorder",
    "Shipment",
    "Subscription",
    "SubscriptionPlan",
    "User",
]
