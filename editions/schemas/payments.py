"""
DTO платёжных событий: NormalizedPaymentEvent (выход провайдера, вход settlement)
и узкие контракты для веток preorder / subscription.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from editions.models.enums import OrderType, PlanType


class PaymentAction(str, Enum):
    CHECKOUT_COMPLETED = "CHECKOUT_COMPLETED"
    INVOICE_PAID = "INVOICE_PAID"
    SUBSCRIPTION_STARTED = "SUBSCRIPTION_STARTED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


PAYMENT_SUCCESS_JOB = "payment.success"
PAYMENT_FAILED_JOB = "payment.failed"


class NormalizedPaymentEvent(BaseModel):
    """Provider-agnostic payment event; this is what the payments queue carries."""

    event_id: str = Field(..., min_length=1)
    provider_event_type: str
    action: PaymentAction
    success: bool
    user_id: str = Field(..., min_length=1)
    order_type: OrderType | None = None
    amount: int = 0
    currency: str = "GBP"
    # Preorder fields
    plan: PlanType | None = None
    edition_id: str | None = None
    payment_link_id: str | None = None
    address_id: str | None = None
    # Subscription fields
    subscription_id: str | None = None
    subscription_plan_id: str | None = None
    provider_subscription_id: str | None = None
    invoice_id: str | None = None
    current_period_start: int | None = None  # unix seconds
    current_period_end: int | None = None
    is_new_subscription: bool = False
    raw_payload: str = ""

    model_config = {"frozen": True}

    @property
    def job_name(self) -> str:
        return PAYMENT_SUCCESS_JOB if self.success else PAYMENT_FAILED_JOB


class PreorderCompletion(BaseModel):
    """Всё, что нужно для завершения предзаказа; строится из события и валидируется."""

    event_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    edition_id: str = Field(..., min_length=1)
    plan: PlanType
    payment_link_id: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)
    currency: str = "GBP"
    address_id: str | None = None

    model_config = {"frozen": True}


class SubscriptionRenewal(BaseModel):
    event_id: str = Field(..., min_length=1)
    subscription_id: str = Field(..., min_length=1)
    subscription_plan_id: str = Field(..., min_length=1)
    provider_subscription_id: str | None = None
    invoice_id: str | None = None
    current_period_start: int | None = None
    current_period_end: int | None = None
    address_id: str | None = None
    is_new_subscription: bool = False

    model_config = {"frozen": True}


class SubscriptionStarted(BaseModel):
    user_id: str = Field(..., min_length=1)
    subscription_plan_id: str = Field(..., min_length=1)
    subscription_id: str | None = None

    model_config = {"frozen": True}
