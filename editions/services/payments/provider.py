"""
StripePaymentProvider — verify signed webhooks and normalise them into NormalizedPaymentEvent.

Stripe metadata (set when payment links / subscriptions are created) carries our ids:
userId, type (PREORDER | SUBSCRIPTION_RENEWAL), plan, editionId, addressId, subscriptionId, planId.
"""
import json
import logging
from typing import Any, Callable

import stripe
from pydantic import ValidationError

from editions.core.config import settings
from editions.core.errors import FatalConfigurationError, InvalidWebhookSignature
from editions.models.enums import OrderType
from editions.schemas.payments import NormalizedPaymentEvent, PaymentAction

logger = logging.getLogger(__name__)


def _metadata(obj: dict) -> dict:
    return obj.get("metadata") or {}


def _invoice_metadata(invoice: dict) -> dict:
    """Subscription metadata moved under parent.subscription_details in newer API versions."""
    for details in (
        (invoice.get("parent") or {}).get("subscription_details"),
        invoice.get("subscription_details"),
    ):
        if details and details.get("metadata"):
            return details["metadata"]
    return _metadata(invoice)


def _invoice_subscription(invoice: dict) -> str | None:
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription") or invoice.get("subscription")


def _invoice_period(invoice: dict) -> tuple[int | None, int | None]:
    lines = (invoice.get("lines") or {}).get("data") or []
    if lines:
        period = lines[0].get("period") or {}
        return period.get("start"), period.get("end")
    return invoice.get("period_start"), invoice.get("period_end")


class StripePaymentProvider:
    def __init__(self, webhook_secret: str | None = None):
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        self._normalizers: dict[str, Callable[[str, str, dict, str], NormalizedPaymentEvent | None]] = {
            "checkout.session.completed": self._checkout_completed,
            "invoice.paid": self._invoice_paid,
            "invoice.payment_succeeded": self._invoice_paid,
            "customer.subscription.created": self._subscription_created,
            "invoice.payment_failed": self._payment_failed,
            "checkout.session.async_payment_failed": self._payment_failed,
        }

    def verify_signature_and_parse(self, raw_body: bytes, signature: str | None) -> NormalizedPaymentEvent | None:
        """
        Verify the Stripe-Signature header and normalise the event.
        Returns None for event types we do not act on; raises InvalidWebhookSignature otherwise.
        """
        if not self.webhook_secret:
            raise FatalConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise InvalidWebhookSignature("Missing stripe-signature header")
        try:
            stripe.Webhook.construct_event(raw_body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("webhook_signature_invalid", extra={"error": str(e)})
            raise InvalidWebhookSignature(str(e)) from e
        except ValueError as e:
            logger.warning("webhook_payload_invalid", extra={"error": str(e)})
            raise InvalidWebhookSignature(f"Unparseable payload: {e}") from e

        raw = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        event: dict[str, Any] = json.loads(raw)
        try:
            return self.normalize(event, raw)
        except ValidationError as e:
            logger.warning("webhook_event_malformed", extra={"event_id": event.get("id"), "error": str(e)})
            raise InvalidWebhookSignature(f"Malformed event: {e}") from e

    def normalize(self, event: dict, raw: str = "") -> NormalizedPaymentEvent | None:
        event_id = event.get("id") or ""
        event_type = event.get("type") or ""
        normalizer = self._normalizers.get(event_type)
        if normalizer is None:
            logger.info("webhook_event_ignored", extra={"event_id": event_id, "event_type": event_type})
            return None
        obj = (event.get("data") or {}).get("object") or {}
        normalized = normalizer(event_id, event_type, obj, raw or json.dumps(event))
        if normalized is not None:
            logger.info(
                "webhook_event_normalized",
                extra={"event_id": event_id, "event_type": event_type, "user_id": normalized.user_id},
            )
        return normalized

    def _unattributed(self, event_id: str, event_type: str) -> None:
        logger.error("webhook_event_missing_user", extra={"event_id": event_id, "event_type": event_type})
        return None

    def _checkout_completed(self, event_id: str, event_type: str, session: dict, raw: str):
        md = _metadata(session)
        if not md.get("userId"):
            return self._unattributed(event_id, event_type)
        if md.get("type") != OrderType.PREORDER.value:
            # subscription checkouts are settled from their invoices
            logger.info("webhook_checkout_not_preorder", extra={"event_id": event_id, "event_type": event_type})
            return None
        return NormalizedPaymentEvent(
            event_id=event_id,
            provider_event_type=event_type,
            action=PaymentAction.CHECKOUT_COMPLETED,
            success=session.get("payment_status") in ("paid", "no_payment_required"),
            user_id=md["userId"],
            order_type=OrderType.PREORDER,
            amount=session.get("amount_total") or 0,
            currency=(session.get("currency") or "gbp").upper(),
            plan=md.get("plan"),
            edition_id=md.get("editionId"),
            payment_link_id=session.get("payment_link"),
            address_id=md.get("addressId"),
            raw_payload=raw,
        )

    def _invoice_paid(self, event_id: str, event_type: str, invoice: dict, raw: str):
        md = _invoice_metadata(invoice)
        if not md.get("userId"):
            return self._unattributed(event_id, event_type)
        period_start, period_end = _invoice_period(invoice)
        return NormalizedPaymentEvent(
            event_id=event_id,
            provider_event_type=event_type,
            action=PaymentAction.INVOICE_PAID,
            success=True,
            user_id=md["userId"],
            order_type=OrderType.SUBSCRIPTION_RENEWAL,
            amount=invoice.get("amount_paid") or 0,
            currency=(invoice.get("currency") or "gbp").upper(),
            plan=md.get("plan"),
            address_id=md.get("addressId"),
            subscription_id=md.get("subscriptionId"),
            subscription_plan_id=md.get("planId"),
            provider_subscription_id=_invoice_subscription(invoice),
            invoice_id=invoice.get("id"),
            current_period_start=period_start,
            current_period_end=period_end,
            is_new_subscription=invoice.get("billing_reason") == "subscription_create",
            raw_payload=raw,
        )

    def _subscription_created(self, event_id: str, event_type: str, subscription: dict, raw: str):
        md = _metadata(subscription)
        if not md.get("userId"):
            return self._unattributed(event_id, event_type)
        return NormalizedPaymentEvent(
            event_id=event_id,
            provider_event_type=event_type,
            action=PaymentAction.SUBSCRIPTION_STARTED,
            success=True,
            user_id=md["userId"],
            subscription_id=md.get("subscriptionId"),
            subscription_plan_id=md.get("planId"),
            provider_subscription_id=subscription.get("id"),
            raw_payload=raw,
        )

    def _payment_failed(self, event_id: str, event_type: str, obj: dict, raw: str):
        md = _invoice_metadata(obj) if obj.get("object") == "invoice" else _metadata(obj)
        if not md.get("userId"):
            return self._unattributed(event_id, event_type)
        order_type = md.get("type")
        return NormalizedPaymentEvent(
            event_id=event_id,
            provider_event_type=event_type,
            action=PaymentAction.PAYMENT_FAILED,
            success=False,
            user_id=md["userId"],
            order_type=order_type if order_type in {t.value for t in OrderType} else None,
            amount=obj.get("amount_due") or obj.get("amount_total") or 0,
            raw_payload=raw,
        )
