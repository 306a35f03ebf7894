"""Tests for StripePaymentProvider — signature verification and event normalisation."""
import json

import pytest

from editions.core.errors import InvalidWebhookSignature
from editions.models.enums import OrderType, PlanType
from editions.schemas.payments import PaymentAction
from editions.services.payments.provider import StripePaymentProvider
from tests.factories import WEBHOOK_SECRET as SECRET
from tests.factories import checkout_event
from tests.factories import sign_stripe_payload as sign


def invoice_event(event_type="invoice.paid", billing_reason="subscription_cycle") -> dict:
    return {
        "id": "evt_inv",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "object": "invoice",
                "id": "in_1",
                "amount_paid": 1500,
                "currency": "gbp",
                "billing_reason": billing_reason,
                "parent": {
                    "subscription_details": {
                        "subscription": "sub_stripe_1",
                        "metadata": {"userId": "u1", "subscriptionId": "sub_local", "planId": "plan_1"},
                    }
                },
                "lines": {"data": [{"period": {"start": 1768550400, "end": 1771228800}}]},
            }
        },
    }


@pytest.fixture
def provider():
    return StripePaymentProvider(webhook_secret=SECRET)


class TestVerifySignature:
    def test_valid_signature_is_parsed(self, provider):
        body = json.dumps(checkout_event()).encode()

        event = provider.verify_signature_and_parse(body, sign(body))

        assert event.event_id == "evt_1"
        assert event.raw_payload == body.decode()

    def test_wrong_secret_is_rejected(self, provider):
        body = json.dumps(checkout_event()).encode()

        with pytest.raises(InvalidWebhookSignature):
            provider.verify_signature_and_parse(body, sign(body, "whsec_other"))

    def test_tampered_body_is_rejected(self, provider):
        body = json.dumps(checkout_event()).encode()
        signature = sign(body)

        with pytest.raises(InvalidWebhookSignature):
            provider.verify_signature_and_parse(body.replace(b"4500", b"1"), signature)

    def test_missing_header_is_rejected(self, provider):
        with pytest.raises(InvalidWebhookSignature):
            provider.verify_signature_and_parse(b"{}", None)

    def test_malformed_metadata_is_rejected(self, provider):
        body = json.dumps(checkout_event(plan="GOLD")).encode()

        with pytest.raises(InvalidWebhookSignature):
            provider.verify_signature_and_parse(body, sign(body))


class TestNormalize:
    def test_checkout_preorder(self, provider):
        event = provider.normalize(checkout_event())

        assert event.action == PaymentAction.CHECKOUT_COMPLETED
        assert event.success is True
        assert event.order_type == OrderType.PREORDER
        assert event.plan == PlanType.FULL
        assert event.amount == 4500
        assert event.currency == "GBP"
        assert event.payment_link_id == "plink_1"
        assert event.address_id == "addr_1"
        assert event.job_name == "payment.success"

    def test_subscription_checkout_is_ignored(self, provider):
        assert provider.normalize(checkout_event(type="SUBSCRIPTION_RENEWAL")) is None

    def test_invoice_paid(self, provider):
        event = provider.normalize(invoice_event())

        assert event.action == PaymentAction.INVOICE_PAID
        assert event.order_type == OrderType.SUBSCRIPTION_RENEWAL
        assert event.subscription_id == "sub_local"
        assert event.subscription_plan_id == "plan_1"
        assert event.provider_subscription_id == "sub_stripe_1"
        assert event.invoice_id == "in_1"
        assert event.current_period_start == 1768550400
        assert event.is_new_subscription is False

    def test_first_invoice_marks_new_subscription(self, provider):
        assert provider.normalize(invoice_event(billing_reason="subscription_create")).is_new_subscription is True

    def test_payment_failed_routes_to_failed_job(self, provider):
        event = provider.normalize(invoice_event(event_type="invoice.payment_failed"))

        assert event.success is False
        assert event.action == PaymentAction.PAYMENT_FAILED
        assert event.job_name == "payment.failed"

    def test_subscription_created(self, provider):
        event = provider.normalize(
            {
                "id": "evt_sub",
                "type": "customer.subscription.created",
                "data": {"object": {"id": "sub_stripe_1", "metadata": {"userId": "u1", "planId": "plan_1"}}},
            }
        )

        assert event.action == PaymentAction.SUBSCRIPTION_STARTED
        assert event.subscription_plan_id == "plan_1"

    def test_unhandled_type_is_ignored(self, provider):
        assert provider.normalize({"id": "evt_x", "type": "charge.refunded", "data": {"object": {}}}) is None

    def test_event_without_user_is_ignored(self, provider):
        assert provider.normalize(checkout_event(userId="")) is None
