"""Tests for EmailClient — request shape and status code classification."""
import json

import httpx
import pytest

from editions.core.errors import EmailDeliveryError, FatalConfigurationError, TransientExternalError
from editions.services.email.client import EmailClient
from editions.services.email.templates import EMAIL_TEMPLATES, render
from editions.services.email.types import AdminEmailType, EmailType


def _client(status_code: int, body: dict | None = None, seen: list | None = None) -> EmailClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body or {})

    client = EmailClient(api_key="re_test", from_address="Editions <noreply@example.com>")
    client._client = httpx.Client(transport=httpx.MockTransport(handler))
    return client


def test_send_posts_rendered_template():
    seen = []
    client = _client(200, {"id": "msg_1"}, seen)

    message_id = client.send(
        "reader@example.com",
        EmailType.NEW_EDITION_RELEASED.value,
        {"name": "Ada", "editionTitle": "Edition 3", "editionCode": "EDI03", "editionLink": "https://x/editions/EDI03"},
    )

    assert message_id == "msg_1"
    request = seen[0]
    assert request.url.path == "/emails"
    assert request.headers["Authorization"] == "Bearer re_test"
    body = json.loads(request.content)
    assert body["to"] == ["reader@example.com"]
    assert body["subject"] == "Edition 3 is out now"
    assert "https://x/editions/EDI03" in body["html"]


@pytest.mark.parametrize("status_code", [429, 500, 503])
def test_rate_limit_and_server_errors_are_transient(status_code):
    with pytest.raises(TransientExternalError):
        _client(status_code).send("a@example.com", EmailType.SUBSCRIPTION_RENEWED.value, {})


def test_client_errors_are_permanent():
    with pytest.raises(EmailDeliveryError):
        _client(422).send("a@example.com", EmailType.SUBSCRIPTION_RENEWED.value, {})


def test_transport_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("no route")

    client = EmailClient(api_key="re_test")
    client._client = httpx.Client(transport=httpx.MockTransport(handler))

    with pytest.raises(TransientExternalError):
        client.send("a@example.com", EmailType.SUBSCRIPTION_RENEWED.value, {})


def test_missing_api_key_is_fatal():
    with pytest.raises(FatalConfigurationError):
        EmailClient(api_key="").send("a@example.com", EmailType.SUBSCRIPTION_RENEWED.value, {})


def test_render_blanks_missing_fields():
    subject, html = render(EmailType.SUBSCRIPTION_STARTED.value, {"name": None})

    assert subject == "Welcome to your Editions subscription"
    assert "#." in html


def test_template_table_matches_email_types():
    expected = {t.value for t in EmailType} | {t.value for t in AdminEmailType}

    assert set(EMAIL_TEMPLATES) == expected
