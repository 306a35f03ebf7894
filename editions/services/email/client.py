"""
Email client wrapper using httpx sync client (Resend HTTP API).
Provides sync interface for Celery workers (no event loop issues).
"""
import logging
import time

import httpx

from editions.core.config import settings
from editions.core.errors import EmailDeliveryError, FatalConfigurationError, TransientExternalError
from editions.services.email.templates import render
from editions.utils.metrics import email_request_duration_seconds, emails_sent_total

logger = logging.getLogger(__name__)


class EmailClient:
    """
    Sync email client for Celery workers.
    send(recipient, template_type, content) -> provider message id, or raises.
    """

    def __init__(self, api_key: str | None = None, from_address: str | None = None) -> None:
        self._api_key = api_key if api_key is not None else settings.resend_api_key
        self._from = from_address or settings.email_from_address
        self._base_url = settings.resend_api_url.rstrip("/")
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=settings.email_request_timeout)
        return self._client

    def send(self, recipient: str, template_type: str, content: dict) -> str:
        if not self._api_key:
            raise FatalConfigurationError("RESEND_API_KEY is not configured")
        subject, html = render(template_type, content)
        start = time.time()
        try:
            resp = self.client.post(
                f"{self._base_url}/emails",
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"from": self._from, "to": [recipient], "subject": subject, "html": html},
            )
        except httpx.HTTPError as e:
            emails_sent_total.labels(template=template_type, status="error").inc()
            raise TransientExternalError(f"email transport error: {e}") from e
        finally:
            email_request_duration_seconds.observe(time.time() - start)

        if resp.status_code == 429 or resp.status_code >= 500:
            emails_sent_total.labels(template=template_type, status="retry").inc()
            logger.warning(
                "email_send_transient",
                extra={"status_code": resp.status_code, "status": template_type},
            )
            raise TransientExternalError(f"email provider returned {resp.status_code}")
        if resp.status_code >= 400:
            emails_sent_total.labels(template=template_type, status="rejected").inc()
            raise EmailDeliveryError(f"email provider rejected message: {resp.status_code} {resp.text[:200]}")

        emails_sent_total.labels(template=template_type, status="success").inc()
        return resp.json().get("id", "")

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
