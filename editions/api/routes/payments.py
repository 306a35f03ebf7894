"""
Payment provider webhook. Thin: verification, normalisation and enqueueing live in
PaymentWebhookService; settlement happens on the payments queue.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from editions.core.errors import InvalidWebhookSignature
from editions.db.session import get_db
from editions.services.payments.provider import StripePaymentProvider
from editions.services.payments.webhook import PaymentWebhookService
from editions.services.queue.service import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/payments", tags=["payments"])


def get_webhook_service(db: Session = Depends(get_db)) -> PaymentWebhookService:
    return PaymentWebhookService(db, StripePaymentProvider(), JobQueue())


async def get_raw_body(request: Request) -> bytes:
    """Unparsed body bytes; the signature is computed over them."""
    return await request.body()


@router.post("/webhook")
def payment_webhook(
    request: Request,
    raw_body: bytes = Depends(get_raw_body),
    service: PaymentWebhookService = Depends(get_webhook_service),
) -> dict:
    # plain def: ingest does blocking DB, Redis and broker calls, so it runs in the threadpool
    signature = request.headers.get("stripe-signature")
    try:
        result = service.ingest(raw_body, signature)
    except InvalidWebhookSignature as e:
        logger.warning("payment_webhook_rejected", extra={"path": request.url.path, "error": str(e)})
        raise HTTPException(status_code=400, detail="Invalid webhook")
    return {"received": True, "outcome": result.outcome, "event_id": result.event_id}
