"""Webhook Routes - Stripe payment webhooks.

POST /api/webhooks/stripe - Main Stripe webhook endpoint
POST /api/webhook/stripe - Alias (Stripe may be configured with this URL)

Status codes are chosen so Stripe retries exactly the deliveries worth retrying:
400/413/422 are final, 500/503 are retried.
"""
from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
import logging

from services.stripe_webhook_service import MAX_BODY_SIZE
from utils import messages

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


def _declared_length(request: Request):
    raw = request.headers.get("content-length")
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


async def _handle_stripe_webhook(request: Request, stripe_signature: str = None):
    """
    Core Stripe webhook handler.

    The raw body is passed unparsed; signature verification needs the exact bytes.
    """
    declared = _declared_length(request)
    if declared is not None and declared > MAX_BODY_SIZE:
        logger.warning(f"Webhook rejected: declared Content-Length {declared} exceeds {MAX_BODY_SIZE}")
        return JSONResponse(status_code=413, content={"error": messages.PAYLOAD_TOO_LARGE})

    payload = await request.body()
    result = await request.app.state.webhook_processor.process(payload, stripe_signature)

    if result.status_code >= 500:
        logger.error(f"Webhook processing failed: outcome={result.outcome.value} status={result.status_code}")
    return JSONResponse(status_code=result.status_code, content=result.body)


# Primary webhook endpoint
@router.post("/api/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    """Handle Stripe webhooks at /api/webhooks/stripe"""
    return await _handle_stripe_webhook(request, stripe_signature)


@router.post("/api/webhook/stripe")
async def stripe_webhook_alias(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature")
):
    """Handle Stripe webhooks at /api/webhook/stripe (alias)"""
    return await _handle_stripe_webhook(request, stripe_signature)
