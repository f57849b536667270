"""Checkout Routes - start a Stripe payment for one year of access.

Endpoints:
- POST /api/checkout - Create checkout session (rate limited per client IP)
"""
from fastapi import APIRouter, HTTPException, Request, status
import logging

import stripe

from models import CheckoutRequest
from services.stripe_service import CheckoutConfigurationError
from utils import messages
from utils.email import MAX_EMAIL_LENGTH, is_valid_email, normalize_email

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/checkout", tags=["checkout"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("")
async def create_checkout(request: Request, body: CheckoutRequest):
    """
    Create a Stripe Checkout session.

    The email is validated here and carried in session metadata; the webhook
    grants access to exactly this address once payment completes.
    """
    allowed, retry_after = request.app.state.rate_limiter.check_rate_limit(f"checkout:{_client_ip(request)}")
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=messages.TOO_MANY_REQUESTS,
            headers={"Retry-After": str(retry_after)},
        )

    email = normalize_email(body.email)
    if not email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.EMAIL_REQUIRED)
    if len(email) > MAX_EMAIL_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.EMAIL_TOO_LONG)
    if not is_valid_email(email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.EMAIL_INVALID)

    try:
        return await request.app.state.stripe_service.create_checkout_session(email)
    except CheckoutConfigurationError as e:
        logger.error(f"Checkout misconfigured: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=messages.CHECKOUT_UNAVAILABLE,
        )
    except stripe.StripeError as e:
        logger.error(f"Checkout creation failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=messages.CHECKOUT_UNAVAILABLE,
        )
