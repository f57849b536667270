"""Stripe Service - Checkout session creation for one-year access.

Key Principles:
- One price (STRIPE_PRICE_ID), one-off payment mode; no subscriptions
- metadata.email carries the identity the webhook grants access to
- The checkout session id becomes the grant's source_reference
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import stripe

from utils.env import get_env_optional, get_stripe_secret_key
from utils.public_app_url import get_public_app_url

logger = logging.getLogger(__name__)

SUCCESS_PATH = "/fizetes-sikeres"
CANCEL_PATH = "/fizetes-megszakitva"


class CheckoutConfigurationError(ValueError):
    """Stripe keys or price are not configured."""


class StripeService:
    """Stripe checkout operations."""

    def __init__(self, api_key: Optional[str] = None, price_id: Optional[str] = None):
        self._api_key = api_key
        self._price_id = price_id

    @property
    def api_key(self) -> str:
        return (self._api_key if self._api_key is not None else get_stripe_secret_key()).strip()

    @property
    def price_id(self) -> str:
        return (self._price_id if self._price_id is not None else get_env_optional("STRIPE_PRICE_ID", "")).strip()

    async def create_checkout_session(self, email: str, base_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a Stripe Checkout session for one year of access.

        Args:
            email: Normalized, validated customer email
            base_url: Base URL for success/cancel redirects (defaults to PUBLIC_APP_URL)

        Returns:
            Dict with session_id and url

        Raises:
            CheckoutConfigurationError: STRIPE_SECRET_KEY or STRIPE_PRICE_ID missing
            stripe.StripeError: Stripe rejected the request
        """
        api_key = self.api_key
        if not api_key:
            raise CheckoutConfigurationError("STRIPE_SECRET_KEY or STRIPE_API_KEY is not set")
        price_id = self.price_id
        if not price_id:
            raise CheckoutConfigurationError("STRIPE_PRICE_ID is not set")

        base = (base_url or get_public_app_url()).rstrip("/")

        session = await asyncio.to_thread(
            stripe.checkout.Session.create,
            api_key=api_key,
            mode="payment",
            line_items=[{"price": price_id, "quantity": 1}],
            customer_email=email,
            success_url=f"{base}{SUCCESS_PATH}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}{CANCEL_PATH}",
            metadata={"email": email},
        )

        logger.info(f"Created checkout session {session.id} for {email}")
        return {"session_id": session.id, "url": session.url}
