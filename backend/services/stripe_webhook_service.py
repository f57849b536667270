"""Stripe Webhook Service - turns a paid checkout into a one-year access grant.

Key Principles:
1. Signature verification: nothing reaches the entitlement store unverified
2. Bounded work: oversized bodies are rejected before verification
3. Idempotency: the checkout session id is the grant's source_reference, so a
   redelivered event never adds a second year
4. Best-effort notification: a failed access email never undoes or fails a grant
5. Predictable retries: every terminal state has its own status code

Delivery states:
    Received -> Rejected (400) | Verified
    Verified -> Ignored (200 {"received": true}) | Recognized
    Recognized -> Invalid (422) | Valid
    Valid -> StoreFailed (503, Stripe retries) | Granted (200 {"success": true})
    Granted -> notify (result ignored) -> Done

Events Handled:
- checkout.session.completed
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from models import AccessGrant, WebhookOutcome
from services.email_service import EmailService
from services.entitlement_store import EntitlementStore
from services.errors import (
    AuthenticationFailure,
    InputValidationError,
    NotificationError,
    StoreUnavailableError,
)
from utils import messages
from utils.email import is_valid_email, normalize_email
from utils.env import get_webhook_secret

logger = logging.getLogger(__name__)

MAX_BODY_SIZE = 100 * 1024  # Stripe payloads are typically < 50KB
CHECKOUT_COMPLETED = "checkout.session.completed"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_NOTIFY_TIMEOUT_SECONDS = 5.0


@dataclass
class WebhookResult:
    """Terminal state of one delivery plus the response Stripe receives."""
    outcome: WebhookOutcome
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)
    grant: Optional[AccessGrant] = None


def _error(outcome: WebhookOutcome, status_code: int, message: str) -> WebhookResult:
    return WebhookResult(outcome=outcome, status_code=status_code, body={"error": message})


def _event_object(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    return obj if isinstance(obj, dict) else None


def _extract_webhook_context(event: Dict[str, Any]) -> Dict[str, Any]:
    """Safe fields for structured logging."""
    obj = _event_object(event) or {}
    return {
        "event_id": event.get("id"),
        "event_type": event.get("type"),
        "livemode": event.get("livemode"),
        "checkout_session_id": obj.get("id") if event.get("type") == CHECKOUT_COMPLETED else None,
    }


class WebhookProcessor:
    """Verifies, parses and dispatches one Stripe delivery."""

    def __init__(
        self,
        store: EntitlementStore,
        email_service: EmailService,
        webhook_secret: Optional[str] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        notify_timeout_seconds: float = DEFAULT_NOTIFY_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.email_service = email_service
        self._webhook_secret = webhook_secret
        self.timeout_seconds = timeout_seconds
        self.notify_timeout_seconds = notify_timeout_seconds

    @property
    def webhook_secret(self) -> str:
        if self._webhook_secret is not None:
            return self._webhook_secret.strip()
        return get_webhook_secret()

    @staticmethod
    def _verify(payload: bytes, signature: str, webhook_secret: str) -> Dict[str, Any]:
        """Verify the signature, then return the event as plain JSON data.

        stripe.Event is not a dict on current SDK releases, so handlers read the
        verified payload itself.
        """
        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                text, signature, webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE
            )
            event = json.loads(text)
        except stripe.SignatureVerificationError as e:
            raise AuthenticationFailure(f"signature verification failed: {e}") from e
        except ValueError as e:
            raise AuthenticationFailure(f"unparsable payload: {e}") from e
        if not isinstance(event, dict):
            raise AuthenticationFailure("payload is not a JSON object")
        return event

    # =========================================================================
    # Event Processing Entry Point
    # =========================================================================

    async def process(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        """Main webhook entry point. Never raises."""
        # Step 0: configuration
        webhook_secret = self.webhook_secret
        if not webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not set")
            return _error(WebhookOutcome.MISCONFIGURED, 500, messages.PAYMENT_SYSTEM_UNAVAILABLE)

        # Step 1: bound work on unauthenticated input
        if len(payload) > MAX_BODY_SIZE:
            logger.warning(f"Webhook rejected: body of {len(payload)} bytes exceeds {MAX_BODY_SIZE}")
            return _error(WebhookOutcome.OVERSIZED, 413, messages.PAYLOAD_TOO_LARGE)

        # Step 2: verify signature
        if not signature:
            logger.warning("Webhook rejected: missing Stripe-Signature header")
            return _error(WebhookOutcome.REJECTED, 400, messages.SIGNATURE_INVALID)

        try:
            event = self._verify(payload, signature, webhook_secret)
        except AuthenticationFailure as e:
            logger.error(f"Webhook rejected: {e}")
            return _error(WebhookOutcome.REJECTED, 400, messages.SIGNATURE_INVALID)

        ctx = _extract_webhook_context(event)
        logger.info(
            "WEBHOOK_RECEIVED event_id=%s event_type=%s livemode=%s checkout_session_id=%s",
            ctx["event_id"], ctx["event_type"], ctx["livemode"], ctx["checkout_session_id"],
        )

        # Step 3: recognize
        if event.get("type") != CHECKOUT_COMPLETED:
            logger.info(f"WEBHOOK_IGNORED event_id={ctx['event_id']} event_type={ctx['event_type']}")
            return WebhookResult(outcome=WebhookOutcome.IGNORED, status_code=200, body={"received": True})

        session = _event_object(event)
        if session is None:
            logger.error(f"WEBHOOK_INVALID checkout event without session object, event_id={ctx['event_id']}")
            return _error(WebhookOutcome.INVALID, 422, messages.PAYMENT_PROCESSING_FAILED)
        return await self._handle_checkout_completed(session, ctx)

    # =========================================================================
    # checkout.session.completed
    # =========================================================================

    async def _handle_checkout_completed(self, session, ctx: Dict[str, Any]) -> WebhookResult:
        metadata = session.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        email = metadata.get("email") or session.get("customer_email")
        session_id = session.get("id")
        customer = session.get("customer")
        customer_id = customer if isinstance(customer, str) else None

        # Step 4: validate identity
        if not email or not isinstance(email, str):
            logger.error(f"WEBHOOK_INVALID no email in checkout session {session_id}")
            return _error(WebhookOutcome.INVALID, 422, messages.EMAIL_MISSING_IN_PAYMENT)

        identity = normalize_email(email)
        if not is_valid_email(identity):
            logger.error(f"WEBHOOK_INVALID malformed email in checkout session {session_id}")
            return _error(WebhookOutcome.INVALID, 422, messages.EMAIL_INVALID)

        if not session_id or not isinstance(session_id, str):
            logger.error(f"WEBHOOK_INVALID checkout session without id, event_id={ctx['event_id']}")
            return _error(WebhookOutcome.INVALID, 422, messages.PAYMENT_PROCESSING_FAILED)

        # Step 5: grant
        try:
            grant = await asyncio.wait_for(
                self.store.grant(identity, session_id, customer_id),
                timeout=self.timeout_seconds,
            )
        except InputValidationError as e:
            logger.error(f"WEBHOOK_INVALID {e.message} checkout_session_id={session_id}")
            return _error(WebhookOutcome.INVALID, 422, messages.EMAIL_INVALID)
        except asyncio.TimeoutError:
            logger.error(f"WEBHOOK_STORE_FAILED timeout after {self.timeout_seconds}s checkout_session_id={session_id}")
            return _error(WebhookOutcome.STORE_FAILED, 503, messages.ACCESS_ACTIVATION_FAILED)
        except StoreUnavailableError as e:
            logger.error(f"WEBHOOK_STORE_FAILED checkout_session_id={session_id} error={e}")
            return _error(WebhookOutcome.STORE_FAILED, 503, messages.ACCESS_ACTIVATION_FAILED)

        logger.info(
            "WEBHOOK_GRANTED event_id=%s checkout_session_id=%s valid_until=%s",
            ctx["event_id"], session_id, grant.valid_until.isoformat(),
        )

        # Step 6: notify, best effort
        await self._notify(identity, grant)

        return WebhookResult(
            outcome=WebhookOutcome.GRANTED,
            status_code=200,
            body={"success": True},
            grant=grant,
        )

    async def _notify(self, identity: str, grant: AccessGrant) -> None:
        """Send the access email. Access is already durable; failures are only logged."""
        try:
            await self._send_access_notification(identity, grant)
        except NotificationError as e:
            logger.error(f"WEBHOOK_NOTIFY_FAILED identity={identity} error={e}")

    async def _send_access_notification(self, identity: str, grant: AccessGrant) -> None:
        try:
            sent = await asyncio.wait_for(
                self.email_service.send_access_email(identity, grant.valid_until),
                timeout=self.notify_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise NotificationError(f"timed out after {self.notify_timeout_seconds}s") from e
        except Exception as e:
            raise NotificationError(str(e)) from e
        if not sent:
            raise NotificationError("email provider reported failure")
