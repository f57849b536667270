"""
Stripe webhook: status code per terminal state, idempotent grants, best-effort email.
Most tests patch signature verification; the signed-delivery tests sign real
payloads with the webhook secret. No live Stripe or DB required.
"""
import asyncio
import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe

from models import AccessGrant, WebhookOutcome
from services.entitlement_store import EntitlementStore
from services.errors import StoreUnavailableError
from services.stripe_webhook_service import MAX_BODY_SIZE, WebhookProcessor

VERIFY_HEADER = "services.stripe_webhook_service.stripe.WebhookSignature.verify_header"
VALID_UNTIL = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
WEBHOOK_SECRET = "whsec_test"


def _checkout_event(email="buyer@example.com", session_id="cs_test_1", customer="cus_1", customer_email=None):
    metadata = {"email": email} if email is not None else {}
    return {
        "id": "evt_1",
        "object": "event",
        "api_version": "2024-06-20",
        "type": "checkout.session.completed",
        "livemode": False,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "customer": customer,
                "customer_email": customer_email,
                "metadata": metadata,
            }
        },
    }


def _body(event) -> bytes:
    return json.dumps(event).encode("utf-8")


def _sign(payload: bytes, secret=WEBHOOK_SECRET, timestamp=None) -> str:
    """Stripe-Signature header value for payload, as Stripe computes it."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _mock_store():
    store = MagicMock()
    store.grant = AsyncMock(return_value=AccessGrant(
        identity="buyer@example.com",
        valid_until=VALID_UNTIL,
        source_reference="cs_test_1",
        applied_references=["cs_test_1"],
        version=1,
    ))
    return store


def _mock_email_service(sent=True):
    email_service = MagicMock()
    email_service.send_access_email = AsyncMock(return_value=sent)
    return email_service


def _processor(store=None, email_service=None, **kwargs):
    kwargs.setdefault("webhook_secret", "whsec_test")
    return WebhookProcessor(store or _mock_store(), email_service or _mock_email_service(), **kwargs)


class TestRejection:
    @pytest.mark.asyncio
    async def test_missing_secret_is_configuration_failure(self):
        processor = _processor(webhook_secret="")
        with patch(VERIFY_HEADER) as verify:
            result = await processor.process(b"{}", "t=1,v1=abc")
        assert result.status_code == 500
        assert result.outcome == WebhookOutcome.MISCONFIGURED
        verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_oversized_body_rejected_before_verification(self):
        processor = _processor()
        with patch(VERIFY_HEADER) as verify:
            result = await processor.process(b"x" * (MAX_BODY_SIZE + 1), "t=1,v1=abc")
        assert result.status_code == 413
        assert result.outcome == WebhookOutcome.OVERSIZED
        verify.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("signature", [None, ""])
    async def test_missing_signature(self, signature):
        store = _mock_store()
        processor = _processor(store=store)
        result = await processor.process(b"{}", signature)
        assert result.status_code == 400
        assert result.outcome == WebhookOutcome.REJECTED
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bad_signature(self):
        store = _mock_store()
        processor = _processor(store=store)
        with patch(VERIFY_HEADER, side_effect=stripe.SignatureVerificationError("bad", "t=1,v1=abc")):
            result = await processor.process(b"{}", "t=1,v1=abc")
        assert result.status_code == 400
        assert result.outcome == WebhookOutcome.REJECTED
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unparsable_payload(self):
        processor = _processor()
        with patch(VERIFY_HEADER, side_effect=ValueError("Invalid payload")):
            result = await processor.process(b"not json", "t=1,v1=abc")
        assert result.status_code == 400


class TestRecognition:
    @pytest.mark.asyncio
    async def test_other_event_types_are_acknowledged(self):
        store = _mock_store()
        processor = _processor(store=store)
        event = {"id": "evt_2", "type": "invoice.paid", "data": {"object": {"id": "in_1"}}}
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")
        assert result.status_code == 200
        assert result.body == {"received": True}
        assert result.outcome == WebhookOutcome.IGNORED
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_email_is_invalid(self):
        store = _mock_store()
        processor = _processor(store=store)
        event = _checkout_event(email=None)
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")
        assert result.status_code == 422
        assert result.outcome == WebhookOutcome.INVALID
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_email_is_invalid(self):
        store = _mock_store()
        processor = _processor(store=store)
        event = _checkout_event(email="not-an-email")
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")
        assert result.status_code == 422
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_customer_email_used_when_metadata_missing(self):
        store = _mock_store()
        processor = _processor(store=store)
        event = _checkout_event(email=None, customer_email="Fallback@Example.com")
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")
        assert result.status_code == 200
        store.grant.assert_awaited_once_with("fallback@example.com", "cs_test_1", "cus_1")

    @pytest.mark.asyncio
    async def test_metadata_email_wins(self):
        store = _mock_store()
        processor = _processor(store=store)
        event = _checkout_event(email="buyer@example.com", customer_email="other@example.com")
        with patch(VERIFY_HEADER):
            await processor.process(_body(event), "sig")
        store.grant.assert_awaited_once_with("buyer@example.com", "cs_test_1", "cus_1")


class TestGrantAndNotify:
    @pytest.mark.asyncio
    async def test_success(self):
        store = _mock_store()
        email_service = _mock_email_service()
        processor = _processor(store=store, email_service=email_service)
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")

        assert result.status_code == 200
        assert result.body == {"success": True}
        assert result.outcome == WebhookOutcome.GRANTED
        email_service.send_access_email.assert_awaited_once_with("buyer@example.com", VALID_UNTIL)

    @pytest.mark.asyncio
    async def test_store_failure_is_retryable(self):
        store = _mock_store()
        store.grant = AsyncMock(side_effect=StoreUnavailableError("down"))
        email_service = _mock_email_service()
        processor = _processor(store=store, email_service=email_service)
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")

        assert result.status_code == 503
        assert result.outcome == WebhookOutcome.STORE_FAILED
        email_service.send_access_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_slow_store_times_out(self):
        async def slow_grant(*args):
            await asyncio.sleep(1)

        store = MagicMock()
        store.grant = slow_grant
        processor = _processor(store=store, timeout_seconds=0.01)
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")

        assert result.status_code == 503

    @pytest.mark.asyncio
    async def test_email_exception_does_not_fail_grant(self):
        email_service = MagicMock()
        email_service.send_access_email = AsyncMock(side_effect=RuntimeError("postmark down"))
        processor = _processor(email_service=email_service)
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")

        assert result.status_code == 200
        assert result.outcome == WebhookOutcome.GRANTED

    @pytest.mark.asyncio
    async def test_email_not_sent_does_not_fail_grant(self):
        processor = _processor(email_service=_mock_email_service(sent=False))
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            result = await processor.process(_body(event), "sig")
        assert result.status_code == 200

    @pytest.mark.asyncio
    async def test_redelivery_grants_once(self, fake_db, clock):
        store = EntitlementStore(fake_db, clock=clock)
        processor = _processor(store=store)
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            first = await processor.process(_body(event), "sig")
            second = await processor.process(_body(event), "sig")

        assert first.status_code == second.status_code == 200
        assert second.grant.valid_until == VALID_UNTIL
        assert fake_db.access_grants.docs[0]["applied_references"] == ["cs_test_1"]


class TestWebhookRoutes:
    @pytest.mark.parametrize("path", ["/api/webhooks/stripe", "/api/webhook/stripe"])
    def test_both_paths_grant_access(self, client, fake_db, path):
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            response = client.post(path, content=_body(event), headers={"Stripe-Signature": "t=1,v1=abc"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert fake_db.access_grants.docs[0]["identity"] == "buyer@example.com"

    def test_access_email_logged(self, client, fake_db):
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            client.post("/api/webhooks/stripe", content=_body(event), headers={"Stripe-Signature": "sig"})

        assert fake_db.message_logs.docs[0]["recipient"] == "buyer@example.com"
        assert fake_db.message_logs.docs[0]["status"] == "sent"

    def test_missing_signature_header(self, client):
        response = client.post("/api/webhooks/stripe", content=b"{}")
        assert response.status_code == 400
        assert "error" in response.json()

    def test_declared_oversized_body(self, client):
        response = client.post(
            "/api/webhooks/stripe",
            content=b"x" * (MAX_BODY_SIZE + 10),
            headers={"Stripe-Signature": "sig"},
        )
        assert response.status_code == 413

    def test_store_outage_returns_503(self, client, failing_db):
        from server import app, configure_services

        configure_services(app, failing_db)
        event = _checkout_event()
        with patch(VERIFY_HEADER):
            response = client.post("/api/webhooks/stripe", content=_body(event), headers={"Stripe-Signature": "sig"})
        assert response.status_code == 503


class TestSignedDeliveries:
    """Signature verification runs for real against the configured secret."""

    @pytest.mark.asyncio
    async def test_signed_checkout_grants_access(self, fake_db, clock):
        store = EntitlementStore(fake_db, clock=clock)
        email_service = _mock_email_service()
        processor = _processor(store=store, email_service=email_service)
        payload = _body(_checkout_event())

        result = await processor.process(payload, _sign(payload))

        assert result.status_code == 200
        assert result.outcome == WebhookOutcome.GRANTED
        assert result.grant.identity == "buyer@example.com"
        assert result.grant.valid_until == VALID_UNTIL
        email_service.send_access_email.assert_awaited_once_with("buyer@example.com", VALID_UNTIL)

    @pytest.mark.asyncio
    async def test_signed_redelivery_is_a_no_op(self, fake_db, clock):
        store = EntitlementStore(fake_db, clock=clock)
        processor = _processor(store=store)
        payload = _body(_checkout_event())

        first = await processor.process(payload, _sign(payload))
        second = await processor.process(payload, _sign(payload))

        assert first.status_code == second.status_code == 200
        assert second.grant.valid_until == VALID_UNTIL
        assert fake_db.access_grants.docs[0]["applied_references"] == ["cs_test_1"]

    @pytest.mark.asyncio
    async def test_signed_other_event_is_acknowledged(self):
        store = _mock_store()
        processor = _processor(store=store)
        payload = _body({"id": "evt_2", "object": "event", "type": "invoice.paid", "data": {"object": {"id": "in_1"}}})

        result = await processor.process(payload, _sign(payload))

        assert result.status_code == 200
        assert result.body == {"received": True}
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_wrong_secret_rejected(self):
        store = _mock_store()
        processor = _processor(store=store)
        payload = _body(_checkout_event())

        result = await processor.process(payload, _sign(payload, secret="whsec_other"))

        assert result.status_code == 400
        assert result.outcome == WebhookOutcome.REJECTED
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_tampered_body_rejected(self):
        store = _mock_store()
        processor = _processor(store=store)
        signature = _sign(_body(_checkout_event()))
        tampered = _body(_checkout_event(email="attacker@example.com"))

        result = await processor.process(tampered, signature)

        assert result.status_code == 400
        store.grant.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stale_timestamp_rejected(self):
        processor = _processor()
        payload = _body(_checkout_event())

        result = await processor.process(payload, _sign(payload, timestamp=int(time.time()) - 3600))

        assert result.status_code == 400

    @pytest.mark.asyncio
    async def test_signed_non_object_payload_rejected(self):
        processor = _processor()
        payload = b"[]"

        result = await processor.process(payload, _sign(payload))

        assert result.status_code == 400

    @pytest.mark.asyncio
    async def test_checkout_without_session_object_is_invalid(self):
        store = _mock_store()
        processor = _processor(store=store)
        payload = _body({"id": "evt_3", "object": "event", "type": "checkout.session.completed", "data": {}})

        result = await processor.process(payload, _sign(payload))

        assert result.status_code == 422
        store.grant.assert_not_awaited()

    def test_signed_route_delivery(self, client, fake_db):
        payload = _body(_checkout_event())

        response = client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": _sign(payload), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert fake_db.access_grants.docs[0]["identity"] == "buyer@example.com"
        assert fake_db.access_grants.docs[0]["applied_references"] == ["cs_test_1"]

    def test_signed_route_wrong_secret(self, client, fake_db):
        payload = _body(_checkout_event())

        response = client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"Stripe-Signature": _sign(payload, secret="whsec_other")},
        )

        assert response.status_code == 400
        assert fake_db.access_grants.docs == []
