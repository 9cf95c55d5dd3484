"""Tests for the Stripe adapter: event classification and webhook verification."""

import hashlib
import hmac
import json
import time
from decimal import Decimal
from unittest.mock import Mock
from uuid import uuid4

import pytest
import stripe

from coursehub.config.settings import Settings
from coursehub.core.exceptions import AuthenticityError, PaymentGatewayError
from coursehub.purchases.gateway import StripeGateway, classify_event
from coursehub.purchases.models import Purchase, PurchaseStatus


WEBHOOK_SECRET = "whsec_gateway_tests"


def sign(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(time.time())
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def event_payload(event_type: str, data_object: dict) -> bytes:
    return json.dumps(
        {
            "id": "evt_test_1",
            "object": "event",
            "type": event_type,
            "data": {"object": data_object},
        }
    ).encode()


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(
        Settings(
            stripe_secret_key="sk_test_gateway",
            stripe_webhook_secret=WEBHOOK_SECRET,
        )
    )


class TestClassifyEvent:
    @pytest.mark.parametrize(
        "event_type",
        ["payment_intent.succeeded", "checkout.session.async_payment_succeeded"],
    )
    def test_success_events(self, event_type: str) -> None:
        assert classify_event(event_type, {}) == PurchaseStatus.COMPLETED

    def test_completed_session_needs_paid_status(self) -> None:
        paid = {"payment_status": "paid"}
        unpaid = {"payment_status": "unpaid"}

        assert classify_event("checkout.session.completed", paid) == (
            PurchaseStatus.COMPLETED
        )
        assert classify_event("checkout.session.completed", unpaid) is None

    @pytest.mark.parametrize(
        "event_type",
        [
            "payment_intent.payment_failed",
            "checkout.session.expired",
            "checkout.session.async_payment_failed",
        ],
    )
    def test_failure_events(self, event_type: str) -> None:
        assert classify_event(event_type, {}) == PurchaseStatus.FAILED

    def test_other_events_ignored(self) -> None:
        assert classify_event("customer.created", {}) is None


class TestVerifyAndParseEvent:
    @pytest.mark.asyncio
    async def test_signed_checkout_event(self, gateway: StripeGateway) -> None:
        purchase_id = str(uuid4())
        payload = event_payload(
            "checkout.session.completed",
            {
                "id": "cs_test_1",
                "object": "checkout.session",
                "payment_status": "paid",
                "metadata": {"purchase_id": purchase_id},
            },
        )

        event = await gateway.verify_and_parse_event(payload, sign(payload))

        assert event.id == "evt_test_1"
        assert event.outcome == PurchaseStatus.COMPLETED
        assert event.purchase_id == purchase_id

    @pytest.mark.asyncio
    async def test_client_reference_id_fallback(self, gateway: StripeGateway) -> None:
        payload = event_payload(
            "checkout.session.expired",
            {
                "id": "cs_test_2",
                "object": "checkout.session",
                "client_reference_id": "p1",
            },
        )

        event = await gateway.verify_and_parse_event(payload, sign(payload))

        assert event.outcome == PurchaseStatus.FAILED
        assert event.purchase_id == "p1"

    @pytest.mark.asyncio
    async def test_ignored_event_skips_lookup(
        self, gateway: StripeGateway, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        session_list = Mock()
        monkeypatch.setattr(stripe.checkout.Session, "list", session_list)
        payload = event_payload(
            "customer.created", {"id": "cus_1", "object": "customer"}
        )

        event = await gateway.verify_and_parse_event(payload, sign(payload))

        assert event.outcome is None
        assert event.purchase_id is None
        session_list.assert_not_called()

    @pytest.mark.asyncio
    async def test_payment_intent_traced_to_checkout_session(
        self, gateway: StripeGateway, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        session_list = Mock(
            return_value={"data": [{"metadata": {"purchase_id": "p-from-session"}}]}
        )
        monkeypatch.setattr(stripe.checkout.Session, "list", session_list)
        payload = event_payload(
            "payment_intent.succeeded", {"id": "pi_1", "object": "payment_intent"}
        )

        event = await gateway.verify_and_parse_event(payload, sign(payload))

        assert event.purchase_id == "p-from-session"
        assert session_list.call_args.kwargs["payment_intent"] == "pi_1"

    @pytest.mark.asyncio
    async def test_wrong_secret_rejected(self, gateway: StripeGateway) -> None:
        payload = event_payload("payment_intent.succeeded", {"id": "pi_1"})

        with pytest.raises(AuthenticityError):
            await gateway.verify_and_parse_event(payload, sign(payload, "whsec_other"))

    @pytest.mark.asyncio
    async def test_tampered_payload_rejected(self, gateway: StripeGateway) -> None:
        payload = event_payload("payment_intent.succeeded", {"id": "pi_1"})
        signature = sign(payload)

        with pytest.raises(AuthenticityError):
            await gateway.verify_and_parse_event(payload + b" ", signature)

    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, gateway: StripeGateway) -> None:
        with pytest.raises(AuthenticityError):
            await gateway.verify_and_parse_event(b"{}", None)

    @pytest.mark.asyncio
    async def test_unconfigured_secret_rejected(self) -> None:
        unconfigured = StripeGateway(Settings(stripe_webhook_secret=None))

        with pytest.raises(AuthenticityError):
            await unconfigured.verify_and_parse_event(b"{}", "t=1,v1=abc")


class TestCreateCheckoutSession:
    @pytest.fixture
    def purchase(self, student_id: str) -> Purchase:
        return Purchase(course_id=uuid4(), user_id=student_id, amount=Decimal("79.99"))

    @pytest.mark.asyncio
    async def test_charges_discounted_cents(
        self,
        gateway: StripeGateway,
        purchase: Purchase,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        create = Mock(return_value={"id": "cs_1", "url": "https://checkout.test/cs_1"})
        monkeypatch.setattr(stripe.checkout.Session, "create", create)

        session = await gateway.create_checkout_session(
            purchase, "Python for Beginners", "https://app.test/"
        )

        assert session.id == "cs_1"
        kwargs = create.call_args.kwargs
        price_data = kwargs["line_items"][0]["price_data"]
        assert price_data["unit_amount"] == 7999
        assert price_data["product_data"]["name"] == "Python for Beginners"
        assert kwargs["success_url"] == "https://app.test/loading/my-enrollments"
        assert kwargs["cancel_url"] == "https://app.test/"
        assert kwargs["metadata"] == {"purchase_id": str(purchase.id)}

    @pytest.mark.asyncio
    async def test_stripe_error_becomes_gateway_error(
        self,
        gateway: StripeGateway,
        purchase: Purchase,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            stripe.checkout.Session,
            "create",
            Mock(side_effect=stripe.APIConnectionError("network down")),
        )

        with pytest.raises(PaymentGatewayError):
            await gateway.create_checkout_session(
                purchase, "Course", "https://app.test"
            )

    @pytest.mark.asyncio
    async def test_missing_key(self, purchase: Purchase) -> None:
        unconfigured = StripeGateway(Settings(stripe_secret_key=None))

        with pytest.raises(PaymentGatewayError):
            await unconfigured.create_checkout_session(purchase, "Course", "")
