"""Stripe adapter: checkout sessions and webhook verification.

The SDK is synchronous, so its network calls run in a worker thread.
Webhook payloads are verified against the endpoint's signing secret before
anything in them is trusted; verification failures never touch state.
"""

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import stripe
import structlog

from coursehub.config.settings import Settings
from coursehub.core.exceptions import AuthenticityError, PaymentGatewayError

from .models import PurchaseStatus, to_minor_units


if TYPE_CHECKING:
    from .models import Purchase


logger = structlog.get_logger(__name__)

SUCCESS_EVENTS = frozenset(
    {
        "payment_intent.succeeded",
        "checkout.session.completed",
        "checkout.session.async_payment_succeeded",
    }
)
FAILURE_EVENTS = frozenset(
    {
        "payment_intent.payment_failed",
        "checkout.session.expired",
        "checkout.session.async_payment_failed",
    }
)

SUCCESS_PATH = "/loading/my-enrollments"
CANCEL_PATH = "/"


@dataclass
class CheckoutSession:
    id: str
    url: str


@dataclass
class PaymentEvent:
    """Verified webhook event reduced to what reconciliation needs.

    ``outcome`` is the purchase status the event asks for, or None for
    event types that do not affect purchases.
    """

    id: str
    type: str
    outcome: PurchaseStatus | None
    purchase_id: str | None


def _field(obj: Any, key: str) -> Any:
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def classify_event(event_type: str, data_object: Any) -> PurchaseStatus | None:
    """Map a Stripe event type to the purchase status it implies."""
    if event_type == "checkout.session.completed":
        # Delayed payment methods complete the session before funds arrive
        if _field(data_object, "payment_status") != "paid":
            return None
        return PurchaseStatus.COMPLETED
    if event_type in SUCCESS_EVENTS:
        return PurchaseStatus.COMPLETED
    if event_type in FAILURE_EVENTS:
        return PurchaseStatus.FAILED
    return None


class StripeGateway:
    """Payment processor operations used by the purchase service."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def create_checkout_session(
        self,
        purchase: "Purchase",
        course_title: str,
        origin: str,
    ) -> CheckoutSession:
        """Open a hosted checkout for a pending purchase.

        Raises:
            PaymentGatewayError: If Stripe is not configured or rejects the call
        """
        if not self.settings.stripe_secret_key:
            raise PaymentGatewayError("Payment gateway is not configured")

        origin = origin.rstrip("/")
        metadata = {"purchase_id": str(purchase.id)}
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                api_key=self.settings.stripe_secret_key,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": purchase.currency,
                            "product_data": {"name": course_title},
                            "unit_amount": to_minor_units(purchase.amount),
                        },
                        "quantity": 1,
                    }
                ],
                success_url=f"{origin}{SUCCESS_PATH}",
                cancel_url=f"{origin}{CANCEL_PATH}",
                client_reference_id=str(purchase.id),
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error(
                "checkout_session_failed",
                purchase_id=str(purchase.id),
                error=str(e),
            )
            raise PaymentGatewayError(f"Could not start checkout: {e}") from e

        logger.info(
            "checkout_session_created",
            purchase_id=str(purchase.id),
            checkout_session_id=session["id"],
        )
        return CheckoutSession(id=session["id"], url=session["url"])

    def _construct_event(self, payload: bytes, signature: str | None) -> Any:
        """Verify the signature header and parse the payload.

        Raises:
            AuthenticityError: Missing secret or signature, bad signature,
                or malformed payload
        """
        secret = self.settings.stripe_webhook_secret
        if not secret:
            raise AuthenticityError("Webhook signing secret is not configured")
        if not signature:
            raise AuthenticityError("Missing Stripe-Signature header")

        try:
            return stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            raise AuthenticityError("Invalid webhook signature") from e
        except ValueError as e:
            raise AuthenticityError("Malformed webhook payload") from e

    async def resolve_purchase_id(
        self, event_type: str, data_object: Any
    ) -> str | None:
        """Find the purchase id an event refers to.

        Checkout sessions and (for sessions created here) payment intents
        carry it in metadata. Older payment intents are traced back to
        their checkout session.
        """
        purchase_id = _field(_field(data_object, "metadata"), "purchase_id")
        if purchase_id:
            return purchase_id

        purchase_id = _field(data_object, "client_reference_id")
        if purchase_id:
            return purchase_id

        if not event_type.startswith("payment_intent."):
            return None

        try:
            sessions = await asyncio.to_thread(
                stripe.checkout.Session.list,
                api_key=self.settings.stripe_secret_key,
                payment_intent=_field(data_object, "id"),
                limit=1,
            )
        except stripe.StripeError as e:
            raise PaymentGatewayError(f"Could not look up checkout session: {e}") from e

        for session in _field(sessions, "data") or []:
            return _field(_field(session, "metadata"), "purchase_id")
        return None

    async def verify_and_parse_event(
        self, payload: bytes, signature: str | None
    ) -> PaymentEvent:
        """Verify a webhook delivery and reduce it to a PaymentEvent."""
        event = self._construct_event(payload, signature)
        event_type = _field(event, "type") or ""
        data_object = _field(_field(event, "data"), "object")

        outcome = classify_event(event_type, data_object)
        purchase_id = None
        if outcome is not None:
            purchase_id = await self.resolve_purchase_id(event_type, data_object)

        return PaymentEvent(
            id=_field(event, "id") or "",
            type=event_type,
            outcome=outcome,
            purchase_id=purchase_id,
        )
