"""Tests for choosing the checkout redirect origin."""

from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

from fastapi.testclient import TestClient

from coursehub.config.settings import Settings, get_settings
from coursehub.purchases.models import Purchase
from coursehub.purchases.router import checkout_origin


FRONTEND = "https://learn.coursehub.test"


def settings_with(origins: list[str]) -> Settings:
    return Settings(cors_origins=origins, frontend_url=FRONTEND)


class TestCheckoutOrigin:
    def test_allowed_origin_is_used(self) -> None:
        settings = settings_with(["https://app.coursehub.test"])

        assert (
            checkout_origin("https://app.coursehub.test/", settings)
            == "https://app.coursehub.test"
        )

    def test_unlisted_origin_falls_back_to_frontend(self) -> None:
        settings = settings_with(["https://app.coursehub.test"])

        assert checkout_origin("https://evil.test", settings) == FRONTEND

    def test_wildcard_cors_does_not_allow_origin(self) -> None:
        assert checkout_origin("https://evil.test", settings_with(["*"])) == FRONTEND

    def test_missing_origin(self) -> None:
        assert checkout_origin(None, settings_with(["*"])) == FRONTEND


class TestPurchaseEndpoint:
    def test_untrusted_origin_not_passed_to_checkout(
        self, app, auth_headers, student_id: str
    ) -> None:
        purchase = Purchase(
            course_id=uuid4(), user_id=student_id, amount=Decimal("10.00")
        )
        service = Mock()
        service.initiate_purchase = AsyncMock(
            return_value=(purchase, "https://checkout.stripe.com/c/pay/cs_1")
        )
        user_service = Mock()
        user_service.ensure_user = AsyncMock()
        app.state.purchase_service = service
        app.state.user_service = user_service
        app.state.identity_provider = Mock()

        response = TestClient(app).post(
            "/v1/purchases",
            json={"course_id": str(purchase.course_id)},
            headers={**auth_headers(student_id), "Origin": "https://evil.test"},
        )

        assert response.json()["session_url"].endswith("cs_1")
        origin = service.initiate_purchase.call_args.kwargs["origin"]
        assert origin == get_settings().frontend_url
