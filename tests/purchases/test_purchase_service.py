"""Tests for purchase initiation and payment reconciliation."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from coursehub.core.exceptions import AuthenticityError, PaymentGatewayError
from coursehub.courses.models import Course
from coursehub.courses.service import CourseNotFoundError
from coursehub.purchases.gateway import CheckoutSession, PaymentEvent
from coursehub.purchases.models import Purchase, PurchaseStatus
from coursehub.purchases.service import (
    AlreadyEnrolledError,
    PurchaseNotFoundError,
    PurchaseService,
)
from coursehub.users.service import UserNotFoundError


@pytest.fixture
def mock_gateway():
    gateway = Mock()
    gateway.create_checkout_session = AsyncMock(
        return_value=CheckoutSession(
            id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123"
        )
    )
    gateway.verify_and_parse_event = AsyncMock()
    return gateway


@pytest.fixture
def mock_user_service():
    service = Mock()
    service.require_user = AsyncMock()
    return service


@pytest.fixture
def mock_enrollment_service():
    service = Mock()
    service.enroll = AsyncMock()
    service.is_enrolled = AsyncMock(return_value=True)
    return service


@pytest.fixture
def purchase_service(
    mock_session,
    mock_course_service,
    mock_user_service,
    mock_enrollment_service,
    mock_gateway,
) -> PurchaseService:
    return PurchaseService(
        session=mock_session,
        keyspace="test_ks",
        course_service=mock_course_service,
        user_service=mock_user_service,
        enrollment_service=mock_enrollment_service,
        gateway=mock_gateway,
    )


@pytest.fixture
def pending_purchase(sample_course: Course, student_id: str) -> Purchase:
    return Purchase(
        course_id=sample_course.id, user_id=student_id, amount=Decimal("79.99")
    )


def purchase_row(make_row, purchase: Purchase):
    return make_row(
        id=purchase.id,
        course_id=purchase.course_id,
        user_id=purchase.user_id,
        amount=purchase.amount,
        currency=purchase.currency,
        status=purchase.status.value,
        checkout_session_id=purchase.checkout_session_id,
        created_at=purchase.created_at,
        updated_at=purchase.updated_at,
    )


def serve_purchase(mock_session, make_result, row, transition_applied=True):
    """Route the purchase lookup and the conditional status write."""

    async def aexecute(statement, params=None):
        if "FROM test_ks.purchases WHERE id" in statement:
            return make_result([row] if params[0] == row.id else [])
        if "IF status = ?" in statement:
            return make_result(applied=transition_applied)
        return make_result()

    mock_session.aexecute = AsyncMock(side_effect=aexecute)


def transitions(mock_session) -> list[list]:
    return [
        call.args[1]
        for call in mock_session.aexecute.call_args_list
        if "IF status = ?" in call.args[0]
    ]


def success_event(purchase_id) -> PaymentEvent:
    return PaymentEvent(
        id="evt_1",
        type="checkout.session.completed",
        outcome=PurchaseStatus.COMPLETED,
        purchase_id=str(purchase_id),
    )


# ==============================================================================
# Initiation
# ==============================================================================


class TestInitiatePurchase:
    @pytest.mark.asyncio
    async def test_creates_pending_purchase_and_checkout(
        self,
        purchase_service: PurchaseService,
        mock_session,
        mock_gateway,
        sample_course: Course,
        student_id: str,
    ) -> None:
        purchase, url = await purchase_service.initiate_purchase(
            student_id, sample_course.id, "http://localhost:5173"
        )

        assert url.startswith("https://checkout.stripe.com")
        assert purchase.status == PurchaseStatus.PENDING
        assert purchase.amount == Decimal("79.99")
        assert purchase.checkout_session_id == "cs_test_123"
        mock_gateway.create_checkout_session.assert_awaited_once_with(
            purchase, sample_course.title, "http://localhost:5173"
        )

        statements = [call.args[0] for call in mock_session.aexecute.call_args_list]
        assert any("INSERT INTO test_ks.purchases\n" in s for s in statements)
        assert any("purchases_by_user" in s for s in statements)
        assert any("purchases_by_course" in s for s in statements)
        assert any("SET checkout_session_id" in s for s in statements)

    @pytest.mark.asyncio
    async def test_unknown_user(
        self,
        purchase_service: PurchaseService,
        mock_user_service,
        mock_session,
        sample_course: Course,
    ) -> None:
        mock_user_service.require_user.side_effect = UserNotFoundError

        with pytest.raises(UserNotFoundError):
            await purchase_service.initiate_purchase("ghost", sample_course.id, "")

        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_course(
        self, purchase_service: PurchaseService, student_id: str
    ) -> None:
        with pytest.raises(CourseNotFoundError):
            await purchase_service.initiate_purchase(student_id, uuid4(), "")

    @pytest.mark.asyncio
    async def test_unpublished_course(
        self,
        purchase_service: PurchaseService,
        sample_course: Course,
        student_id: str,
    ) -> None:
        sample_course.is_published = False

        with pytest.raises(CourseNotFoundError):
            await purchase_service.initiate_purchase(student_id, sample_course.id, "")

    @pytest.mark.asyncio
    async def test_already_enrolled(
        self,
        purchase_service: PurchaseService,
        mock_session,
        mock_gateway,
        sample_course: Course,
        student_id: str,
    ) -> None:
        sample_course.enrolled_students.add(student_id)

        with pytest.raises(AlreadyEnrolledError):
            await purchase_service.initiate_purchase(student_id, sample_course.id, "")

        mock_session.aexecute.assert_not_awaited()
        mock_gateway.create_checkout_session.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gateway_failure_marks_purchase_failed(
        self,
        purchase_service: PurchaseService,
        mock_session,
        mock_gateway,
        sample_course: Course,
        student_id: str,
    ) -> None:
        mock_gateway.create_checkout_session.side_effect = PaymentGatewayError("down")

        with pytest.raises(PaymentGatewayError):
            await purchase_service.initiate_purchase(student_id, sample_course.id, "")

        [params] = transitions(mock_session)
        assert params[0] == "failed"
        assert params[3] == "pending"


# ==============================================================================
# Reconciliation
# ==============================================================================


class TestHandlePaymentEvent:
    @pytest.mark.asyncio
    async def test_success_completes_and_enrolls(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        mock_enrollment_service,
        pending_purchase: Purchase,
    ) -> None:
        row = purchase_row(make_row, pending_purchase)
        serve_purchase(mock_session, make_result, row)
        mock_gateway.verify_and_parse_event.return_value = success_event(
            pending_purchase.id
        )

        result = await purchase_service.handle_payment_event(b"{}", "sig")

        assert result == "completed"
        [params] = transitions(mock_session)
        assert params[0] == "completed"
        assert params[2] == pending_purchase.id
        mock_enrollment_service.enroll.assert_awaited_once_with(
            pending_purchase.user_id, pending_purchase.course_id
        )

    @pytest.mark.asyncio
    async def test_failure_event_does_not_enroll(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        mock_enrollment_service,
        pending_purchase: Purchase,
    ) -> None:
        row = purchase_row(make_row, pending_purchase)
        serve_purchase(mock_session, make_result, row)
        mock_gateway.verify_and_parse_event.return_value = PaymentEvent(
            id="evt_2",
            type="payment_intent.payment_failed",
            outcome=PurchaseStatus.FAILED,
            purchase_id=str(pending_purchase.id),
        )

        result = await purchase_service.handle_payment_event(b"{}", "sig")

        assert result == "failed"
        mock_enrollment_service.enroll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redelivery_to_completed_purchase_is_duplicate(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        mock_enrollment_service,
        pending_purchase: Purchase,
    ) -> None:
        pending_purchase.status = PurchaseStatus.COMPLETED
        pending_purchase.updated_at = datetime.now(UTC)
        row = purchase_row(make_row, pending_purchase)
        serve_purchase(mock_session, make_result, row)
        mock_gateway.verify_and_parse_event.return_value = success_event(
            pending_purchase.id
        )

        result = await purchase_service.handle_payment_event(b"{}", "sig")

        assert result == "duplicate"
        assert transitions(mock_session) == []
        mock_enrollment_service.enroll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redelivery_enrolls_buyer_missing_from_course(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        mock_enrollment_service,
        pending_purchase: Purchase,
    ) -> None:
        """The delivery that completed the purchase failed before enrolling."""
        pending_purchase.status = PurchaseStatus.COMPLETED
        row = purchase_row(make_row, pending_purchase)
        serve_purchase(mock_session, make_result, row)
        mock_gateway.verify_and_parse_event.return_value = success_event(
            pending_purchase.id
        )
        mock_enrollment_service.is_enrolled.return_value = False

        result = await purchase_service.handle_payment_event(b"{}", "sig")

        assert result == "duplicate"
        assert transitions(mock_session) == []
        mock_enrollment_service.enroll.assert_awaited_once_with(
            pending_purchase.user_id, pending_purchase.course_id
        )

    @pytest.mark.asyncio
    async def test_enrollment_failure_recovered_by_redelivery(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        mock_enrollment_service,
        pending_purchase: Purchase,
    ) -> None:
        row = purchase_row(make_row, pending_purchase)

        async def aexecute(statement, params=None):
            if "FROM test_ks.purchases WHERE id" in statement:
                return make_result([row])
            if "IF status = ?" in statement:
                row.status = params[0]
            return make_result()

        mock_session.aexecute = AsyncMock(side_effect=aexecute)
        mock_gateway.verify_and_parse_event.return_value = success_event(
            pending_purchase.id
        )
        mock_enrollment_service.is_enrolled.return_value = False
        mock_enrollment_service.enroll.side_effect = [
            RuntimeError("write timeout"),
            None,
        ]

        with pytest.raises(RuntimeError):
            await purchase_service.handle_payment_event(b"{}", "sig")
        assert row.status == "completed"

        result = await purchase_service.handle_payment_event(b"{}", "sig")

        assert result == "duplicate"
        assert mock_enrollment_service.enroll.await_count == 2
        assert len(transitions(mock_session)) == 1

    @pytest.mark.asyncio
    async def test_failure_event_never_enrolls_completed_purchase(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        mock_enrollment_service,
        pending_purchase: Purchase,
    ) -> None:
        pending_purchase.status = PurchaseStatus.COMPLETED
        row = purchase_row(make_row, pending_purchase)
        serve_purchase(mock_session, make_result, row)
        mock_gateway.verify_and_parse_event.return_value = PaymentEvent(
            id="evt_4",
            type="checkout.session.expired",
            outcome=PurchaseStatus.FAILED,
            purchase_id=str(pending_purchase.id),
        )
        mock_enrollment_service.is_enrolled.return_value = False

        await purchase_service.handle_payment_event(b"{}", "sig")

        mock_enrollment_service.is_enrolled.assert_not_awaited()
        mock_enrollment_service.enroll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_after_completion_keeps_completed(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        pending_purchase: Purchase,
    ) -> None:
        pending_purchase.status = PurchaseStatus.COMPLETED
        row = purchase_row(make_row, pending_purchase)
        serve_purchase(mock_session, make_result, row)
        mock_gateway.verify_and_parse_event.return_value = PaymentEvent(
            id="evt_3",
            type="checkout.session.expired",
            outcome=PurchaseStatus.FAILED,
            purchase_id=str(pending_purchase.id),
        )

        assert await purchase_service.handle_payment_event(b"{}", "sig") == "duplicate"
        assert transitions(mock_session) == []

    @pytest.mark.asyncio
    async def test_lost_race_does_not_enroll(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        mock_gateway,
        mock_enrollment_service,
        pending_purchase: Purchase,
    ) -> None:
        """Two concurrent deliveries both read pending; only one write applies."""
        serve_purchase(
            mock_session,
            make_result,
            purchase_row(make_row, pending_purchase),
            transition_applied=False,
        )
        mock_gateway.verify_and_parse_event.return_value = success_event(
            pending_purchase.id
        )

        result = await purchase_service.handle_payment_event(b"{}", "sig")

        assert result == "duplicate"
        mock_enrollment_service.enroll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unrelated_event_ignored(
        self,
        purchase_service: PurchaseService,
        mock_session,
        mock_gateway,
    ) -> None:
        mock_gateway.verify_and_parse_event.return_value = PaymentEvent(
            id="evt_4", type="customer.created", outcome=None, purchase_id=None
        )

        assert await purchase_service.handle_payment_event(b"{}", "sig") == "ignored"
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_event_without_purchase_ignored(
        self,
        purchase_service: PurchaseService,
        mock_session,
        mock_gateway,
    ) -> None:
        mock_gateway.verify_and_parse_event.return_value = PaymentEvent(
            id="evt_5",
            type="payment_intent.succeeded",
            outcome=PurchaseStatus.COMPLETED,
            purchase_id=None,
        )

        assert await purchase_service.handle_payment_event(b"{}", "sig") == "ignored"
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_purchase(
        self,
        purchase_service: PurchaseService,
        mock_gateway,
        mock_enrollment_service,
    ) -> None:
        mock_gateway.verify_and_parse_event.return_value = success_event(uuid4())

        with pytest.raises(PurchaseNotFoundError):
            await purchase_service.handle_payment_event(b"{}", "sig")

        mock_enrollment_service.enroll.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_purchase_id(
        self, purchase_service: PurchaseService, mock_gateway
    ) -> None:
        mock_gateway.verify_and_parse_event.return_value = success_event("not-a-uuid")

        with pytest.raises(PurchaseNotFoundError):
            await purchase_service.handle_payment_event(b"{}", "sig")

    @pytest.mark.asyncio
    async def test_bad_signature_changes_nothing(
        self,
        purchase_service: PurchaseService,
        mock_session,
        mock_gateway,
        mock_enrollment_service,
    ) -> None:
        mock_gateway.verify_and_parse_event.side_effect = AuthenticityError

        with pytest.raises(AuthenticityError):
            await purchase_service.handle_payment_event(b"{}", "forged")

        mock_session.aexecute.assert_not_awaited()
        mock_enrollment_service.enroll.assert_not_awaited()


class TestPurchaseQueries:
    @pytest.mark.asyncio
    async def test_history_newest_first_with_course(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        sample_course: Course,
        student_id: str,
    ) -> None:
        older = Purchase(
            course_id=sample_course.id,
            user_id=student_id,
            amount=Decimal("79.99"),
            created_at=datetime(2026, 1, 1, tzinfo=UTC),
        )
        newer = Purchase(
            course_id=uuid4(),
            user_id=student_id,
            amount=Decimal("5.00"),
            created_at=datetime(2026, 2, 1, tzinfo=UTC),
        )
        rows = {p.id: purchase_row(make_row, p) for p in (older, newer)}

        async def aexecute(statement, params=None):
            if "purchases_by_user" in statement:
                return make_result(
                    [make_row(purchase_id=older.id), make_row(purchase_id=newer.id)]
                )
            return make_result([rows[params[0]]])

        mock_session.aexecute = AsyncMock(side_effect=aexecute)

        history = await purchase_service.list_purchases(student_id)

        assert [p.id for p, _ in history] == [newer.id, older.id]
        assert history[0][1] is None
        assert history[1][1] is sample_course

    @pytest.mark.asyncio
    async def test_course_purchases_filtered_by_status(
        self,
        purchase_service: PurchaseService,
        mock_session,
        make_result,
        make_row,
        sample_course: Course,
    ) -> None:
        done = Purchase(
            course_id=sample_course.id,
            user_id="a",
            amount=Decimal("1.00"),
            status=PurchaseStatus.COMPLETED,
        )
        pending = Purchase(course_id=sample_course.id, user_id="b", amount=Decimal(1))
        rows = {p.id: purchase_row(make_row, p) for p in (done, pending)}

        async def aexecute(statement, params=None):
            if "purchases_by_course" in statement:
                return make_result([make_row(purchase_id=pid) for pid in rows])
            return make_result([rows[params[0]]])

        mock_session.aexecute = AsyncMock(side_effect=aexecute)

        result = await purchase_service.list_course_purchases(
            sample_course.id, PurchaseStatus.COMPLETED
        )

        assert [p.id for p in result] == [done.id]
