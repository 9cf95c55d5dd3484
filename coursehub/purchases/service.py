"""Purchase and payment reconciliation service layer.

Business logic for:
- Starting a purchase: pending record plus a hosted checkout session
- Reconciling verified payment events into purchase outcomes
- Enrolling the buyer on completion, repaired on redelivery if it failed
- Purchase history and per-course sales for the educator dashboard
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursehub.core.context import set_correlation_id
from coursehub.core.exceptions import (
    InvalidInputError,
    NotFoundError,
    PaymentGatewayError,
)
from coursehub.courses.models import Course
from coursehub.courses.service import CourseNotFoundError

from .models import Purchase, PurchaseStatus, compute_amount


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from coursehub.courses.service import CourseService
    from coursehub.enrollments.service import EnrollmentService
    from coursehub.users.service import UserService

    from .gateway import StripeGateway

logger = structlog.get_logger(__name__)


class PurchaseNotFoundError(NotFoundError):
    def __init__(self, message: str = "Purchase not found"):
        super().__init__(message, "purchase_not_found")


class AlreadyEnrolledError(InvalidInputError):
    def __init__(self, message: str = "Already enrolled in this course"):
        super().__init__(message, "already_enrolled")


class PurchaseService:
    """Service for course purchases and their payment lifecycle."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        course_service: "CourseService",
        user_service: "UserService",
        enrollment_service: "EnrollmentService",
        gateway: "StripeGateway",
        currency: str = "usd",
    ):
        """Initialize with Cassandra session and collaborating services."""
        self.session = session
        self.keyspace = keyspace
        self.course_service = course_service
        self.user_service = user_service
        self.enrollment_service = enrollment_service
        self.gateway = gateway
        self.currency = currency
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace
        self._insert_purchase = self.session.prepare(f"""
            INSERT INTO {ks}.purchases
            (id, course_id, user_id, amount, currency, status,
             checkout_session_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_by_user = self.session.prepare(f"""
            INSERT INTO {ks}.purchases_by_user
            (user_id, created_at, purchase_id, course_id)
            VALUES (?, ?, ?, ?)
        """)
        self._insert_by_course = self.session.prepare(f"""
            INSERT INTO {ks}.purchases_by_course
            (course_id, created_at, purchase_id, user_id)
            VALUES (?, ?, ?, ?)
        """)
        self._get_purchase = self.session.prepare(
            f"SELECT * FROM {ks}.purchases WHERE id = ?"
        )
        self._get_user_purchase_ids = self.session.prepare(
            f"SELECT purchase_id FROM {ks}.purchases_by_user WHERE user_id = ?"
        )
        self._get_course_purchase_ids = self.session.prepare(
            f"SELECT purchase_id FROM {ks}.purchases_by_course WHERE course_id = ?"
        )
        self._set_checkout_session = self.session.prepare(f"""
            UPDATE {ks}.purchases SET checkout_session_id = ?, updated_at = ?
            WHERE id = ?
        """)

        # Conditional write: only the first outcome for a pending purchase wins
        self._transition_status = self.session.prepare(f"""
            UPDATE {ks}.purchases SET status = ?, updated_at = ?
            WHERE id = ?
            IF status = ?
        """)

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_purchase(self, purchase_id: UUID) -> Purchase | None:
        result = await self.session.aexecute(self._get_purchase, [purchase_id])
        row = result.one()
        return Purchase.from_row(row) if row else None

    async def require_purchase(self, purchase_id: UUID | str) -> Purchase:
        """Purchase by id, accepting the string form found in event metadata."""
        if not isinstance(purchase_id, UUID):
            try:
                purchase_id = UUID(str(purchase_id))
            except ValueError as e:
                raise PurchaseNotFoundError from e

        purchase = await self.get_purchase(purchase_id)
        if purchase is None:
            raise PurchaseNotFoundError
        return purchase

    async def _load(self, rows) -> list[Purchase]:
        purchases = []
        for row in rows:
            purchase = await self.get_purchase(row.purchase_id)
            if purchase is not None:
                purchases.append(purchase)
        return purchases

    async def list_purchases(
        self, user_id: str
    ) -> list[tuple[Purchase, Course | None]]:
        """User's purchases, newest first, each with its course if it still exists."""
        rows = await self.session.aexecute(self._get_user_purchase_ids, [user_id])
        purchases = await self._load(rows)
        purchases.sort(key=lambda p: p.created_at, reverse=True)
        return [
            (purchase, await self.course_service.get_course(purchase.course_id))
            for purchase in purchases
        ]

    async def list_course_purchases(
        self, course_id: UUID, status: PurchaseStatus | None = None
    ) -> list[Purchase]:
        rows = await self.session.aexecute(self._get_course_purchase_ids, [course_id])
        purchases = await self._load(rows)
        if status is not None:
            purchases = [p for p in purchases if p.status == status]
        return purchases

    # ==========================================================================
    # Purchase initiation
    # ==========================================================================

    async def initiate_purchase(
        self, user_id: str, course_id: UUID, origin: str
    ) -> tuple[Purchase, str]:
        """Create a pending purchase and open a checkout session for it.

        Returns:
            (purchase, checkout URL)

        Raises:
            UserNotFoundError: If the user has no local record
            CourseNotFoundError: If the course does not exist or is unpublished
            AlreadyEnrolledError: If the user already has access
            PaymentGatewayError: If the checkout session could not be created;
                the purchase is then recorded as failed
        """
        await self.user_service.require_user(user_id)
        course = await self.course_service.require_course(course_id)
        if not course.is_published:
            raise CourseNotFoundError
        if course.is_enrolled(user_id):
            raise AlreadyEnrolledError

        purchase = Purchase(
            course_id=course.id,
            user_id=user_id,
            amount=compute_amount(course.price, course.discount),
            currency=self.currency,
        )
        await self.session.aexecute(
            self._insert_purchase,
            [
                purchase.id,
                purchase.course_id,
                purchase.user_id,
                purchase.amount,
                purchase.currency,
                purchase.status.value,
                None,
                purchase.created_at,
                purchase.created_at,
            ],
        )
        await self.session.aexecute(
            self._insert_by_user,
            [user_id, purchase.created_at, purchase.id, course.id],
        )
        await self.session.aexecute(
            self._insert_by_course,
            [course.id, purchase.created_at, purchase.id, user_id],
        )
        set_correlation_id(str(purchase.id))
        logger.info(
            "purchase_created",
            purchase_id=str(purchase.id),
            course_id=str(course.id),
            amount=str(purchase.amount),
        )

        try:
            checkout = await self.gateway.create_checkout_session(
                purchase, course.title, origin
            )
        except PaymentGatewayError:
            await self._apply_transition(purchase, PurchaseStatus.FAILED)
            raise

        purchase.checkout_session_id = checkout.id
        await self.session.aexecute(
            self._set_checkout_session,
            [checkout.id, datetime.now(UTC), purchase.id],
        )
        return purchase, checkout.url

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    async def _apply_transition(
        self, purchase: Purchase, target: PurchaseStatus
    ) -> bool:
        """Move a pending purchase to ``target`` unless another writer won."""
        purchase.transition_to(target)
        result = await self.session.aexecute(
            self._transition_status,
            [
                target.value,
                purchase.updated_at,
                purchase.id,
                PurchaseStatus.PENDING.value,
            ],
        )
        if not result.was_applied:
            logger.info(
                "purchase_transition_lost",
                purchase_id=str(purchase.id),
                target=target.value,
            )
            return False

        logger.info(
            "purchase_status_changed",
            purchase_id=str(purchase.id),
            status=target.value,
        )
        return True

    async def handle_payment_event(self, payload: bytes, signature: str | None) -> str:
        """Verify a webhook delivery and apply it to its purchase.

        The pending -> completed transition enrolls the buyer. A redelivered
        success event for a completed purchase only enrolls the buyer if an
        earlier delivery failed to, so the enrolled set never changes twice.

        Returns:
            What happened: ``completed``, ``failed``, ``ignored`` or ``duplicate``

        Raises:
            AuthenticityError: If the signature does not verify (nothing is changed)
            PurchaseNotFoundError: If the referenced purchase does not exist
        """
        event = await self.gateway.verify_and_parse_event(payload, signature)
        log = logger.bind(event_id=event.id, event_type=event.type)

        if event.outcome is None:
            log.debug("payment_event_ignored")
            return "ignored"
        if not event.purchase_id:
            log.warning("payment_event_without_purchase")
            return "ignored"

        set_correlation_id(event.purchase_id)
        purchase = await self.require_purchase(event.purchase_id)
        if purchase.is_terminal:
            log.info(
                "payment_event_duplicate",
                purchase_id=str(purchase.id),
                status=purchase.status.value,
            )
            if (
                purchase.status == PurchaseStatus.COMPLETED
                and event.outcome == PurchaseStatus.COMPLETED
            ):
                # A delivery that completed the purchase may have failed to enroll
                await self._ensure_enrolled(purchase)
            return "duplicate"

        if not await self._apply_transition(purchase, event.outcome):
            return "duplicate"

        if event.outcome == PurchaseStatus.COMPLETED:
            await self.enrollment_service.enroll(purchase.user_id, purchase.course_id)
        return event.outcome.value

    async def _ensure_enrolled(self, purchase: Purchase) -> None:
        """Enroll the buyer of a completed purchase if they are not already."""
        if await self.enrollment_service.is_enrolled(
            purchase.user_id, purchase.course_id
        ):
            return
        logger.warning(
            "payment_enrollment_repaired",
            purchase_id=str(purchase.id),
            user_id=purchase.user_id,
        )
        await self.enrollment_service.enroll(purchase.user_id, purchase.course_id)
