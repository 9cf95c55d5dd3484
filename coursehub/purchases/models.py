"""Purchase models and Cassandra schema.

A purchase records one attempt by a user to buy a course:

    pending --(payment succeeded)--> completed
    pending --(payment failed)-----> failed

Both outcomes are terminal. The transition happens at most once: the
service writes it with a lightweight transaction conditioned on the row
still being ``pending``.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from coursehub.core.exceptions import InvalidInputError
from coursehub.courses.models import ensure_utc_aware


class PurchaseStatus(str, Enum):
    """Lifecycle status of a purchase."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({PurchaseStatus.COMPLETED, PurchaseStatus.FAILED})

CENT = Decimal("0.01")


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PURCHASES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.purchases (
    id UUID PRIMARY KEY,
    course_id UUID,
    user_id TEXT,
    amount DECIMAL,
    currency TEXT,
    status TEXT,
    checkout_session_id TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Purchase history, newest first
PURCHASES_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.purchases_by_user (
    user_id TEXT,
    created_at TIMESTAMP,
    purchase_id UUID,
    course_id UUID,
    PRIMARY KEY (user_id, created_at, purchase_id)
) WITH CLUSTERING ORDER BY (created_at DESC, purchase_id ASC)
"""

# Educator earnings and enrolled-students report
PURCHASES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.purchases_by_course (
    course_id UUID,
    created_at TIMESTAMP,
    purchase_id UUID,
    user_id TEXT,
    PRIMARY KEY (course_id, created_at, purchase_id)
) WITH CLUSTERING ORDER BY (created_at DESC, purchase_id ASC)
"""

PURCHASES_TABLES_CQL = [
    PURCHASES_TABLE_CQL,
    PURCHASES_BY_USER_TABLE_CQL,
    PURCHASES_BY_COURSE_TABLE_CQL,
]


# ==============================================================================
# Pricing
# ==============================================================================


def compute_amount(price: Decimal, discount: int) -> Decimal:
    """Price after a percentage discount, rounded half-up to cents.

    >>> compute_amount(Decimal("99.99"), 20)
    Decimal('79.99')
    """
    price = Decimal(price)
    discounted = price - price * Decimal(discount) / Decimal(100)
    return discounted.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Amount in cents for the payment processor."""
    return int((Decimal(amount) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


# ==============================================================================
# Entity
# ==============================================================================


class InvalidPurchaseTransitionError(InvalidInputError):
    def __init__(self, current: "PurchaseStatus", target: "PurchaseStatus"):
        super().__init__(
            f"Cannot move purchase from {current.value} to {target.value}",
            "invalid_purchase_transition",
        )


@dataclass
class Purchase:
    """One payment lifecycle for a (user, course) pair."""

    course_id: UUID
    user_id: str
    amount: Decimal
    currency: str = "usd"
    status: PurchaseStatus = PurchaseStatus.PENDING
    checkout_session_id: str | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition_to(self, target: PurchaseStatus) -> None:
        """Apply a lifecycle transition in memory.

        Raises:
            InvalidPurchaseTransitionError: Out of a terminal state, or back
                to pending
        """
        if self.is_terminal or target == PurchaseStatus.PENDING:
            raise InvalidPurchaseTransitionError(self.status, target)
        self.status = target
        self.updated_at = datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Purchase":
        """Create Purchase instance from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            user_id=row.user_id,
            amount=row.amount if row.amount is not None else Decimal(0),
            currency=row.currency or "usd",
            status=PurchaseStatus(row.status),
            checkout_session_id=row.checkout_session_id,
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            updated_at=ensure_utc_aware(row.updated_at),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "course_id": self.course_id,
            "user_id": self.user_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "checkout_session_id": self.checkout_session_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
