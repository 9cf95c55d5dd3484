"""Pydantic schemas for course purchases."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursehub.core.schemas import SuccessResponse
from coursehub.courses.models import Course

from .models import Purchase, PurchaseStatus


class PurchaseCourseRequest(BaseModel):
    course_id: UUID = Field(..., description="Course to buy")


class PurchaseResponse(BaseModel):
    """Response schema for a single purchase."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    amount: Decimal
    currency: str
    status: PurchaseStatus
    created_at: datetime
    course_title: str | None = None
    course_thumbnail: str | None = None

    @classmethod
    def from_entity(
        cls, purchase: Purchase, course: Course | None = None
    ) -> "PurchaseResponse":
        return cls(
            id=purchase.id,
            course_id=purchase.course_id,
            amount=purchase.amount,
            currency=purchase.currency,
            status=purchase.status,
            created_at=purchase.created_at,
            course_title=course.title if course else None,
            course_thumbnail=course.thumbnail_url if course else None,
        )


class CheckoutEnvelope(SuccessResponse):
    session_url: str
    purchase_id: UUID


class PurchaseListEnvelope(SuccessResponse):
    purchases: list[PurchaseResponse]


class WebhookAck(BaseModel):
    received: bool = True
    result: str
