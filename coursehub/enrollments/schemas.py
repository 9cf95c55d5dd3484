"""Pydantic schemas for enrollments and ratings."""

from uuid import UUID

from pydantic import BaseModel, Field

from coursehub.core.schemas import SuccessResponse
from coursehub.courses.schemas import CourseSummaryResponse


class RateCourseRequest(BaseModel):
    """Range is checked by the ledger so the error uses the envelope."""

    rating: int = Field(..., strict=True, description="Integer from 1 to 5")


class RatingResponse(BaseModel):
    course_id: UUID
    rating: int
    average_rating: float
    rating_count: int


class RatingEnvelope(SuccessResponse):
    rating: RatingResponse


class EnrolledCoursesEnvelope(SuccessResponse):
    enrolled_courses: list[CourseSummaryResponse]
