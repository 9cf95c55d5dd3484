"""Pydantic schemas for the course content model.

Request and response models for:
- Course creation (with initial chapters), update and listing
- Chapter and lecture authoring
- Reordering
- Viewer-specific course content
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursehub.core.schemas import SuccessResponse

from .models import Chapter, Course, Lecture


# ==============================================================================
# Lecture / Chapter Input Schemas
# ==============================================================================


class LectureInput(BaseModel):
    """Lecture data; the URL host is checked by the service."""

    title: str = Field(..., min_length=1, max_length=200)
    duration: int = Field(default=0, ge=0, description="Duration in minutes")
    lecture_url: str = Field(..., min_length=1, description="YouTube or Vimeo URL")
    is_preview_free: bool = False


class ChapterInput(BaseModel):
    """Chapter with optional lectures, used for initial course content."""

    title: str = Field(..., min_length=1, max_length=200)
    lectures: list[LectureInput] = Field(default_factory=list)


class AddChapterRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class UpdateChapterRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class AddLectureRequest(LectureInput):
    """Request to append a lecture to a chapter."""


class UpdateLectureRequest(BaseModel):
    """Partial lecture update; omitted fields keep their value."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    duration: int | None = Field(default=None, ge=0)
    lecture_url: str | None = Field(default=None, min_length=1)
    is_preview_free: bool | None = None


class ChapterOrderItem(BaseModel):
    chapter_id: UUID
    order: int


class LectureOrderItem(BaseModel):
    lecture_id: UUID
    order: int


class ReorderChaptersRequest(BaseModel):
    items: list[ChapterOrderItem] = Field(..., min_length=1)


class ReorderLecturesRequest(BaseModel):
    items: list[LectureOrderItem] = Field(..., min_length=1)


# ==============================================================================
# Course Input Schemas
# ==============================================================================


class CreateCourseRequest(BaseModel):
    """Course data sent as the JSON ``course_data`` form field."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="")
    price: Decimal = Field(..., ge=0, decimal_places=2)
    discount: int = Field(default=0, ge=0, le=100, description="Percentage")
    is_published: bool = True
    chapters: list[ChapterInput] = Field(default_factory=list)


class UpdateCourseRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    discount: int | None = Field(default=None, ge=0, le=100)
    is_published: bool | None = None


# ==============================================================================
# Response Schemas
# ==============================================================================


class LectureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lecture_id: UUID
    title: str
    duration: int
    lecture_url: str
    is_preview_free: bool
    lecture_order: int

    @classmethod
    def from_entity(cls, entity: Lecture) -> "LectureResponse":
        """Create response from entity."""
        return cls(
            lecture_id=entity.id,
            title=entity.title,
            duration=entity.duration,
            lecture_url=entity.lecture_url,
            is_preview_free=entity.is_preview_free,
            lecture_order=entity.lecture_order,
        )


class ChapterResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    chapter_id: UUID
    title: str
    chapter_order: int
    lectures: list[LectureResponse] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, entity: Chapter) -> "ChapterResponse":
        """Create response from entity."""
        return cls(
            chapter_id=entity.id,
            title=entity.title,
            chapter_order=entity.chapter_order,
            lectures=[LectureResponse.from_entity(lec) for lec in entity.lectures],
        )


class CourseSummaryResponse(BaseModel):
    """Catalog entry without content or the enrolled-student list."""

    id: UUID
    title: str
    description: str
    price: float
    discount: int
    educator_id: str
    is_published: bool
    thumbnail_url: str | None = None
    average_rating: float
    rating_count: int
    enrolled_count: int
    total_lectures: int
    created_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Course) -> "CourseSummaryResponse":
        """Create response from entity."""
        return cls(
            id=entity.id,
            title=entity.title,
            description=entity.description,
            price=float(entity.price),
            discount=entity.discount,
            educator_id=entity.educator_id,
            is_published=entity.is_published,
            thumbnail_url=entity.thumbnail_url,
            average_rating=round(entity.average_rating, 2),
            rating_count=len(entity.ratings),
            enrolled_count=len(entity.enrolled_students),
            total_lectures=entity.total_lectures,
            created_at=entity.created_at,
        )


class CourseDetailResponse(CourseSummaryResponse):
    """Course with its (viewer-masked) content."""

    chapters: list[ChapterResponse] = Field(default_factory=list)
    is_enrolled: bool = False
    user_rating: int | None = None

    @classmethod
    def for_viewer(
        cls, view: Course, is_enrolled: bool, viewer_id: str | None = None
    ) -> "CourseDetailResponse":
        """Build from a course already passed through ``Course.for_viewer``."""
        summary = CourseSummaryResponse.from_entity(view)
        return cls(
            **summary.model_dump(),
            chapters=[ChapterResponse.from_entity(ch) for ch in view.chapters],
            is_enrolled=is_enrolled,
            user_rating=view.ratings.get(viewer_id) if viewer_id else None,
        )


class ReorderResult(BaseModel):
    """Ids whose order changed, and ids that matched nothing."""

    updated: list[UUID] = Field(default_factory=list)
    skipped: list[UUID] = Field(default_factory=list)


# ==============================================================================
# Envelopes
# ==============================================================================


class CourseEnvelope(SuccessResponse):
    course: CourseDetailResponse


class CourseListEnvelope(SuccessResponse):
    courses: list[CourseSummaryResponse]


class ChapterEnvelope(SuccessResponse):
    chapter: ChapterResponse


class LectureEnvelope(SuccessResponse):
    lecture: LectureResponse


class ReorderEnvelope(SuccessResponse):
    result: ReorderResult
