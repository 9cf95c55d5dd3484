"""Pydantic schemas for student progress tracking."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from coursehub.core.schemas import SuccessResponse
from coursehub.courses.models import Course

from .models import CourseProgress


class MarkLectureCompleteRequest(BaseModel):
    course_id: UUID = Field(..., description="Course UUID")
    lecture_id: UUID = Field(..., description="Lecture UUID")


class ResetProgressRequest(BaseModel):
    course_id: UUID = Field(..., description="Course UUID")


class ProgressResponse(BaseModel):
    """Progress of one user in one course."""

    course_id: UUID
    completed_lectures: list[UUID] = Field(default_factory=list)
    completion_percentage: int = Field(description="0-100, recomputed on read")
    completed_count: int = 0
    total_lectures: int = 0
    last_accessed: datetime | None = None

    @classmethod
    def from_entity(
        cls, entity: CourseProgress, course: Course | None = None
    ) -> "ProgressResponse":
        """Create response from entity."""
        lecture_ids = course.lecture_ids if course else set()
        return cls(
            course_id=entity.course_id,
            completed_lectures=sorted(entity.completed_lectures, key=str),
            completion_percentage=entity.completion_percentage,
            completed_count=len(entity.completed_lectures & lecture_ids),
            total_lectures=len(lecture_ids),
            last_accessed=entity.last_accessed,
        )


class CourseProgressSummary(ProgressResponse):
    """Dashboard entry: progress plus course display fields."""

    course_title: str
    course_thumbnail: str | None = None

    @classmethod
    def from_pair(
        cls, entity: CourseProgress, course: Course
    ) -> "CourseProgressSummary":
        return cls(
            **ProgressResponse.from_entity(entity, course).model_dump(),
            course_title=course.title,
            course_thumbnail=course.thumbnail_url,
        )


class ProgressEnvelope(SuccessResponse):
    progress: ProgressResponse
    already_completed: bool = False


class ProgressListEnvelope(SuccessResponse):
    progress: list[CourseProgressSummary]


class LectureStatusEnvelope(SuccessResponse):
    lecture_id: UUID
    is_completed: bool
