"""Database models for student progress tracking.

One row per (user, course) pair; the primary key itself makes the pair
unique. Completed lectures are a CQL set, so adding the same lecture twice
is a no-op at the storage level.

The stored ``completion_percentage`` is only a cache for listings: every
read recomputes it from the completed set and the live course structure.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from coursehub.courses.models import ensure_utc_aware


COURSE_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_progress (
    user_id TEXT,
    course_id UUID,
    completed_lectures SET<UUID>,
    completion_percentage INT,
    last_accessed TIMESTAMP,
    created_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

PROGRESS_TABLES_CQL = [
    COURSE_PROGRESS_TABLE_CQL,
]


def compute_completion_percentage(
    completed: set[UUID], lecture_ids: set[UUID]
) -> int:
    """Whole-number percentage of the course's current lectures completed.

    Completed ids that no longer belong to the course are not counted.
    Halves round up; a course without lectures is 0%.
    """
    total = len(lecture_ids)
    if total == 0:
        return 0
    done = len(completed & lecture_ids)
    percentage = (Decimal(100 * done) / Decimal(total)).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    return max(0, min(100, int(percentage)))


class CourseProgress:
    """A student's progress in one course.

    Attributes:
        user_id: Identity-provider user id
        course_id: Course UUID
        completed_lectures: Set of completed lecture UUIDs
        completion_percentage: Derived 0-100 value
        last_accessed: Last completion or reset timestamp
    """

    def __init__(
        self,
        user_id: str,
        course_id: UUID,
        completed_lectures: set[UUID] | None = None,
        completion_percentage: int = 0,
        last_accessed: datetime | None = None,
        created_at: datetime | None = None,
    ):
        self.user_id = user_id
        self.course_id = course_id
        self.completed_lectures = set(completed_lectures or ())
        self.completion_percentage = completion_percentage
        self.last_accessed = ensure_utc_aware(last_accessed)
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def empty(cls, user_id: str, course_id: UUID) -> "CourseProgress":
        """Default view for a pair that has no record yet."""
        return cls(user_id=user_id, course_id=course_id)

    @classmethod
    def from_row(cls, row: Any) -> "CourseProgress":
        """Create CourseProgress instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            completed_lectures=row.completed_lectures,
            completion_percentage=row.completion_percentage or 0,
            last_accessed=row.last_accessed,
            created_at=row.created_at,
        )

    def is_completed(self, lecture_id: UUID) -> bool:
        return lecture_id in self.completed_lectures

    def recompute(self, lecture_ids: set[UUID]) -> int:
        """Refresh the percentage against the given lecture ids."""
        self.completion_percentage = compute_completion_percentage(
            self.completed_lectures, lecture_ids
        )
        return self.completion_percentage

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "course_id": self.course_id,
            "completed_lectures": sorted(self.completed_lectures, key=str),
            "completion_percentage": self.completion_percentage,
            "last_accessed": self.last_accessed,
        }

    def __repr__(self) -> str:
        return (
            f"<CourseProgress user={self.user_id} course={self.course_id} "
            f"{self.completion_percentage}%>"
        )
