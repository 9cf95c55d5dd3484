"""Student progress tracking service layer.

Business logic for:
- Marking lectures complete (idempotent, atomic set add)
- Progress queries with the percentage recomputed on every read
- Progress reset
- Student dashboard across all courses
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursehub.courses.models import Course
from coursehub.courses.service import LectureNotFoundError

from .models import CourseProgress


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from coursehub.courses.service import CourseService

logger = structlog.get_logger(__name__)


class ProgressService:
    """Service for per-user, per-course lecture completion."""

    def __init__(
        self, session: "Session", keyspace: str, course_service: "CourseService"
    ):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.course_service = course_service
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace
        self._get_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.course_progress
            WHERE user_id = ? AND course_id = ?
        """)
        self._get_user_progress = self.session.prepare(
            f"SELECT * FROM {ks}.course_progress WHERE user_id = ?"
        )

        # UPDATE is an upsert: the first completion creates the row
        self._add_completed_lecture = self.session.prepare(f"""
            UPDATE {ks}.course_progress
            SET completed_lectures = completed_lectures + ?, last_accessed = ?
            WHERE user_id = ? AND course_id = ?
        """)
        self._set_created_at = self.session.prepare(f"""
            UPDATE {ks}.course_progress SET created_at = ?
            WHERE user_id = ? AND course_id = ?
        """)
        self._set_percentage = self.session.prepare(f"""
            UPDATE {ks}.course_progress SET completion_percentage = ?
            WHERE user_id = ? AND course_id = ?
        """)
        self._reset_progress = self.session.prepare(f"""
            UPDATE {ks}.course_progress
            SET completed_lectures = ?, completion_percentage = 0, last_accessed = ?
            WHERE user_id = ? AND course_id = ?
            IF EXISTS
        """)

    async def _fetch(self, user_id: str, course_id: UUID) -> CourseProgress | None:
        result = await self.session.aexecute(self._get_progress, [user_id, course_id])
        row = result.one()
        return CourseProgress.from_row(row) if row else None

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def mark_complete(
        self, user_id: str, course_id: UUID, lecture_id: UUID
    ) -> tuple[CourseProgress, bool]:
        """Record a completed lecture.

        Returns:
            (progress with fresh percentage, whether it was already completed)

        Raises:
            CourseNotFoundError: If the course does not exist
            LectureNotFoundError: If the lecture is not part of the course
        """
        course = await self.course_service.require_course(course_id)
        if lecture_id not in course.lecture_ids:
            raise LectureNotFoundError

        existing = await self._fetch(user_id, course_id)
        if existing is not None and existing.is_completed(lecture_id):
            existing.recompute(course.lecture_ids)
            return existing, True

        now = datetime.now(UTC)
        await self.session.aexecute(
            self._add_completed_lecture, [{lecture_id}, now, user_id, course_id]
        )
        if existing is None:
            await self.session.aexecute(
                self._set_created_at, [now, user_id, course_id]
            )

        # Re-read so concurrent completions are part of the percentage
        progress = await self._fetch(user_id, course_id) or CourseProgress(
            user_id=user_id,
            course_id=course_id,
            completed_lectures={lecture_id},
            last_accessed=now,
        )
        progress.recompute(course.lecture_ids)
        await self.session.aexecute(
            self._set_percentage,
            [progress.completion_percentage, user_id, course_id],
        )

        logger.info(
            "lecture_marked_complete",
            course_id=str(course_id),
            lecture_id=str(lecture_id),
            completion_percentage=progress.completion_percentage,
        )
        return progress, False

    async def reset(self, user_id: str, course_id: UUID) -> CourseProgress:
        """Clear completed lectures while keeping the record.

        Resetting a pair that has no record is a no-op.
        """
        now = datetime.now(UTC)
        result = await self.session.aexecute(
            self._reset_progress, [set(), now, user_id, course_id]
        )
        if not result.was_applied:
            return CourseProgress.empty(user_id, course_id)

        logger.info("progress_reset", course_id=str(course_id))
        return CourseProgress(user_id=user_id, course_id=course_id, last_accessed=now)

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_progress(
        self, user_id: str, course_id: UUID
    ) -> tuple[CourseProgress, Course | None]:
        """Progress for a pair; defaults when there is no record.

        The percentage is recomputed against the course's current lectures
        (0 when the course no longer exists).
        """
        progress = await self._fetch(user_id, course_id) or CourseProgress.empty(
            user_id, course_id
        )
        course = await self.course_service.get_course(course_id)
        progress.recompute(course.lecture_ids if course else set())
        return progress, course

    async def is_lecture_completed(
        self, user_id: str, course_id: UUID, lecture_id: UUID
    ) -> bool:
        progress = await self._fetch(user_id, course_id)
        return progress is not None and progress.is_completed(lecture_id)

    async def list_user_progress(
        self, user_id: str
    ) -> list[tuple[CourseProgress, Course]]:
        """Every progress record of a user with its course.

        Records of courses that no longer exist are left out.
        """
        rows = await self.session.aexecute(self._get_user_progress, [user_id])
        entries = []
        for row in rows:
            progress = CourseProgress.from_row(row)
            course = await self.course_service.get_course(progress.course_id)
            if course is None:
                continue
            progress.recompute(course.lecture_ids)
            entries.append((progress, course))
        return entries
