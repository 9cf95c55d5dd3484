"""Enrollment and rating ledger.

Enrollment is the two-sided link between a user and a course: the user id
in the course's ``enrolled_students`` set and the course id in the user's
``enrolled_courses`` set. Both writes are set additions, so repeating them
never duplicates anything.

Ratings live in the course's ``ratings`` map keyed by user id, which keeps
at most one rating per user; a new rating overwrites the previous one.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursehub.core.exceptions import InvalidInputError, NotEnrolledError
from coursehub.courses.models import MAX_RATING, MIN_RATING, Course
from coursehub.courses.service import CourseNotFoundError


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from coursehub.courses.service import CourseService

logger = structlog.get_logger(__name__)


class InvalidRatingError(InvalidInputError):
    def __init__(self, message: str = "Rating must be between 1 and 5"):
        super().__init__(message, "invalid_rating")


def validate_rating(rating: object) -> int:
    """Accept only integers in the inclusive 1-5 range."""
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidRatingError
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRatingError
    return rating


class EnrollmentService:
    """Service for enrollments and course ratings."""

    def __init__(
        self, session: "Session", keyspace: str, course_service: "CourseService"
    ):
        self.session = session
        self.keyspace = keyspace
        self.course_service = course_service
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        ks = self.keyspace
        self._add_student = self.session.prepare(f"""
            UPDATE {ks}.courses SET enrolled_students = enrolled_students + ?
            WHERE id = ?
        """)
        self._add_enrolled_course = self.session.prepare(f"""
            UPDATE {ks}.users SET enrolled_courses = enrolled_courses + ?
            WHERE id = ?
        """)
        self._get_enrolled_courses = self.session.prepare(
            f"SELECT enrolled_courses FROM {ks}.users WHERE id = ?"
        )
        self._set_rating = self.session.prepare(f"""
            UPDATE {ks}.courses SET ratings[?] = ?, updated_at = ?
            WHERE id = ?
        """)

    # ==========================================================================
    # Enrollment
    # ==========================================================================

    async def enroll(self, user_id: str, course_id: UUID) -> None:
        """Link user and course on both sides."""
        await self.session.aexecute(self._add_student, [{user_id}, course_id])
        await self.session.aexecute(self._add_enrolled_course, [{course_id}, user_id])
        logger.info("user_enrolled", course_id=str(course_id), student_id=user_id)

    async def is_enrolled(self, user_id: str, course_id: UUID) -> bool:
        course = await self.course_service.get_course(course_id)
        return course is not None and course.is_enrolled(user_id)

    async def list_enrolled_courses(self, user_id: str) -> list[Course]:
        """Courses the user is enrolled in (missing courses are skipped)."""
        result = await self.session.aexecute(self._get_enrolled_courses, [user_id])
        row = result.one()
        course_ids = sorted(row.enrolled_courses or (), key=str) if row else []

        courses = []
        for course_id in course_ids:
            course = await self.course_service.get_course(course_id)
            if course is not None:
                courses.append(course)
        return courses

    # ==========================================================================
    # Ratings
    # ==========================================================================

    async def add_or_update_rating(
        self, user_id: str, course_id: UUID, rating: int
    ) -> Course:
        """Record the user's rating of a course, replacing any earlier one.

        Checks run in order (range, course exists, enrolled) and all happen
        before the write, so a rejected rating changes nothing.

        Raises:
            InvalidRatingError: If rating is not an integer in 1-5
            CourseNotFoundError: If the course does not exist
            NotEnrolledError: If the user is not enrolled in the course
        """
        rating = validate_rating(rating)

        course = await self.course_service.get_course(course_id)
        if course is None:
            raise CourseNotFoundError
        if not course.is_enrolled(user_id):
            raise NotEnrolledError

        await self.session.aexecute(
            self._set_rating, [user_id, rating, datetime.now(UTC), course_id]
        )
        course.ratings[user_id] = rating

        logger.info(
            "course_rated",
            course_id=str(course_id),
            rating=rating,
            average_rating=round(course.average_rating, 2),
        )
        return course
