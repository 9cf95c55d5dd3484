"""Educator dashboard service layer.

Read-only aggregation over courses, completed purchases and local user
records for the educator's own courses.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from coursehub.purchases.models import PurchaseStatus


if TYPE_CHECKING:
    from coursehub.courses.service import CourseService
    from coursehub.purchases.service import PurchaseService
    from coursehub.users.service import UserService

logger = structlog.get_logger(__name__)


@dataclass
class StudentEntry:
    """One enrolled student of one course."""

    student_id: str
    name: str
    image_url: str | None
    course_id: str
    course_title: str
    purchase_date: datetime | None = None


@dataclass
class EducatorDashboard:
    total_earnings: Decimal = Decimal("0.00")
    total_courses: int = 0
    enrolled_students: list[StudentEntry] = field(default_factory=list)


class EducatorService:
    """Aggregates for the educator dashboard."""

    def __init__(
        self,
        course_service: "CourseService",
        purchase_service: "PurchaseService",
        user_service: "UserService",
    ):
        self.course_service = course_service
        self.purchase_service = purchase_service
        self.user_service = user_service

    async def _student(self, student_id: str) -> tuple[str, str | None]:
        user = await self.user_service.get_user(student_id)
        if user is None:
            return "", None
        return user.name, user.image_url

    async def dashboard(self, educator_id: str) -> EducatorDashboard:
        """Earnings from completed purchases and every enrolled student."""
        courses = await self.course_service.list_educator_courses(educator_id)
        result = EducatorDashboard(total_courses=len(courses))

        for course in courses:
            completed = await self.purchase_service.list_course_purchases(
                course.id, status=PurchaseStatus.COMPLETED
            )
            result.total_earnings += sum(
                (purchase.amount for purchase in completed), Decimal("0.00")
            )
            for student_id in sorted(course.enrolled_students):
                name, image_url = await self._student(student_id)
                result.enrolled_students.append(
                    StudentEntry(
                        student_id=student_id,
                        name=name,
                        image_url=image_url,
                        course_id=str(course.id),
                        course_title=course.title,
                    )
                )

        logger.debug(
            "educator_dashboard_built",
            total_courses=result.total_courses,
            total_earnings=str(result.total_earnings),
        )
        return result

    async def enrolled_students(self, educator_id: str) -> list[StudentEntry]:
        """Buyers of the educator's courses (completed purchases), newest first."""
        courses = await self.course_service.list_educator_courses(educator_id)
        entries = []
        for course in courses:
            completed = await self.purchase_service.list_course_purchases(
                course.id, status=PurchaseStatus.COMPLETED
            )
            for purchase in completed:
                name, image_url = await self._student(purchase.user_id)
                entries.append(
                    StudentEntry(
                        student_id=purchase.user_id,
                        name=name,
                        image_url=image_url,
                        course_id=str(course.id),
                        course_title=course.title,
                        purchase_date=purchase.created_at,
                    )
                )
        entries.sort(key=lambda e: e.purchase_date, reverse=True)
        return entries
