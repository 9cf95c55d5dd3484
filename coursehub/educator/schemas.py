"""Pydantic schemas for the educator dashboard."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from coursehub.core.schemas import SuccessResponse

from .service import EducatorDashboard, StudentEntry


class StudentInfo(BaseModel):
    id: str
    name: str
    image_url: str | None = None


class EnrolledStudentResponse(BaseModel):
    student: StudentInfo
    course_id: str
    course_title: str
    purchase_date: datetime | None = None

    @classmethod
    def from_entry(cls, entry: StudentEntry) -> "EnrolledStudentResponse":
        return cls(
            student=StudentInfo(
                id=entry.student_id, name=entry.name, image_url=entry.image_url
            ),
            course_id=entry.course_id,
            course_title=entry.course_title,
            purchase_date=entry.purchase_date,
        )


class DashboardResponse(BaseModel):
    total_earnings: Decimal
    total_courses: int
    enrolled_students_data: list[EnrolledStudentResponse]

    @classmethod
    def from_dashboard(cls, dashboard: EducatorDashboard) -> "DashboardResponse":
        return cls(
            total_earnings=dashboard.total_earnings,
            total_courses=dashboard.total_courses,
            enrolled_students_data=[
                EnrolledStudentResponse.from_entry(e)
                for e in dashboard.enrolled_students
            ],
        )


class DashboardEnvelope(SuccessResponse):
    dashboard_data: DashboardResponse


class EnrolledStudentsEnvelope(SuccessResponse):
    enrolled_students: list[EnrolledStudentResponse]
