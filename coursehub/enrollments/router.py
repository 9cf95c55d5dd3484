"""Enrollment and rating API endpoints.

Endpoints:
- POST /v1/courses/{course_id}/rating: Rate an enrolled course
- GET /v1/users/me/enrollments: Courses the current user is enrolled in

Enrollment itself has no endpoint; it is granted by payment reconciliation.
"""

from uuid import UUID

from fastapi import APIRouter

from coursehub.auth.dependencies import CurrentUser
from coursehub.courses.schemas import CourseSummaryResponse

from .dependencies import EnrollmentServiceDep
from .schemas import (
    EnrolledCoursesEnvelope,
    RateCourseRequest,
    RatingEnvelope,
    RatingResponse,
)


router = APIRouter(prefix="/v1", tags=["Enrollments"])


@router.post(
    "/courses/{course_id}/rating",
    response_model=RatingEnvelope,
    summary="Rate a course",
)
async def rate_course(
    course_id: UUID,
    data: RateCourseRequest,
    service: EnrollmentServiceDep,
    current_user: CurrentUser,
) -> RatingEnvelope:
    """Add or replace the current user's rating (1-5) of an enrolled course."""
    course = await service.add_or_update_rating(
        user_id=current_user.id,
        course_id=course_id,
        rating=data.rating,
    )
    return RatingEnvelope(
        message="Rating added",
        rating=RatingResponse(
            course_id=course.id,
            rating=data.rating,
            average_rating=course.average_rating,
            rating_count=len(course.ratings),
        ),
    )


@router.get(
    "/users/me/enrollments",
    response_model=EnrolledCoursesEnvelope,
    summary="List my enrolled courses",
)
async def list_my_enrollments(
    service: EnrollmentServiceDep,
    current_user: CurrentUser,
) -> EnrolledCoursesEnvelope:
    courses = await service.list_enrolled_courses(current_user.id)
    return EnrolledCoursesEnvelope(
        enrolled_courses=[CourseSummaryResponse.from_entity(c) for c in courses]
    )
