"""Educator API endpoints.

Endpoints:
- POST /v1/educator/update-role: Become an educator
- POST /v1/educator/courses: Create a course with its thumbnail
- GET /v1/educator/courses: Courses owned by the educator
- GET /v1/educator/dashboard: Earnings and enrolled students
- GET /v1/educator/enrolled-students: Buyers with purchase dates
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, File, Form, UploadFile
from pydantic import ValidationError

from coursehub.auth.dependencies import CurrentUser, EducatorUser, IdentityProviderDep
from coursehub.auth.permissions import become_educator
from coursehub.core.exceptions import InvalidInputError
from coursehub.core.schemas import SuccessResponse
from coursehub.courses.dependencies import CourseServiceDep
from coursehub.courses.schemas import (
    CourseDetailResponse,
    CourseEnvelope,
    CourseListEnvelope,
    CourseSummaryResponse,
    CreateCourseRequest,
)

from .dependencies import EducatorServiceDep
from .schemas import (
    DashboardEnvelope,
    DashboardResponse,
    EnrolledStudentResponse,
    EnrolledStudentsEnvelope,
)


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1/educator", tags=["Educator"])


@router.post(
    "/update-role",
    response_model=SuccessResponse,
    summary="Become an educator",
)
async def update_role_to_educator(
    identity: IdentityProviderDep,
    current_user: CurrentUser,
) -> SuccessResponse:
    """Set the educator role claim on the current user."""
    await become_educator(identity, current_user.id)
    logger.info("educator_role_granted")
    return SuccessResponse(message="You can publish a course now")


@router.post(
    "/courses",
    response_model=CourseEnvelope,
    summary="Create course",
)
async def create_course(
    course_service: CourseServiceDep,
    user: EducatorUser,
    course_data: Annotated[str, Form(description="Course fields as JSON")],
    image: Annotated[UploadFile | None, File(description="Thumbnail image")] = None,
) -> CourseEnvelope:
    """Create a course from a multipart form.

    ``course_data`` holds the course fields and initial chapters as JSON;
    ``image`` is the thumbnail, uploaded before anything is stored.
    """
    try:
        data = CreateCourseRequest.model_validate_json(course_data)
    except ValidationError as e:
        raise InvalidInputError(
            f"Invalid course data: {e.errors()[0]['msg']}", "invalid_course_data"
        ) from e

    content = await image.read() if image is not None else None
    course = await course_service.create_course(
        educator_id=user.id,
        data=data,
        thumbnail=content,
        thumbnail_content_type=image.content_type if image is not None else None,
        thumbnail_filename=image.filename if image is not None else None,
    )
    view = course.for_viewer(is_enrolled=True)
    return CourseEnvelope(
        message="Course Added",
        course=CourseDetailResponse.for_viewer(view, False, user.id),
    )


@router.get(
    "/courses",
    response_model=CourseListEnvelope,
    summary="List my courses",
)
async def list_educator_courses(
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> CourseListEnvelope:
    courses = await course_service.list_educator_courses(user.id)
    return CourseListEnvelope(
        courses=[CourseSummaryResponse.from_entity(c) for c in courses]
    )


@router.get(
    "/dashboard",
    response_model=DashboardEnvelope,
    summary="Educator dashboard",
)
async def get_dashboard(
    service: EducatorServiceDep,
    user: EducatorUser,
) -> DashboardEnvelope:
    """Total earnings, course count and enrolled students."""
    dashboard = await service.dashboard(user.id)
    return DashboardEnvelope(dashboard_data=DashboardResponse.from_dashboard(dashboard))


@router.get(
    "/enrolled-students",
    response_model=EnrolledStudentsEnvelope,
    summary="List enrolled students",
)
async def get_enrolled_students(
    service: EducatorServiceDep,
    user: EducatorUser,
) -> EnrolledStudentsEnvelope:
    entries = await service.enrolled_students(user.id)
    return EnrolledStudentsEnvelope(
        enrolled_students=[EnrolledStudentResponse.from_entry(e) for e in entries]
    )
