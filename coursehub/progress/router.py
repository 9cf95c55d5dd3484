"""Student progress tracking API endpoints.

Provides routes for:
- Lecture completion
- Progress queries (one course, one lecture, all courses)
- Progress reset
"""

from uuid import UUID

from fastapi import APIRouter

from coursehub.auth.dependencies import CurrentUser

from .dependencies import ProgressServiceDep
from .schemas import (
    CourseProgressSummary,
    LectureStatusEnvelope,
    MarkLectureCompleteRequest,
    ProgressEnvelope,
    ProgressListEnvelope,
    ProgressResponse,
    ResetProgressRequest,
)


router = APIRouter(prefix="/v1/progress", tags=["progress"])


# ==============================================================================
# Lecture Completion Endpoints
# ==============================================================================


@router.post(
    "/complete",
    response_model=ProgressEnvelope,
    summary="Mark lecture as completed",
)
async def mark_lecture_complete(
    data: MarkLectureCompleteRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressEnvelope:
    """Mark a lecture as completed.

    Completing the same lecture again is acknowledged without changes.
    """
    progress, already_completed = await progress_service.mark_complete(
        user_id=user.id,
        course_id=data.course_id,
        lecture_id=data.lecture_id,
    )
    course = await progress_service.course_service.get_course(data.course_id)
    message = "Lecture already completed" if already_completed else "Progress updated"
    return ProgressEnvelope(
        message=message,
        progress=ProgressResponse.from_entity(progress, course),
        already_completed=already_completed,
    )


@router.post(
    "/reset",
    response_model=ProgressEnvelope,
    summary="Reset course progress",
)
async def reset_course_progress(
    data: ResetProgressRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressEnvelope:
    progress = await progress_service.reset(user.id, data.course_id)
    return ProgressEnvelope(
        message="Progress reset",
        progress=ProgressResponse.from_entity(progress),
    )


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "",
    response_model=ProgressListEnvelope,
    summary="Get progress in all courses",
)
async def get_all_progress(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressListEnvelope:
    """Student dashboard: progress in every course with a progress record."""
    entries = await progress_service.list_user_progress(user.id)
    return ProgressListEnvelope(
        progress=[CourseProgressSummary.from_pair(p, c) for p, c in entries]
    )


@router.get(
    "/courses/{course_id}",
    response_model=ProgressEnvelope,
    summary="Get course progress",
)
async def get_course_progress(
    course_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> ProgressEnvelope:
    """Progress in one course; defaults when nothing was completed yet."""
    progress, course = await progress_service.get_progress(user.id, course_id)
    return ProgressEnvelope(progress=ProgressResponse.from_entity(progress, course))


@router.get(
    "/courses/{course_id}/lectures/{lecture_id}",
    response_model=LectureStatusEnvelope,
    summary="Check lecture completion",
)
async def get_lecture_status(
    course_id: UUID,
    lecture_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> LectureStatusEnvelope:
    is_completed = await progress_service.is_lecture_completed(
        user.id, course_id, lecture_id
    )
    return LectureStatusEnvelope(lecture_id=lecture_id, is_completed=is_completed)
