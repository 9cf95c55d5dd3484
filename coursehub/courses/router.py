"""Course catalog and content management API endpoints.

Provides routes for:
- Catalog: published course list and course detail (masked per viewer)
- Courses: update and delete (owning educator)
- Chapters: add, rename, delete, reorder
- Lectures: add, update, delete, reorder

Course creation takes a thumbnail upload and lives in the educator router.
"""

from uuid import UUID

from fastapi import APIRouter

from coursehub.auth.dependencies import EducatorUser, OptionalUser
from coursehub.core.schemas import SuccessResponse
from coursehub.courses.dependencies import CourseServiceDep
from coursehub.courses.schemas import (
    AddChapterRequest,
    AddLectureRequest,
    ChapterEnvelope,
    ChapterResponse,
    CourseDetailResponse,
    CourseEnvelope,
    CourseListEnvelope,
    CourseSummaryResponse,
    LectureEnvelope,
    LectureResponse,
    ReorderChaptersRequest,
    ReorderEnvelope,
    ReorderLecturesRequest,
    UpdateChapterRequest,
    UpdateCourseRequest,
    UpdateLectureRequest,
)


router = APIRouter(prefix="/v1/courses", tags=["Courses"])


# ==============================================================================
# Catalog Endpoints
# ==============================================================================


@router.get(
    "",
    response_model=CourseListEnvelope,
    summary="List published courses",
)
async def list_published_courses(
    course_service: CourseServiceDep,
) -> CourseListEnvelope:
    """Public catalog, newest first."""
    courses = await course_service.list_published_courses()
    return CourseListEnvelope(
        courses=[CourseSummaryResponse.from_entity(c) for c in courses]
    )


@router.get(
    "/{course_id}",
    response_model=CourseEnvelope,
    summary="Get course by ID",
)
async def get_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: OptionalUser,
) -> CourseEnvelope:
    """Get course with its chapters and lectures.

    Lecture URLs stay hidden on non-preview lectures unless the viewer is
    enrolled or owns the course. Anonymous access is allowed.
    """
    viewer_id = user.id if user else None
    view, is_enrolled = await course_service.get_for_viewer(course_id, viewer_id)
    return CourseEnvelope(
        course=CourseDetailResponse.for_viewer(view, is_enrolled, viewer_id)
    )


# ==============================================================================
# Course Management Endpoints
# ==============================================================================


@router.patch(
    "/{course_id}",
    response_model=CourseEnvelope,
    summary="Update course",
)
async def update_course(
    course_id: UUID,
    data: UpdateCourseRequest,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> CourseEnvelope:
    course = await course_service.update_course(course_id, user.id, data)
    view = course.for_viewer(is_enrolled=True)
    return CourseEnvelope(
        message="Course updated",
        course=CourseDetailResponse.for_viewer(view, False, user.id),
    )


@router.delete(
    "/{course_id}",
    response_model=SuccessResponse,
    summary="Delete course",
)
async def delete_course(
    course_id: UUID,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> SuccessResponse:
    """Delete a course with no enrolled students."""
    await course_service.delete_course(course_id, user.id)
    return SuccessResponse(message="Course deleted")


# ==============================================================================
# Chapter Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/chapters",
    response_model=ChapterEnvelope,
    summary="Add chapter",
)
async def add_chapter(
    course_id: UUID,
    data: AddChapterRequest,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> ChapterEnvelope:
    """Append a chapter after the current last one."""
    chapter = await course_service.add_chapter(course_id, user.id, data.title)
    return ChapterEnvelope(
        message="Chapter added", chapter=ChapterResponse.from_entity(chapter)
    )


@router.put(
    "/{course_id}/chapters/order",
    response_model=ReorderEnvelope,
    summary="Reorder chapters",
)
async def reorder_chapters(
    course_id: UUID,
    data: ReorderChaptersRequest,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> ReorderEnvelope:
    """Apply new chapter positions; unknown chapter ids are reported as skipped."""
    result = await course_service.reorder_chapters(course_id, user.id, data.items)
    return ReorderEnvelope(message="Chapters reordered", result=result)


@router.patch(
    "/{course_id}/chapters/{chapter_id}",
    response_model=ChapterEnvelope,
    summary="Rename chapter",
)
async def update_chapter(
    course_id: UUID,
    chapter_id: UUID,
    data: UpdateChapterRequest,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> ChapterEnvelope:
    chapter = await course_service.update_chapter(
        course_id, user.id, chapter_id, data.title
    )
    return ChapterEnvelope(
        message="Chapter updated", chapter=ChapterResponse.from_entity(chapter)
    )


@router.delete(
    "/{course_id}/chapters/{chapter_id}",
    response_model=SuccessResponse,
    summary="Delete chapter",
)
async def delete_chapter(
    course_id: UUID,
    chapter_id: UUID,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> SuccessResponse:
    """Delete a chapter together with its lectures."""
    await course_service.delete_chapter(course_id, user.id, chapter_id)
    return SuccessResponse(message="Chapter deleted")


# ==============================================================================
# Lecture Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/chapters/{chapter_id}/lectures",
    response_model=LectureEnvelope,
    summary="Add lecture",
)
async def add_lecture(
    course_id: UUID,
    chapter_id: UUID,
    data: AddLectureRequest,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> LectureEnvelope:
    """Append a lecture to a chapter. Only YouTube and Vimeo URLs are accepted."""
    lecture = await course_service.add_lecture(course_id, user.id, chapter_id, data)
    return LectureEnvelope(
        message="Lecture added", lecture=LectureResponse.from_entity(lecture)
    )


@router.put(
    "/{course_id}/chapters/{chapter_id}/lectures/order",
    response_model=ReorderEnvelope,
    summary="Reorder lectures",
)
async def reorder_lectures(
    course_id: UUID,
    chapter_id: UUID,
    data: ReorderLecturesRequest,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> ReorderEnvelope:
    result = await course_service.reorder_lectures(
        course_id, user.id, chapter_id, data.items
    )
    return ReorderEnvelope(message="Lectures reordered", result=result)


@router.patch(
    "/{course_id}/chapters/{chapter_id}/lectures/{lecture_id}",
    response_model=LectureEnvelope,
    summary="Update lecture",
)
async def update_lecture(
    course_id: UUID,
    chapter_id: UUID,
    lecture_id: UUID,
    data: UpdateLectureRequest,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> LectureEnvelope:
    lecture = await course_service.update_lecture(
        course_id, user.id, chapter_id, lecture_id, data
    )
    return LectureEnvelope(
        message="Lecture updated", lecture=LectureResponse.from_entity(lecture)
    )


@router.delete(
    "/{course_id}/chapters/{chapter_id}/lectures/{lecture_id}",
    response_model=SuccessResponse,
    summary="Delete lecture",
)
async def delete_lecture(
    course_id: UUID,
    chapter_id: UUID,
    lecture_id: UUID,
    course_service: CourseServiceDep,
    user: EducatorUser,
) -> SuccessResponse:
    await course_service.delete_lecture(course_id, user.id, chapter_id, lecture_id)
    return SuccessResponse(message="Lecture deleted")
