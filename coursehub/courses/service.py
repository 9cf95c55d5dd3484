"""Course content service layer.

Business logic for:
- Course creation with thumbnail upload and optional initial content
- Chapter and lecture authoring (append order, reordering, edits)
- Catalog and educator listings
- Viewer-specific content (lecture URL masking)
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from coursehub.core.exceptions import (
    InvalidInputError,
    InvalidVideoUrlError,
    MediaUploadError,
    NotFoundError,
    UnauthorizedError,
)

from .models import (
    Chapter,
    Course,
    CourseStatus,
    Lecture,
    is_valid_video_url,
    next_order,
)
from .schemas import (
    ChapterOrderItem,
    CreateCourseRequest,
    LectureInput,
    LectureOrderItem,
    ReorderResult,
    UpdateCourseRequest,
    UpdateLectureRequest,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from coursehub.storage.service import FirebaseStorageService

logger = structlog.get_logger(__name__)

THUMBNAIL_FOLDER = "thumbnails/courses"


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseNotFoundError(NotFoundError):
    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


class ChapterNotFoundError(NotFoundError):
    def __init__(self, message: str = "Chapter not found"):
        super().__init__(message, "chapter_not_found")


class LectureNotFoundError(NotFoundError):
    def __init__(self, message: str = "Lecture not found"):
        super().__init__(message, "lecture_not_found")


class NotCourseOwnerError(UnauthorizedError):
    """Caller is not the educator who owns the course."""

    def __init__(self, message: str = "Unauthorized Access"):
        super().__init__(message, "not_course_owner")


class ThumbnailRequiredError(InvalidInputError):
    def __init__(self, message: str = "Thumbnail not attached"):
        super().__init__(message, "thumbnail_required")


class CourseHasStudentsError(InvalidInputError):
    def __init__(self, message: str = "Cannot delete a course with enrolled students"):
        super().__init__(message, "course_has_students")


def ensure_video_url(url: str) -> str:
    """Return the stripped URL or raise InvalidVideoUrlError."""
    if not is_valid_video_url(url):
        raise InvalidVideoUrlError
    return url.strip()


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Service for courses and their chapter/lecture content."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        storage: "FirebaseStorageService | None" = None,
    ):
        """Initialize with Cassandra session and optional media storage."""
        self.session = session
        self.keyspace = keyspace
        self.storage = storage
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        # Courses
        self._get_course = self.session.prepare(
            f"SELECT * FROM {ks}.courses WHERE id = ?"
        )
        self._insert_course = self.session.prepare(f"""
            INSERT INTO {ks}.courses
            (id, title, description, price, discount, educator_id, is_published,
             thumbnail_url, enrolled_students, ratings, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_course = self.session.prepare(f"""
            UPDATE {ks}.courses
            SET title = ?, description = ?, price = ?, discount = ?,
                is_published = ?, updated_at = ?
            WHERE id = ?
        """)
        self._touch_course = self.session.prepare(
            f"UPDATE {ks}.courses SET updated_at = ? WHERE id = ?"
        )
        self._delete_course = self.session.prepare(
            f"DELETE FROM {ks}.courses WHERE id = ?"
        )

        # Lookups
        self._insert_course_by_educator = self.session.prepare(f"""
            INSERT INTO {ks}.courses_by_educator (educator_id, created_at, course_id)
            VALUES (?, ?, ?)
        """)
        self._delete_course_by_educator = self.session.prepare(f"""
            DELETE FROM {ks}.courses_by_educator
            WHERE educator_id = ? AND created_at = ? AND course_id = ?
        """)
        self._get_courses_by_educator = self.session.prepare(
            f"SELECT course_id FROM {ks}.courses_by_educator WHERE educator_id = ?"
        )
        self._insert_course_by_status = self.session.prepare(f"""
            INSERT INTO {ks}.courses_by_status (status, created_at, course_id)
            VALUES (?, ?, ?)
        """)
        self._delete_course_by_status = self.session.prepare(f"""
            DELETE FROM {ks}.courses_by_status
            WHERE status = ? AND created_at = ? AND course_id = ?
        """)
        self._get_courses_by_status = self.session.prepare(
            f"SELECT course_id FROM {ks}.courses_by_status WHERE status = ?"
        )

        # Chapters
        self._get_chapters = self.session.prepare(
            f"SELECT * FROM {ks}.course_chapters WHERE course_id = ?"
        )
        self._insert_chapter = self.session.prepare(f"""
            INSERT INTO {ks}.course_chapters
            (course_id, chapter_id, title, chapter_order, created_at)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._update_chapter_title = self.session.prepare(f"""
            UPDATE {ks}.course_chapters SET title = ?
            WHERE course_id = ? AND chapter_id = ?
        """)
        self._update_chapter_order = self.session.prepare(f"""
            UPDATE {ks}.course_chapters SET chapter_order = ?
            WHERE course_id = ? AND chapter_id = ?
        """)
        self._delete_chapter = self.session.prepare(
            f"DELETE FROM {ks}.course_chapters WHERE course_id = ? AND chapter_id = ?"
        )
        self._delete_all_chapters = self.session.prepare(
            f"DELETE FROM {ks}.course_chapters WHERE course_id = ?"
        )

        # Lectures
        self._get_lectures = self.session.prepare(
            f"SELECT * FROM {ks}.course_lectures WHERE course_id = ?"
        )
        self._insert_lecture = self.session.prepare(f"""
            INSERT INTO {ks}.course_lectures
            (course_id, chapter_id, lecture_id, title, duration, lecture_url,
             is_preview_free, lecture_order, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._update_lecture_order = self.session.prepare(f"""
            UPDATE {ks}.course_lectures SET lecture_order = ?
            WHERE course_id = ? AND chapter_id = ? AND lecture_id = ?
        """)
        self._delete_lecture = self.session.prepare(f"""
            DELETE FROM {ks}.course_lectures
            WHERE course_id = ? AND chapter_id = ? AND lecture_id = ?
        """)
        self._delete_chapter_lectures = self.session.prepare(
            f"DELETE FROM {ks}.course_lectures WHERE course_id = ? AND chapter_id = ?"
        )
        self._delete_all_lectures = self.session.prepare(
            f"DELETE FROM {ks}.course_lectures WHERE course_id = ?"
        )

    # ==========================================================================
    # Loading
    # ==========================================================================

    async def _load_chapters(self, course_id: UUID) -> list[Chapter]:
        chapter_rows = await self.session.aexecute(self._get_chapters, [course_id])
        chapters = {row.chapter_id: Chapter.from_row(row) for row in chapter_rows}

        lecture_rows = await self.session.aexecute(self._get_lectures, [course_id])
        for row in lecture_rows:
            chapter = chapters.get(row.chapter_id)
            # Lectures of a chapter deleted concurrently are ignored
            if chapter is not None:
                chapter.lectures.append(Lecture.from_row(row))

        return list(chapters.values())

    async def get_course(self, course_id: UUID) -> Course | None:
        """Load a course with its chapters and lectures."""
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        if not row:
            return None
        return Course.from_row(row, chapters=await self._load_chapters(course_id))

    async def require_course(self, course_id: UUID) -> Course:
        """Load a course or raise CourseNotFoundError."""
        course = await self.get_course(course_id)
        if course is None:
            raise CourseNotFoundError
        return course

    async def _require_owned_course(self, course_id: UUID, educator_id: str) -> Course:
        course = await self.require_course(course_id)
        if course.educator_id != educator_id:
            logger.warning(
                "course_ownership_denied",
                course_id=str(course_id),
                educator_id=educator_id,
            )
            raise NotCourseOwnerError
        return course

    async def _get_courses(self, course_ids: Iterable[UUID]) -> list[Course]:
        courses = []
        for course_id in course_ids:
            course = await self.get_course(course_id)
            if course is not None:
                courses.append(course)
        return courses

    # ==========================================================================
    # Course Operations
    # ==========================================================================

    async def create_course(
        self,
        educator_id: str,
        data: CreateCourseRequest,
        thumbnail: bytes | None,
        thumbnail_content_type: str | None = None,
        thumbnail_filename: str | None = None,
    ) -> Course:
        """Create a course, uploading its thumbnail first.

        A failed upload aborts creation; nothing is written.

        Raises:
            ThumbnailRequiredError: If no thumbnail was sent
            InvalidVideoUrlError: If any initial lecture URL is not supported
            MediaUploadError: If storage is unavailable or the upload fails
        """
        if not thumbnail:
            raise ThumbnailRequiredError

        chapters: list[Chapter] = []
        for chapter_order, chapter_data in enumerate(data.chapters, start=1):
            chapter = Chapter(title=chapter_data.title, chapter_order=chapter_order)
            lectures = chapter_data.lectures
            for lecture_order, lecture_data in enumerate(lectures, start=1):
                chapter.lectures.append(
                    self._new_lecture(chapter.id, lecture_data, lecture_order)
                )
            chapters.append(chapter)

        course = Course(
            title=data.title,
            description=data.description,
            price=data.price,
            discount=data.discount,
            educator_id=educator_id,
            is_published=data.is_published,
            chapters=chapters,
        )

        if self.storage is None:
            raise MediaUploadError("Media storage is not configured")
        course.thumbnail_url = await self.storage.upload_image(
            thumbnail,
            thumbnail_content_type,
            folder=THUMBNAIL_FOLDER,
            entity_id=str(course.id),
            filename=thumbnail_filename,
        )

        course.updated_at = course.created_at
        await self.session.aexecute(
            self._insert_course,
            [
                course.id,
                course.title,
                course.description,
                course.price,
                course.discount,
                course.educator_id,
                course.is_published,
                course.thumbnail_url,
                set(),
                {},
                course.created_at,
                course.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_course_by_educator,
            [educator_id, course.created_at, course.id],
        )
        await self.session.aexecute(
            self._insert_course_by_status,
            [course.status, course.created_at, course.id],
        )
        for chapter in chapters:
            await self._write_chapter(course.id, chapter)
            for lecture in chapter.lectures:
                await self._write_lecture(course.id, lecture)

        logger.info(
            "course_created",
            course_id=str(course.id),
            educator_id=educator_id,
            chapters=len(chapters),
            lectures=course.total_lectures,
        )
        return course

    async def list_published_courses(self) -> list[Course]:
        """Public catalog, newest first."""
        rows = await self.session.aexecute(
            self._get_courses_by_status, [CourseStatus.PUBLISHED.value]
        )
        courses = await self._get_courses(row.course_id for row in rows)
        return [course for course in courses if course.is_published]

    async def list_educator_courses(self, educator_id: str) -> list[Course]:
        """Courses created by an educator, newest first."""
        rows = await self.session.aexecute(
            self._get_courses_by_educator, [educator_id]
        )
        return await self._get_courses(row.course_id for row in rows)

    async def update_course(
        self, course_id: UUID, educator_id: str, data: UpdateCourseRequest
    ) -> Course:
        """Update course fields; moves the status lookup row on publish changes."""
        course = await self._require_owned_course(course_id, educator_id)
        previous_status = course.status

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(course, field, value)
        course.updated_at = datetime.now(UTC)

        await self.session.aexecute(
            self._update_course,
            [
                course.title,
                course.description,
                course.price,
                course.discount,
                course.is_published,
                course.updated_at,
                course.id,
            ],
        )

        if course.status != previous_status:
            await self.session.aexecute(
                self._delete_course_by_status,
                [previous_status, course.created_at, course.id],
            )
            await self.session.aexecute(
                self._insert_course_by_status,
                [course.status, course.created_at, course.id],
            )

        logger.info("course_updated", course_id=str(course_id), status=course.status)
        return course

    async def delete_course(self, course_id: UUID, educator_id: str) -> None:
        """Delete a course and everything it owns.

        Raises:
            CourseHasStudentsError: If anyone is enrolled
        """
        course = await self._require_owned_course(course_id, educator_id)
        if course.enrolled_students:
            raise CourseHasStudentsError

        await self.session.aexecute(self._delete_all_lectures, [course_id])
        await self.session.aexecute(self._delete_all_chapters, [course_id])
        await self.session.aexecute(
            self._delete_course_by_status,
            [course.status, course.created_at, course_id],
        )
        await self.session.aexecute(
            self._delete_course_by_educator,
            [course.educator_id, course.created_at, course_id],
        )
        await self.session.aexecute(self._delete_course, [course_id])
        logger.info("course_deleted", course_id=str(course_id))

    async def get_for_viewer(
        self, course_id: UUID, viewer_id: str | None
    ) -> tuple[Course, bool]:
        """Course content as a given viewer may see it.

        The owning educator gets the unmasked view as well as enrolled
        students. Anonymous viewers are never enrolled. Unpublished courses
        are visible to their owner only.

        Returns:
            (masked sorted course, whether the viewer is enrolled)
        """
        course = await self.require_course(course_id)
        is_enrolled = course.is_enrolled(viewer_id)
        is_owner = viewer_id is not None and viewer_id == course.educator_id
        if not course.is_published and not is_owner:
            raise CourseNotFoundError
        return course.for_viewer(is_enrolled or is_owner), is_enrolled

    async def _touch(self, course_id: UUID) -> None:
        await self.session.aexecute(self._touch_course, [datetime.now(UTC), course_id])

    # ==========================================================================
    # Chapter Operations
    # ==========================================================================

    async def _write_chapter(self, course_id: UUID, chapter: Chapter) -> None:
        await self.session.aexecute(
            self._insert_chapter,
            [
                course_id,
                chapter.id,
                chapter.title,
                chapter.chapter_order,
                chapter.created_at,
            ],
        )

    async def add_chapter(
        self, course_id: UUID, educator_id: str, title: str
    ) -> Chapter:
        """Append a chapter after the current last one."""
        course = await self._require_owned_course(course_id, educator_id)
        chapter = Chapter(
            title=title,
            chapter_order=next_order(ch.chapter_order for ch in course.chapters),
        )
        await self._write_chapter(course_id, chapter)
        await self._touch(course_id)
        logger.info(
            "chapter_added",
            course_id=str(course_id),
            chapter_id=str(chapter.id),
            chapter_order=chapter.chapter_order,
        )
        return chapter

    async def update_chapter(
        self, course_id: UUID, educator_id: str, chapter_id: UUID, title: str
    ) -> Chapter:
        course = await self._require_owned_course(course_id, educator_id)
        chapter = course.find_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError
        chapter.title = title.strip()
        await self.session.aexecute(
            self._update_chapter_title, [chapter.title, course_id, chapter_id]
        )
        await self._touch(course_id)
        return chapter

    async def delete_chapter(
        self, course_id: UUID, educator_id: str, chapter_id: UUID
    ) -> None:
        """Delete a chapter together with its lectures."""
        course = await self._require_owned_course(course_id, educator_id)
        if course.find_chapter(chapter_id) is None:
            raise ChapterNotFoundError
        await self.session.aexecute(
            self._delete_chapter_lectures, [course_id, chapter_id]
        )
        await self.session.aexecute(self._delete_chapter, [course_id, chapter_id])
        await self._touch(course_id)
        logger.info(
            "chapter_deleted", course_id=str(course_id), chapter_id=str(chapter_id)
        )

    async def reorder_chapters(
        self, course_id: UUID, educator_id: str, items: list[ChapterOrderItem]
    ) -> ReorderResult:
        """Overwrite chapter orders; ids that match no chapter are skipped."""
        course = await self._require_owned_course(course_id, educator_id)
        known = {ch.id for ch in course.chapters}
        result = ReorderResult()

        for item in items:
            if item.chapter_id not in known:
                result.skipped.append(item.chapter_id)
                continue
            await self.session.aexecute(
                self._update_chapter_order, [item.order, course_id, item.chapter_id]
            )
            result.updated.append(item.chapter_id)

        if result.updated:
            await self._touch(course_id)
        logger.info(
            "chapters_reordered",
            course_id=str(course_id),
            updated=len(result.updated),
            skipped=len(result.skipped),
        )
        return result

    # ==========================================================================
    # Lecture Operations
    # ==========================================================================

    def _new_lecture(
        self, chapter_id: UUID, data: LectureInput, lecture_order: int
    ) -> Lecture:
        return Lecture(
            chapter_id=chapter_id,
            title=data.title,
            duration=data.duration,
            lecture_url=ensure_video_url(data.lecture_url),
            is_preview_free=data.is_preview_free,
            lecture_order=lecture_order,
        )

    async def _write_lecture(self, course_id: UUID, lecture: Lecture) -> None:
        await self.session.aexecute(
            self._insert_lecture,
            [
                course_id,
                lecture.chapter_id,
                lecture.id,
                lecture.title,
                lecture.duration,
                lecture.lecture_url,
                lecture.is_preview_free,
                lecture.lecture_order,
                lecture.created_at,
            ],
        )

    async def add_lecture(
        self,
        course_id: UUID,
        educator_id: str,
        chapter_id: UUID,
        data: LectureInput,
    ) -> Lecture:
        """Append a lecture after the chapter's current last one.

        Raises:
            InvalidVideoUrlError: If the URL is not YouTube or Vimeo
            ChapterNotFoundError: If the chapter does not exist
        """
        ensure_video_url(data.lecture_url)
        course = await self._require_owned_course(course_id, educator_id)
        chapter = course.find_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError

        lecture = self._new_lecture(
            chapter_id,
            data,
            next_order(lec.lecture_order for lec in chapter.lectures),
        )
        await self._write_lecture(course_id, lecture)
        await self._touch(course_id)
        logger.info(
            "lecture_added",
            course_id=str(course_id),
            chapter_id=str(chapter_id),
            lecture_id=str(lecture.id),
            lecture_order=lecture.lecture_order,
        )
        return lecture

    async def update_lecture(
        self,
        course_id: UUID,
        educator_id: str,
        chapter_id: UUID,
        lecture_id: UUID,
        data: UpdateLectureRequest,
    ) -> Lecture:
        """Partially update a lecture; a new URL is validated first."""
        if data.lecture_url is not None:
            ensure_video_url(data.lecture_url)
        course = await self._require_owned_course(course_id, educator_id)
        chapter = course.find_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError
        lecture = chapter.find_lecture(lecture_id)
        if lecture is None:
            raise LectureNotFoundError

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(lecture, field, value)
        lecture.lecture_url = lecture.lecture_url.strip()

        await self._write_lecture(course_id, lecture)
        await self._touch(course_id)
        return lecture

    async def delete_lecture(
        self, course_id: UUID, educator_id: str, chapter_id: UUID, lecture_id: UUID
    ) -> None:
        course = await self._require_owned_course(course_id, educator_id)
        chapter = course.find_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError
        if chapter.find_lecture(lecture_id) is None:
            raise LectureNotFoundError
        await self.session.aexecute(
            self._delete_lecture, [course_id, chapter_id, lecture_id]
        )
        await self._touch(course_id)
        logger.info(
            "lecture_deleted", course_id=str(course_id), lecture_id=str(lecture_id)
        )

    async def reorder_lectures(
        self,
        course_id: UUID,
        educator_id: str,
        chapter_id: UUID,
        items: list[LectureOrderItem],
    ) -> ReorderResult:
        """Overwrite lecture orders inside a chapter; unmatched ids are skipped."""
        course = await self._require_owned_course(course_id, educator_id)
        chapter = course.find_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError

        known = {lec.id for lec in chapter.lectures}
        result = ReorderResult()
        for item in items:
            if item.lecture_id not in known:
                result.skipped.append(item.lecture_id)
                continue
            await self.session.aexecute(
                self._update_lecture_order,
                [item.order, course_id, chapter_id, item.lecture_id],
            )
            result.updated.append(item.lecture_id)

        if result.updated:
            await self._touch(course_id)
        logger.info(
            "lectures_reordered",
            course_id=str(course_id),
            chapter_id=str(chapter_id),
            updated=len(result.updated),
            skipped=len(result.skipped),
        )
        return result
