"""Database models for the course content model.

Cassandra table definitions for:
- Courses: main course row, with the enrolled-student set and the
  per-user rating map stored on it
- Chapters and lectures: stored in the course's partition, so a course
  and its content are read with two single-partition queries
- Lookup tables: courses by educator and by publication status

Chapters and lectures carry an explicit integer order. Order values do not
have to be contiguous; reads always sort by them.
"""

import copy
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class CourseStatus(str, Enum):
    """Publication status used by the status lookup table."""

    DRAFT = "draft"
    PUBLISHED = "published"


YOUTUBE_URL_PATTERN = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+$")
VIMEO_URL_PATTERN = re.compile(r"^(https?://)?(www\.)?vimeo\.com/.+$")

MIN_RATING = 1
MAX_RATING = 5


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def is_valid_video_url(url: str | None) -> bool:
    """Check that a lecture URL points at YouTube or Vimeo."""
    if not url:
        return False
    url = url.strip()
    return bool(YOUTUBE_URL_PATTERN.match(url) or VIMEO_URL_PATTERN.match(url))


def next_order(orders: Iterable[int]) -> int:
    """Order value for an item appended after the existing ones."""
    return max(orders, default=0) + 1


def average_rating(ratings: Mapping[str, int] | None) -> float:
    """Arithmetic mean of the ratings, 0 when there are none."""
    if not ratings:
        return 0.0
    return sum(ratings.values()) / len(ratings)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    price DECIMAL,
    discount INT,
    educator_id TEXT,
    is_published BOOLEAN,
    thumbnail_url TEXT,
    enrolled_students SET<TEXT>,
    ratings MAP<TEXT, INT>,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Educator dashboard: "which courses did I create?"
COURSES_BY_EDUCATOR_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_educator (
    educator_id TEXT,
    created_at TIMESTAMP,
    course_id UUID,
    PRIMARY KEY (educator_id, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

# Public catalog: published courses, newest first
COURSES_BY_STATUS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_status (
    status TEXT,
    created_at TIMESTAMP,
    course_id UUID,
    PRIMARY KEY (status, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

COURSE_CHAPTERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_chapters (
    course_id UUID,
    chapter_id UUID,
    title TEXT,
    chapter_order INT,
    created_at TIMESTAMP,
    PRIMARY KEY (course_id, chapter_id)
)
"""

COURSE_LECTURES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_lectures (
    course_id UUID,
    chapter_id UUID,
    lecture_id UUID,
    title TEXT,
    duration INT,
    lecture_url TEXT,
    is_preview_free BOOLEAN,
    lecture_order INT,
    created_at TIMESTAMP,
    PRIMARY KEY ((course_id), chapter_id, lecture_id)
)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    COURSES_BY_EDUCATOR_TABLE_CQL,
    COURSES_BY_STATUS_TABLE_CQL,
    COURSE_CHAPTERS_TABLE_CQL,
    COURSE_LECTURES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Lecture:
    """Leaf content unit: one video with a free-preview flag.

    Attributes:
        id: Lecture UUID
        chapter_id: Owning chapter UUID
        title: Lecture title
        duration: Duration in minutes
        lecture_url: YouTube or Vimeo URL ("" when masked for a viewer)
        is_preview_free: Whether unenrolled viewers may see the URL
        lecture_order: Sort key inside the chapter
    """

    def __init__(
        self,
        chapter_id: UUID,
        title: str,
        lecture_url: str,
        lecture_order: int,
        duration: int = 0,
        is_preview_free: bool = False,
        id: UUID | None = None,
        created_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.chapter_id = chapter_id
        self.title = title.strip()
        self.duration = duration
        self.lecture_url = lecture_url
        self.is_preview_free = is_preview_free
        self.lecture_order = lecture_order
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Lecture":
        """Create Lecture instance from Cassandra row."""
        return cls(
            id=row.lecture_id,
            chapter_id=row.chapter_id,
            title=row.title or "",
            duration=row.duration or 0,
            lecture_url=row.lecture_url or "",
            is_preview_free=bool(row.is_preview_free),
            lecture_order=row.lecture_order or 0,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "lecture_id": self.id,
            "chapter_id": self.chapter_id,
            "title": self.title,
            "duration": self.duration,
            "lecture_url": self.lecture_url,
            "is_preview_free": self.is_preview_free,
            "lecture_order": self.lecture_order,
        }

    def __repr__(self) -> str:
        return f"<Lecture {self.title} #{self.lecture_order}>"


class Chapter:
    """Ordered group of lectures inside a course."""

    def __init__(
        self,
        title: str,
        chapter_order: int,
        id: UUID | None = None,
        lectures: list[Lecture] | None = None,
        created_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.title = title.strip()
        self.chapter_order = chapter_order
        self.lectures = lectures or []
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "Chapter":
        """Create Chapter instance from Cassandra row (lectures attached later)."""
        return cls(
            id=row.chapter_id,
            title=row.title or "",
            chapter_order=row.chapter_order or 0,
            created_at=row.created_at,
        )

    def find_lecture(self, lecture_id: UUID) -> Lecture | None:
        return next((lec for lec in self.lectures if lec.id == lecture_id), None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "chapter_id": self.id,
            "title": self.title,
            "chapter_order": self.chapter_order,
            "lectures": [lecture.to_dict() for lecture in self.lectures],
        }

    def __repr__(self) -> str:
        return f"<Chapter {self.title} #{self.chapter_order} ({len(self.lectures)})>"


class Course:
    """Course aggregate: the course row plus its chapters and lectures.

    Attributes:
        id: Course UUID
        title: Course title
        description: Course description (HTML allowed)
        price: List price
        discount: Discount percentage (0-100)
        educator_id: Identity-provider id of the owning educator
        is_published: Whether the course appears in the public catalog
        thumbnail_url: Secure URL of the uploaded thumbnail
        enrolled_students: User ids enrolled in the course
        ratings: User id -> rating (1-5), one entry per user
        chapters: Owned chapters, each owning its lectures
    """

    def __init__(
        self,
        title: str,
        educator_id: str,
        price: Decimal = Decimal(0),
        discount: int = 0,
        description: str = "",
        is_published: bool = True,
        thumbnail_url: str | None = None,
        id: UUID | None = None,
        enrolled_students: set[str] | None = None,
        ratings: dict[str, int] | None = None,
        chapters: list[Chapter] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.title = title.strip()
        self.description = description
        self.price = price
        self.discount = discount
        self.educator_id = educator_id
        self.is_published = is_published
        self.thumbnail_url = thumbnail_url
        self.enrolled_students = set(enrolled_students or ())
        self.ratings = dict(ratings or {})
        self.chapters = chapters or []
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any, chapters: list[Chapter] | None = None) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            description=row.description or "",
            price=row.price if row.price is not None else Decimal(0),
            discount=row.discount or 0,
            educator_id=row.educator_id,
            is_published=bool(row.is_published),
            thumbnail_url=row.thumbnail_url,
            enrolled_students=row.enrolled_students,
            ratings=row.ratings,
            chapters=chapters,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def status(self) -> str:
        return (
            CourseStatus.PUBLISHED.value
            if self.is_published
            else CourseStatus.DRAFT.value
        )

    @property
    def total_lectures(self) -> int:
        return sum(len(chapter.lectures) for chapter in self.chapters)

    @property
    def lecture_ids(self) -> set[UUID]:
        return {lec.id for chapter in self.chapters for lec in chapter.lectures}

    @property
    def average_rating(self) -> float:
        return average_rating(self.ratings)

    def is_enrolled(self, user_id: str | None) -> bool:
        return user_id is not None and user_id in self.enrolled_students

    def find_chapter(self, chapter_id: UUID) -> Chapter | None:
        return next((ch for ch in self.chapters if ch.id == chapter_id), None)

    def find_lecture(self, lecture_id: UUID) -> Lecture | None:
        for chapter in self.chapters:
            lecture = chapter.find_lecture(lecture_id)
            if lecture is not None:
                return lecture
        return None

    def sorted_content(self) -> list[Chapter]:
        """Chapters by chapter_order, each with lectures by lecture_order.

        Returns copies; the aggregate itself keeps its load order.
        """
        chapters = []
        for chapter in sorted(self.chapters, key=lambda ch: ch.chapter_order):
            sorted_chapter = copy.copy(chapter)
            sorted_chapter.lectures = sorted(
                chapter.lectures, key=lambda lec: lec.lecture_order
            )
            chapters.append(sorted_chapter)
        return chapters

    def for_viewer(self, is_enrolled: bool) -> "Course":
        """Sorted copy of the course as a given viewer may see it.

        Lecture URLs are blanked on every non-preview lecture unless the
        viewer is enrolled. The stored aggregate is never mutated.
        """
        view = copy.deepcopy(self)
        view.chapters = view.sorted_content()
        if not is_enrolled:
            for chapter in view.chapters:
                for lecture in chapter.lectures:
                    if not lecture.is_preview_free:
                        lecture.lecture_url = ""
        return view

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "discount": self.discount,
            "educator_id": self.educator_id,
            "is_published": self.is_published,
            "thumbnail_url": self.thumbnail_url,
            "enrolled_students": sorted(self.enrolled_students),
            "ratings": dict(self.ratings),
            "chapters": [chapter.to_dict() for chapter in self.chapters],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Course {self.title} ({self.status})>"
