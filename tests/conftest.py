"""Shared test fixtures.

Environment defaults are set before anything imports the settings, so the
cached Settings instance sees the test configuration.
"""

import os
import tempfile
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="coursehub-logs-"))
os.environ.setdefault("LOG_REQUESTS", "false")
os.environ.setdefault("AUTH_SECRET_KEY", "test-secret-key-for-coursehub-tests")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_coursehub")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_coursehub")

import pytest  # noqa: E402
from cassandra.cluster import Session  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from coursehub.courses.models import Chapter, Course, Lecture  # noqa: E402


class FakeResult:
    """Stands in for a cassandra ResultSet: iterable, ``one()``, ``was_applied``."""

    def __init__(self, rows=(), applied: bool = True):
        self.rows = list(rows)
        self.was_applied = applied

    def one(self):
        return self.rows[0] if self.rows else None

    def __iter__(self):
        return iter(self.rows)


def row(**fields) -> SimpleNamespace:
    return SimpleNamespace(**fields)


@pytest.fixture
def mock_session():
    """Mock Cassandra session whose prepared statements are the CQL strings."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: cql)
    session.aexecute = AsyncMock(return_value=FakeResult())
    return session


@pytest.fixture
def make_result():
    return FakeResult


@pytest.fixture
def make_row():
    return row


@pytest.fixture
def educator_id() -> str:
    return "user_educator_1"


@pytest.fixture
def student_id() -> str:
    return "user_student_1"


@pytest.fixture
def sample_course(educator_id) -> Course:
    """Published course: two chapters, three lectures, one free preview."""
    intro = Chapter(title="Introduction", chapter_order=1)
    intro.lectures = [
        Lecture(
            chapter_id=intro.id,
            title="Welcome",
            lecture_url="https://youtu.be/welcome",
            lecture_order=1,
            duration=5,
            is_preview_free=True,
        ),
        Lecture(
            chapter_id=intro.id,
            title="Setup",
            lecture_url="https://www.youtube.com/watch?v=setup",
            lecture_order=2,
            duration=12,
        ),
    ]
    basics = Chapter(title="Basics", chapter_order=2)
    basics.lectures = [
        Lecture(
            chapter_id=basics.id,
            title="Variables",
            lecture_url="https://vimeo.com/12345",
            lecture_order=1,
            duration=20,
        ),
    ]
    return Course(
        title="Python for Beginners",
        educator_id=educator_id,
        price=Decimal("99.99"),
        discount=20,
        description="<p>Learn Python</p>",
        thumbnail_url="https://storage.googleapis.com/bucket/thumb.png",
        chapters=[basics, intro],
    )


@pytest.fixture
def mock_course_service(sample_course):
    """CourseService double that serves ``sample_course``."""
    service = Mock()

    async def get_course(course_id):
        return sample_course if course_id == sample_course.id else None

    async def require_course(course_id):
        from coursehub.courses.service import CourseNotFoundError

        if course_id != sample_course.id:
            raise CourseNotFoundError
        return sample_course

    service.get_course = AsyncMock(side_effect=get_course)
    service.require_course = AsyncMock(side_effect=require_course)
    service.list_educator_courses = AsyncMock(return_value=[sample_course])
    return service


@pytest.fixture
def auth_headers():
    """Bearer header factory for a user id."""
    from coursehub.auth.security import create_access_token

    def _headers(user_id: str) -> dict[str, str]:
        token = create_access_token({"sub": user_id, "email": f"{user_id}@test.com"})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def app():
    """Application with services cleared between tests (lifespan is not run)."""
    from coursehub.main import app as application

    yield application

    for name in (
        "course_service",
        "user_service",
        "enrollment_service",
        "progress_service",
        "purchase_service",
        "educator_service",
        "identity_provider",
    ):
        if hasattr(application.state, name):
            delattr(application.state, name)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
