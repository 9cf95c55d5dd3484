"""HTTP-level tests for the response envelope and route guards."""

from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from coursehub.courses.models import Course
from coursehub.enrollments.service import EnrollmentService


@pytest.fixture
def identity_as():
    """Install an identity provider double reporting the given role."""

    def _install(app, role: str | None) -> Mock:
        identity = Mock()
        identity.get_user_role = AsyncMock(return_value=role)
        identity.set_user_role = AsyncMock()
        app.state.identity_provider = identity
        return identity

    return _install


@pytest.fixture
def rating_client(app, mock_session, mock_course_service) -> TestClient:
    app.state.enrollment_service = EnrollmentService(
        session=mock_session, keyspace="test_ks", course_service=mock_course_service
    )
    return TestClient(app)


class TestDomainErrorEnvelope:
    def test_rating_missing_course(
        self, rating_client: TestClient, auth_headers, student_id: str
    ) -> None:
        response = rating_client.post(
            f"/v1/courses/{uuid4()}/rating",
            json={"rating": 4},
            headers=auth_headers(student_id),
        )

        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "message": "Course not found",
            "code": "course_not_found",
        }

    def test_rating_out_of_range(
        self, rating_client: TestClient, auth_headers, sample_course: Course
    ) -> None:
        response = rating_client.post(
            f"/v1/courses/{sample_course.id}/rating",
            json={"rating": 6},
            headers=auth_headers("user_student_1"),
        )

        body = response.json()
        assert body["success"] is False
        assert body["code"] == "invalid_rating"

    def test_rating_requires_enrollment(
        self, rating_client: TestClient, auth_headers, sample_course: Course
    ) -> None:
        response = rating_client.post(
            f"/v1/courses/{sample_course.id}/rating",
            json={"rating": 5},
            headers=auth_headers("user_student_1"),
        )

        assert response.json()["code"] == "not_enrolled"

    def test_rating_success(
        self,
        rating_client: TestClient,
        auth_headers,
        sample_course: Course,
        student_id: str,
    ) -> None:
        sample_course.enrolled_students.add(student_id)

        response = rating_client.post(
            f"/v1/courses/{sample_course.id}/rating",
            json={"rating": 5},
            headers=auth_headers(student_id),
        )

        body = response.json()
        assert body["success"] is True
        assert body["rating"]["average_rating"] == 5.0
        assert body["rating"]["rating_count"] == 1


class TestAuthentication:
    def test_missing_token_is_401(self, rating_client: TestClient) -> None:
        response = rating_client.post(
            f"/v1/courses/{uuid4()}/rating", json={"rating": 4}
        )

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["success"] is False

    def test_garbage_token_is_401(self, rating_client: TestClient) -> None:
        response = rating_client.post(
            f"/v1/courses/{uuid4()}/rating",
            json={"rating": 4},
            headers={"Authorization": "Bearer not.a.jwt"},
        )

        assert response.status_code == 401

    def test_service_unavailable_without_database(
        self, client: TestClient, auth_headers
    ) -> None:
        response = client.get("/v1/progress", headers=auth_headers("user_1"))

        assert response.status_code == 503


class TestEducatorGate:
    def test_non_educator_gets_unauthorized_envelope(
        self, app, client: TestClient, auth_headers, identity_as
    ) -> None:
        identity_as(app, "student")
        app.state.educator_service = Mock()

        response = client.get("/v1/educator/dashboard", headers=auth_headers("u1"))

        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "message": "Unauthorized Access",
            "code": "unauthorized",
        }

    def test_update_role_sets_claim(
        self, app, client: TestClient, auth_headers, identity_as
    ) -> None:
        identity = identity_as(app, None)

        response = client.post("/v1/educator/update-role", headers=auth_headers("u1"))

        assert response.json()["message"] == "You can publish a course now"
        identity.set_user_role.assert_awaited_once_with("u1", "educator")

    def test_invalid_course_form(
        self, app, client: TestClient, auth_headers, identity_as
    ) -> None:
        identity_as(app, "educator")
        app.state.course_service = Mock()

        response = client.post(
            "/v1/educator/courses",
            data={"course_data": "{not json"},
            headers=auth_headers("u1"),
        )

        assert response.json()["code"] == "invalid_course_data"
