"""Tests for local user records synced from the identity provider."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from coursehub.auth.identity import IdentityProfile
from coursehub.users.service import EmailInUseError, UserNotFoundError, UserService


@pytest.fixture
def user_service(mock_session) -> UserService:
    return UserService(session=mock_session, keyspace="test_ks")


@pytest.fixture
def profile(student_id: str) -> IdentityProfile:
    return IdentityProfile(
        id=student_id,
        name="Grace Hopper",
        email="Grace@Test.com",
        image_url="https://img.test/grace.png",
        role=None,
    )


def user_row(make_row, user_id: str, email: str | None, enrolled=None):
    return make_row(
        id=user_id,
        name="Old Name",
        email=email,
        image_url=None,
        enrolled_courses=enrolled,
        created_at=datetime(2026, 1, 1, tzinfo=UTC),
        updated_at=None,
    )


def executed(mock_session, fragment: str) -> list[list]:
    return [
        call.args[1]
        for call in mock_session.aexecute.call_args_list
        if fragment in call.args[0]
    ]


class TestLookup:
    @pytest.mark.asyncio
    async def test_missing_user(self, user_service: UserService) -> None:
        assert await user_service.get_user("nobody") is None

        with pytest.raises(UserNotFoundError):
            await user_service.require_user("nobody")


class TestSyncProfile:
    @pytest.mark.asyncio
    async def test_creates_new_record(
        self, user_service: UserService, mock_session, profile: IdentityProfile
    ) -> None:
        user = await user_service.sync_profile(profile)

        assert user.email == "grace@test.com"
        assert executed(mock_session, "users_by_email (email, user_id)")[0] == [
            "grace@test.com",
            profile.id,
        ]
        [params] = executed(mock_session, "INSERT INTO test_ks.users (")
        assert params[:3] == [profile.id, "Grace Hopper", "grace@test.com"]
        assert params[3] == profile.image_url

    @pytest.mark.asyncio
    async def test_updates_existing_and_keeps_enrollments(
        self,
        user_service: UserService,
        mock_session,
        make_result,
        make_row,
        profile: IdentityProfile,
    ) -> None:
        course_id = uuid4()
        existing = user_row(make_row, profile.id, "grace@test.com", {course_id})
        mock_session.aexecute = AsyncMock(
            side_effect=lambda statement, params=None: make_result(
                [existing] if "SELECT * FROM test_ks.users" in statement else []
            )
        )

        user = await user_service.sync_profile(profile)

        assert user.name == "Grace Hopper"
        assert user.enrolled_courses == {course_id}
        assert user.created_at == existing.created_at
        assert not executed(mock_session, "IF NOT EXISTS")
        assert executed(mock_session, "SET name = ?")

    @pytest.mark.asyncio
    async def test_email_change_moves_claim(
        self,
        user_service: UserService,
        mock_session,
        make_result,
        make_row,
        profile: IdentityProfile,
    ) -> None:
        existing = user_row(make_row, profile.id, "old@test.com")
        mock_session.aexecute = AsyncMock(
            side_effect=lambda statement, params=None: make_result(
                [existing] if "SELECT * FROM test_ks.users" in statement else []
            )
        )

        await user_service.sync_profile(profile)

        assert executed(mock_session, "IF NOT EXISTS")[0][0] == "grace@test.com"
        assert executed(mock_session, "IF user_id = ?")[0] == [
            "old@test.com",
            profile.id,
        ]

    @pytest.mark.asyncio
    async def test_email_held_by_someone_else(
        self,
        user_service: UserService,
        mock_session,
        make_result,
        make_row,
        profile: IdentityProfile,
    ) -> None:
        async def aexecute(statement, params=None):
            if "IF NOT EXISTS" in statement:
                return make_result([make_row(user_id="user_other")], applied=False)
            return make_result()

        mock_session.aexecute = AsyncMock(side_effect=aexecute)

        with pytest.raises(EmailInUseError):
            await user_service.sync_profile(profile)

        assert not executed(mock_session, "INSERT INTO test_ks.users (")


class TestEnsureUser:
    @pytest.mark.asyncio
    async def test_existing_user_skips_provider(
        self,
        user_service: UserService,
        mock_session,
        make_result,
        make_row,
        student_id: str,
    ) -> None:
        mock_session.aexecute = AsyncMock(
            return_value=make_result([user_row(make_row, student_id, "s@test.com")])
        )
        identity = Mock()
        identity.get_user_profile = AsyncMock()

        user = await user_service.ensure_user(student_id, identity)

        assert user.id == student_id
        identity.get_user_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_user_synced_from_provider(
        self, user_service: UserService, profile: IdentityProfile
    ) -> None:
        identity = Mock()
        identity.get_user_profile = AsyncMock(return_value=profile)

        user = await user_service.ensure_user(profile.id, identity)

        assert user.name == "Grace Hopper"
        identity.get_user_profile.assert_awaited_once_with(profile.id)
