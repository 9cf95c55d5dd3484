"""User record service layer.

Keeps the local user row in sync with the identity provider's profile
and enforces email uniqueness through the ``users_by_email`` lookup.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from coursehub.core.exceptions import InvalidInputError, NotFoundError

from .models import User


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from coursehub.auth.identity import IdentityProfile, IdentityProvider

logger = structlog.get_logger(__name__)


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message, "user_not_found")


class EmailInUseError(InvalidInputError):
    def __init__(self, message: str = "Email already belongs to another user"):
        super().__init__(message, "email_in_use")


class UserService:
    """Service for local user records."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        ks = self.keyspace
        self._get_user = self.session.prepare(f"SELECT * FROM {ks}.users WHERE id = ?")
        self._insert_user = self.session.prepare(f"""
            INSERT INTO {ks}.users (id, name, email, image_url, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._update_profile = self.session.prepare(f"""
            UPDATE {ks}.users SET name = ?, email = ?, image_url = ?, updated_at = ?
            WHERE id = ?
        """)
        self._claim_email = self.session.prepare(f"""
            INSERT INTO {ks}.users_by_email (email, user_id) VALUES (?, ?)
            IF NOT EXISTS
        """)
        self._release_email = self.session.prepare(f"""
            DELETE FROM {ks}.users_by_email WHERE email = ? IF user_id = ?
        """)

    async def get_user(self, user_id: str) -> User | None:
        result = await self.session.aexecute(self._get_user, [user_id])
        row = result.one()
        return User.from_row(row) if row else None

    async def require_user(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise UserNotFoundError
        return user

    async def _claim(self, email: str, user_id: str) -> None:
        result = await self.session.aexecute(self._claim_email, [email, user_id])
        if result.was_applied:
            return
        owner = result.one()
        if owner is not None and owner.user_id != user_id:
            logger.warning("email_claim_conflict", email=email)
            raise EmailInUseError

    async def sync_profile(self, profile: "IdentityProfile") -> User:
        """Create or refresh the local record from an identity profile.

        Raises:
            EmailInUseError: If another user already holds the email
        """
        existing = await self.get_user(profile.id)
        user = User(
            id=profile.id,
            name=profile.name,
            email=profile.email,
            image_url=profile.image_url,
            enrolled_courses=existing.enrolled_courses if existing else None,
            created_at=existing.created_at if existing else None,
        )
        user.updated_at = datetime.now(UTC)

        if user.email and (existing is None or existing.email != user.email):
            await self._claim(user.email, user.id)
            if existing is not None and existing.email:
                await self.session.aexecute(
                    self._release_email, [existing.email, user.id]
                )

        if existing is None:
            await self.session.aexecute(
                self._insert_user,
                [
                    user.id,
                    user.name,
                    user.email,
                    user.image_url,
                    user.created_at,
                    user.updated_at,
                ],
            )
            logger.info("user_created", target_user_id=user.id)
        else:
            await self.session.aexecute(
                self._update_profile,
                [user.name, user.email, user.image_url, user.updated_at, user.id],
            )
        return user

    async def ensure_user(self, user_id: str, identity: "IdentityProvider") -> User:
        """Local record for a user, synced from the identity provider if absent."""
        user = await self.get_user(user_id)
        if user is not None:
            return user
        return await self.sync_profile(await identity.get_user_profile(user_id))
