"""Database models for local user records.

User accounts live in the identity provider; the local row mirrors the
profile fields the marketplace displays and holds the user's side of the
enrollment link.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from coursehub.courses.models import ensure_utc_aware


USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id TEXT PRIMARY KEY,
    name TEXT,
    email TEXT,
    image_url TEXT,
    enrolled_courses SET<UUID>,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Email uniqueness, claimed with IF NOT EXISTS
USERS_BY_EMAIL_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users_by_email (
    email TEXT PRIMARY KEY,
    user_id TEXT
)
"""

USERS_TABLES_CQL = [
    USER_TABLE_CQL,
    USERS_BY_EMAIL_TABLE_CQL,
]


class User:
    """Local user record keyed by the identity-provider id."""

    def __init__(
        self,
        id: str,
        name: str = "",
        email: str | None = None,
        image_url: str | None = None,
        enrolled_courses: set[UUID] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.name = name
        self.email = email.lower().strip() if email else None
        self.image_url = image_url
        self.enrolled_courses = set(enrolled_courses or ())
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User instance from Cassandra row."""
        return cls(
            id=row.id,
            name=row.name or "",
            email=row.email,
            image_url=row.image_url,
            enrolled_courses=row.enrolled_courses,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "image_url": self.image_url,
            "enrolled_courses": sorted(self.enrolled_courses, key=str),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"
