"""Pydantic schemas for user records."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from coursehub.core.schemas import SuccessResponse

from .models import User


class UserResponse(BaseModel):
    id: str
    name: str
    email: str | None = None
    image_url: str | None = None
    enrolled_courses: list[UUID] = Field(default_factory=list)
    created_at: datetime | None = None

    @classmethod
    def from_entity(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            image_url=user.image_url,
            enrolled_courses=sorted(user.enrolled_courses, key=str),
            created_at=user.created_at,
        )


class UserEnvelope(SuccessResponse):
    user: UserResponse
