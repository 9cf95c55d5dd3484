"""Pydantic schemas for authentication."""

from pydantic import BaseModel, Field


class AuthenticatedUser(BaseModel):
    """Caller identity taken from a verified session token."""

    id: str = Field(..., min_length=1, description="Identity-provider user id")
    email: str | None = None
