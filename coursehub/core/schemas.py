"""Response envelope shared by the business endpoints."""

from pydantic import BaseModel


class SuccessResponse(BaseModel):
    """Base for successful responses; modules add their payload fields."""

    success: bool = True
    message: str | None = None


class ErrorResponse(BaseModel):
    """Envelope returned for domain errors."""

    success: bool = False
    message: str
    code: str | None = None
