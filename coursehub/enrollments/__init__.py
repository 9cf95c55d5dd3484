"""Enrollment and rating ledger module."""

from .router import router
from .service import EnrollmentService, InvalidRatingError, validate_rating


__all__ = [
    "EnrollmentService",
    "InvalidRatingError",
    "router",
    "validate_rating",
]
