"""Educator role upgrade, course creation and dashboard."""

from .router import router
from .service import EducatorService


__all__ = ["EducatorService", "router"]
