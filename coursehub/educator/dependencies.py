"""Dependency injection for educator module."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import EducatorService


async def get_educator_service(request: Request) -> EducatorService:
    """Get educator service from app state."""
    service = getattr(request.app.state, "educator_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Educator service not available",
        )
    return service


EducatorServiceDep = Annotated[EducatorService, Depends(get_educator_service)]
