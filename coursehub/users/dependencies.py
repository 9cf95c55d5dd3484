"""Dependency injection for users module."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import UserService


async def get_user_service(request: Request) -> UserService:
    """Get user service from app state."""
    service = getattr(request.app.state, "user_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User service not available",
        )
    return service


UserServiceDep = Annotated[UserService, Depends(get_user_service)]
