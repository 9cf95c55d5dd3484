"""FastAPI dependencies for progress tracking."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ProgressService


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress service from app state.

    Args:
        request: FastAPI request

    Returns:
        ProgressService instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "progress_service") or not app_state.progress_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return app_state.progress_service


# Type alias for dependency injection
ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]
