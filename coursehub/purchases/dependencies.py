"""Dependency injection for purchases module."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import PurchaseService


async def get_purchase_service(request: Request) -> PurchaseService:
    """Get purchase service from app state."""
    service = getattr(request.app.state, "purchase_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Purchase service not available",
        )
    return service


PurchaseServiceDep = Annotated[PurchaseService, Depends(get_purchase_service)]
