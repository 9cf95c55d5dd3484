"""User API endpoints."""

from fastapi import APIRouter

from coursehub.auth.dependencies import CurrentUser, IdentityProviderDep

from .dependencies import UserServiceDep
from .schemas import UserEnvelope, UserResponse


router = APIRouter(prefix="/v1/users", tags=["Users"])


@router.get(
    "/me",
    response_model=UserEnvelope,
    summary="Get my user data",
)
async def get_me(
    service: UserServiceDep,
    identity: IdentityProviderDep,
    current_user: CurrentUser,
) -> UserEnvelope:
    """Local user record, created from the identity provider on first access."""
    user = await service.ensure_user(current_user.id, identity)
    return UserEnvelope(user=UserResponse.from_entity(user))
