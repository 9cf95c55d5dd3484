"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user extraction from the bearer session token
- Identity provider client
- Educator role gate
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from coursehub.auth.identity import IdentityProvider
from coursehub.auth.permissions import require_educator_role
from coursehub.auth.schemas import AuthenticatedUser
from coursehub.auth.security import decode_access_token
from coursehub.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def _user_from_token(token: str) -> AuthenticatedUser:
    payload = decode_access_token(token)
    user_id = payload["sub"]
    set_user_id(user_id)
    return AuthenticatedUser(id=user_id, email=payload.get("email"))


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> AuthenticatedUser:
    """Get current authenticated user from the session token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return _user_from_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user_optional(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> AuthenticatedUser | None:
    """Current user if a valid token was sent, None otherwise."""
    if not token:
        return None
    try:
        return _user_from_token(token)
    except JWTError:
        return None


async def get_identity_provider(request: Request) -> IdentityProvider:
    """Get identity provider client from app state."""
    identity = getattr(request.app.state, "identity_provider", None)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity provider not available",
        )
    return identity


IdentityProviderDep = Annotated[IdentityProvider, Depends(get_identity_provider)]

CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
OptionalUser = Annotated[AuthenticatedUser | None, Depends(get_current_user_optional)]


async def get_current_educator(
    user: CurrentUser,
    identity: IdentityProviderDep,
) -> AuthenticatedUser:
    """Authenticated user whose role claim is ``educator``.

    Raises:
        UnauthorizedError: Rendered as the error envelope by the app handler
    """
    await require_educator_role(identity, user.id)
    return user


EducatorUser = Annotated[AuthenticatedUser, Depends(get_current_educator)]
