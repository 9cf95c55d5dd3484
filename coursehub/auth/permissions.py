"""Educator role gate.

Roles are not stored locally: the identity provider's role claim is the
only source of truth, and it is an opaque string. Only the exact value
``"educator"`` grants educator operations.
"""

from typing import TYPE_CHECKING

import structlog

from coursehub.core.exceptions import UnauthorizedError


if TYPE_CHECKING:
    from coursehub.auth.identity import IdentityProvider


logger = structlog.get_logger(__name__)

EDUCATOR_ROLE = "educator"


def is_educator_role(role: str | None) -> bool:
    """True only for the exact educator claim."""
    return role == EDUCATOR_ROLE


async def require_educator_role(identity: "IdentityProvider", user_id: str) -> None:
    """Ask the identity provider for the user's role and demand ``educator``.

    Raises:
        UnauthorizedError: If the role claim is anything else (or missing)
        IdentityProviderError: If the provider cannot be reached
    """
    role = await identity.get_user_role(user_id)
    if not is_educator_role(role):
        logger.warning("educator_role_denied", role=role)
        raise UnauthorizedError


async def become_educator(identity: "IdentityProvider", user_id: str) -> None:
    """Grant the educator role claim to a user."""
    await identity.set_user_role(user_id, EDUCATOR_ROLE)
