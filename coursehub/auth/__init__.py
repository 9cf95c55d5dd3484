"""Authentication and the educator role gate.

Provides:
- Session token verification (tokens issued by the identity provider)
- Identity provider client (role claims and profiles)
- Educator role gate
"""

from .identity import IdentityProfile, IdentityProvider
from .permissions import EDUCATOR_ROLE, become_educator, require_educator_role
from .schemas import AuthenticatedUser


__all__ = [
    "EDUCATOR_ROLE",
    "AuthenticatedUser",
    "IdentityProfile",
    "IdentityProvider",
    "become_educator",
    "require_educator_role",
]
