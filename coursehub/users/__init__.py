"""Local user records mirrored from the identity provider."""

from .models import User
from .router import router
from .service import UserService


__all__ = ["User", "UserService", "router"]
