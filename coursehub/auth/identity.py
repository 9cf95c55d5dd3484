"""Identity provider REST client.

The identity provider owns user accounts and the role claim (kept in the
user's public metadata). This client reads and writes that claim and
fetches profiles for the local user record. Role reads are cached in Redis
for a short TTL when Redis is available.
"""

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from coursehub.config.settings import Settings
from coursehub.core.exceptions import IdentityProviderError, NotFoundError
from coursehub.core.redis import role_cache_key


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class IdentityUserNotFoundError(NotFoundError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message, "identity_user_not_found")


class IdentityProfile:
    """User profile as reported by the identity provider."""

    def __init__(
        self,
        id: str,
        name: str,
        email: str | None,
        image_url: str | None,
        role: str | None,
    ):
        self.id = id
        self.name = name
        self.email = email
        self.image_url = image_url
        self.role = role

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "IdentityProfile":
        """Build from the provider's user resource."""
        first = data.get("first_name") or ""
        last = data.get("last_name") or ""
        emails = data.get("email_addresses") or []
        email = emails[0].get("email_address") if emails else None
        metadata = data.get("public_metadata") or {}
        return cls(
            id=data["id"],
            name=f"{first} {last}".strip() or (data.get("username") or ""),
            email=email,
            image_url=data.get("image_url"),
            role=metadata.get("role"),
        )

    def __repr__(self) -> str:
        return f"<IdentityProfile {self.id} role={self.role}>"


class IdentityProvider:
    """Async client for the identity provider's user API."""

    def __init__(
        self,
        settings: Settings,
        redis: "Redis | None" = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.redis = redis
        self._client = httpx.AsyncClient(
            base_url=settings.identity_api_url,
            headers={"Authorization": f"Bearer {settings.identity_api_key or ''}"},
            timeout=settings.identity_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "identity_request_failed", method=method, path=path, error=str(e)
            )
            raise IdentityProviderError from e

        if response.status_code == httpx.codes.NOT_FOUND:
            raise IdentityUserNotFoundError
        if response.is_error:
            logger.error(
                "identity_request_rejected",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise IdentityProviderError(
                f"Identity provider returned {response.status_code}"
            )
        return response.json()

    async def get_user_profile(self, user_id: str) -> IdentityProfile:
        """Fetch a user's profile and role claim."""
        data = await self._request("GET", f"/users/{user_id}")
        return IdentityProfile.from_api(data)

    async def get_user_role(self, user_id: str) -> str | None:
        """Current role claim of a user (``None`` when unset)."""
        cache_ttl = self.settings.identity_role_cache_seconds
        if self.redis and cache_ttl > 0:
            cached = await self.redis.get(role_cache_key(user_id))
            if cached is not None:
                return cached or None

        role = (await self.get_user_profile(user_id)).role

        if self.redis and cache_ttl > 0:
            await self.redis.setex(role_cache_key(user_id), cache_ttl, role or "")
        return role

    async def set_user_role(self, user_id: str, role: str) -> None:
        """Write the role claim into the user's public metadata."""
        await self._request(
            "PATCH",
            f"/users/{user_id}/metadata",
            json={"public_metadata": {"role": role}},
        )
        if self.redis:
            await self.redis.delete(role_cache_key(user_id))
        logger.info("identity_role_updated", target_user_id=user_id, role=role)
