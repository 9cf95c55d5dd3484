"""JWT validation for session tokens issued by the identity provider.

Tokens are minted out of band; the API only verifies them. ``sub`` carries
the identity-provider user id. ``create_access_token`` mints equivalent
tokens for local development and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from coursehub.config.settings import get_settings


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT with ``exp``/``iat`` (and ``iss`` when configured).

    Args:
        data: Payload data, at least {"sub": user_id}
        expires_delta: Token lifetime (default from settings)

    Returns:
        Encoded JWT string
    """
    settings = get_settings()

    now = datetime.now(UTC)
    to_encode = data.copy()
    to_encode.update(
        {
            "exp": now
            + (
                expires_delta
                or timedelta(minutes=settings.auth_access_token_expire_minutes)
            ),
            "iat": now,
        }
    )
    if settings.auth_issuer:
        to_encode.setdefault("iss", settings.auth_issuer)

    return jwt.encode(
        to_encode,
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate a session token.

    Validates signature, expiration and (when configured) issuer, and
    requires a non-empty ``sub`` claim.

    Raises:
        JWTError: If token is invalid, expired or has no subject
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
        issuer=settings.auth_issuer,
        options={"verify_aud": False},
    )

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise JWTError(msg)

    return payload
