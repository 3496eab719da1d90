"""JWT access token verification.

Tokens are issued by the identity provider in front of this service and
carry the user id in the 'sub' claim.
"""

from __future__ import annotations

from jose import JWTError, jwt
from loguru import logger

from app.config.settings import settings


def decode_access_token(token: str) -> str:
    """Decode and verify a JWT access token.

    Args:
        token: JWT token string

    Returns:
        User ID (string) from token 'sub' claim

    Raises:
        ValueError: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.auth_secret_key,
            algorithms=[settings.auth_algorithm],
        )
    except JWTError as e:
        logger.warning("JWT decode failed", error=str(e))
        raise ValueError("Invalid or expired token") from e

    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Token missing user ID")
    return str(user_id)
