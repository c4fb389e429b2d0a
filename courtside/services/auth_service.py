"""
Bearer token verification.

Tokens are issued by the external identity provider; the payload carries the
login ``email`` and, once the login is linked to a player, ``player_id``.
create_access_token exists for local development and tests.
"""

import logging
import os
from datetime import timedelta
from typing import Dict, Optional

import jwt

from courtside.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24


def get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET environment variable is required")
    return secret


def create_access_token(
    email: str,
    player_id: Optional[int] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed access token.

    Args:
        email: Login email
        player_id: Linked player id, if any
        expires_delta: Lifetime (default 24 hours)
    """
    now = utcnow()
    payload = {
        "email": email,
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
    }
    if player_id is not None:
        payload["player_id"] = player_id
    return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify a token and return its payload.

    Returns:
        Payload dict, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.PyJWTError as e:
        logger.debug(f"Rejected invalid token: {e}")
        return None
