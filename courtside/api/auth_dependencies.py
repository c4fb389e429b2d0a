"""
Authentication dependencies for FastAPI routes.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.db import get_db_session
from courtside.services import auth_service
from courtside.services.authorization import AuthenticatedUser
from courtside.services.membership_store import SqlMembershipStore

security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    """
    Dependency to get the current authenticated user from JWT token.

    The login is linked to a player by ``player_id`` in the token, or else by
    its email. A login without a matching player is returned unlinked
    (id None) so it can still read and complete its profile.

    Raises:
        HTTPException: If token is invalid or the linked player is gone
    """
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid authentication token")

    email = payload.get("email")
    player_id = payload.get("player_id")
    if not email and player_id is None:
        raise _unauthorized("Invalid token payload")

    store = SqlMembershipStore(session)
    if player_id is not None:
        player = await store.get_user(player_id)
        if player is None:
            raise _unauthorized("Player not found")
    else:
        player = await store.get_user_by_email(email)

    if player is None:
        return AuthenticatedUser(id=None, email=email.strip().lower())
    return AuthenticatedUser.from_player(player)
