"""Player route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.database.models import GroupRole
from courtside.models.schemas import (
    PlayerCreate,
    PlayerResponse,
    PlayerUpdate,
    ProfileComplete,
    RatingHistoryEntry,
)
from courtside.services import player_service, stats_service
from courtside.services.authorization import Action, AuthenticatedUser, authorize

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/players", response_model=List[PlayerResponse])
async def list_players(
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List players of the active group.

    Query params:
        group_id: Active group; omit for all players
    """
    return await player_service.list_players(session, current_user, group_id)


@router.get("/api/players/by-email/{email}", response_model=PlayerResponse)
async def get_player_by_email(
    email: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Find the player a login with this email would claim."""
    return await player_service.get_player_by_email(session, email)


@router.post("/api/players", response_model=PlayerResponse, status_code=201)
async def create_player(
    payload: PlayerCreate,
    group_id: Optional[int] = None,
    role: Optional[GroupRole] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a player, optionally directly into a group.

    Query params:
        group_id: Group to add the player to
        role: Role in that group (default VIEWER)
    """
    return await player_service.create_player(
        session,
        current_user,
        name=payload.name,
        email=payload.email,
        group_id=group_id,
        role=role,
        contact_number=payload.contact_number,
        social_media=payload.social_media,
    )


@router.post("/api/players/me", response_model=PlayerResponse)
async def complete_my_profile(
    payload: ProfileComplete,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create or claim the caller's own player profile."""
    return await player_service.complete_profile(
        session,
        current_user,
        name=payload.name,
        contact_number=payload.contact_number,
        social_media=payload.social_media,
    )


@router.put("/api/players/{player_id}", response_model=PlayerResponse)
async def update_player(
    player_id: int,
    payload: PlayerUpdate,
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a profile; only fields present in the body are changed."""
    return await player_service.update_player(
        session, current_user, player_id, payload.model_dump(exclude_unset=True), group_id
    )


@router.delete("/api/players/{player_id}")
async def delete_player(
    player_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a player (system admin only). Its matches are kept."""
    await player_service.delete_player(session, current_user, player_id)
    return {"success": True, "message": "Player deleted"}


@router.get("/api/players/{player_id}/rating-history", response_model=List[RatingHistoryEntry])
async def get_rating_history(
    player_id: int,
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rating after each match of the player in one group scope."""
    authorize(current_user, group_id, Action.VIEW_STATS)
    await player_service.get_player(session, player_id)
    return await stats_service.get_rating_history(session, player_id, group_id)
