"""Stats, recompute and health check route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.models.schemas import PlayerStatsResponse, RecomputeResponse
from courtside.services import group_service, stats_service
from courtside.services.authorization import Action, AuthenticatedUser, authorize
from courtside.services.recompute_queue import get_recompute_queue

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/stats", response_model=List[PlayerStatsResponse])
async def get_stats(
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Standings of a group from its last recompute.

    Query params:
        group_id: Group; omit for the ungrouped ratings
    """
    authorize(current_user, group_id, Action.VIEW_STATS)
    if group_id is not None:
        await group_service.get_group(session, group_id)
    return await stats_service.get_group_stats(session, group_id)


@router.post("/api/stats/recompute", response_model=RecomputeResponse)
async def recompute_stats(
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Replay a group's whole match log now and store the result."""
    if group_id is not None:
        await group_service.get_group(session, group_id)
    snapshot = await stats_service.recompute_now(current_user, group_id)
    return {
        "status": "completed",
        "group_id": group_id,
        "match_count": snapshot.match_count,
        "player_count": len(snapshot.players),
        "missing_players": sorted(w.player_id for w in snapshot.warnings),
    }


@router.get("/api/stats/status")
async def get_recompute_status(
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """In-flight recompute and recent jobs of a group."""
    authorize(current_user, group_id, Action.VIEW_STATS)
    return await get_recompute_queue().get_status(session, group_id)


@router.get("/api/health")
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {"status": "healthy", "message": "API is running"}
