"""Match route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.auth_dependencies import get_current_user
from courtside.api.routes import limiter
from courtside.database.db import get_db_session
from courtside.models.schemas import CreateMatchRequest, MatchResponse
from courtside.services import match_service
from courtside.services.authorization import AuthenticatedUser

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/matches", response_model=List[MatchResponse])
async def list_matches(
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    List matches of the active group in replay order.

    Query params:
        group_id: Active group; omit for all matches
    """
    return await match_service.list_matches(session, current_user, group_id)


@router.post("/api/matches", response_model=MatchResponse, status_code=201)
@limiter.limit("30/minute")
async def create_match(
    request: Request,
    match_request: CreateMatchRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Record a match and recompute its group.

    Request body:
        {
            "group_id": 1,            // Optional - omit for an ungrouped match (admin only)
            "date": "2025-11-07T18:00:00Z",  // Optional - defaults to now
            "match_type": "DOUBLES",
            "team_a": [1, 2],
            "team_b": [3, 4],
            "score_a": 21,
            "score_b": 19
        }
    """
    return await match_service.create_match(session, current_user, match_request)


@router.delete("/api/matches/{match_id}")
@limiter.limit("30/minute")
async def delete_match(
    request: Request,
    match_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a match and recompute its group."""
    await match_service.delete_match(session, current_user, match_id)
    return {"success": True, "message": "Match deleted"}
