"""Venue route handlers (read-only)."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.models.schemas import VenueResponse
from courtside.services import venue_service
from courtside.services.authorization import AuthenticatedUser

router = APIRouter()


@router.get("/api/venues", response_model=List[VenueResponse])
async def list_venues(
    group_id: Optional[int] = None,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """All venues; every group sees the same list."""
    return await venue_service.list_venues(session, current_user, group_id)
