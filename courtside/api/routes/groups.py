"""Group and membership route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.auth_dependencies import get_current_user
from courtside.database.db import get_db_session
from courtside.database.models import GroupRole
from courtside.models.schemas import GroupCreate, GroupResponse, MembershipResponse
from courtside.services import group_service
from courtside.services.authorization import AuthenticatedUser

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/groups", response_model=List[GroupResponse])
async def list_groups(
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List all groups with the caller's role in each."""
    return await group_service.list_groups(session, current_user)


@router.post("/api/groups", response_model=GroupResponse, status_code=201)
async def create_group(
    payload: GroupCreate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a group (system admin only)."""
    return await group_service.create_group(session, current_user, payload.name)


@router.put("/api/groups/{group_id}/members/{player_id}", response_model=MembershipResponse)
async def set_group_member(
    group_id: int,
    player_id: int,
    role: GroupRole = GroupRole.VIEWER,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Add a player to a group or change its role.

    Query params:
        role: GROUP_ADMIN or VIEWER (default VIEWER)
    """
    return await group_service.set_member_role(session, current_user, group_id, player_id, role)


@router.delete("/api/groups/{group_id}/members/{player_id}", response_model=MembershipResponse)
async def remove_group_member(
    group_id: int,
    player_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a player from a group."""
    return await group_service.set_member_role(session, current_user, group_id, player_id, None)
