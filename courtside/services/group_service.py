"""
Group management and membership changes.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Group, GroupMembership, GroupRole
from courtside.exceptions import Conflict, NotFound
from courtside.services.authorization import Action, authorize
from courtside.services.membership_store import SqlMembershipStore

logger = logging.getLogger(__name__)


def group_to_dict(group: Group, member_count: int = 0, my_role: Optional[GroupRole] = None) -> Dict:
    return {
        "id": group.id,
        "name": group.name,
        "member_count": member_count,
        "my_role": my_role.value if my_role else None,
        "created_at": group.created_at,
    }


async def get_group(session: AsyncSession, group_id: int) -> Group:
    group = await session.get(Group, group_id)
    if group is None:
        raise NotFound("group", group_id)
    return group


async def list_groups(session: AsyncSession, user) -> List[Dict]:
    """All groups with member counts and the caller's role in each."""
    authorize(user, None, Action.VIEW_GROUP)
    counts = (
        select(GroupMembership.group_id, func.count(GroupMembership.id).label("member_count"))
        .group_by(GroupMembership.group_id)
        .subquery()
    )
    result = await session.execute(
        select(Group, func.coalesce(counts.c.member_count, 0))
        .outerjoin(counts, counts.c.group_id == Group.id)
        .order_by(Group.name.asc())
    )
    memberships = user.memberships or {}
    return [
        group_to_dict(group, member_count, memberships.get(group.id))
        for group, member_count in result.all()
    ]


async def create_group(session: AsyncSession, user, name: str) -> Dict:
    """
    Create a group (system admin only).

    Raises:
        AuthorizationDenied: If the user is not a system admin
        Conflict: If a group with that name exists
    """
    authorize(user, None, Action.CREATE_GROUP)
    name = name.strip()
    existing = await session.execute(select(Group).where(func.lower(Group.name) == name.lower()))
    if existing.scalar_one_or_none() is not None:
        raise Conflict(f"group '{name}' already exists", code="group_exists")

    group = Group(name=name)
    session.add(group)
    await session.commit()
    await session.refresh(group)
    logger.info(f"Group {group.id} ({group.name}) created by {user.id}")
    return group_to_dict(group)


async def set_member_role(
    session: AsyncSession, user, group_id: int, player_id: int, role: Optional[GroupRole]
) -> Dict:
    """
    Add a player to a group, change its role, or (role=None) remove it.

    Raises:
        AuthorizationDenied: Without MANAGE_PLAYERS in the group
        NotFound: If the group or player does not exist
        ValidationError: If a group admin would have no email
    """
    authorize(user, group_id, Action.MANAGE_PLAYERS)
    await SqlMembershipStore(session).set_membership(player_id, group_id, role)
    await session.commit()
    return {"group_id": group_id, "player_id": player_id, "role": role.value if role else None}
