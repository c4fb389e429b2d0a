"""
Membership store contract and its SQLAlchemy implementation.

Role truth lives here: a player's system role and its group-id -> group-role
map. The resolver only reads it; mutations go through ``set_membership``.
"""

import logging
from typing import Dict, Optional, Protocol

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Group, GroupMembership, GroupRole, Player
from courtside.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)


class MembershipStore(Protocol):
    """What the core needs from whoever owns role data."""

    async def get_user(self, user_id: int) -> Optional[Player]:
        ...

    async def get_membership(self, user_id: int, group_id: int) -> Optional[GroupRole]:
        ...

    async def set_membership(
        self, user_id: int, group_id: int, role: Optional[GroupRole]
    ) -> None:
        ...


class SqlMembershipStore:
    """Membership store backed by the players / group_memberships tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: int) -> Optional[Player]:
        """Get a player (user) by id, memberships loaded."""
        return await self.session.get(Player, user_id)

    async def get_user_by_email(self, email: str) -> Optional[Player]:
        """Get the player whose email matches, case-insensitively."""
        if not email:
            return None
        result = await self.session.execute(
            select(Player).where(func.lower(Player.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_membership(self, user_id: int, group_id: int) -> Optional[GroupRole]:
        """Role of a player in a group, or None when not a member."""
        result = await self.session.execute(
            select(GroupMembership.role).where(
                and_(GroupMembership.player_id == user_id, GroupMembership.group_id == group_id)
            )
        )
        role = result.scalar_one_or_none()
        return GroupRole(role) if role is not None else None

    async def list_memberships(self, user_id: int) -> Dict[int, GroupRole]:
        player = await self.get_user(user_id)
        if player is None:
            raise NotFound("player", user_id)
        return player.memberships

    async def set_membership(
        self, user_id: int, group_id: int, role: Optional[GroupRole]
    ) -> None:
        """
        Grant, change or (with role=None) revoke a player's role in a group.

        Raises:
            NotFound: If the player or group does not exist
            ValidationError: If a group admin would have no email address
        """
        player = await self.get_user(user_id)
        if player is None:
            raise NotFound("player", user_id)
        if await self.session.get(Group, group_id) is None:
            raise NotFound("group", group_id)

        if role == GroupRole.GROUP_ADMIN and not (player.email or "").strip():
            raise ValidationError("a group admin must have a valid email address")

        existing = next((m for m in player.group_memberships if m.group_id == group_id), None)
        if role is None:
            if existing is not None:
                player.group_memberships.remove(existing)
                logger.info(f"Removed player {user_id} from group {group_id}")
        elif existing is not None:
            existing.role = GroupRole(role).value
            logger.info(f"Changed player {user_id} role in group {group_id} to {existing.role}")
        else:
            player.group_memberships.append(
                GroupMembership(group_id=group_id, player_id=user_id, role=GroupRole(role).value)
            )
            logger.info(f"Added player {user_id} to group {group_id} as {GroupRole(role).value}")

        await self.session.flush()
