"""
Player (user) management: listing, creation into a group, self-service
profile completion, profile updates and deletion.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import (
    Group, GroupRole, Player, PlayerGroupStats, RatingHistory, SystemRole
)
from courtside.exceptions import AuthorizationDenied, NotFound, ValidationError
from courtside.services.authorization import Action, authorize
from courtside.services.membership_store import SqlMembershipStore
from courtside.services.view_filter import visible_players

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "contact_number", "social_media")


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def player_to_dict(player: Player) -> Dict:
    return {
        "id": player.id,
        "name": player.name,
        "email": player.email,
        "system_role": player.system_role,
        "rating": player.effective_rating,
        "contact_number": player.contact_number,
        "social_media": player.social_media,
        "memberships": {gid: role.value for gid, role in player.memberships.items()},
        "joined_at": player.joined_at,
    }


async def _ensure_email_available(
    session: AsyncSession, email: Optional[str], exclude_player_id: Optional[int] = None
) -> None:
    if email is None:
        return
    existing = await SqlMembershipStore(session).get_user_by_email(email)
    if existing is not None and existing.id != exclude_player_id:
        raise ValidationError(f"email '{email}' is already used by another player")


async def get_player(session: AsyncSession, player_id: int) -> Player:
    player = await session.get(Player, player_id)
    if player is None:
        raise NotFound("player", player_id)
    return player


async def list_players(session: AsyncSession, user, group_id: Optional[int]) -> List[Dict]:
    """Players visible in the active group (all players when none is selected)."""
    authorize(user, group_id, Action.VIEW_PLAYERS)
    if group_id is not None and await session.get(Group, group_id) is None:
        raise NotFound("group", group_id)

    result = await session.execute(select(Player).order_by(Player.name.asc(), Player.id.asc()))
    return [player_to_dict(p) for p in visible_players(result.scalars().all(), group_id)]


async def get_player_by_email(session: AsyncSession, email: str) -> Dict:
    """Lookup used to check whether a login can claim an existing profile."""
    player = await SqlMembershipStore(session).get_user_by_email(email)
    if player is None:
        raise NotFound("player", email)
    return player_to_dict(player)


async def create_player(
    session: AsyncSession,
    user,
    name: str,
    email: Optional[str] = None,
    group_id: Optional[int] = None,
    role: Optional[GroupRole] = None,
    contact_number: Optional[str] = None,
    social_media: Optional[str] = None,
) -> Dict:
    """
    Create a player, optionally as a member of ``group_id``.

    Creating into a group needs MANAGE_PLAYERS there (system admin or that
    group's admin); creating without a group is admin-only.

    Raises:
        AuthorizationDenied, ValidationError, NotFound
    """
    authorize(user, group_id, Action.MANAGE_PLAYERS)
    if role is not None and group_id is None:
        raise ValidationError("a group role needs a group")

    email = normalize_email(email)
    await _ensure_email_available(session, email)

    player = Player(
        name=name.strip(),
        email=email,
        system_role=SystemRole.USER.value,
        contact_number=contact_number,
        social_media=social_media,
        group_memberships=[],
    )
    session.add(player)
    await session.flush()

    if group_id is not None:
        await SqlMembershipStore(session).set_membership(
            player.id, group_id, role or GroupRole.VIEWER
        )

    await session.commit()
    await session.refresh(player)
    logger.info(f"Player {player.id} created by {user.id} (group {group_id})")
    return player_to_dict(player)


async def complete_profile(
    session: AsyncSession,
    user,
    name: str,
    contact_number: Optional[str] = None,
    social_media: Optional[str] = None,
) -> Dict:
    """
    Link the caller's login to a player record.

    An existing player with the login's email is claimed and updated;
    otherwise a new player is created for that email.
    """
    email = normalize_email(user.email)
    if email is None:
        raise ValidationError("the login has no email address to link a profile to")

    store = SqlMembershipStore(session)
    player = await store.get_user(user.id) if user.id is not None else None
    if player is None:
        player = await store.get_user_by_email(email)

    if player is not None:
        authorize(user, None, Action.UPDATE_PROFILE, target=player)
        player.name = name.strip()
        player.contact_number = contact_number
        player.social_media = social_media
    else:
        player = Player(
            name=name.strip(),
            email=email,
            system_role=SystemRole.USER.value,
            contact_number=contact_number,
            social_media=social_media,
            group_memberships=[],
        )
        session.add(player)

    await session.commit()
    await session.refresh(player)
    logger.info(f"Profile completed for {email} (player {player.id})")
    return player_to_dict(player)


async def update_player(
    session: AsyncSession,
    user,
    player_id: int,
    updates: Dict,
    group_id: Optional[int] = None,
) -> Dict:
    """
    Update a player's profile.

    Only name, contact number and social media are self-service; changing the
    email is reserved to system admins.

    Raises:
        NotFound, AuthorizationDenied, ValidationError
    """
    player = await get_player(session, player_id)
    authorize(user, group_id, Action.UPDATE_PROFILE, target=player)

    if "email" in updates:
        new_email = normalize_email(updates["email"])
        if new_email != player.email:
            if not user.is_admin:
                raise AuthorizationDenied("change email", group_id)
            if new_email is None and GroupRole.GROUP_ADMIN in player.memberships.values():
                raise ValidationError("a group admin must have a valid email address")
            await _ensure_email_available(session, new_email, exclude_player_id=player.id)
            player.email = new_email

    for field in PROFILE_FIELDS:
        if field in updates:
            value = updates[field]
            if field == "name":
                if not value or not value.strip():
                    raise ValidationError("name cannot be empty")
                value = value.strip()
            setattr(player, field, value)

    await session.commit()
    await session.refresh(player)
    return player_to_dict(player)


async def delete_player(session: AsyncSession, user, player_id: int) -> bool:
    """
    Delete a player (system admin only).

    Matches are left untouched: they keep the recorded names, and the player is
    reported as missing in stored standings until the next recompute.
    """
    authorize(user, None, Action.DELETE_PLAYER)
    player = await get_player(session, player_id)

    await session.execute(delete(RatingHistory).where(RatingHistory.player_id == player_id))
    await session.execute(
        update(PlayerGroupStats)
        .where(PlayerGroupStats.player_id == player_id)
        .values(is_missing=True)
    )
    await session.delete(player)
    await session.commit()
    logger.info(f"Player {player_id} deleted by {user.id}")
    return True
