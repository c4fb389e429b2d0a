"""
Authorization resolver.

A pure decision procedure over (user, group, action). Client-side role checks
are advisory only; every mutating request is gated here before any shared
state is touched.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from courtside.database.models import GroupRole, SystemRole
from courtside.exceptions import AuthorizationDenied

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    """Actions a caller can request."""

    # Reads
    VIEW_GROUP = "view_group"
    VIEW_PLAYERS = "view_players"
    VIEW_MATCHES = "view_matches"
    VIEW_STATS = "view_stats"
    # Group-scoped mutations
    CREATE_MATCH = "create_match"
    DELETE_MATCH = "delete_match"
    MANAGE_PLAYERS = "manage_players"
    MANAGE_VENUES = "manage_venues"
    RECOMPUTE_STATS = "recompute_stats"
    # Self-service
    UPDATE_PROFILE = "update_profile"
    # System admin only
    CREATE_GROUP = "create_group"
    DELETE_PLAYER = "delete_player"


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


READ_ACTIONS = frozenset({
    Action.VIEW_GROUP,
    Action.VIEW_PLAYERS,
    Action.VIEW_MATCHES,
    Action.VIEW_STATS,
})

GROUP_MUTATIONS = frozenset({
    Action.CREATE_MATCH,
    Action.DELETE_MATCH,
    Action.MANAGE_PLAYERS,
    Action.MANAGE_VENUES,
    Action.RECOMPUTE_STATS,
})

SYSTEM_ACTIONS = frozenset({Action.CREATE_GROUP, Action.DELETE_PLAYER})


@dataclass
class AuthenticatedUser:
    """
    The caller as the resolver sees it.

    ``id`` is the linked player id, or None for a login whose email has no
    player record yet (profile not completed).
    """

    id: Optional[int]
    email: Optional[str]
    system_role: SystemRole = SystemRole.USER
    memberships: Dict[int, GroupRole] = field(default_factory=dict)
    name: Optional[str] = None

    @classmethod
    def from_player(cls, player) -> "AuthenticatedUser":
        return cls(
            id=player.id,
            email=player.email,
            system_role=SystemRole(player.system_role),
            memberships=dict(player.memberships),
            name=player.name,
        )

    @property
    def is_admin(self) -> bool:
        return self.system_role == SystemRole.ADMIN


def _normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def is_own_identity(user, target) -> bool:
    """
    True when ``target`` (a player record) is the user's own profile.

    A linked user matches by player id only, so it can never pass for another
    player id. An unlinked login matches a player record by email.
    """
    if target is None:
        return False
    if user.id is not None:
        return target.id == user.id
    user_email = _normalize_email(user.email)
    return user_email is not None and user_email == _normalize_email(target.email)


def can_perform(user, group_id: Optional[int], action: Action, target=None) -> Decision:
    """
    Decide whether ``user`` may perform ``action`` in ``group_id``.

    Args:
        user: Object with ``id``, ``email``, ``system_role`` and ``memberships``
        group_id: Active group, or None when no group is selected
        action: Requested action
        target: Player record being acted on (used by UPDATE_PROFILE)

    Returns:
        Decision.ALLOW or Decision.DENY
    """
    if user.system_role == SystemRole.ADMIN:
        return Decision.ALLOW

    if action in SYSTEM_ACTIONS:
        return Decision.DENY

    if group_id is None:
        if action == Action.UPDATE_PROFILE:
            return Decision.ALLOW if is_own_identity(user, target) else Decision.DENY
        if action in READ_ACTIONS:
            return Decision.ALLOW
        return Decision.DENY

    role = (user.memberships or {}).get(group_id)
    if role is None:
        return Decision.DENY

    if action == Action.UPDATE_PROFILE:
        return Decision.ALLOW if is_own_identity(user, target) else Decision.DENY

    if action in READ_ACTIONS:
        return Decision.ALLOW

    if role == GroupRole.GROUP_ADMIN and action in GROUP_MUTATIONS:
        return Decision.ALLOW

    return Decision.DENY


def authorize(user, group_id: Optional[int], action: Action, target=None) -> None:
    """
    Enforce ``can_perform``.

    Raises:
        AuthorizationDenied: If the resolver denies the action
    """
    if can_perform(user, group_id, action, target) == Decision.DENY:
        logger.debug(
            f"Denied {action.value} for user {user.id} ({user.email}) in group {group_id}"
        )
        raise AuthorizationDenied(action.value, group_id)
