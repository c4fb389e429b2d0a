"""
Group-scoped view filter.

Projects the shared player and match catalog down to what an active group
shows. The active group is always passed in explicitly; None means no group
is selected and nothing is filtered.
"""

from typing import Iterable, List, Optional


def visible_players(all_players: Iterable, group_id: Optional[int]) -> List:
    """Players holding a membership in ``group_id`` (all players when None)."""
    if group_id is None:
        return list(all_players)
    return [p for p in all_players if group_id in (p.memberships or {})]


def visible_matches(all_matches: Iterable, group_id: Optional[int]) -> List:
    """Matches recorded in ``group_id`` (all matches when None)."""
    if group_id is None:
        return list(all_matches)
    return [m for m in all_matches if m.group_id == group_id]


def visible_venues(all_venues: Iterable, group_id: Optional[int]) -> List:
    """Venues are shared by every group; the group only records who created one."""
    return list(all_venues)
