"""
Match log persistence.

The log is the only source of truth for ratings: rows are appended or removed
whole, never edited, and always read back in replay order (date, sequence).
Writes only flush; the caller's critical section owns the commit.
"""

from typing import List, Optional, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Match, RatingHistory


class MatchLog(Protocol):
    async def list_matches(self, group_id: Optional[int]) -> List[Match]:
        ...

    async def append_match(self, match: Match) -> Match:
        ...

    async def remove_match(self, match_id: int) -> bool:
        ...


def _scope(column, group_id: Optional[int]):
    if group_id is None:
        return column.is_(None)
    return column == group_id


class SqlMatchLog:
    """Match log stored in the ``matches`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_matches(self, group_id: Optional[int]) -> List[Match]:
        """
        Matches of one group scope in replay order.

        Args:
            group_id: Group ID, or None for ungrouped matches

        Returns:
            List of Match ORM objects ordered by (date, sequence)
        """
        result = await self.session.execute(
            select(Match)
            .where(_scope(Match.group_id, group_id))
            .order_by(Match.date.asc(), Match.sequence.asc())
        )
        return list(result.scalars().all())

    async def list_all(self) -> List[Match]:
        result = await self.session.execute(
            select(Match).order_by(Match.date.asc(), Match.sequence.asc(), Match.id.asc())
        )
        return list(result.scalars().all())

    async def get_match(self, match_id: int) -> Optional[Match]:
        return await self.session.get(Match, match_id)

    async def next_sequence(self, group_id: Optional[int]) -> int:
        result = await self.session.execute(
            select(func.max(Match.sequence)).where(_scope(Match.group_id, group_id))
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def append_match(self, match: Match) -> Match:
        """
        Append a match to the end of its group's log.

        The sequence is assigned here, so this must run while the group's
        recompute lock is held.
        """
        match.sequence = await self.next_sequence(match.group_id)
        self.session.add(match)
        await self.session.flush()
        return match

    async def remove_match(self, match_id: int) -> bool:
        """
        Remove a match and its rating history rows.

        Returns:
            True if a match was removed, False if it did not exist
        """
        await self.session.execute(
            delete(RatingHistory).where(RatingHistory.match_id == match_id)
        )
        result = await self.session.execute(delete(Match).where(Match.id == match_id))
        return result.rowcount > 0
