"""
Snapshot persistence for the rating engine.

recompute_group_stats is registered as the recompute queue's callback and
always runs inside a group's critical section; it never commits.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import and_, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database.models import Player, PlayerGroupStats, RatingHistory
from courtside.services import rating_engine
from courtside.services.authorization import Action, authorize
from courtside.services.match_log import SqlMatchLog
from courtside.services.recompute_queue import get_recompute_queue
from courtside.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


def _scope(column, group_id: Optional[int]):
    return column.is_(None) if group_id is None else column == group_id


async def load_player_names(session: AsyncSession) -> Dict[int, str]:
    """Live player id -> name map."""
    result = await session.execute(select(Player.id, Player.name))
    return {row.id: row.name for row in result.all()}


async def recompute_group_stats(
    session: AsyncSession, group_id: Optional[int]
) -> rating_engine.GroupSnapshot:
    """
    Replay a group's match log and replace its stored snapshot.

    Args:
        session: Session of the critical section
        group_id: Group scope to rebuild (None = ungrouped)

    Returns:
        The GroupSnapshot that was written
    """
    matches = await SqlMatchLog(session).list_matches(group_id)
    players = await load_player_names(session)
    snapshot = rating_engine.recompute(group_id, matches, players)

    # Snapshot rows are derived data: drop and rebuild
    await session.execute(delete(PlayerGroupStats).where(_scope(PlayerGroupStats.group_id, group_id)))
    await session.execute(delete(RatingHistory).where(_scope(RatingHistory.group_id, group_id)))

    now = utcnow()
    for player_id, stats in snapshot.players.items():
        session.add(PlayerGroupStats(
            player_id=player_id,
            group_id=group_id,
            display_name=stats.name,
            is_missing=stats.is_missing,
            rating=stats.rating,
            matches_played=stats.matches_played,
            wins=stats.wins,
            losses=stats.losses,
            win_rate=stats.win_rate,
            avg_points_for=stats.avg_points_for,
            avg_points_against=stats.avg_points_against,
            updated_at=now,
        ))

    for entry in snapshot.rating_history():
        if entry["player_id"] not in players:
            continue
        session.add(RatingHistory(group_id=group_id, **entry))

    if group_id is None:
        # Ungrouped ratings also live on the player record
        await session.execute(update(Player).values(rating=None))
        for player_id, rating in snapshot.ratings().items():
            if player_id in players:
                await session.execute(
                    update(Player).where(Player.id == player_id).values(rating=rating)
                )

    await session.flush()
    if snapshot.warnings:
        logger.warning(
            f"Recompute of group {group_id} replayed {len(snapshot.warnings)} missing player(s)"
        )
    return snapshot


async def get_group_stats(session: AsyncSession, group_id: Optional[int]) -> List[Dict]:
    """
    Stored snapshot of a group scope as standings.

    Ordered by average points scored (desc), then name. Names are read from the
    live player when it still exists.
    """
    result = await session.execute(
        select(PlayerGroupStats, Player.name)
        .outerjoin(Player, Player.id == PlayerGroupStats.player_id)
        .where(_scope(PlayerGroupStats.group_id, group_id))
    )
    rows = []
    for stats, live_name in result.all():
        rows.append({
            "player_id": stats.player_id,
            "name": live_name or stats.display_name,
            "is_missing": live_name is None,
            "rating": stats.rating,
            "matches_played": stats.matches_played,
            "wins": stats.wins,
            "losses": stats.losses,
            "win_rate": stats.win_rate,
            "avg_points_for": stats.avg_points_for,
            "avg_points_against": stats.avg_points_against,
        })
    rows.sort(key=lambda r: rating_engine.standings_key(r["avg_points_for"], r["name"], r["player_id"]))
    return rows


async def get_rating_history(
    session: AsyncSession, player_id: int, group_id: Optional[int]
) -> List[Dict]:
    result = await session.execute(
        select(RatingHistory)
        .where(and_(RatingHistory.player_id == player_id, _scope(RatingHistory.group_id, group_id)))
        .order_by(RatingHistory.date.asc(), RatingHistory.id.asc())
    )
    return [
        {
            "match_id": h.match_id,
            "date": h.date,
            "rating_after": h.rating_after,
            "rating_change": h.rating_change,
        }
        for h in result.scalars().all()
    ]


async def recompute_now(user, group_id: Optional[int]) -> rating_engine.GroupSnapshot:
    """
    Manual full recompute of a group through the serialization point.

    Raises:
        AuthorizationDenied: If the user may not recompute this group
        ConcurrencyTimeout: If the group lock is not acquired in time
    """
    authorize(user, group_id, Action.RECOMPUTE_STATS)
    _, snapshot = await get_recompute_queue().run_serialized(group_id, trigger="manual")
    return snapshot


def register_recompute_callback() -> None:
    """Wire the snapshot writer into the global recompute queue."""
    get_recompute_queue().register_recompute_callback(recompute_group_stats)
