"""
Match orchestration: authorize, validate, then mutate the log and recompute
the affected group under its lock.
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

if TYPE_CHECKING:
    from courtside.models.schemas import CreateMatchRequest
from courtside.database.models import Group, Match, MatchType, Player
from courtside.exceptions import NotFound, ValidationError
from courtside.services import rating_engine
from courtside.services.authorization import Action, authorize
from courtside.services.match_log import SqlMatchLog
from courtside.services.recompute_queue import get_recompute_queue
from courtside.services.view_filter import visible_matches
from courtside.utils.constants import TEAM_SIZE_DOUBLES, TEAM_SIZE_SINGLES
from courtside.utils.datetime_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

TEAM_SIZES = {
    MatchType.SINGLES: TEAM_SIZE_SINGLES,
    MatchType.DOUBLES: TEAM_SIZE_DOUBLES,
}


def match_to_dict(match: Match, live_names: Optional[Dict[int, str]] = None) -> Dict:
    """Serialize a match, preferring live player names over the recorded ones."""
    live_names = live_names or {}
    frozen = match.frozen_names
    return {
        "id": match.id,
        "group_id": match.group_id,
        "date": match.date,
        "sequence": match.sequence,
        "match_type": match.match_type,
        "team_a": list(match.team_a),
        "team_b": list(match.team_b),
        "team_a_names": [live_names.get(pid) or frozen.get(pid, f"#{pid}") for pid in match.team_a],
        "team_b_names": [live_names.get(pid) or frozen.get(pid, f"#{pid}") for pid in match.team_b],
        "score_a": match.score_a,
        "score_b": match.score_b,
        "winner": rating_engine.calculate_winner(match.score_a, match.score_b),
        "venue_id": match.venue_id,
        "court_number": match.court_number,
        "notes": match.notes,
        "created_by": match.created_by,
    }


async def _live_names(session: AsyncSession, player_ids) -> Dict[int, str]:
    ids = set(player_ids)
    if not ids:
        return {}
    result = await session.execute(select(Player.id, Player.name).where(Player.id.in_(ids)))
    return {row.id: row.name for row in result.all()}


async def validate_match(
    session: AsyncSession,
    group_id: Optional[int],
    match_type: MatchType,
    team_a: List[int],
    team_b: List[int],
    score_a: int,
    score_b: int,
) -> Dict[int, Player]:
    """
    Check a match before anything is written.

    Returns:
        Map of participant id -> Player

    Raises:
        ValidationError: On wrong team size, duplicate participant, bad scores
            or unknown player id
        NotFound: If the group does not exist
    """
    expected = TEAM_SIZES[MatchType(match_type)]
    if len(team_a) != expected or len(team_b) != expected:
        raise ValidationError(
            f"{MatchType(match_type).value} matches need {expected} player(s) per team"
        )

    participants = list(team_a) + list(team_b)
    if len(set(participants)) != len(participants):
        raise ValidationError("a player cannot appear twice in the same match")

    if score_a < 0 or score_b < 0:
        raise ValidationError("scores must be non-negative")
    if score_a == score_b:
        raise ValidationError("tied scores are not allowed; a match needs a winner")

    if group_id is not None and await session.get(Group, group_id) is None:
        raise NotFound("group", group_id)

    result = await session.execute(select(Player).where(Player.id.in_(participants)))
    players = {p.id: p for p in result.scalars().all()}
    unknown = [pid for pid in participants if pid not in players]
    if unknown:
        raise ValidationError(f"unknown player id(s): {', '.join(str(pid) for pid in unknown)}")
    return players


async def create_match(session: AsyncSession, user, match_request: 'CreateMatchRequest') -> Dict:
    """
    Record a match in its group and recompute that group.

    Args:
        session: Request database session (reads only)
        user: AuthenticatedUser
        match_request: CreateMatchRequest

    Returns:
        Match dict

    Raises:
        AuthorizationDenied, ValidationError, NotFound, ConcurrencyTimeout
    """
    group_id = match_request.group_id
    authorize(user, group_id, Action.CREATE_MATCH)

    team_a = list(match_request.team_a)
    team_b = list(match_request.team_b)
    players = await validate_match(
        session, group_id, match_request.match_type, team_a, team_b,
        match_request.score_a, match_request.score_b,
    )
    match_date = ensure_utc(match_request.date) if match_request.date else utcnow()

    async def append(critical_session: AsyncSession) -> Match:
        match = Match(
            group_id=group_id,
            date=match_date,
            match_type=MatchType(match_request.match_type).value,
            team_a=team_a,
            team_b=team_b,
            team_a_names=[players[pid].name for pid in team_a],
            team_b_names=[players[pid].name for pid in team_b],
            score_a=match_request.score_a,
            score_b=match_request.score_b,
            venue_id=match_request.venue_id,
            court_number=match_request.court_number,
            notes=match_request.notes,
            created_by=user.id,
        )
        return await SqlMatchLog(critical_session).append_match(match)

    match, _ = await get_recompute_queue().run_serialized(group_id, append, trigger="match_created")
    logger.info(f"Match {match.id} recorded in group {group_id} by player {user.id}")
    return match_to_dict(match, {pid: p.name for pid, p in players.items()})


async def delete_match(session: AsyncSession, user, match_id: int) -> bool:
    """
    Delete a match and recompute its group.

    Raises:
        NotFound: If the match does not exist
        AuthorizationDenied: If the user may not delete matches in its group
    """
    match = await SqlMatchLog(session).get_match(match_id)
    if match is None:
        raise NotFound("match", match_id)
    group_id = match.group_id
    authorize(user, group_id, Action.DELETE_MATCH)

    async def remove(critical_session: AsyncSession) -> bool:
        if not await SqlMatchLog(critical_session).remove_match(match_id):
            # Deleted by a request that held the lock before us
            raise NotFound("match", match_id)
        return True

    await get_recompute_queue().run_serialized(group_id, remove, trigger="match_deleted")
    logger.info(f"Match {match_id} deleted from group {group_id} by player {user.id}")
    return True


async def list_matches(session: AsyncSession, user, group_id: Optional[int]) -> List[Dict]:
    """Matches visible in the active group, in replay order."""
    authorize(user, group_id, Action.VIEW_MATCHES)
    if group_id is not None and await session.get(Group, group_id) is None:
        raise NotFound("group", group_id)

    matches = visible_matches(await SqlMatchLog(session).list_all(), group_id)
    names = await _live_names(session, (pid for m in matches for pid in m.team_a + m.team_b))
    return [match_to_dict(m, names) for m in matches]
