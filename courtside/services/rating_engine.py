"""
Rating & statistics engine.
Replays a group's match log from a fixed baseline and computes all statistics.

Nothing here touches the database: the engine is a pure function of the
ordered match log, so running it twice over the same log yields identical
ratings, and deleting a match then replaying is the same as never having
recorded it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from courtside.exceptions import MissingReferenceWarning, ValidationError
from courtside.utils.constants import INITIAL_RATING, K, RATING_SCALE
from courtside.utils.datetime_utils import ensure_utc

logger = logging.getLogger(__name__)


# ============================================================================
# Helper Functions (rating calculations)
# ============================================================================

def expected_score(rating_a: float, rating_b: float) -> float:
    """
    Calculate expected score for side A against side B using the Elo formula.

    Formula: P(A beats B) = 1 / (1 + 10^((rating_B - rating_A) / 400))
    If rating_A > rating_B, result > 0.5 (A is favored)
    """
    return 1 / (1 + 10 ** ((rating_b - rating_a) / RATING_SCALE))


def rating_change(k: float, expected: float, actual: float) -> float:
    """Calculate rating change for one side."""
    return k * (actual - expected)


def team_rating(ratings: Sequence[float]) -> float:
    """A team plays at the mean rating of its players."""
    return sum(ratings) / len(ratings)


def calculate_winner(score_a: int, score_b: int) -> int:
    """
    Determine winner: 1 = team A, 2 = team B.

    Equal scores are rejected when a match is recorded, so seeing one here
    means the log is corrupt.

    Raises:
        ValidationError: If the scores are equal
    """
    if score_a > score_b:
        return 1
    if score_b > score_a:
        return 2
    raise ValidationError(f"tied score {score_a}-{score_b} has no winner")


# ============================================================================
# Match records
# ============================================================================

@dataclass(frozen=True)
class MatchRecord:
    """In-memory match log entry with the same shape as the Match ORM model."""

    id: int
    group_id: Optional[int]
    date: datetime
    sequence: int
    team_a: Tuple[int, ...]
    team_b: Tuple[int, ...]
    score_a: int
    score_b: int
    team_a_names: Tuple[str, ...] = ()
    team_b_names: Tuple[str, ...] = ()


def _frozen_names(match) -> Dict[int, str]:
    names: Dict[int, str] = {}
    for ids, labels in (
        (match.team_a, getattr(match, "team_a_names", None) or ()),
        (match.team_b, getattr(match, "team_b_names", None) or ()),
    ):
        for player_id, label in zip(ids, labels):
            names[player_id] = label
    return names


def replay_order(match) -> Tuple[datetime, int]:
    """Sort key of the match log: date, then insertion sequence."""
    return (ensure_utc(match.date), match.sequence)


def select_group_matches(group_id: Optional[int], matches: Iterable) -> List:
    """Matches of one group scope (None = ungrouped) in replay order."""
    return sorted((m for m in matches if m.group_id == group_id), key=replay_order)


# ============================================================================
# PlayerStats Class
# ============================================================================

class PlayerStats:
    """Encapsulates all statistics for a single player within one group scope."""

    def __init__(self, player_id: int, name: Optional[str] = None):
        self.player_id = player_id
        self.name = name
        self.rating = float(INITIAL_RATING)
        self.matches_played = 0
        self.wins = 0
        self.losses = 0
        self.points_for = 0
        self.points_against = 0
        self.is_missing = False
        self.rating_history: List[Tuple[int, float, float, datetime]] = []  # (match_id, rating_after, change, date)

    @property
    def win_rate(self) -> float:
        """Calculate overall win rate as a ratio."""
        if self.matches_played == 0:
            return 0.0
        return self.wins / self.matches_played

    @property
    def avg_points_for(self) -> float:
        if self.matches_played == 0:
            return 0.0
        return self.points_for / self.matches_played

    @property
    def avg_points_against(self) -> float:
        if self.matches_played == 0:
            return 0.0
        return self.points_against / self.matches_played

    def record_result(self, won: bool, points_for: int, points_against: int) -> None:
        """Record the outcome of one match."""
        self.matches_played += 1
        if won:
            self.wins += 1
        else:
            self.losses += 1
        self.points_for += points_for
        self.points_against += points_against

    def update_rating(self, delta: float, date: datetime, match_id: int) -> None:
        """Update rating and record history."""
        self.rating += delta
        self.rating_history.append((match_id, self.rating, delta, date))

    def to_dict(self) -> Dict:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "rating": self.rating,
            "matches_played": self.matches_played,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": self.win_rate,
            "avg_points_for": self.avg_points_for,
            "avg_points_against": self.avg_points_against,
            "is_missing": self.is_missing,
        }


# ============================================================================
# StatsTracker Class
# ============================================================================

class StatsTracker:
    """Tracks statistics for all players across an ordered run of matches."""

    def __init__(self):
        self.players: Dict[int, PlayerStats] = {}

    def get_player(self, player_id: int) -> PlayerStats:
        """Get or create a player's stats."""
        if player_id not in self.players:
            self.players[player_id] = PlayerStats(player_id)
        return self.players[player_id]

    def process_match(self, match) -> Tuple[float, float]:
        """
        Process a single match and update all relevant statistics.

        Args:
            match: Match ORM object or MatchRecord

        Returns:
            Tuple of (team_a_delta, team_b_delta)
        """
        team_a = [self.get_player(pid) for pid in match.team_a]
        team_b = [self.get_player(pid) for pid in match.team_b]

        # Pre-match ratings of both sides, read before anything is applied
        rating_a = team_rating([p.rating for p in team_a])
        rating_b = team_rating([p.rating for p in team_b])

        winner = calculate_winner(match.score_a, match.score_b)

        for player in team_a:
            player.record_result(winner == 1, match.score_a, match.score_b)
        for player in team_b:
            player.record_result(winner == 2, match.score_b, match.score_a)

        actual_a = 1.0 if winner == 1 else 0.0
        delta = rating_change(K, expected_score(rating_a, rating_b), actual_a)

        for player in team_a:
            player.update_rating(delta, match.date, match.id)
        for player in team_b:
            player.update_rating(-delta, match.date, match.id)

        return (delta, -delta)


# ============================================================================
# Snapshot
# ============================================================================

@dataclass
class GroupSnapshot:
    """Derived ratings and statistics of one group scope."""

    group_id: Optional[int]
    players: Dict[int, PlayerStats] = field(default_factory=dict)
    match_count: int = 0
    rating_deltas: Dict[int, Tuple[float, float]] = field(default_factory=dict)
    warnings: List[MissingReferenceWarning] = field(default_factory=list)

    def get(self, player_id: int) -> PlayerStats:
        """Stats for a player; players with no matches get an empty baseline entry."""
        return self.players.get(player_id) or PlayerStats(player_id)

    def ratings(self) -> Dict[int, float]:
        return {pid: stats.rating for pid, stats in self.players.items()}

    def rating_history(self) -> List[Dict]:
        history = []
        for player_id, stats in self.players.items():
            for match_id, rating_after, change, date in stats.rating_history:
                history.append({
                    "player_id": player_id,
                    "match_id": match_id,
                    "date": date,
                    "rating_after": rating_after,
                    "rating_change": change,
                })
        return history


# ============================================================================
# Main Processing Function
# ============================================================================

def recompute(
    group_id: Optional[int],
    matches: Iterable,
    players: Optional[Mapping[int, str]] = None,
) -> GroupSnapshot:
    """
    Replay every match of a group scope and return the resulting snapshot.

    Args:
        group_id: Group to replay; None replays the ungrouped matches
        matches: Match log (ORM objects or MatchRecord); other groups are ignored
        players: Optional live player id -> name map. When given, ids missing
            from it are reported with the name frozen on the match instead.

    Returns:
        GroupSnapshot for the group
    """
    ordered = select_group_matches(group_id, matches)
    tracker = StatsTracker()
    snapshot = GroupSnapshot(group_id=group_id, match_count=len(ordered))
    first_seen: Dict[int, int] = {}
    frozen: Dict[int, str] = {}

    for match in ordered:
        for player_id, label in _frozen_names(match).items():
            frozen[player_id] = label
        for player_id in list(match.team_a) + list(match.team_b):
            first_seen.setdefault(player_id, match.id)
        snapshot.rating_deltas[match.id] = tracker.process_match(match)

    for player_id, stats in tracker.players.items():
        if players is None:
            stats.name = frozen.get(player_id)
        elif player_id in players:
            stats.name = players[player_id]
        else:
            stats.name = frozen.get(player_id, f"#{player_id}")
            stats.is_missing = True
            warning = MissingReferenceWarning(player_id, first_seen.get(player_id), stats.name)
            logger.warning(str(warning))
            snapshot.warnings.append(warning)

    snapshot.players = tracker.players
    return snapshot


def standings_key(avg_points_for: float, name: Optional[str], player_id: int) -> Tuple:
    """Sort key for display: average points scored (desc), then name, then id."""
    return (-avg_points_for, name or "", player_id)
