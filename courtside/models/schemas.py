"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, model_validator

from courtside.database.models import GroupRole, MatchType


class GroupCreate(BaseModel):
    """Request to create a group."""

    name: str = Field(..., min_length=1, max_length=100)


class GroupResponse(BaseModel):
    """Group with member count and the caller's role in it."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    member_count: int = 0
    my_role: Optional[GroupRole] = None
    created_at: Optional[datetime] = None


class MembershipResponse(BaseModel):
    group_id: int
    player_id: int
    role: Optional[GroupRole] = None


class PlayerCreate(BaseModel):
    """Request to create a player (admin or group admin)."""

    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    contact_number: Optional[str] = None
    social_media: Optional[str] = None


class ProfileComplete(BaseModel):
    """Self-service profile completion for a login without a player record."""

    name: str = Field(..., min_length=1)
    contact_number: Optional[str] = None
    social_media: Optional[str] = None


class PlayerUpdate(BaseModel):
    """Profile update; only fields that are set are applied."""

    name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    contact_number: Optional[str] = None
    social_media: Optional[str] = None


class PlayerResponse(BaseModel):
    """Player profile."""

    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: Optional[str] = None
    system_role: str
    rating: float
    contact_number: Optional[str] = None
    social_media: Optional[str] = None
    memberships: dict = Field(default_factory=dict)
    joined_at: Optional[datetime] = None


class CreateMatchRequest(BaseModel):
    """Request to record a match."""

    group_id: Optional[int] = None
    date: Optional[datetime] = None
    match_type: MatchType
    team_a: List[int]
    team_b: List[int]
    score_a: int
    score_b: int
    venue_id: Optional[int] = None
    court_number: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_teams_present(self):
        """Ensure both sides have at least one player."""
        if not self.team_a or not self.team_b:
            raise ValueError("Both teams need at least one player")
        return self


class MatchResponse(BaseModel):
    """Recorded match; names come from live players, falling back to the recorded ones."""

    id: int
    group_id: Optional[int] = None
    date: datetime
    sequence: int
    match_type: MatchType
    team_a: List[int]
    team_b: List[int]
    team_a_names: List[str]
    team_b_names: List[str]
    score_a: int
    score_b: int
    winner: int
    venue_id: Optional[int] = None
    court_number: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None


class PlayerStatsResponse(BaseModel):
    """One standings row of a group snapshot."""

    player_id: int
    name: Optional[str] = None
    is_missing: bool = False
    rating: float
    matches_played: int
    wins: int
    losses: int
    win_rate: float
    avg_points_for: float
    avg_points_against: float


class RatingHistoryEntry(BaseModel):
    match_id: int
    date: datetime
    rating_after: float
    rating_change: float


class RecomputeResponse(BaseModel):
    """Result of a manual recompute."""

    status: str
    group_id: Optional[int] = None
    match_count: int
    player_count: int
    missing_players: List[int] = Field(default_factory=list)


class VenueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    location: Optional[str] = None
    court_count: Optional[int] = None
    group_id: Optional[int] = None
