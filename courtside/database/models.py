"""
SQLAlchemy ORM models for the courtside rating system.
"""

from typing import Dict
import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Float,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from courtside.database.db import Base
from courtside.utils.constants import INITIAL_RATING
from courtside.utils.datetime_utils import utcnow


class SystemRole(str, enum.Enum):
    """Platform-wide privilege level."""

    ADMIN = "ADMIN"
    USER = "USER"


class GroupRole(str, enum.Enum):
    """Per-group privilege level held through a membership."""

    GROUP_ADMIN = "GROUP_ADMIN"
    VIEWER = "VIEWER"


class MatchType(str, enum.Enum):
    """Match format enum."""

    SINGLES = "SINGLES"
    DOUBLES = "DOUBLES"


class RecomputeJobStatus(str, enum.Enum):
    """Recompute job status enum."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Group(Base):
    """Isolated tenant scope (league/club)."""

    __tablename__ = "groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_groups_name", "name"),
        {"sqlite_autoincrement": True},
    )


class Player(Base):
    """Player profiles; doubles as the user identity (linked by email)."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True, unique=True)  # Stored lower-cased
    system_role = Column(String, default=SystemRole.USER.value, nullable=False)
    rating = Column(Float, nullable=True)  # Ungrouped rating; None means baseline
    contact_number = Column(String, nullable=True)
    social_media = Column(String, nullable=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    group_memberships = relationship(
        "GroupMembership",
        back_populates="player",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def memberships(self) -> Dict[int, GroupRole]:
        """Map of group id -> group role."""
        return {m.group_id: GroupRole(m.role) for m in self.group_memberships}

    @property
    def effective_rating(self) -> float:
        """Stored rating, or the baseline when none has been computed."""
        return self.rating if self.rating is not None else float(INITIAL_RATING)

    __table_args__ = (
        Index("idx_players_name", "name"),
        Index("idx_players_email", "email"),
        {"sqlite_autoincrement": True},
    )


class GroupMembership(Base):
    """Join table (Player ↔ Group) carrying the group role."""

    __tablename__ = "group_memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    role = Column(String, default=GroupRole.VIEWER.value, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    player = relationship("Player", back_populates="group_memberships")
    group = relationship("Group")

    __table_args__ = (
        UniqueConstraint("group_id", "player_id"),
        Index("idx_group_memberships_group", "group_id"),
        Index("idx_group_memberships_player", "player_id"),
    )


class Venue(Base):
    """Venues; visible from every group, group_id only records authorship."""

    __tablename__ = "venues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    location = Column(String, nullable=True)
    court_count = Column(Integer, nullable=True)
    created_by = Column(Integer, ForeignKey("players.id", ondelete="SET NULL"), nullable=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Match(Base):
    """All match results. Immutable once written; only deleted as a whole."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True)  # None = ungrouped
    date = Column(DateTime(timezone=True), nullable=False)
    sequence = Column(Integer, nullable=False)  # Insertion order within the group scope
    match_type = Column(String, nullable=False)
    # Player ids are kept as JSON (no FK) so history survives player deletion
    team_a = Column(JSON, nullable=False)
    team_b = Column(JSON, nullable=False)
    team_a_names = Column(JSON, nullable=False)  # Names frozen at creation time
    team_b_names = Column(JSON, nullable=False)
    score_a = Column(Integer, nullable=False)
    score_b = Column(Integer, nullable=False)
    venue_id = Column(Integer, nullable=True)
    court_number = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(
        Integer, ForeignKey("players.id", ondelete="SET NULL"), nullable=True
    )  # Player who created the match
    created_at = Column(DateTime(timezone=True), default=utcnow)

    @property
    def frozen_names(self) -> Dict[int, str]:
        """Map of participant id -> name captured when the match was recorded."""
        names = {}
        for ids, labels in ((self.team_a, self.team_a_names), (self.team_b, self.team_b_names)):
            for player_id, label in zip(ids, labels):
                names[player_id] = label
        return names

    __table_args__ = (
        Index("idx_matches_group_order", "group_id", "date", "sequence"),
        Index("idx_matches_created_by", "created_by"),
        {"sqlite_autoincrement": True},
    )


class PlayerGroupStats(Base):
    """Recomputed snapshot row per player per group scope (group_id None = ungrouped)."""

    __tablename__ = "player_group_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # No FK: participants whose player record is gone keep their row, flagged missing
    player_id = Column(Integer, nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)
    display_name = Column(String, nullable=True)
    is_missing = Column(Boolean, default=False, nullable=False)
    rating = Column(Float, default=float(INITIAL_RATING), nullable=False)
    matches_played = Column(Integer, default=0, nullable=False)
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    win_rate = Column(Float, default=0.0, nullable=False)
    avg_points_for = Column(Float, default=0.0, nullable=False)
    avg_points_against = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("player_id", "group_id"),
        Index("idx_player_group_stats_group", "group_id"),
    )


class RatingHistory(Base):
    """Rating after each match for charting, rebuilt on every recompute."""

    __tablename__ = "rating_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    rating_after = Column(Float, nullable=False)
    rating_change = Column(Float, nullable=False)

    __table_args__ = (
        Index("idx_rating_history_player", "player_id"),
        Index("idx_rating_history_match", "match_id"),
        Index("idx_rating_history_group", "group_id"),
    )


class RecomputeJob(Base):
    """Audit trail of recomputations run at the per-group serialization point."""

    __tablename__ = "recompute_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)
    trigger = Column(String, nullable=False)  # 'match_created', 'match_deleted' or 'manual'
    status = Column(
        Enum(RecomputeJobStatus), default=RecomputeJobStatus.RUNNING, nullable=False
    )
    match_count = Column(Integer, nullable=True)
    player_count = Column(Integer, nullable=True)
    started_at = Column(DateTime(timezone=True), default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_recompute_jobs_status", "status"),
        Index("idx_recompute_jobs_group", "group_id"),
    )
