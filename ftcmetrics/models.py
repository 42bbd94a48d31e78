"""Database models using SQLModel."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FtcTeam(SQLModel, table=True):
    """
    Team metadata cached from the FTC Events API.

    Populated as a byproduct of the rankings computation and used only to
    scope/re-rank a snapshot by geography. Rows are upserted, never replaced
    wholesale.
    """

    __tablename__ = "ftc_teams"

    team_number: int = Field(primary_key=True, description="FTC team number")
    name_short: Optional[str] = Field(default=None, max_length=255)
    name_full: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    state_prov: Optional[str] = Field(default=None, max_length=100, index=True)
    country: Optional[str] = Field(default=None, max_length=100, index=True)
    rookie_year: Optional[int] = Field(default=None)
    fetched_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
        description="When the row was last refreshed from the FTC API",
    )


class Team(SQLModel, table=True):
    """A team known to the scouting side (both scouting teams and scouted robots)."""

    __tablename__ = "teams"

    id: Optional[int] = Field(default=None, primary_key=True)
    team_number: int = Field(unique=True, index=True)
    name: str = Field(max_length=255)


class Match(SQLModel, table=True):
    """
    Persisted match record.

    Used as a fallback source of alliance totals when the FTC API has no
    scores for a match. `score_details` optionally carries the phase breakdown
    in the upstream `alliances` shape.
    """

    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("event_code", "tournament_level", "match_number", name="uq_match_event_level_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    event_code: str = Field(max_length=50, index=True)
    match_number: int = Field(index=True)
    tournament_level: str = Field(max_length=20, default="QUALIFICATION")

    red1: Optional[int] = Field(default=None)
    red2: Optional[int] = Field(default=None)
    blue1: Optional[int] = Field(default=None)
    blue2: Optional[int] = Field(default=None)

    red_score: Optional[int] = Field(default=None, description="NULL if not played")
    blue_score: Optional[int] = Field(default=None, description="NULL if not played")

    score_details: Optional[dict] = Field(
        default=None, sa_column=Column(JSON), description="Phase breakdown per alliance"
    )


class ScoutingEntry(SQLModel, table=True):
    """
    One scouted robot's contribution to one match.

    Deduced entries are synthesized from the official alliance totals minus the
    scouted partner's contribution (see ftcmetrics.scouting.deduction).
    """

    __tablename__ = "scouting_entries"
    __table_args__ = (
        UniqueConstraint(
            "scouting_team_id", "scouted_team_id", "event_code", "match_number",
            name="uq_scouting_entry_match",
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True, max_length=32)
    scouter_id: Optional[str] = Field(default=None, max_length=64)
    scouting_team_id: int = Field(foreign_key="teams.id", index=True)
    scouted_team_id: int = Field(foreign_key="teams.id", index=True)

    event_code: str = Field(max_length=50, index=True)
    match_number: int = Field(index=True)
    alliance: str = Field(max_length=10, description="'RED' or 'BLUE'")

    auto_score: int = Field(default=0)
    teleop_score: int = Field(default=0)
    endgame_score: int = Field(default=0)
    total_score: int = Field(default=0)

    alliance_notes: Optional[str] = Field(default=None)

    # Deduction bookkeeping
    is_deduced: bool = Field(default=False)
    deduced_from_id: Optional[str] = Field(default=None, max_length=32)
    deduction_mode: Optional[str] = Field(
        default=None, max_length=20, description="'phase' or 'total_only' for deduced entries"
    )

    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
