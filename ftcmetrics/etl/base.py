"""Upstream data transfer objects and errors."""

from dataclasses import dataclass
from typing import Optional


class UpstreamUnavailable(RuntimeError):
    """Raised when the FTC Events API cannot produce a usable response.

    Covers network errors, timeouts, non-2xx statuses, malformed bodies and
    missing credentials.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class AllianceScore:
    """Points scored by one alliance, optionally split by phase."""

    total: int
    auto: Optional[int] = None
    teleop: Optional[int] = None
    endgame: Optional[int] = None

    @property
    def has_phases(self) -> bool:
        return self.auto is not None and self.teleop is not None and self.endgame is not None


@dataclass
class MatchResult:
    """One played 2v2 match with both alliance scores."""

    event_code: str
    match_number: int
    red_team1: int
    red_team2: int
    blue_team1: int
    blue_team2: int
    red: AllianceScore
    blue: AllianceScore
    # --- Fields with defaults ---
    match_series: int = 0
    tournament_level: str = "qual"  # "qual" or "playoff"
    timestamp: Optional[float] = None  # epoch seconds, None when unknown

    @property
    def red_teams(self) -> tuple[int, int]:
        return (self.red_team1, self.red_team2)

    @property
    def blue_teams(self) -> tuple[int, int]:
        return (self.blue_team1, self.blue_team2)

    @property
    def red_score(self) -> int:
        return self.red.total

    @property
    def blue_score(self) -> int:
        return self.blue.total

    @property
    def has_phases(self) -> bool:
        return self.red.has_phases and self.blue.has_phases

    def teams(self) -> tuple[int, int, int, int]:
        return (self.red_team1, self.red_team2, self.blue_team1, self.blue_team2)
