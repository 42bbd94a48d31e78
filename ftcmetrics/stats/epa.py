"""EPA (Expected Points Added): chronological, recency-weighted team ratings.

Unlike OPR this is path-dependent. Matches are folded in time order and each
team's four component ratings (overall, auto, teleop, endgame) move toward
the per-robot share of its alliance score:

    rating += k * (observed - rating)
    k = max(k_min, k_max * exp(-k_decay * matches_played))

New teams adapt quickly; established teams settle at k_min, which still
weights recent matches above older ones.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Optional

from ftcmetrics.config import Settings
from ftcmetrics.etl.base import MatchResult

logger = logging.getLogger(__name__)

PHASES = ("auto", "teleop", "endgame")
RECENT_WINDOW = 5


@dataclass(frozen=True)
class EPAConfig:
    """Tuning constants for the EPA fold."""

    k_max: float = 0.5
    k_min: float = 0.1
    k_decay: float = 0.1
    trend_window: int = 3
    trend_threshold: float = 0.5
    baseline_mode: str = "dynamic"  # "dynamic" or "fixed"
    baseline_auto: float = 0.0
    baseline_teleop: float = 0.0
    baseline_endgame: float = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "EPAConfig":
        return cls(
            k_max=settings.EPA_K_MAX,
            k_min=settings.EPA_K_MIN,
            k_decay=settings.EPA_K_DECAY,
            trend_window=settings.EPA_TREND_WINDOW,
            trend_threshold=settings.EPA_TREND_THRESHOLD,
            baseline_mode=settings.EPA_BASELINE_MODE,
            baseline_auto=settings.EPA_BASELINE_AUTO,
            baseline_teleop=settings.EPA_BASELINE_TELEOP,
            baseline_endgame=settings.EPA_BASELINE_ENDGAME,
        )

    def k_factor(self, match_count: int) -> float:
        return max(self.k_min, self.k_max * math.exp(-self.k_decay * match_count))


@dataclass
class EPAResult:
    team_number: int
    epa: float = 0.0
    auto_epa: float = 0.0
    teleop_epa: float = 0.0
    endgame_epa: float = 0.0
    match_count: int = 0
    trend: str = "stable"  # "up", "down" or "stable"
    recent_epa: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class _TeamState:
    total: float
    auto: float
    teleop: float
    endgame: float
    match_count: int = 0
    history: list[float] = field(default_factory=list)


def chronological_key(match: MatchResult) -> tuple:
    """
    Sort key: timestamp, then match number.

    Matches without a timestamp sort after timestamped ones. The trailing
    fields make the order total, so the fold never depends on input order.
    """
    return (
        match.timestamp is None,
        match.timestamp or 0.0,
        match.match_number,
        match.match_series,
        match.event_code,
        match.tournament_level,
        match.teams(),
        match.red.total,
        match.blue.total,
    )


def calculate_baseline(matches: list[MatchResult], config: EPAConfig) -> dict[str, float]:
    """Per-robot starting ratings: configured values, or match-set averages in dynamic mode."""
    fixed = {
        "auto": config.baseline_auto,
        "teleop": config.baseline_teleop,
        "endgame": config.baseline_endgame,
    }
    fixed["total"] = sum(fixed.values())
    if config.baseline_mode != "dynamic" or not matches:
        return fixed

    # Alliance scores are split over two robots: sum / (2 alliances * 2 robots)
    baseline = {"total": sum(m.red.total + m.blue.total for m in matches) / (4 * len(matches))}
    phase_matches = [m for m in matches if m.has_phases]
    for phase in PHASES:
        if phase_matches:
            baseline[phase] = sum(
                getattr(m.red, phase) + getattr(m.blue, phase) for m in phase_matches
            ) / (4 * len(phase_matches))
        else:
            baseline[phase] = fixed[phase]
    return baseline


def _trend(state: _TeamState, start: float, config: EPAConfig) -> str:
    window = config.trend_window
    if state.match_count < window:
        return "stable"
    before = state.history[-window - 1] if len(state.history) > window else start
    delta = state.total - before
    if delta > config.trend_threshold:
        return "up"
    if delta < -config.trend_threshold:
        return "down"
    return "stable"


def calculate_epa(matches: list[MatchResult], config: Optional[EPAConfig] = None) -> dict[int, EPAResult]:
    """
    Fold matches in chronological order into per-team EPA results.

    The input order is irrelevant: matches are sorted here before folding.
    """
    config = config or EPAConfig()
    ordered = sorted(matches, key=chronological_key)
    baseline = calculate_baseline(ordered, config)

    states: dict[int, _TeamState] = {}

    def state_for(team: int) -> _TeamState:
        if team not in states:
            states[team] = _TeamState(
                total=baseline["total"],
                auto=baseline["auto"],
                teleop=baseline["teleop"],
                endgame=baseline["endgame"],
            )
        return states[team]

    for match in ordered:
        for teams, score in ((match.red_teams, match.red), (match.blue_teams, match.blue)):
            for team in teams:
                state = state_for(team)
                k = config.k_factor(state.match_count)
                state.total += k * (score.total / 2 - state.total)
                if score.has_phases:
                    state.auto += k * (score.auto / 2 - state.auto)
                    state.teleop += k * (score.teleop / 2 - state.teleop)
                    state.endgame += k * (score.endgame / 2 - state.endgame)
                state.match_count += 1
                state.history.append(state.total)

    results = {}
    for team, state in states.items():
        recent = state.history[-RECENT_WINDOW:]
        results[team] = EPAResult(
            team_number=team,
            epa=round(state.total, 2),
            auto_epa=round(state.auto, 2),
            teleop_epa=round(state.teleop, 2),
            endgame_epa=round(state.endgame, 2),
            match_count=state.match_count,
            trend=_trend(state, baseline["total"], config),
            recent_epa=round(sum(recent) / len(recent), 2) if recent else None,
        )

    logger.debug(f"[EPA] Folded {len(ordered)} matches into {len(results)} team ratings")
    return results


def get_epa_rankings(matches: list[MatchResult], config: Optional[EPAConfig] = None) -> list[EPAResult]:
    """All teams sorted by EPA, highest first."""
    return sorted(calculate_epa(matches, config).values(), key=lambda r: (-r.epa, r.team_number))


def get_team_epa(
    matches: list[MatchResult], team_number: int, config: Optional[EPAConfig] = None
) -> EPAResult:
    """EPA for one team; a zero-baseline result with match_count 0 if it never played."""
    return calculate_epa(matches, config).get(team_number) or EPAResult(team_number=team_number)
