"""Join upstream match and score payloads into MatchResult records."""

import logging
from datetime import datetime, timezone
from typing import Optional

from ftcmetrics.etl.base import AllianceScore, MatchResult

logger = logging.getLogger(__name__)


def parse_timestamp(value: Optional[str]) -> Optional[float]:
    """ISO-8601 string to epoch seconds. Naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _first_number(alliance: dict, *keys: str) -> Optional[int]:
    for key in keys:
        value = alliance.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return None


def parse_alliance_score(alliance: dict) -> Optional[AllianceScore]:
    """
    Read one entry of a score payload's `alliances` list.

    Newer seasons report `teleopPoints`/`teleopBasePoints` instead of
    `dcPoints`/`endgamePoints`; both spellings are accepted.
    """
    total = _first_number(alliance, "totalPoints")
    if total is None:
        return None
    return AllianceScore(
        total=total,
        auto=_first_number(alliance, "autoPoints"),
        teleop=_first_number(alliance, "dcPoints", "teleopPoints"),
        endgame=_first_number(alliance, "endgamePoints", "teleopBasePoints"),
    )


def find_alliance(score: dict, color: str) -> Optional[dict]:
    """Return the `alliances` entry for "Red" or "Blue" (case-insensitive)."""
    for alliance in score.get("alliances") or []:
        if str(alliance.get("alliance", "")).lower() == color.lower():
            return alliance
    return None


def _stations(match: dict, color: str) -> list[int]:
    teams = []
    for slot in sorted(match.get("teams") or [], key=lambda t: str(t.get("station", ""))):
        if str(slot.get("station", "")).startswith(color) and slot.get("teamNumber"):
            teams.append(int(slot["teamNumber"]))
    return teams


def _valid_pair(teams: list[int]) -> bool:
    return len(teams) == 2 and teams[0] != teams[1]


def transform_matches(
    event_code: str,
    matches: list[dict],
    scores: list[dict],
    tournament_level: str = "qual",
) -> list[MatchResult]:
    """
    Build MatchResult records for every match that has a score.

    Scores are joined on matchNumber (and matchSeries when the match carries
    one). Team numbers come from the match stations, falling back to the
    score's team1/team2. Matches without two distinct teams per alliance are
    dropped.
    """
    by_number: dict[int, dict] = {}
    by_series: dict[tuple[int, int], dict] = {}
    for score in scores:
        number = score.get("matchNumber")
        if number is None:
            continue
        by_number.setdefault(number, score)
        by_series[(number, score.get("matchSeries") or 0)] = score

    results: list[MatchResult] = []
    dropped = 0
    for match in matches:
        number = match.get("matchNumber")
        if number is None:
            continue
        series = match.get("series")
        score = by_series.get((number, series)) if series is not None else by_number.get(number)
        if score is None:
            continue

        red_raw = find_alliance(score, "Red")
        blue_raw = find_alliance(score, "Blue")
        if red_raw is None or blue_raw is None:
            continue
        red = parse_alliance_score(red_raw)
        blue = parse_alliance_score(blue_raw)
        if red is None or blue is None:
            continue

        red_teams = _stations(match, "Red") or [t for t in (red_raw.get("team1"), red_raw.get("team2")) if t]
        blue_teams = _stations(match, "Blue") or [t for t in (blue_raw.get("team1"), blue_raw.get("team2")) if t]
        if not (_valid_pair(red_teams) and _valid_pair(blue_teams)):
            dropped += 1
            continue

        results.append(
            MatchResult(
                event_code=event_code,
                match_number=int(number),
                red_team1=int(red_teams[0]),
                red_team2=int(red_teams[1]),
                blue_team1=int(blue_teams[0]),
                blue_team2=int(blue_teams[1]),
                red=red,
                blue=blue,
                match_series=int(score.get("matchSeries") or series or 0),
                tournament_level=tournament_level,
                timestamp=parse_timestamp(match.get("actualStartTime") or match.get("startTime")),
            )
        )

    if dropped:
        logger.debug(f"[TRANSFORM] {event_code}: dropped {dropped} matches with malformed alliances")
    return results
