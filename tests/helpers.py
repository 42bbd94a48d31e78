"""Builders for match records and upstream payloads used across tests."""

from typing import Optional

from ftcmetrics.etl.base import AllianceScore, MatchResult


def make_match(
    number: int,
    red: tuple[int, int],
    blue: tuple[int, int],
    red_score: int,
    blue_score: int,
    red_phases: Optional[tuple[int, int, int]] = None,
    blue_phases: Optional[tuple[int, int, int]] = None,
    timestamp: Optional[float] = None,
    event_code: str = "TEST",
) -> MatchResult:
    def alliance(total, phases):
        if phases is None:
            return AllianceScore(total=total)
        return AllianceScore(total=total, auto=phases[0], teleop=phases[1], endgame=phases[2])

    return MatchResult(
        event_code=event_code,
        match_number=number,
        red_team1=red[0],
        red_team2=red[1],
        blue_team1=blue[0],
        blue_team2=blue[1],
        red=alliance(red_score, red_phases),
        blue=alliance(blue_score, blue_phases),
        timestamp=timestamp,
    )


# Four teams with true contributions 10, 20, 30, 40 (total) and
# auto/teleop/endgame splits of 10%, 60%, 30%. Three matches give a
# full-rank system whose least-squares solution is exact.
TRUE_RATINGS = {1: 10, 2: 20, 3: 30, 4: 40}
PAIRINGS = [((1, 2), (3, 4)), ((1, 3), (2, 4)), ((1, 4), (2, 3))]


def exact_event_matches(scale: int = 1, event_code: str = "TEST") -> list[MatchResult]:
    def split(teams):
        total = sum(TRUE_RATINGS[t] for t in teams) * scale
        return total, (total // 10, total * 6 // 10, total * 3 // 10)

    matches = []
    for number, (red, blue) in enumerate(PAIRINGS, start=1):
        red_total, red_phases = split(red)
        blue_total, blue_phases = split(blue)
        matches.append(
            make_match(number, red, blue, red_total, blue_total, red_phases, blue_phases, event_code=event_code)
        )
    return matches


def match_payload(number: int, red: tuple[int, int], blue: tuple[int, int], start: Optional[str] = None) -> dict:
    return {
        "matchNumber": number,
        "tournamentLevel": "QUALIFICATION",
        "startTime": start,
        "actualStartTime": start,
        "teams": [
            {"teamNumber": red[0], "station": "Red1"},
            {"teamNumber": red[1], "station": "Red2"},
            {"teamNumber": blue[0], "station": "Blue1"},
            {"teamNumber": blue[1], "station": "Blue2"},
        ],
    }


def score_payload(
    number: int,
    red_total: int,
    blue_total: int,
    red_teams: tuple[int, int] = (0, 0),
    blue_teams: tuple[int, int] = (0, 0),
    red_phases: Optional[tuple[int, int, int]] = None,
    blue_phases: Optional[tuple[int, int, int]] = None,
) -> dict:
    def alliance(color, total, teams, phases):
        data = {"alliance": color, "totalPoints": total, "team1": teams[0], "team2": teams[1]}
        if phases is not None:
            data.update({"autoPoints": phases[0], "dcPoints": phases[1], "endgamePoints": phases[2]})
        return data

    return {
        "matchLevel": "QUALIFICATION",
        "matchNumber": number,
        "matchSeries": 0,
        "alliances": [
            alliance("Red", red_total, red_teams, red_phases),
            alliance("Blue", blue_total, blue_teams, blue_phases),
        ],
    }
