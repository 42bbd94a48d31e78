"""Tests for joining upstream match and score payloads."""

from datetime import datetime, timezone

from helpers import match_payload, score_payload

from ftcmetrics.etl.transform import parse_alliance_score, parse_timestamp, transform_matches


class TestParseAllianceScore:
    def test_dc_and_endgame_fields(self):
        score = parse_alliance_score(
            {"alliance": "Red", "totalPoints": 60, "autoPoints": 20, "dcPoints": 30, "endgamePoints": 10}
        )
        assert (score.total, score.auto, score.teleop, score.endgame) == (60, 20, 30, 10)
        assert score.has_phases

    def test_teleop_field_spelling(self):
        score = parse_alliance_score(
            {"totalPoints": 50, "autoPoints": 10, "teleopPoints": 25, "teleopBasePoints": 15}
        )
        assert (score.teleop, score.endgame) == (25, 15)

    def test_total_only(self):
        score = parse_alliance_score({"totalPoints": 42})
        assert score.total == 42
        assert not score.has_phases

    def test_missing_total(self):
        assert parse_alliance_score({"autoPoints": 3}) is None


class TestParseTimestamp:
    def test_naive_is_utc(self):
        expected = datetime(2025, 2, 1, 9, 30, tzinfo=timezone.utc).timestamp()
        assert parse_timestamp("2025-02-01T09:30:00") == expected
        assert parse_timestamp("2025-02-01T09:30:00Z") == expected

    def test_invalid(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("yesterday") is None


class TestTransformMatches:
    def test_joins_on_match_number(self):
        matches = [
            match_payload(1, (1, 2), (3, 4), "2025-02-01T09:00:00"),
            match_payload(2, (1, 3), (2, 4), "2025-02-01T09:10:00"),
        ]
        scores = [
            score_payload(2, 40, 60, red_phases=(4, 24, 12), blue_phases=(6, 36, 18)),
            score_payload(1, 30, 70),
        ]

        results = transform_matches("USTXCMP", matches, scores)

        assert [r.match_number for r in results] == [1, 2]
        first, second = results
        assert first.red_teams == (1, 2)
        assert first.blue_teams == (3, 4)
        assert (first.red_score, first.blue_score) == (30, 70)
        assert not first.has_phases
        assert second.has_phases
        assert second.red.auto == 4
        assert second.timestamp == parse_timestamp("2025-02-01T09:10:00")
        assert second.event_code == "USTXCMP"

    def test_unscored_match_skipped(self):
        matches = [match_payload(1, (1, 2), (3, 4)), match_payload(2, (1, 3), (2, 4))]
        results = transform_matches("E", matches, [score_payload(1, 10, 20)])
        assert [r.match_number for r in results] == [1]

    def test_falls_back_to_score_teams(self):
        match = {"matchNumber": 7, "teams": []}
        score = score_payload(7, 10, 20, red_teams=(11, 12), blue_teams=(13, 14))

        (result,) = transform_matches("E", [match], [score])
        assert result.teams() == (11, 12, 13, 14)

    def test_malformed_alliance_dropped(self):
        match = match_payload(1, (5, 5), (3, 4))
        assert transform_matches("E", [match], [score_payload(1, 10, 20)]) == []

    def test_series_join(self):
        match = dict(match_payload(1, (1, 2), (3, 4)), series=2)
        wrong = dict(score_payload(1, 10, 20), matchSeries=1)
        right = dict(score_payload(1, 50, 60), matchSeries=2)

        (result,) = transform_matches("E", [match], [wrong, right], "playoff")
        assert (result.red_score, result.match_series, result.tournament_level) == (50, 2, "playoff")
