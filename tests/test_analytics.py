"""Tests for per-event analytics and the rankings refresh job."""

from unittest.mock import AsyncMock, MagicMock

from helpers import PAIRINGS, TRUE_RATINGS, match_payload, score_payload

from ftcmetrics.analytics.service import EventAnalyticsService
from ftcmetrics.config import Settings
from ftcmetrics.rankings.refresh_job import JOB_ID, refresh_rankings
from ftcmetrics.scheduler import build_scheduler, start_scheduler


def event_client(played=True):
    matches, scores = [], []
    if played:
        for number, (red, blue) in enumerate(PAIRINGS, start=1):
            matches.append(match_payload(number, red, blue))
            scores.append(score_payload(
                number,
                sum(TRUE_RATINGS[t] for t in red),
                sum(TRUE_RATINGS[t] for t in blue),
            ))
    client = MagicMock()
    client.get_matches = AsyncMock(return_value={"matches": matches})
    client.get_scores = AsyncMock(return_value={"matchScores": scores})
    client.get_team_events = AsyncMock(return_value={
        "events": [{"code": "USTXCMP", "name": "Texas Championship", "dateStart": "2025-01-30T00:00:00"}]
    })
    return client


class TestEventAnalytics:
    async def test_event_opr_sorted(self):
        service = EventAnalyticsService(event_client())

        result = await service.get_event_opr("USTXCMP")

        assert result["match_count"] == 3
        assert [r["team_number"] for r in result["rankings"]] == [4, 3, 2, 1]
        assert result["rankings"][0]["opr"] == 40.0

    async def test_event_epa(self):
        result = await EventAnalyticsService(event_client()).get_event_epa("USTXCMP")

        assert len(result["rankings"]) == 4
        epas = [r["epa"] for r in result["rankings"]]
        assert epas == sorted(epas, reverse=True)

    async def test_empty_event(self):
        result = await EventAnalyticsService(event_client(played=False)).get_event_opr("USTXCMP")
        assert result == {"event_code": "USTXCMP", "match_count": 0, "rankings": []}

    async def test_team_detail(self):
        service = EventAnalyticsService(event_client())

        detail = await service.get_team_event_analytics(3, "USTXCMP")
        events = await service.get_team_event_analytics(3)

        assert detail["opr"]["opr"] == 30.0
        assert detail["epa"]["match_count"] == 3
        assert events["events"] == [
            {"event_code": "USTXCMP", "name": "Texas Championship", "date_start": "2025-01-30T00:00:00"}
        ]

    async def test_prediction(self):
        result = await EventAnalyticsService(event_client()).predict("USTXCMP", 3, 4, 1, 2)

        assert result["prediction"]["predicted_winner"] == "red"
        assert result["low_confidence"] is False
        assert result["red_alliance"] == {"team1": 3, "team2": 4}

    async def test_prediction_without_data_is_low_confidence(self):
        result = await EventAnalyticsService(event_client(played=False)).predict("USTXCMP", 1, 2, 3, 4)

        assert result["low_confidence"] is True
        assert result["prediction"]["red_win_probability"] == 0.5

    async def test_compare_unknown_team(self):
        result = await EventAnalyticsService(event_client()).compare_teams("USTXCMP", [1, 99])

        assert result["teams"][0]["opr"]["opr"] == 10.0
        assert result["teams"][1] == {"team_number": 99, "opr": None, "epa": None}


class TestRefreshJob:
    async def test_reports_success(self):
        service = MagicMock()
        service.compute_and_cache_rankings = AsyncMock(return_value=object())
        assert await refresh_rankings(service) is True

    async def test_reports_failure(self):
        service = MagicMock()
        service.compute_and_cache_rankings = AsyncMock(return_value=None)
        assert await refresh_rankings(service) is False

    def test_job_registration(self):
        scheduler = build_scheduler(MagicMock(), Settings(RANKINGS_REFRESH_MINUTES=15))

        job = scheduler.get_job(JOB_ID)
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True

    def test_disabled_scheduler_not_started(self):
        assert start_scheduler(MagicMock(), Settings(RANKINGS_SCHEDULER_ENABLED=False)) is None
