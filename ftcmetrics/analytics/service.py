"""Per-event analytics: OPR/EPA tables, team detail, prediction and comparison."""

import asyncio
import logging
from typing import Optional

from ftcmetrics.config import Settings
from ftcmetrics.etl.base import MatchResult
from ftcmetrics.etl.ftc_events import FTCEventsClient
from ftcmetrics.etl.transform import transform_matches
from ftcmetrics.stats.epa import EPAConfig, calculate_epa
from ftcmetrics.stats.opr import calculate_opr
from ftcmetrics.stats.predict import PredictorConfig, predict_match

logger = logging.getLogger(__name__)


class EventAnalyticsService:
    """Runs the estimators over one event's qualification matches."""

    def __init__(
        self,
        client: FTCEventsClient,
        epa_config: Optional[EPAConfig] = None,
        predictor_config: Optional[PredictorConfig] = None,
        ridge_lambda: float = 1e-3,
        condition_limit: float = 1e10,
    ):
        self._client = client
        self._epa_config = epa_config or EPAConfig()
        self._predictor_config = predictor_config or PredictorConfig()
        self._ridge_lambda = ridge_lambda
        self._condition_limit = condition_limit

    @classmethod
    def from_settings(cls, client: FTCEventsClient, settings: Settings) -> "EventAnalyticsService":
        return cls(
            client,
            epa_config=EPAConfig.from_settings(settings),
            predictor_config=PredictorConfig.from_settings(settings),
            ridge_lambda=settings.OPR_RIDGE_LAMBDA,
            condition_limit=settings.OPR_CONDITION_LIMIT,
        )

    async def load_event_matches(self, event_code: str) -> list[MatchResult]:
        """Fetch qual matches and scores concurrently and join them."""
        matches_payload, scores_payload = await asyncio.gather(
            self._client.get_matches(event_code, "qual"),
            self._client.get_scores(event_code, "qual"),
        )
        return transform_matches(
            event_code,
            matches_payload.get("matches") or [],
            scores_payload.get("matchScores") or [],
            "qual",
        )

    def _opr(self, matches: list[MatchResult]) -> dict:
        return calculate_opr(
            matches, ridge_lambda=self._ridge_lambda, condition_limit=self._condition_limit
        )

    async def get_event_opr(self, event_code: str) -> dict:
        matches = await self.load_event_matches(event_code)
        rankings = sorted(self._opr(matches).values(), key=lambda r: (-r.opr, r.team_number))
        return {
            "event_code": event_code,
            "match_count": len(matches),
            "rankings": [r.to_dict() for r in rankings],
        }

    async def get_event_epa(self, event_code: str) -> dict:
        matches = await self.load_event_matches(event_code)
        results = calculate_epa(matches, self._epa_config)
        rankings = sorted(results.values(), key=lambda r: (-r.epa, r.team_number))
        return {
            "event_code": event_code,
            "match_count": len(matches),
            "rankings": [r.to_dict() for r in rankings],
        }

    async def get_team_event_analytics(self, team_number: int, event_code: Optional[str] = None) -> dict:
        """
        OPR and EPA of a team at one event, or the team's event list when no
        event is given.
        """
        if event_code is None:
            payload = await self._client.get_team_events(team_number)
            return {
                "team_number": team_number,
                "events": [
                    {
                        "event_code": e.get("code") or e.get("eventCode"),
                        "name": e.get("name"),
                        "date_start": e.get("dateStart"),
                    }
                    for e in payload.get("events") or []
                ],
            }

        matches = await self.load_event_matches(event_code)
        opr = self._opr(matches).get(team_number)
        epa = calculate_epa(matches, self._epa_config).get(team_number)
        return {
            "team_number": team_number,
            "event_code": event_code,
            "opr": opr.to_dict() if opr else None,
            "epa": epa.to_dict() if epa else None,
        }

    async def predict(self, event_code: str, red1: int, red2: int, blue1: int, blue2: int) -> dict:
        """
        Predict a match from the event's EPA.

        `low_confidence` is set when none of the four teams has played a
        match at the event, in which case the prediction is a coin flip.
        """
        matches = await self.load_event_matches(event_code)
        epa = calculate_epa(matches, self._epa_config)
        prediction = predict_match(epa, red1, red2, blue1, blue2, self._predictor_config)
        low_confidence = all(
            epa.get(team) is None or epa[team].match_count == 0 for team in (red1, red2, blue1, blue2)
        )
        if low_confidence:
            logger.info(f"[ANALYTICS] Low-confidence prediction at {event_code}: no data for any team")
        return {
            "event_code": event_code,
            "red_alliance": {"team1": red1, "team2": red2},
            "blue_alliance": {"team1": blue1, "team2": blue2},
            "prediction": prediction.to_dict(),
            "low_confidence": low_confidence,
        }

    async def compare_teams(self, event_code: str, teams: list[int]) -> dict:
        matches = await self.load_event_matches(event_code)
        opr = self._opr(matches)
        epa = calculate_epa(matches, self._epa_config)
        return {
            "event_code": event_code,
            "teams": [
                {
                    "team_number": team,
                    "opr": opr[team].to_dict() if team in opr else None,
                    "epa": epa[team].to_dict() if team in epa else None,
                }
                for team in teams
            ],
        }
