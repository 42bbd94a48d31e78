"""FTC Events API v2.0 client.

Every call goes through the TieredCache when one is configured, so a flaky
upstream degrades to stale data instead of failing the caller.
"""

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import quote

import httpx

from ftcmetrics.cache.tiered import TieredCache
from ftcmetrics.config import Settings
from ftcmetrics.etl.base import UpstreamUnavailable
from ftcmetrics.telemetry.metrics import record_upstream_error, record_upstream_request

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://ftc-api.firstinspires.org/v2.0"

_ENDPOINT_CLASSES = ("events", "teams", "schedule", "matches", "scores", "rankings")


def _endpoint_class(endpoint: str) -> str:
    head = endpoint.lstrip("/").partition("?")[0].partition("/")[0]
    return head if head in _ENDPOINT_CLASSES else "other"


class FTCEventsClient:
    """Async client for the FTC Events API (HTTP Basic auth)."""

    def __init__(
        self,
        username: str,
        token: str,
        season: int,
        cache: Optional[TieredCache] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 20.0,
        max_retries: int = 2,
        retry_delay: float = 2.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.season = season
        self.cache = cache
        self._configured = bool(username and token)
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._auth = httpx.BasicAuth(username, token)
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=timeout,
        )

    @classmethod
    def from_settings(cls, settings: Settings, cache: Optional[TieredCache] = None) -> "FTCEventsClient":
        return cls(
            username=settings.FTC_API_USERNAME,
            token=settings.FTC_API_TOKEN,
            season=settings.FTC_SEASON,
            cache=cache,
            base_url=settings.FTC_API_BASE_URL,
            timeout=settings.FTC_API_TIMEOUT_SECONDS,
            max_retries=settings.FTC_API_MAX_RETRIES,
            retry_delay=settings.FTC_API_RETRY_DELAY_SECONDS,
        )

    async def _request(self, endpoint: str) -> dict:
        """
        Perform one live GET with retries on 429, 5xx and transport errors.

        Raises:
            UpstreamUnavailable: on any failure once retries are exhausted.
        """
        if not self._configured:
            raise UpstreamUnavailable("FTC API credentials not configured")

        url = f"{self._base_url}/{self.season}{endpoint}"
        endpoint_class = _endpoint_class(endpoint)
        last_error: Optional[UpstreamUnavailable] = None

        for attempt in range(self._max_retries + 1):
            if attempt > 0:
                await asyncio.sleep(self._retry_delay * (2 ** (attempt - 1)))

            start_time = time.time()
            try:
                response = await self.client.get(url, auth=self._auth)
            except httpx.TimeoutException as e:
                record_upstream_request(endpoint_class, 0, (time.time() - start_time) * 1000)
                record_upstream_error(endpoint_class, "timeout")
                logger.warning(f"[FTC-API] Timeout on {endpoint} (attempt {attempt + 1}): {e}")
                last_error = UpstreamUnavailable(f"FTC API timeout: {endpoint}")
                continue
            except httpx.RequestError as e:
                record_upstream_request(endpoint_class, 0, (time.time() - start_time) * 1000)
                record_upstream_error(endpoint_class, "request_error")
                logger.warning(f"[FTC-API] Request error on {endpoint} (attempt {attempt + 1}): {e}")
                last_error = UpstreamUnavailable(f"FTC API request error: {e}")
                continue

            latency_ms = (time.time() - start_time) * 1000
            record_upstream_request(endpoint_class, response.status_code, latency_ms)

            if response.status_code == 429:
                record_upstream_error(endpoint_class, "rate_limit")
                logger.warning(f"[FTC-API] Rate limited on {endpoint} (attempt {attempt + 1})")
                last_error = UpstreamUnavailable("FTC API Error: 429 Too Many Requests", status_code=429)
                continue

            if response.status_code >= 500:
                record_upstream_error(endpoint_class, "http_5xx")
                logger.warning(f"[FTC-API] {response.status_code} on {endpoint} (attempt {attempt + 1})")
                last_error = UpstreamUnavailable(
                    f"FTC API Error: {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                )
                continue

            if response.status_code >= 400:
                record_upstream_error(endpoint_class, "http_4xx")
                raise UpstreamUnavailable(
                    f"FTC API Error: {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                )

            try:
                data = response.json()
            except ValueError as e:
                record_upstream_error(endpoint_class, "malformed_body")
                raise UpstreamUnavailable(f"FTC API returned malformed JSON for {endpoint}: {e}")
            if not isinstance(data, dict):
                record_upstream_error(endpoint_class, "malformed_body")
                raise UpstreamUnavailable(f"FTC API returned unexpected body for {endpoint}")
            return data

        raise last_error

    async def _get(self, endpoint: str) -> dict:
        if self.cache is None:
            return await self._request(endpoint)
        return await self.cache.fetch(endpoint, lambda: self._request(endpoint))

    async def get_events(self) -> dict:
        """All events of the season: {"events": [...]}."""
        return await self._get("/events")

    async def get_event(self, event_code: str) -> dict:
        return await self._get(f"/events?eventCode={quote(event_code)}")

    async def get_event_teams(self, event_code: str) -> dict:
        """Teams registered at an event: {"teams": [...]}."""
        return await self._get(f"/teams?eventCode={quote(event_code)}")

    async def get_team(self, team_number: int) -> dict:
        return await self._get(f"/teams?teamNumber={int(team_number)}")

    async def get_team_events(self, team_number: int) -> dict:
        return await self._get(f"/events?teamNumber={int(team_number)}")

    async def get_schedule(self, event_code: str, tournament_level: str = "qual") -> dict:
        """Scheduled matches with stations: {"schedule": [...]}."""
        return await self._get(f"/schedule/{quote(event_code)}?tournamentLevel={tournament_level}")

    async def get_matches(self, event_code: str, tournament_level: str = "qual") -> dict:
        """Played matches with team stations and start times: {"matches": [...]}."""
        return await self._get(f"/matches/{quote(event_code)}?tournamentLevel={tournament_level}")

    async def get_scores(self, event_code: str, tournament_level: str = "qual") -> dict:
        """Per-alliance score breakdowns: {"matchScores": [...]}."""
        return await self._get(f"/scores/{quote(event_code)}/{tournament_level}")

    async def get_rankings(self, event_code: str) -> dict:
        return await self._get(f"/rankings/{quote(event_code)}")

    async def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()
