"""
Global season rankings.

Pipeline (one run):

    fetch events -> keep past competition events -> batch-fetch match data
    -> merge chronologically -> EPA -> persist team locations
    -> per-event OPR averaged across events -> write both snapshots

EPA is folded over one time-ordered stream of every match of the season.
OPR is solved per event, where alliance composition is well-posed, and then
averaged with equal weight per event (not per match).

Snapshots are only written once both are complete; a failed run leaves the
previous snapshots in place.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ftcmetrics.cache.store import KeyValueStore
from ftcmetrics.config import Settings
from ftcmetrics.etl.base import MatchResult, UpstreamUnavailable
from ftcmetrics.etl.ftc_events import FTCEventsClient
from ftcmetrics.etl.transform import transform_matches
from ftcmetrics.models import FtcTeam, utcnow
from ftcmetrics.rankings.snapshot import (
    OprRankingEntry,
    RankingEntry,
    RankingsSnapshot,
    position,
)
from ftcmetrics.results import ErrorKind, Result
from ftcmetrics.stats.epa import EPAConfig, get_epa_rankings
from ftcmetrics.stats.opr import calculate_opr
from ftcmetrics.telemetry.metrics import record_rankings_refresh
from ftcmetrics.telemetry.sentry import capture_exception

logger = logging.getLogger(__name__)

EPA_SNAPSHOT_KEY = "ftcmetrics:rankings:epa"
OPR_SNAPSHOT_KEY = "ftcmetrics:rankings:opr"

ERR_NOT_COMPUTED = "Rankings not yet computed. Please try again shortly."
ERR_TEAM_NOT_FOUND = "Team not found in rankings"

T = TypeVar("T")
R = TypeVar("R")


class LookupStatus(str, Enum):
    OK = "ok"
    NOT_COMPUTED = "not_computed"
    NOT_FOUND = "team_not_found"


@dataclass
class LookupResult:
    status: LookupStatus
    data: Optional[dict] = None
    error: Optional[str] = None


async def fetch_in_batches(
    items: list[T], batch_size: int, fn: Callable[[T], Awaitable[R]]
) -> list[R]:
    """Run `fn` over `items`, at most `batch_size` concurrently, preserving order."""
    results: list[R] = []
    for i in range(0, len(items), batch_size):
        batch = items[i:i + batch_size]
        results.extend(await asyncio.gather(*(fn(item) for item in batch)))
    return results


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def event_code_of(event: dict) -> Optional[str]:
    return event.get("code") or event.get("eventCode")


def filter_past_competition_events(
    events: list[dict], now: datetime, excluded_types: list[str]
) -> list[dict]:
    """Events that have ended and whose type is not off-season, scrimmage, etc."""
    eligible = []
    for event in events:
        end = _parse_date(event.get("dateEnd"))
        if end is None or end >= now:
            continue
        type_name = str(event.get("typeName") or event.get("type") or "").lower()
        if any(excluded in type_name for excluded in excluded_types):
            continue
        if not event_code_of(event):
            continue
        eligible.append(event)
    return eligible


def average_event_oprs(
    event_matches: list[list[MatchResult]], ridge_lambda: float, condition_limit: float
) -> list[OprRankingEntry]:
    """Solve OPR per event and average each team's values over its events."""
    sums: dict[int, dict[str, float]] = {}
    for matches in event_matches:
        played: dict[int, int] = {}
        for match in matches:
            for team in match.teams():
                played[team] = played.get(team, 0) + 1

        for team, result in calculate_opr(
            matches, ridge_lambda=ridge_lambda, condition_limit=condition_limit
        ).items():
            acc = sums.setdefault(
                team, {"opr": 0.0, "auto": 0.0, "teleop": 0.0, "endgame": 0.0, "events": 0, "matches": 0}
            )
            acc["opr"] += result.opr
            acc["auto"] += result.auto_opr
            acc["teleop"] += result.teleop_opr
            acc["endgame"] += result.endgame_opr
            acc["events"] += 1
            acc["matches"] += played.get(team, 0)

    averaged = [
        OprRankingEntry(
            rank=0,
            team_number=team,
            opr=round(acc["opr"] / acc["events"], 2),
            auto_opr=round(acc["auto"] / acc["events"], 2),
            teleop_opr=round(acc["teleop"] / acc["events"], 2),
            endgame_opr=round(acc["endgame"] / acc["events"], 2),
            match_count=int(acc["matches"]),
        )
        for team, acc in sums.items()
    ]
    averaged.sort(key=lambda e: (-e.opr, e.team_number))
    for i, entry in enumerate(averaged, start=1):
        entry.rank = i
    return averaged


class RankingsService:
    """Computes, caches and serves the global EPA and OPR rankings."""

    def __init__(
        self,
        client: FTCEventsClient,
        store: Optional[KeyValueStore],
        session_factory,
        settings: Settings,
        epa_config: Optional[EPAConfig] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._client = client
        self._store = store
        self._session_factory = session_factory
        self._settings = settings
        self._epa_config = epa_config or EPAConfig.from_settings(settings)
        self._now = now
        self._compute_lock = asyncio.Lock()
        # Last computed snapshots; the only copy when no store is configured.
        self._latest: dict[str, RankingsSnapshot] = {}

    # -------------------------------------------------------------------------
    # Upstream collection
    # -------------------------------------------------------------------------

    async def _fetch_event_matches(self, event_code: str) -> Optional[list[MatchResult]]:
        """Qualification matches of one event, or None if unavailable or empty."""
        try:
            matches_payload, scores_payload = await asyncio.gather(
                self._client.get_matches(event_code, "qual"),
                self._client.get_scores(event_code, "qual"),
            )
        except UpstreamUnavailable as e:
            logger.warning(f"[RANKINGS] Failed to fetch matches for event {event_code}: {e}")
            return None

        matches = matches_payload.get("matches") or []
        scores = scores_payload.get("matchScores") or []
        if not matches or not scores:
            return None
        results = transform_matches(event_code, matches, scores, "qual")
        return results or None

    async def _fetch_event_teams(self, event_code: str) -> list[dict]:
        try:
            payload = await self._client.get_event_teams(event_code)
        except UpstreamUnavailable as e:
            logger.warning(f"[RANKINGS] Failed to fetch teams for event {event_code}: {e}")
            return []
        return payload.get("teams") or []

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def persist_team_locations(self, teams: dict[int, dict]) -> Result[int]:
        """Upsert team metadata in batches. Returns the number of rows written."""
        written = 0
        items = list(teams.items())
        batch_size = self._settings.RANKINGS_UPSERT_BATCH_SIZE
        try:
            async with self._session_factory() as session:
                for i in range(0, len(items), batch_size):
                    for team_number, info in items[i:i + batch_size]:
                        row = await session.get(FtcTeam, team_number)
                        if row is None:
                            row = FtcTeam(team_number=team_number)
                            session.add(row)
                        row.name_short = info.get("nameShort")
                        row.name_full = info.get("nameFull")
                        row.city = info.get("city")
                        row.state_prov = info.get("stateProv")
                        row.country = info.get("country")
                        row.rookie_year = info.get("rookieYear")
                        row.fetched_at = utcnow()
                        written += 1
                    await session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"[RANKINGS] Team location upsert failed after {written} rows: {e}")
            return Result.failure(ErrorKind.BACKEND, str(e))
        return Result.success(written)

    async def _locations(self) -> dict[int, tuple[Optional[str], Optional[str]]]:
        """Team number -> (country, state). Empty when the database is unavailable."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(FtcTeam.team_number, FtcTeam.country, FtcTeam.state_prov)
                )
                return {row[0]: (row[1], row[2]) for row in result.all()}
        except SQLAlchemyError as e:
            logger.warning(f"[RANKINGS] Team location read failed: {e}")
            return {}

    # -------------------------------------------------------------------------
    # Snapshot storage
    # -------------------------------------------------------------------------

    @staticmethod
    def _key(metric: str) -> str:
        return EPA_SNAPSHOT_KEY if metric == "epa" else OPR_SNAPSHOT_KEY

    async def _read_snapshot(self, metric: str) -> Optional[RankingsSnapshot]:
        if self._store is None:
            return self._latest.get(metric)
        result = await self._store.get(self._key(metric))
        if not result.ok:
            logger.warning(
                f"[RANKINGS] Store read failed for {metric} snapshot ({result.error}); "
                f"using in-process copy"
            )
            return self._latest.get(metric)
        if result.value is None:
            return None
        try:
            return RankingsSnapshot.from_json(result.value)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[RANKINGS] Discarding undecodable {metric} snapshot: {e}")
            return None

    async def _write_snapshots(self, *snapshots: RankingsSnapshot) -> None:
        for snapshot in snapshots:
            self._latest[snapshot.metric] = snapshot
            if self._store is None:
                continue
            result = await self._store.set(
                self._key(snapshot.metric),
                snapshot.to_json(),
                ttl_seconds=self._settings.RANKINGS_SNAPSHOT_TTL,
            )
            if not result.ok:
                logger.warning(f"[RANKINGS] Could not store {snapshot.metric} snapshot: {result.error}")

    def _empty_snapshot(self, metric: str, last_updated: str) -> RankingsSnapshot:
        return RankingsSnapshot(
            metric=metric,
            season=self._client.season,
            total_teams=0,
            total_matches=0,
            events_processed=0,
            last_updated=last_updated,
        )

    # -------------------------------------------------------------------------
    # Computation
    # -------------------------------------------------------------------------

    async def compute_and_cache_rankings(self) -> Optional[RankingsSnapshot]:
        """
        Recompute both global rankings and replace the cached snapshots.

        Returns the EPA snapshot, or None on failure (previous snapshots kept).
        """
        async with self._compute_lock:
            return await self._compute()

    async def _compute(self) -> Optional[RankingsSnapshot]:
        logger.info("[RANKINGS] Computation started")
        start = time.time()
        try:
            epa_snapshot, opr_snapshot = await self._build_snapshots()
        except Exception as e:
            duration_ms = (time.time() - start) * 1000
            logger.error(f"[RANKINGS] Computation failed after {duration_ms:.0f}ms: {e}", exc_info=True)
            capture_exception(e, job_id="rankings_refresh")
            record_rankings_refresh("error", duration_ms)
            return None

        await self._write_snapshots(epa_snapshot, opr_snapshot)

        duration_ms = (time.time() - start) * 1000
        status = "ok" if epa_snapshot.total_teams else "empty"
        record_rankings_refresh(
            status,
            duration_ms,
            epa_teams=epa_snapshot.total_teams,
            opr_teams=opr_snapshot.total_teams,
            events_processed=epa_snapshot.events_processed,
        )
        logger.info(
            f"[RANKINGS] Computation completed in {duration_ms / 1000:.1f}s: "
            f"{epa_snapshot.total_teams} teams (EPA), {opr_snapshot.total_teams} teams (OPR) "
            f"from {epa_snapshot.total_matches} matches across {epa_snapshot.events_processed} events"
        )
        return epa_snapshot

    async def _build_snapshots(self) -> tuple[RankingsSnapshot, RankingsSnapshot]:
        now = self._now()
        last_updated = now.isoformat()

        events = (await self._client.get_events()).get("events") or []
        past_events = filter_past_competition_events(events, now, self._settings.excluded_event_types)
        if not past_events:
            logger.info("[RANKINGS] No past competition events")
            return self._empty_snapshot("epa", last_updated), self._empty_snapshot("opr", last_updated)

        event_codes = [event_code_of(e) for e in past_events]
        batch_size = self._settings.RANKINGS_BATCH_SIZE
        logger.info(f"[RANKINGS] Processing {len(event_codes)} past events")

        per_event = await fetch_in_batches(event_codes, batch_size, self._fetch_event_matches)
        processed = [matches for matches in per_event if matches]
        all_matches = [match for matches in processed for match in matches]
        if not all_matches:
            logger.info("[RANKINGS] No match data in past events")
            return self._empty_snapshot("epa", last_updated), self._empty_snapshot("opr", last_updated)

        epa_rankings = get_epa_rankings(all_matches, self._epa_config)

        team_lists = await fetch_in_batches(event_codes, batch_size, self._fetch_event_teams)
        teams: dict[int, dict] = {}
        for team_list in team_lists:
            for team in team_list:
                number = team.get("teamNumber")
                if number and number not in teams:
                    teams[int(number)] = team
        persisted = await self.persist_team_locations(teams)
        if persisted.ok:
            logger.info(f"[RANKINGS] Cached location data for {persisted.value} teams")

        opr_entries = average_event_oprs(
            processed, self._settings.OPR_RIDGE_LAMBDA, self._settings.OPR_CONDITION_LIMIT
        )

        epa_snapshot = RankingsSnapshot(
            metric="epa",
            season=self._client.season,
            total_teams=len(epa_rankings),
            total_matches=len(all_matches),
            events_processed=len(processed),
            last_updated=last_updated,
            rankings=[
                RankingEntry(
                    rank=i,
                    team_number=r.team_number,
                    epa=r.epa,
                    auto_epa=r.auto_epa,
                    teleop_epa=r.teleop_epa,
                    endgame_epa=r.endgame_epa,
                    match_count=r.match_count,
                    trend=r.trend,
                )
                for i, r in enumerate(epa_rankings, start=1)
            ],
        )
        opr_snapshot = RankingsSnapshot(
            metric="opr",
            season=self._client.season,
            total_teams=len(opr_entries),
            total_matches=len(all_matches),
            events_processed=len(processed),
            last_updated=last_updated,
            rankings=opr_entries,
        )
        return epa_snapshot, opr_snapshot

    # -------------------------------------------------------------------------
    # Read paths
    # -------------------------------------------------------------------------

    async def get_rankings(self, metric: str = "epa") -> Optional[RankingsSnapshot]:
        """Cached snapshot for `metric`; computes inline once on a cache miss."""
        snapshot = await self._read_snapshot(metric)
        if snapshot is not None:
            return snapshot

        async with self._compute_lock:
            # Another caller may have finished computing while we waited.
            snapshot = await self._read_snapshot(metric)
            if snapshot is None:
                logger.info(f"[RANKINGS] {metric} snapshot missing, computing inline")
                await self._compute()
                snapshot = self._latest.get(metric)
        return snapshot

    async def get_scoped_rankings(
        self,
        scope: str = "global",
        country: Optional[str] = None,
        state: Optional[str] = None,
        metric: str = "epa",
    ) -> Optional[RankingsSnapshot]:
        """
        Rankings restricted to a country or a state/province, ranks renumbered 1..N.

        `scope="state"` needs both `country` and `state`; otherwise the global
        snapshot is returned unchanged.
        """
        snapshot = await self.get_rankings(metric)
        if snapshot is None:
            return None
        by_state = scope == "state" and bool(country and state)
        if not (by_state or (scope == "country" and country)):
            return snapshot

        def in_scope(loc: tuple) -> bool:
            return loc == (country, state) if by_state else loc[0] == country

        locations = await self._locations()
        return snapshot.restricted_to(
            e for e in snapshot.rankings if in_scope(locations.get(e.team_number, (None, None)))
        )

    async def get_team_rankings(self, team_number: int) -> LookupResult:
        """
        World/country/state ranks of one team, plus component ranks for both metrics.

        Never computes: an absent snapshot yields NOT_COMPUTED.
        """
        epa = await self._read_snapshot("epa")
        if epa is None or not epa.rankings:
            return LookupResult(LookupStatus.NOT_COMPUTED, error=ERR_NOT_COMPUTED)
        entry = epa.find(team_number)
        if entry is None:
            return LookupResult(LookupStatus.NOT_FOUND, error=ERR_TEAM_NOT_FOUND)
        opr = await self._read_snapshot("opr")

        locations = await self._locations()
        country, state = locations.get(team_number, (None, None))

        def scopes(entries: list) -> dict[str, Optional[list]]:
            return {
                "world": entries,
                "country": [e for e in entries if locations.get(e.team_number, (None, None))[0] == country]
                if country else None,
                "state": [e for e in entries if locations.get(e.team_number) == (country, state)]
                if country and state else None,
            }

        epa_scopes = scopes(epa.rankings)
        data = {
            "team_number": team_number,
            "country": country,
            "state_prov": state if country else None,
            "world_rank": entry.rank,
            "world_total": epa.total_teams,
            "epa": entry.epa,
            "auto_epa": entry.auto_epa,
            "teleop_epa": entry.teleop_epa,
            "endgame_epa": entry.endgame_epa,
            "match_count": entry.match_count,
            "trend": entry.trend,
        }
        for scope in ("country", "state"):
            subset = epa_scopes[scope]
            data[f"{scope}_rank"] = position(subset, team_number) if subset is not None else None
            data[f"{scope}_total"] = len(subset) if subset is not None else None
        for component in ("auto", "teleop", "endgame"):
            for scope, subset in epa_scopes.items():
                data[f"{component}_{scope}_rank"] = (
                    position(subset, team_number, f"{component}_epa") if subset is not None else None
                )

        opr_entry = opr.find(team_number) if opr is not None else None
        opr_scopes = scopes(opr.rankings) if opr_entry is not None else {}
        data["opr"] = opr_entry.opr if opr_entry else None
        data["auto_opr"] = opr_entry.auto_opr if opr_entry else None
        data["teleop_opr"] = opr_entry.teleop_opr if opr_entry else None
        data["endgame_opr"] = opr_entry.endgame_opr if opr_entry else None
        data["opr_world_rank"] = opr_entry.rank if opr_entry else None
        data["opr_world_total"] = opr.total_teams if opr is not None else None
        for scope in ("country", "state"):
            subset = opr_scopes.get(scope)
            data[f"opr_{scope}_rank"] = position(subset, team_number) if subset is not None else None
        for component in ("auto", "teleop", "endgame"):
            for scope in ("world", "country", "state"):
                subset = opr_scopes.get(scope)
                data[f"{component}_opr_{scope}_rank"] = (
                    position(subset, team_number, f"{component}_opr") if subset is not None else None
                )

        return LookupResult(LookupStatus.OK, data=data)

    async def get_filters(self) -> dict:
        """Countries (sorted) and states per country among ranked teams."""
        snapshot = await self._read_snapshot("epa")
        ranked = {e.team_number for e in snapshot.rankings} if snapshot and snapshot.rankings else None

        states: dict[str, set] = {}
        for team_number, (country, state) in (await self._locations()).items():
            if not country or (ranked is not None and team_number not in ranked):
                continue
            states.setdefault(country, set())
            if state:
                states[country].add(state)

        return {
            "countries": sorted(states),
            "states": {country: sorted(values) for country, values in sorted(states.items()) if values},
        }
