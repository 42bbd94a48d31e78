"""
Fresh/stale tiered cache in front of the FTC Events API.

Every entry has two lifetimes:

- fresh_ttl: while younger than this the entry is served without a network call.
- stale_ttl: the store expiry. Between fresh and stale the entry is only used
  as a fallback when the upstream call fails.

Entries are stored as JSON `{"data": ..., "cachedAt": <epoch seconds>}` under
`<prefix>:ftc:<season>:<normalized endpoint>`.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import parse_qsl, urlencode

from ftcmetrics.cache.store import KeyValueStore
from ftcmetrics.telemetry.metrics import record_cache_lookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachePolicy:
    """TTL pair for one endpoint class, in seconds."""

    fresh_ttl: int
    stale_ttl: int


# Longest matching path prefix wins.
DEFAULT_POLICIES: dict[str, CachePolicy] = {
    "/events": CachePolicy(fresh_ttl=3600, stale_ttl=86400),
    "/teams": CachePolicy(fresh_ttl=3600, stale_ttl=86400),
    "/schedule/": CachePolicy(fresh_ttl=300, stale_ttl=21600),
    "/matches/": CachePolicy(fresh_ttl=120, stale_ttl=21600),
    "/scores/": CachePolicy(fresh_ttl=120, stale_ttl=21600),
    "/rankings/": CachePolicy(fresh_ttl=120, stale_ttl=21600),
}

DEFAULT_POLICY = CachePolicy(fresh_ttl=300, stale_ttl=3600)


@dataclass
class CacheEntry:
    data: Any
    cached_at: float


def normalize_endpoint(endpoint: str) -> str:
    """Canonical form of an endpoint: query parameters sorted by name then value."""
    path, _, query = endpoint.partition("?")
    if not query:
        return path
    params = sorted(parse_qsl(query, keep_blank_values=True))
    return f"{path}?{urlencode(params)}"


class TieredCache:
    """Stale-on-failure cache. `store=None` disables caching entirely."""

    def __init__(
        self,
        store: Optional[KeyValueStore],
        season: int,
        key_prefix: str = "ftcmetrics",
        policies: Optional[dict[str, CachePolicy]] = None,
        default_policy: CachePolicy = DEFAULT_POLICY,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._season = season
        self._prefix = key_prefix
        self._policies = dict(DEFAULT_POLICIES if policies is None else policies)
        self._default_policy = default_policy
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._store is not None

    def _match_prefix(self, endpoint: str) -> Optional[str]:
        path = endpoint.partition("?")[0]
        best = None
        for prefix in self._policies:
            if path.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        return best

    def policy_for(self, endpoint: str) -> CachePolicy:
        prefix = self._match_prefix(endpoint)
        return self._policies[prefix] if prefix else self._default_policy

    def endpoint_class(self, endpoint: str) -> str:
        """Low-cardinality label for metrics ("matches", "scores", ... or "other")."""
        prefix = self._match_prefix(endpoint)
        return prefix.strip("/") if prefix else "other"

    def cache_key(self, endpoint: str) -> str:
        return f"{self._prefix}:ftc:{self._season}:{normalize_endpoint(endpoint)}"

    async def _read(self, key: str, endpoint_class: str) -> Optional[CacheEntry]:
        result = await self._store.get(key)
        if not result.ok:
            record_cache_lookup(endpoint_class, "store_error")
            return None
        if result.value is None:
            return None
        try:
            raw = json.loads(result.value)
            return CacheEntry(data=raw["data"], cached_at=float(raw["cachedAt"]))
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"[TIERED-CACHE] Discarding undecodable entry {key}: {e}")
            record_cache_lookup(endpoint_class, "store_error")
            return None

    async def _write(self, key: str, data: Any, policy: CachePolicy, endpoint_class: str) -> None:
        payload = json.dumps({"data": data, "cachedAt": self._clock()})
        result = await self._store.set(key, payload, ttl_seconds=policy.stale_ttl)
        if not result.ok:
            record_cache_lookup(endpoint_class, "store_error")
            logger.debug(f"[TIERED-CACHE] Write skipped for {key}: {result.error}")

    async def fetch(self, endpoint: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the data for `endpoint`, from cache when fresh, otherwise from `loader`.

        If `loader` raises and any cached entry exists (however old), that entry
        is served and a degraded-service warning is logged. Without an entry the
        loader's exception propagates unchanged.
        """
        endpoint_class = self.endpoint_class(endpoint)
        if self._store is None:
            return await loader()

        key = self.cache_key(endpoint)
        policy = self.policy_for(endpoint)

        entry = await self._read(key, endpoint_class)
        if entry is not None and self._clock() - entry.cached_at < policy.fresh_ttl:
            record_cache_lookup(endpoint_class, "fresh_hit")
            return entry.data

        record_cache_lookup(endpoint_class, "miss")
        try:
            data = await loader()
        except Exception as e:
            stale = await self._read(key, endpoint_class)
            if stale is None:
                raise
            age = self._clock() - stale.cached_at
            logger.warning(
                f"[TIERED-CACHE] Upstream failed for {endpoint} ({e}); "
                f"serving stale data, age={age:.0f}s"
            )
            record_cache_lookup(endpoint_class, "stale_served", stale_age_seconds=age)
            return stale.data

        await self._write(key, data, policy, endpoint_class)
        return data
