"""
Optional Redis-backed key/value store.

Every operation returns a `StoreResult` instead of raising: a Redis outage
degrades the tiered cache to live-only fetching, it never fails a request.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from ftcmetrics.results import ErrorKind, Result

logger = logging.getLogger(__name__)

StoreResult = Result


class KeyValueStore:
    """Thin async wrapper around a redis.asyncio client."""

    def __init__(self, client, command_timeout: float = 2.0):
        self._client = client
        self._timeout = command_timeout

    @classmethod
    def from_url(cls, url: str, command_timeout: float = 2.0) -> "KeyValueStore":
        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=command_timeout,
            socket_timeout=command_timeout,
        )
        return cls(client, command_timeout=command_timeout)

    async def _run(self, op: str, coro) -> StoreResult:
        try:
            value = await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[STORE] {op} timed out after {self._timeout}s")
            return StoreResult.failure(ErrorKind.TIMEOUT, f"{op} timed out")
        except (RedisError, OSError) as e:
            logger.warning(f"[STORE] {op} failed: {e}")
            return StoreResult.failure(ErrorKind.BACKEND, str(e))
        return StoreResult.success(value)

    async def get(self, key: str) -> StoreResult:
        """Read a string value. A missing key is a successful result with value None."""
        return await self._run(f"GET {key}", self._client.get(key))

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> StoreResult:
        """Write a string value, expiring after `ttl_seconds` when given."""
        return await self._run(f"SET {key}", self._client.set(key, value, ex=ttl_seconds))

    async def delete(self, key: str) -> StoreResult:
        return await self._run(f"DEL {key}", self._client.delete(key))

    async def ping(self) -> StoreResult:
        return await self._run("PING", self._client.ping())

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"[STORE] close failed: {e}")
