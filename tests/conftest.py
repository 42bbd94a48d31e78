"""Shared fixtures: in-memory database and a fake Redis store."""

import pytest_asyncio
from fakeredis import aioredis as fake_aioredis

from ftcmetrics.cache.store import KeyValueStore
from ftcmetrics.database import build_engine, build_session_factory, init_db


@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine("sqlite:///:memory:")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def redis_client():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def store(redis_client):
    return KeyValueStore(redis_client)
