"""
Shared fixtures: controllable clock, in-memory store, fake upstream provider.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from envcache.core.errors import UpstreamUnavailable
from envcache.db.models import ApiUsage, CachedTile
from envcache.db.session import create_all, make_engine, make_session_factory
from envcache.services.exposure import ExposureService
from envcache.services.tile_cache import TileCacheService
from envcache.services.upstream import UpstreamTile

T0 = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
PNG = b"\x89PNG\r\n\x1a\n-fake-heatmap-tile"


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


async def tile_row(sessions, key):
    """The stored row for a tile key, fresh or not."""
    async with sessions() as db:
        stmt = select(CachedTile).where(
            CachedTile.data_type == key.data_type,
            CachedTile.heatmap_type == key.heatmap_type,
            CachedTile.zoom_level == key.zoom,
            CachedTile.tile_x == key.x,
            CachedTile.tile_y == key.y,
        )
        return (await db.execute(stmt)).scalar_one_or_none()


async def usage_row(sessions, data_type, bucket, endpoint="google_cloud_api"):
    async with sessions() as db:
        stmt = select(ApiUsage).where(
            ApiUsage.api_endpoint == endpoint,
            ApiUsage.data_type == data_type,
            ApiUsage.hour_bucket == bucket,
        )
        return (await db.execute(stmt)).scalar_one_or_none()


class FakeProvider:
    """Stands in for the upstream; records every key it is asked for."""

    def __init__(self, payload: bytes = PNG, content_type: str = "image/png"):
        self.payload = payload
        self.content_type = content_type
        self.fail = False
        self.gate = None  # optional asyncio.Event to hold fetches in flight
        self.calls = []

    async def fetch_tile(self, key) -> UpstreamTile:
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise UpstreamUnavailable("upstream returned HTTP 503")
        return UpstreamTile(payload=self.payload, content_type=self.content_type)

    async def aclose(self) -> None:
        pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
async def sessions():
    engine = make_engine("sqlite+aiosqlite://")
    await create_all(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def file_sessions(tmp_path):
    """File-backed store: separate connections, for concurrency tests."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    await create_all(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def tile_cache(sessions, provider, clock):
    return TileCacheService(sessions, provider, clock=clock, coalesce=False)


@pytest.fixture
def exposure(sessions, clock):
    return ExposureService(sessions, clock=clock, reading_interval_minutes=5)
