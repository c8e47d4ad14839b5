# envcache/services/tile_cache.py
# -----------------------------------------------------------------------------
# Cache-aside tile service
# - lookup -> on miss fetch upstream -> upsert -> return
# - HIT bumps access metrics, never touches upstream
# - failed upstream fetch never writes the cache
# - hourly usage counters, expiry sweep, statistics
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from envcache.core.clock import Clock, hour_bucket, iso_utc, utcnow
from envcache.core.config import settings
from envcache.core.errors import StoreError, UpstreamUnavailable, ValidationError
from envcache.db import crud
from envcache.db.models import CachedTile
from envcache.db.session import store_session
from envcache.services import geo
from envcache.services.upstream import HeatmapTileProvider

DATA_TYPES = ("airquality", "pollen", "uv")
_HEATMAP_TYPE_RE = re.compile(r"^[A-Za-z0-9_]{1,64}$")


def default_ttls() -> Dict[str, int]:
    return {
        "airquality": settings.TTL_AIRQUALITY_MINUTES,
        "pollen": settings.TTL_POLLEN_MINUTES,
        "uv": settings.TTL_UV_MINUTES,
    }


def check_data_type(data_type: str) -> str:
    if data_type not in DATA_TYPES:
        raise ValidationError(f"unknown data type {data_type!r}; expected one of {DATA_TYPES}")
    return data_type


@dataclass(frozen=True)
class TileKey:
    data_type: str
    heatmap_type: str
    zoom: int
    x: int
    y: int

    def __post_init__(self) -> None:
        check_data_type(self.data_type)
        if not _HEATMAP_TYPE_RE.match(self.heatmap_type or ""):
            raise ValidationError(f"invalid heatmap type {self.heatmap_type!r}")
        geo.validate_tile(self.zoom, self.x, self.y)

    def __str__(self) -> str:
        return f"{self.data_type} {self.heatmap_type} {self.zoom}/{self.x}/{self.y}"


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"


@dataclass(frozen=True)
class TileResult:
    payload: bytes
    content_type: str
    cache_status: CacheStatus
    expires_at: datetime


class TileCacheService:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        provider: HeatmapTileProvider,
        *,
        ttl_minutes: Optional[Dict[str, int]] = None,
        clock: Clock = utcnow,
        coalesce: Optional[bool] = None,
        usage_endpoint: Optional[str] = None,
    ):
        self._sessions = sessions
        self.provider = provider
        self.ttl_minutes = dict(ttl_minutes or default_ttls())
        self.clock = clock
        self.coalesce = settings.COALESCE_UPSTREAM_FETCHES if coalesce is None else coalesce
        self.usage_endpoint = usage_endpoint or settings.USAGE_ENDPOINT_NAME
        self._inflight: Dict[TileKey, asyncio.Future] = {}

    # -------- public API --------

    def ttl(self, data_type: str) -> timedelta:
        return timedelta(minutes=self.ttl_minutes[check_data_type(data_type)])

    async def get_tile(self, key: TileKey) -> TileResult:
        cached = await self._lookup(key)
        if cached is not None:
            logger.info(f"[cache] HIT {key}")
            return cached

        logger.info(f"[cache] MISS {key}")
        if not self.coalesce:
            # concurrent misses on one key may each call upstream; last write wins
            return await self._fetch_and_store(key)

        fut = self._inflight.get(key)
        if fut is None:
            fut = asyncio.ensure_future(self._fetch_and_store(key))
            self._inflight[key] = fut
            fut.add_done_callback(lambda _f, k=key: self._inflight.pop(k, None))
        else:
            logger.debug(f"[cache] joining in-flight fetch for {key}")
        return await asyncio.shield(fut)

    async def record_usage(self, data_type: str) -> None:
        """Upsert-increment of the current hour's counter. Descriptive only."""
        now = self.clock()
        async with store_session(self._sessions) as db:
            await crud.increment_usage(
                db,
                endpoint=self.usage_endpoint,
                data_type=check_data_type(data_type),
                bucket=hour_bucket(now),
                now=now,
            )
            await db.commit()

    async def sweep_expired(self) -> int:
        now = self.clock()
        async with store_session(self._sessions) as db:
            deleted = await crud.delete_expired_tiles(db, now)
            await db.commit()
        logger.info(f"[cache] sweep removed {deleted} expired tiles")
        return deleted

    async def cache_stats(self) -> dict:
        now = self.clock()
        async with store_session(self._sessions) as db:
            tiles = await crud.tile_stats(db, now)
            usage = await crud.usage_totals(db)
        return {
            "cache_stats": [
                {
                    "data_type": r.data_type,
                    "total_tiles": int(r.total_tiles or 0),
                    "active_tiles": int(r.active_tiles or 0),
                    "expired_tiles": int(r.expired_tiles or 0),
                    "total_accesses": int(r.total_accesses or 0),
                    "avg_accesses_per_tile": round(float(r.avg_accesses_per_tile or 0), 2),
                    "oldest_tile": iso_utc(r.oldest_tile),
                    "newest_tile": iso_utc(r.newest_tile),
                }
                for r in tiles
            ],
            "usage": [
                {
                    "data_type": r.data_type,
                    "total_requests": int(r.total_requests or 0),
                    "last_request_at": iso_utc(r.last_request_at),
                }
                for r in usage
            ],
            "cache_durations": dict(self.ttl_minutes),
            "timestamp": iso_utc(now),
        }

    async def list_region(
        self,
        data_type: str,
        heatmap_type: str,
        zoom: int,
        grid_x: int,
        grid_y: int,
        grid_size: Optional[int] = None,
    ) -> List[CachedTile]:
        """Active tiles of one region cell (tiles grouped in grid_size x grid_size blocks)."""
        check_data_type(data_type)
        g = grid_size or settings.REGION_GRID_SIZE
        if g <= 0:
            raise ValidationError("grid size must be positive")
        if grid_x < 0 or grid_y < 0:
            raise ValidationError("region cell coordinates must be non-negative")
        geo.validate_tile(zoom, 0, 0)
        async with store_session(self._sessions) as db:
            return await crud.list_active_tiles(
                db,
                data_type=data_type,
                heatmap_type=heatmap_type,
                zoom=zoom,
                x_range=(grid_x * g, (grid_x + 1) * g),
                y_range=(grid_y * g, (grid_y + 1) * g),
                now=self.clock(),
            )

    async def ping(self) -> bool:
        async with store_session(self._sessions) as db:
            await db.execute(text("SELECT 1"))
        return True

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Background loop; runs until cancelled."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.sweep_expired()
            except StoreError as e:
                logger.error(f"[cache] sweep failed: {e.detail}")

    # -------- internals --------

    async def _lookup(self, key: TileKey) -> Optional[TileResult]:
        now = self.clock()
        async with store_session(self._sessions) as db:
            row = await crud.get_active_tile(db, key, now)
            if row is None:
                return None
            result = TileResult(
                payload=bytes(row.tile_data),
                content_type=row.content_type,
                cache_status=CacheStatus.HIT,
                expires_at=row.expires_at,
            )
            await crud.touch_tile(db, row.id, now)
            await db.commit()
        return result

    async def _fetch_and_store(self, key: TileKey) -> TileResult:
        # no DB session is held while the upstream call is in flight
        try:
            upstream = await self.provider.fetch_tile(key)
        except UpstreamUnavailable:
            logger.warning(f"[cache] upstream failed for {key}; cache left untouched")
            try:
                await self.record_usage(key.data_type)
            except StoreError as e:
                # the caller sees the upstream failure, not the bookkeeping one
                logger.error(f"[cache] usage not recorded for {key}: {e.detail}")
            raise
        await self.record_usage(key.data_type)

        now = self.clock()
        expires_at = now + self.ttl(key.data_type)
        async with store_session(self._sessions) as db:
            await crud.upsert_tile(
                db,
                key,
                payload=upstream.payload,
                content_type=upstream.content_type,
                now=now,
                expires_at=expires_at,
            )
            await db.commit()
        logger.info(f"[cache] stored {key} until {iso_utc(expires_at)}")
        return TileResult(
            payload=upstream.payload,
            content_type=upstream.content_type,
            cache_status=CacheStatus.MISS,
            expires_at=expires_at,
        )
