# envcache/db/crud.py
# -----------------------------------------------------------------------------
# Read/write helpers
# - every write is one atomic statement (INSERT .. ON CONFLICT, guarded UPDATE)
#   so concurrent callers never lose updates
# - callers own the session and the commit boundary
# -----------------------------------------------------------------------------
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from envcache.db.models import (
    ApiUsage,
    CachedTile,
    DailySummary,
    ExposureReading,
    ExposureSession,
)


def _insert(db: AsyncSession, model):
    """Dialect-specific INSERT that supports ON CONFLICT DO UPDATE."""
    if db.bind.dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def _key_filter(key):
    return (
        CachedTile.data_type == key.data_type,
        CachedTile.heatmap_type == key.heatmap_type,
        CachedTile.zoom_level == key.zoom,
        CachedTile.tile_x == key.x,
        CachedTile.tile_y == key.y,
    )


# ── tiles ────────────────────────────────────────────────────────────────────
async def get_active_tile(db: AsyncSession, key, now: datetime) -> CachedTile | None:
    stmt = select(CachedTile).where(*_key_filter(key), CachedTile.expires_at > now)
    return (await db.execute(stmt)).scalar_one_or_none()


async def touch_tile(db: AsyncSession, tile_id: int, now: datetime) -> None:
    stmt = (
        update(CachedTile)
        .where(CachedTile.id == tile_id)
        .values(access_count=CachedTile.access_count + 1, last_accessed_at=now)
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)


async def upsert_tile(
    db: AsyncSession,
    key,
    *,
    payload: bytes,
    content_type: str,
    now: datetime,
    expires_at: datetime,
) -> None:
    ins = _insert(db, CachedTile).values(
        data_type=key.data_type,
        heatmap_type=key.heatmap_type,
        zoom_level=key.zoom,
        tile_x=key.x,
        tile_y=key.y,
        tile_data=payload,
        content_type=content_type,
        created_at=now,
        updated_at=now,
        expires_at=expires_at,
        access_count=0,
        last_accessed_at=None,
    )
    stmt = ins.on_conflict_do_update(
        index_elements=["data_type", "heatmap_type", "zoom_level", "tile_x", "tile_y"],
        set_={
            "tile_data": ins.excluded.tile_data,
            "content_type": ins.excluded.content_type,
            "expires_at": ins.excluded.expires_at,
            "updated_at": ins.excluded.updated_at,
        },
    )
    await db.execute(stmt)


async def delete_expired_tiles(db: AsyncSession, now: datetime) -> int:
    res = await db.execute(
        delete(CachedTile)
        .where(CachedTile.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    return int(res.rowcount or 0)


async def list_active_tiles(
    db: AsyncSession,
    *,
    data_type: str,
    heatmap_type: str,
    zoom: int,
    x_range: tuple[int, int],
    y_range: tuple[int, int],
    now: datetime,
) -> Sequence[CachedTile]:
    """Active tiles with x/y inside the half-open ranges."""
    stmt = (
        select(CachedTile)
        .where(
            CachedTile.data_type == data_type,
            CachedTile.heatmap_type == heatmap_type,
            CachedTile.zoom_level == zoom,
            CachedTile.tile_x >= x_range[0],
            CachedTile.tile_x < x_range[1],
            CachedTile.tile_y >= y_range[0],
            CachedTile.tile_y < y_range[1],
            CachedTile.expires_at > now,
        )
        .order_by(CachedTile.tile_x, CachedTile.tile_y)
    )
    return (await db.execute(stmt)).scalars().all()


async def tile_stats(db: AsyncSession, now: datetime):
    active = func.sum(case((CachedTile.expires_at > now, 1), else_=0))
    expired = func.sum(case((CachedTile.expires_at <= now, 1), else_=0))
    stmt = (
        select(
            CachedTile.data_type,
            func.count(CachedTile.id).label("total_tiles"),
            active.label("active_tiles"),
            expired.label("expired_tiles"),
            func.coalesce(func.sum(CachedTile.access_count), 0).label("total_accesses"),
            func.coalesce(func.avg(CachedTile.access_count), 0).label("avg_accesses_per_tile"),
            func.min(CachedTile.created_at).label("oldest_tile"),
            func.max(CachedTile.created_at).label("newest_tile"),
        )
        .group_by(CachedTile.data_type)
        .order_by(CachedTile.data_type)
    )
    return (await db.execute(stmt)).all()


# ── usage counters ───────────────────────────────────────────────────────────
async def increment_usage(
    db: AsyncSession, *, endpoint: str, data_type: str, bucket: datetime, now: datetime
) -> None:
    ins = _insert(db, ApiUsage).values(
        api_endpoint=endpoint,
        data_type=data_type,
        hour_bucket=bucket,
        request_count=1,
        last_request_at=now,
    )
    stmt = ins.on_conflict_do_update(
        index_elements=["api_endpoint", "data_type", "hour_bucket"],
        set_={
            "request_count": ApiUsage.request_count + 1,
            "last_request_at": ins.excluded.last_request_at,
        },
    )
    await db.execute(stmt)


async def usage_totals(db: AsyncSession):
    stmt = (
        select(
            ApiUsage.data_type,
            func.coalesce(func.sum(ApiUsage.request_count), 0).label("total_requests"),
            func.max(ApiUsage.last_request_at).label("last_request_at"),
        )
        .group_by(ApiUsage.data_type)
        .order_by(ApiUsage.data_type)
    )
    return (await db.execute(stmt)).all()


# ── sessions ─────────────────────────────────────────────────────────────────
async def get_session_by_id(db: AsyncSession, session_id: str) -> ExposureSession | None:
    stmt = select(ExposureSession).where(ExposureSession.session_id == session_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def mark_session_ended(
    db: AsyncSession, session_id: str, *, end_time: datetime, duration_minutes: int
) -> bool:
    """Guarded update; False when the session was already ended (or is gone)."""
    stmt = (
        update(ExposureSession)
        .where(
            ExposureSession.session_id == session_id,
            ExposureSession.end_time.is_(None),
        )
        .values(
            end_time=end_time,
            total_duration_minutes=duration_minutes,
            updated_at=end_time,
        )
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    return (res.rowcount or 0) == 1


async def sessions_started_between(
    db: AsyncSession, device_id: str, start: datetime, end: datetime
) -> Sequence[ExposureSession]:
    stmt = (
        select(ExposureSession)
        .where(
            ExposureSession.device_id == device_id,
            ExposureSession.start_time >= start,
            ExposureSession.start_time < end,
        )
        .order_by(ExposureSession.start_time, ExposureSession.id)
    )
    return (await db.execute(stmt)).scalars().all()


# ── readings ─────────────────────────────────────────────────────────────────
async def readings_for_sessions(
    db: AsyncSession, session_ids: Sequence[str]
) -> Sequence[ExposureReading]:
    if not session_ids:
        return []
    stmt = (
        select(ExposureReading)
        .where(ExposureReading.session_id.in_(list(session_ids)))
        .order_by(ExposureReading.reading_time, ExposureReading.id)
    )
    return (await db.execute(stmt)).scalars().all()


async def readings_between(
    db: AsyncSession, start: datetime, end: datetime, device_id: Optional[str] = None
) -> Sequence[ExposureReading]:
    stmt = select(ExposureReading).where(
        ExposureReading.reading_time >= start,
        ExposureReading.reading_time <= end,
    )
    if device_id:
        stmt = stmt.join(
            ExposureSession, ExposureSession.session_id == ExposureReading.session_id
        ).where(ExposureSession.device_id == device_id)
    stmt = stmt.order_by(ExposureReading.reading_time, ExposureReading.id)
    return (await db.execute(stmt)).scalars().all()


# ── daily summaries ──────────────────────────────────────────────────────────
async def upsert_summary(db: AsyncSession, values: dict, now: datetime) -> None:
    ins = _insert(db, DailySummary).values(**values, created_at=now, updated_at=now)
    updatable = {k: getattr(ins.excluded, k) for k in values if k not in ("device_id", "summary_date")}
    updatable["updated_at"] = ins.excluded.updated_at
    stmt = ins.on_conflict_do_update(
        index_elements=["device_id", "summary_date"], set_=updatable
    )
    await db.execute(stmt)


async def get_summary(db: AsyncSession, device_id: str, day: date) -> DailySummary | None:
    stmt = select(DailySummary).where(
        DailySummary.device_id == device_id, DailySummary.summary_date == day
    )
    return (await db.execute(stmt)).scalar_one_or_none()
