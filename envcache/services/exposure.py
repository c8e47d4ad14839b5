# envcache/services/exposure.py
# -----------------------------------------------------------------------------
# Exposure sessions, readings and daily summaries
# - session lifecycle: NONE -> ACTIVE (start) -> ENDED (end), never back
# - readings are scored on ingestion and stored immutable
# - daily summaries are re-derived from sessions+readings on every refresh
# -----------------------------------------------------------------------------
from __future__ import annotations

import re
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from envcache.core.clock import Clock, utcnow
from envcache.core.config import settings
from envcache.core.errors import AlreadyEnded, NotFound, ValidationError
from envcache.db import crud
from envcache.db.models import (
    DailySummary,
    ExposureReading,
    ExposureSession,
)
from envcache.db.session import store_session
from envcache.schemas.exposure import Location, ReadingData
from envcache.services import scoring

MAX_HISTORY_BUCKETS = 10_000
DEFAULT_INTERVAL_MINUTES = 15
_INTERVAL_RE = re.compile(r"^(\d+)(min|h|d)$")

# level -> time-in-band bucket
AQ_GOOD = {"good"}
AQ_MODERATE = {"moderate", "unhealthy_sensitive"}
AQ_UNHEALTHY = {"unhealthy", "very_unhealthy", "hazardous"}
POLLEN_LOW = {"low", "moderate"}
POLLEN_HIGH = {"high", "very_high"}
UV_LOW = {"low", "moderate"}
UV_HIGH = {"high", "very_high", "extreme"}


def parse_interval(interval: str | None) -> int:
    """'15min' / '2h' / '1d' -> minutes; anything else falls back to 15."""
    m = _INTERVAL_RE.match(interval or "")
    if not m:
        return DEFAULT_INTERVAL_MINUTES
    value, unit = int(m.group(1)), m.group(2)
    if value <= 0:
        return DEFAULT_INTERVAL_MINUTES
    return value * {"min": 1, "h": 60, "d": 60 * 24}[unit]


def _aware(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def summarize(
    device_id: str,
    day: date,
    sessions: Sequence[ExposureSession],
    readings: Sequence[ExposureReading],
    interval_minutes: int,
) -> Dict:
    """Every DailySummary column derived from scratch; same input, same output."""
    aqi = [r.air_quality_index for r in readings if r.air_quality_index is not None]
    pollen = [r.total_pollen_index for r in readings if r.total_pollen_index is not None]
    uv = [r.uv_index for r in readings if r.uv_index is not None]
    temp = [r.temperature_celsius for r in readings if r.temperature_celsius is not None]

    def minutes_in(levels: set, attr: str) -> int:
        return sum(1 for r in readings if getattr(r, attr) in levels) * interval_minutes

    user_id = next((s.user_id for s in sessions if s.user_id), None)
    return {
        "device_id": device_id,
        "user_id": user_id,
        "summary_date": day,
        "total_sessions": len({s.session_id for s in sessions}),
        "total_duration_minutes": sum(s.total_duration_minutes or 0 for s in sessions),
        "total_readings": len(readings),
        "avg_air_quality_index": _mean(aqi),
        "avg_pollen_index": _mean(pollen),
        "avg_uv_index": _mean(uv),
        "avg_temperature": _mean(temp),
        "max_air_quality_index": max(aqi) if aqi else None,
        "max_pollen_index": max(pollen) if pollen else None,
        "max_uv_index": max(uv) if uv else None,
        "total_air_quality_exposure": sum(r.air_quality_exposure_score for r in readings),
        "total_pollen_exposure": sum(r.pollen_exposure_score for r in readings),
        "total_uv_exposure": sum(r.uv_exposure_score for r in readings),
        "total_overall_exposure": sum(r.overall_exposure_score for r in readings),
        "time_good_air_quality_minutes": minutes_in(AQ_GOOD, "air_quality_level"),
        "time_moderate_air_quality_minutes": minutes_in(AQ_MODERATE, "air_quality_level"),
        "time_unhealthy_air_quality_minutes": minutes_in(AQ_UNHEALTHY, "air_quality_level"),
        "time_low_pollen_minutes": minutes_in(POLLEN_LOW, "pollen_level"),
        "time_high_pollen_minutes": minutes_in(POLLEN_HIGH, "pollen_level"),
        "time_low_uv_minutes": minutes_in(UV_LOW, "uv_level"),
        "time_high_uv_minutes": minutes_in(UV_HIGH, "uv_level"),
    }


class ExposureService:
    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        *,
        clock: Clock = utcnow,
        reading_interval_minutes: Optional[int] = None,
    ):
        self._sessions = sessions
        self.clock = clock
        self.reading_interval_minutes = (
            reading_interval_minutes or settings.READING_INTERVAL_MINUTES
        )

    # -------- sessions --------

    async def start_session(
        self,
        device_id: str,
        user_id: Optional[str] = None,
        location: Optional[Location] = None,
    ) -> str:
        device_id = (device_id or "").strip()
        if not device_id:
            raise ValidationError("deviceId is required")

        now = self.clock()
        # uuid suffix: concurrent starts from one device never collide
        session_id = f"session_{device_id}_{uuid.uuid4().hex}"
        async with store_session(self._sessions) as db:
            db.add(
                ExposureSession(
                    session_id=session_id,
                    device_id=device_id,
                    user_id=user_id,
                    start_time=now,
                    location_lat=location.lat if location else None,
                    location_lng=location.lng if location else None,
                    created_at=now,
                    updated_at=now,
                )
            )
            await db.commit()
        logger.info(f"[exposure] started session {session_id}")
        return session_id

    async def get_session(self, session_id: str) -> ExposureSession:
        async with store_session(self._sessions) as db:
            row = await crud.get_session_by_id(db, session_id)
        if row is None:
            raise NotFound(f"session {session_id} not found")
        return row

    async def end_session(self, session_id: str) -> ExposureSession:
        async with store_session(self._sessions) as db:
            row = await crud.get_session_by_id(db, session_id)
            if row is None or row.start_time is None:
                raise NotFound(f"session {session_id} not found")
            if row.is_ended:
                raise AlreadyEnded(f"session {session_id} already ended")

            end = self.clock()
            duration = max(0, round((end - row.start_time).total_seconds() / 60))
            if not await crud.mark_session_ended(
                db, session_id, end_time=end, duration_minutes=duration
            ):
                # a concurrent end got there first
                await db.rollback()
                raise AlreadyEnded(f"session {session_id} already ended")
            await db.commit()
            await db.refresh(row)
        logger.info(f"[exposure] ended session {session_id} after {duration} min")
        return row

    # -------- readings --------

    async def record_reading(self, session_id: str, data: ReadingData) -> ExposureReading:
        if (
            data.air_quality_index is None
            and data.total_pollen_index is None
            and data.uv_index is None
        ):
            raise ValidationError(
                "reading needs at least one of air_quality_index, total_pollen_index, uv_index"
            )

        scores = scoring.score(data.air_quality_index, data.total_pollen_index, data.uv_index)
        now = self.clock()
        async with store_session(self._sessions) as db:
            session = await crud.get_session_by_id(db, session_id)
            if session is None:
                raise NotFound(f"session {session_id} not found")
            if session.is_ended:
                logger.info(f"[exposure] late reading accepted for ended session {session_id}")

            reading = ExposureReading(
                session_id=session_id,
                reading_time=_aware(data.reading_time) if data.reading_time else now,
                location_lat=data.location.lat if data.location else None,
                location_lng=data.location.lng if data.location else None,
                air_quality_index=data.air_quality_index,
                air_quality_level=data.air_quality_level
                or scoring.air_quality_level(data.air_quality_index),
                pm25_value=data.pm25_value,
                pm10_value=data.pm10_value,
                ozone_value=data.ozone_value,
                no2_value=data.no2_value,
                co_value=data.co_value,
                tree_pollen_index=data.tree_pollen_index,
                grass_pollen_index=data.grass_pollen_index,
                weed_pollen_index=data.weed_pollen_index,
                total_pollen_index=data.total_pollen_index,
                pollen_level=data.pollen_level or scoring.pollen_level(data.total_pollen_index),
                uv_index=data.uv_index,
                uv_level=data.uv_level or scoring.uv_level(data.uv_index),
                temperature_celsius=data.temperature_celsius,
                humidity_percent=data.humidity_percent,
                wind_speed_kmh=data.wind_speed_kmh,
                air_quality_exposure_score=scores.air_quality_score,
                pollen_exposure_score=scores.pollen_score,
                uv_exposure_score=scores.uv_score,
                overall_exposure_score=scores.overall_score,
                created_at=now,
            )
            db.add(reading)
            await db.commit()
        logger.info(
            f"[exposure] reading for {session_id}: overall={scores.overall_score}"
        )
        return reading

    # -------- daily summaries --------

    async def recompute_daily_summary(self, device_id: str, day: date) -> DailySummary:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        async with store_session(self._sessions) as db:
            sessions = await crud.sessions_started_between(db, device_id, start, end)
            readings = await crud.readings_for_sessions(db, [s.session_id for s in sessions])
            values = summarize(device_id, day, sessions, readings, self.reading_interval_minutes)
            await crud.upsert_summary(db, values, self.clock())
            await db.commit()
            row = await crud.get_summary(db, device_id, day)
        logger.info(
            f"[exposure] summary {device_id} {day}: "
            f"{values['total_sessions']} sessions, {values['total_readings']} readings"
        )
        return row

    async def get_daily_summary(self, device_id: str, day: date) -> DailySummary:
        async with store_session(self._sessions) as db:
            row = await crud.get_summary(db, device_id, day)
        if row is None:
            raise NotFound(f"no summary for {device_id} on {day.isoformat()}")
        return row

    # -------- history --------

    async def exposure_history(
        self,
        start: datetime,
        end: datetime,
        interval: str = "15min",
        device_id: Optional[str] = None,
    ) -> List[Dict]:
        """
        Readings in [start, end] grouped into fixed slices starting at `start`.
        Each slice carries the mean AQI / pollen / UV of the readings that have
        a value (0 when none) and the number of readings in it.
        """
        start, end = _aware(start), _aware(end)
        if end < start:
            raise ValidationError("endTime is before startTime")
        step = timedelta(minutes=parse_interval(interval))
        n_buckets = int((end - start) // step) + 1
        if n_buckets > MAX_HISTORY_BUCKETS:
            raise ValidationError(
                f"{n_buckets} intervals requested; at most {MAX_HISTORY_BUCKETS} allowed"
            )

        async with store_session(self._sessions) as db:
            readings = await crud.readings_between(db, start, end, device_id)

        buckets: List[List[ExposureReading]] = [[] for _ in range(n_buckets)]
        for r in readings:
            idx = int((r.reading_time - start) // step)
            if 0 <= idx < n_buckets:
                buckets[idx].append(r)

        def avg(rows, attr) -> float:
            vals = [getattr(r, attr) for r in rows if getattr(r, attr) is not None]
            return round(sum(vals) / len(vals), 2) if vals else 0.0

        return [
            {
                "timestamp": start + i * step,
                "air_quality": avg(rows, "air_quality_index"),
                "pollen": avg(rows, "total_pollen_index"),
                "uv": avg(rows, "uv_index"),
                "reading_count": len(rows),
            }
            for i, rows in enumerate(buckets)
        ]
