"""
Unit tests for exposure sessions, readings, daily summaries and history
"""

from datetime import date, timedelta

import pytest

from envcache.core.errors import AlreadyEnded, NotFound, ValidationError
from envcache.schemas.exposure import DailySummaryOut, Location, ReadingData
from envcache.services.exposure import parse_interval

from conftest import T0

DAY = date(2026, 10, 18)


class TestSessionLifecycle:
    async def test_start_returns_unique_prefixed_ids(self, exposure):
        a = await exposure.start_session("dev-1")
        b = await exposure.start_session("dev-1")
        assert a.startswith("session_dev-1_")
        assert a != b

    async def test_start_stores_location_and_user(self, exposure, clock):
        sid = await exposure.start_session("dev-1", "user-9", Location(lat=37.5, lng=127.0))
        row = await exposure.get_session(sid)
        assert row.user_id == "user-9"
        assert (row.location_lat, row.location_lng) == (37.5, 127.0)
        assert row.start_time == clock()
        assert row.end_time is None

    async def test_blank_device_rejected(self, exposure):
        with pytest.raises(ValidationError):
            await exposure.start_session("   ")

    async def test_end_sets_duration(self, exposure, clock):
        sid = await exposure.start_session("dev-1")
        clock.advance(minutes=90, seconds=20)
        row = await exposure.end_session(sid)
        assert row.end_time == clock()
        assert row.total_duration_minutes == 90

    async def test_duration_rounds_to_nearest_minute(self, exposure, clock):
        sid = await exposure.start_session("dev-1")
        clock.advance(minutes=4, seconds=31)
        assert (await exposure.end_session(sid)).total_duration_minutes == 5

    async def test_end_twice(self, exposure, clock):
        sid = await exposure.start_session("dev-1")
        clock.advance(minutes=5)
        first = await exposure.end_session(sid)
        clock.advance(minutes=5)
        with pytest.raises(AlreadyEnded):
            await exposure.end_session(sid)
        again = await exposure.get_session(sid)
        assert again.end_time == first.end_time

    async def test_end_unknown(self, exposure):
        with pytest.raises(NotFound):
            await exposure.end_session("session_nobody_0")

    async def test_get_unknown(self, exposure):
        with pytest.raises(NotFound):
            await exposure.get_session("session_nobody_0")


class TestReadings:
    async def test_scores_and_levels(self, exposure):
        sid = await exposure.start_session("dev-1")
        reading = await exposure.record_reading(
            sid, ReadingData(air_quality_index=120, total_pollen_index=5)
        )
        assert reading.air_quality_exposure_score == 140
        assert reading.pollen_exposure_score == 52
        assert reading.uv_exposure_score == 0
        assert reading.overall_exposure_score == 72
        assert reading.air_quality_level == "unhealthy_sensitive"
        assert reading.pollen_level == "high"
        assert reading.uv_level is None

    async def test_client_levels_are_kept(self, exposure):
        sid = await exposure.start_session("dev-1")
        reading = await exposure.record_reading(
            sid, ReadingData(air_quality_index=40, air_quality_level="moderate")
        )
        assert reading.air_quality_level == "moderate"

    async def test_reading_time_defaults_to_now(self, exposure, clock):
        sid = await exposure.start_session("dev-1")
        clock.advance(minutes=3)
        reading = await exposure.record_reading(sid, ReadingData(uv_index=4))
        assert reading.reading_time == clock()

    async def test_needs_a_scoring_field(self, exposure):
        sid = await exposure.start_session("dev-1")
        with pytest.raises(ValidationError):
            await exposure.record_reading(sid, ReadingData(temperature_celsius=21.0))

    async def test_unknown_session(self, exposure):
        with pytest.raises(NotFound):
            await exposure.record_reading("session_nobody_0", ReadingData(uv_index=3))

    async def test_late_reading_on_ended_session_is_accepted(self, exposure, clock):
        sid = await exposure.start_session("dev-1")
        clock.advance(minutes=10)
        await exposure.end_session(sid)
        clock.advance(minutes=1)
        reading = await exposure.record_reading(sid, ReadingData(air_quality_index=60))
        assert reading.id is not None
        assert reading.air_quality_exposure_score == 20


async def seed_day(exposure, clock):
    """
    dev-1 on DAY: session A (30 min, two readings) and session B (open, one
    reading); plus one session the next day and one for another device.
    """
    a = await exposure.start_session("dev-1", "user-1")
    await exposure.record_reading(
        a,
        ReadingData(
            air_quality_index=40, total_pollen_index=1.0, uv_index=1, temperature_celsius=20
        ),
    )
    clock.advance(minutes=5)
    await exposure.record_reading(
        a, ReadingData(air_quality_index=120, total_pollen_index=5, temperature_celsius=22)
    )
    clock.advance(minutes=25)
    await exposure.end_session(a)

    b = await exposure.start_session("dev-1")
    await exposure.record_reading(
        b, ReadingData(air_quality_index=250, total_pollen_index=8, uv_index=8)
    )

    other = await exposure.start_session("dev-2")
    await exposure.record_reading(other, ReadingData(air_quality_index=400))

    clock.advance(days=1)
    tomorrow = await exposure.start_session("dev-1")
    await exposure.record_reading(tomorrow, ReadingData(air_quality_index=10))


class TestDailySummary:
    async def test_totals(self, exposure, clock):
        await seed_day(exposure, clock)
        s = await exposure.recompute_daily_summary("dev-1", DAY)

        assert s.user_id == "user-1"
        assert s.total_sessions == 2
        assert s.total_duration_minutes == 30
        assert s.total_readings == 3
        assert s.avg_air_quality_index == pytest.approx(136.67)
        assert s.avg_pollen_index == pytest.approx(4.67)
        assert s.avg_uv_index == pytest.approx(4.5)
        assert s.avg_temperature == pytest.approx(21.0)
        assert (s.max_air_quality_index, s.max_pollen_index, s.max_uv_index) == (250, 8, 8)
        assert s.total_air_quality_exposure == 540
        assert s.total_pollen_exposure == 135
        assert s.total_uv_exposure == 233
        assert s.total_overall_exposure == 327

    async def test_time_in_band(self, exposure, clock):
        await seed_day(exposure, clock)
        s = await exposure.recompute_daily_summary("dev-1", DAY)

        assert s.time_good_air_quality_minutes == 5
        assert s.time_moderate_air_quality_minutes == 5
        assert s.time_unhealthy_air_quality_minutes == 5
        assert s.time_low_pollen_minutes == 5
        assert s.time_high_pollen_minutes == 10
        assert s.time_low_uv_minutes == 5
        assert s.time_high_uv_minutes == 5

    async def test_recompute_is_idempotent(self, exposure, clock):
        await seed_day(exposure, clock)
        first = DailySummaryOut.model_validate(
            await exposure.recompute_daily_summary("dev-1", DAY)
        ).model_dump_json()
        clock.advance(hours=3)
        second = DailySummaryOut.model_validate(
            await exposure.recompute_daily_summary("dev-1", DAY)
        ).model_dump_json()
        assert first == second

    async def test_recompute_picks_up_new_readings(self, exposure, clock):
        sid = await exposure.start_session("dev-1")
        await exposure.record_reading(sid, ReadingData(air_quality_index=40))
        assert (await exposure.recompute_daily_summary("dev-1", DAY)).total_readings == 1

        await exposure.record_reading(sid, ReadingData(air_quality_index=60))
        s = await exposure.recompute_daily_summary("dev-1", DAY)
        assert s.total_readings == 2
        assert s.total_air_quality_exposure == 20

    async def test_day_without_sessions(self, exposure):
        s = await exposure.recompute_daily_summary("dev-404", DAY)
        assert s.total_sessions == 0
        assert s.total_readings == 0
        assert s.avg_air_quality_index is None
        assert s.total_overall_exposure == 0

    async def test_get_before_and_after_refresh(self, exposure, clock):
        await seed_day(exposure, clock)
        with pytest.raises(NotFound):
            await exposure.get_daily_summary("dev-1", DAY)
        await exposure.recompute_daily_summary("dev-1", DAY)
        assert (await exposure.get_daily_summary("dev-1", DAY)).total_sessions == 2


class TestHistory:
    async def test_buckets(self, exposure, clock):
        sid = await exposure.start_session("dev-1")
        await exposure.record_reading(sid, ReadingData(air_quality_index=40, uv_index=2))
        clock.advance(minutes=5)
        await exposure.record_reading(sid, ReadingData(air_quality_index=60))
        clock.advance(minutes=20)
        await exposure.record_reading(sid, ReadingData(total_pollen_index=3.5))

        rows = await exposure.exposure_history(T0, T0 + timedelta(minutes=44), "15min")

        assert [r["timestamp"] for r in rows] == [
            T0,
            T0 + timedelta(minutes=15),
            T0 + timedelta(minutes=30),
        ]
        assert rows[0]["air_quality"] == 50.0
        assert rows[0]["uv"] == 2.0
        assert rows[0]["pollen"] == 0.0
        assert rows[0]["reading_count"] == 2
        assert rows[1]["reading_count"] == 1
        assert rows[1]["pollen"] == 3.5
        assert rows[2]["reading_count"] == 0

    async def test_device_filter(self, exposure, clock):
        a = await exposure.start_session("dev-1")
        b = await exposure.start_session("dev-2")
        await exposure.record_reading(a, ReadingData(air_quality_index=10))
        await exposure.record_reading(b, ReadingData(air_quality_index=90))

        rows = await exposure.exposure_history(T0, T0 + timedelta(hours=1), "1h", "dev-2")
        assert rows[0]["air_quality"] == 90.0
        assert rows[0]["reading_count"] == 1

    async def test_end_before_start(self, exposure):
        with pytest.raises(ValidationError):
            await exposure.exposure_history(T0, T0 - timedelta(minutes=1))

    async def test_too_many_buckets(self, exposure):
        with pytest.raises(ValidationError):
            await exposure.exposure_history(T0, T0 + timedelta(days=30), "1min")

    @pytest.mark.parametrize(
        "raw,minutes", [("15min", 15), ("2h", 120), ("1d", 1440), ("0h", 15), ("weekly", 15), (None, 15)]
    )
    def test_parse_interval(self, raw, minutes):
        assert parse_interval(raw) == minutes
