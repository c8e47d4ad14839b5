# envcache/db/models.py
# -----------------------------------------------------------------------------
# ORM models
# - CachedTile: upstream heatmap tiles, one row per tile key
# - ApiUsage: hourly upstream request counters
# - ExposureSession / ExposureReading: tracking sessions and scored readings
# - DailySummary: per device+date roll-up, re-derived on refresh
# -----------------------------------------------------------------------------
from datetime import timezone

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator

from envcache.db.session import Base


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back aware UTC datetimes on every backend."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class CachedTile(Base):
    __tablename__ = "heatmap_tiles"

    id = Column(Integer, primary_key=True)
    data_type = Column(String(16), nullable=False, index=True)  # airquality|pollen|uv
    heatmap_type = Column(String(64), nullable=False)  # e.g. US_AQI, TREE_UPI
    zoom_level = Column(Integer, nullable=False)
    tile_x = Column(Integer, nullable=False)
    tile_y = Column(Integer, nullable=False)
    tile_data = Column(LargeBinary, nullable=False)
    content_type = Column(String(64), nullable=False, default="image/png")
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    access_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "data_type",
            "heatmap_type",
            "zoom_level",
            "tile_x",
            "tile_y",
            name="uq_heatmap_tiles_key",
        ),
    )


class ApiUsage(Base):
    __tablename__ = "api_usage"

    id = Column(Integer, primary_key=True)
    api_endpoint = Column(String(64), nullable=False)
    data_type = Column(String(16), nullable=False)
    hour_bucket = Column(UTCDateTime, nullable=False)  # request time truncated to the hour
    request_count = Column(Integer, nullable=False, default=0)
    last_request_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "api_endpoint", "data_type", "hour_bucket", name="uq_api_usage_hour"
        ),
    )


class ExposureSession(Base):
    __tablename__ = "exposure_sessions"

    id = Column(Integer, primary_key=True)
    session_id = Column(String(128), unique=True, nullable=False)
    device_id = Column(String(128), nullable=False, index=True)
    user_id = Column(String(128), nullable=True)
    start_time = Column(UTCDateTime, nullable=True, index=True)
    end_time = Column(UTCDateTime, nullable=True)
    total_duration_minutes = Column(Integer, nullable=True)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    @property
    def is_ended(self) -> bool:
        return self.end_time is not None


class ExposureReading(Base):
    __tablename__ = "exposure_readings"

    id = Column(Integer, primary_key=True)
    session_id = Column(
        String(128),
        ForeignKey("exposure_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reading_time = Column(UTCDateTime, nullable=False, index=True)
    location_lat = Column(Float, nullable=True)
    location_lng = Column(Float, nullable=True)

    # air quality
    air_quality_index = Column(Float, nullable=True)
    air_quality_level = Column(String(32), nullable=True)
    pm25_value = Column(Float, nullable=True)
    pm10_value = Column(Float, nullable=True)
    ozone_value = Column(Float, nullable=True)
    no2_value = Column(Float, nullable=True)
    co_value = Column(Float, nullable=True)

    # pollen
    tree_pollen_index = Column(Float, nullable=True)
    grass_pollen_index = Column(Float, nullable=True)
    weed_pollen_index = Column(Float, nullable=True)
    total_pollen_index = Column(Float, nullable=True)
    pollen_level = Column(String(32), nullable=True)

    # uv
    uv_index = Column(Float, nullable=True)
    uv_level = Column(String(32), nullable=True)

    # weather
    temperature_celsius = Column(Float, nullable=True)
    humidity_percent = Column(Float, nullable=True)
    wind_speed_kmh = Column(Float, nullable=True)

    # derived scores, always set on insert
    air_quality_exposure_score = Column(Integer, nullable=False)
    pollen_exposure_score = Column(Integer, nullable=False)
    uv_exposure_score = Column(Integer, nullable=False)
    overall_exposure_score = Column(Integer, nullable=False)

    created_at = Column(UTCDateTime, nullable=False)


class DailySummary(Base):
    __tablename__ = "daily_exposure_summaries"

    id = Column(Integer, primary_key=True)
    device_id = Column(String(128), nullable=False)
    user_id = Column(String(128), nullable=True)
    summary_date = Column(Date, nullable=False)

    total_sessions = Column(Integer, nullable=False, default=0)
    total_duration_minutes = Column(Integer, nullable=False, default=0)
    total_readings = Column(Integer, nullable=False, default=0)

    avg_air_quality_index = Column(Float, nullable=True)
    avg_pollen_index = Column(Float, nullable=True)
    avg_uv_index = Column(Float, nullable=True)
    avg_temperature = Column(Float, nullable=True)

    max_air_quality_index = Column(Float, nullable=True)
    max_pollen_index = Column(Float, nullable=True)
    max_uv_index = Column(Float, nullable=True)

    total_air_quality_exposure = Column(Integer, nullable=False, default=0)
    total_pollen_exposure = Column(Integer, nullable=False, default=0)
    total_uv_exposure = Column(Integer, nullable=False, default=0)
    total_overall_exposure = Column(Integer, nullable=False, default=0)

    time_good_air_quality_minutes = Column(Integer, nullable=False, default=0)
    time_moderate_air_quality_minutes = Column(Integer, nullable=False, default=0)
    time_unhealthy_air_quality_minutes = Column(Integer, nullable=False, default=0)
    time_low_pollen_minutes = Column(Integer, nullable=False, default=0)
    time_high_pollen_minutes = Column(Integer, nullable=False, default=0)
    time_low_uv_minutes = Column(Integer, nullable=False, default=0)
    time_high_uv_minutes = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("device_id", "summary_date", name="uq_daily_summary_device_date"),
        Index("ix_daily_summary_device_date", "device_id", "summary_date"),
    )
