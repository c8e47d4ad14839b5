# envcache/schemas/exposure.py
# -----------------------------------------------------------------------------
# Exposure session / reading / summary schemas
# - fields are snake_case; camelCase aliases are accepted and emitted
# -----------------------------------------------------------------------------
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        allow_inf_nan=False,
    )


class Location(ApiModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


AirQualityLevel = Literal[
    "good", "moderate", "unhealthy_sensitive", "unhealthy", "very_unhealthy", "hazardous"
]
PollenLevel = Literal["low", "moderate", "high", "very_high"]
UvLevel = Literal["low", "moderate", "high", "very_high", "extreme"]


class StartSessionRequest(ApiModel):
    device_id: str = Field(min_length=1, max_length=128)
    user_id: Optional[str] = Field(None, max_length=128)
    location: Optional[Location] = None


class StartSessionResponse(ApiModel):
    session_id: str
    message: str = "Exposure session started"
    timestamp: datetime


class EndSessionRequest(ApiModel):
    session_id: str = Field(min_length=1)


class SessionOut(ApiModel):
    session_id: str
    device_id: str
    user_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_duration_minutes: Optional[int] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None


class ReadingData(ApiModel):
    reading_time: Optional[datetime] = None
    location: Optional[Location] = None

    air_quality_index: Optional[float] = Field(None, ge=0)
    air_quality_level: Optional[AirQualityLevel] = None
    pm25_value: Optional[float] = None
    pm10_value: Optional[float] = None
    ozone_value: Optional[float] = None
    no2_value: Optional[float] = None
    co_value: Optional[float] = None

    tree_pollen_index: Optional[float] = None
    grass_pollen_index: Optional[float] = None
    weed_pollen_index: Optional[float] = None
    total_pollen_index: Optional[float] = Field(None, ge=0)
    pollen_level: Optional[PollenLevel] = None

    uv_index: Optional[float] = Field(None, ge=0)
    uv_level: Optional[UvLevel] = None

    temperature_celsius: Optional[float] = None
    humidity_percent: Optional[float] = None
    wind_speed_kmh: Optional[float] = None


class RecordReadingRequest(ApiModel):
    session_id: str = Field(min_length=1)
    reading_data: ReadingData


class ReadingOut(ApiModel):
    id: int
    session_id: str
    reading_time: datetime
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None

    air_quality_index: Optional[float] = None
    air_quality_level: Optional[str] = None
    pm25_value: Optional[float] = None
    pm10_value: Optional[float] = None
    ozone_value: Optional[float] = None
    no2_value: Optional[float] = None
    co_value: Optional[float] = None
    tree_pollen_index: Optional[float] = None
    grass_pollen_index: Optional[float] = None
    weed_pollen_index: Optional[float] = None
    total_pollen_index: Optional[float] = None
    pollen_level: Optional[str] = None
    uv_index: Optional[float] = None
    uv_level: Optional[str] = None
    temperature_celsius: Optional[float] = None
    humidity_percent: Optional[float] = None
    wind_speed_kmh: Optional[float] = None

    air_quality_exposure_score: int
    pollen_exposure_score: int
    uv_exposure_score: int
    overall_exposure_score: int


class SummaryRefreshRequest(ApiModel):
    device_id: str = Field(min_length=1)
    date: date


class DailySummaryOut(ApiModel):
    device_id: str
    user_id: Optional[str] = None
    summary_date: date

    total_sessions: int
    total_duration_minutes: int
    total_readings: int

    avg_air_quality_index: Optional[float] = None
    avg_pollen_index: Optional[float] = None
    avg_uv_index: Optional[float] = None
    avg_temperature: Optional[float] = None

    max_air_quality_index: Optional[float] = None
    max_pollen_index: Optional[float] = None
    max_uv_index: Optional[float] = None

    total_air_quality_exposure: int
    total_pollen_exposure: int
    total_uv_exposure: int
    total_overall_exposure: int

    time_good_air_quality_minutes: int
    time_moderate_air_quality_minutes: int
    time_unhealthy_air_quality_minutes: int
    time_low_pollen_minutes: int
    time_high_pollen_minutes: int
    time_low_uv_minutes: int
    time_high_uv_minutes: int


class HistoryBucket(ApiModel):
    timestamp: datetime
    air_quality: float
    pollen: float
    uv: float
    reading_count: int


class HistoryResponse(ApiModel):
    records: List[HistoryBucket]
    interval: str
    record_count: int
