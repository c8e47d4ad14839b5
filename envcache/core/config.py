# envcache/core/config.py
# -----------------------------------------------------------------------------
# Global settings (pydantic-settings v2)
# - Reads the .env file and OS environment into a Settings object
# - Type-safe defaults for the tile cache and the exposure engine
# -----------------------------------------------------------------------------
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # base
    APP_NAME: str = "Environmental Tile Cache"
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite+aiosqlite:///./envcache.db"

    # logging
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # upstream heatmap provider
    GOOGLE_CLOUD_API_KEY: str | None = None
    AIR_QUALITY_API_URL: str = "https://airquality.googleapis.com"
    POLLEN_API_URL: str = "https://pollen.googleapis.com"
    UV_API_URL: str = "https://pollen.googleapis.com"
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0
    USAGE_ENDPOINT_NAME: str = "google_cloud_api"

    # cache freshness (minutes), follows each signal's update cadence
    TTL_AIRQUALITY_MINUTES: int = 60
    TTL_POLLEN_MINUTES: int = 1440
    TTL_UV_MINUTES: int = 30

    # share one in-flight upstream call between concurrent misses on a key
    COALESCE_UPSTREAM_FETCHES: bool = False

    # expiry sweep; 0 disables the background task
    SWEEP_INTERVAL_SECONDS: int = 900

    # exposure aggregation
    READING_INTERVAL_MINUTES: int = 5
    REGION_GRID_SIZE: int = 10

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
