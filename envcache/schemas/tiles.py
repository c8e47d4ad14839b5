# envcache/schemas/tiles.py
# -----------------------------------------------------------------------------
# Tile location / region / viewport / cache statistics schemas
# - plain snake_case models, matching the admin and tiles routers
# -----------------------------------------------------------------------------
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class TileBoundsOut(BaseModel):
    north: float
    south: float
    east: float
    west: float


class TileLocation(BaseModel):
    zoom: int
    x: int
    y: int
    bounds: TileBoundsOut


class RegionTile(BaseModel):
    x: int
    y: int
    data: str  # base64
    content_type: str
    expires_at: datetime


class RegionResponse(BaseModel):
    region: str
    tiles: List[RegionTile]
    count: int


class CacheTypeStats(BaseModel):
    data_type: str
    total_tiles: int
    active_tiles: int
    expired_tiles: int
    total_accesses: int
    avg_accesses_per_tile: float
    oldest_tile: Optional[str] = None
    newest_tile: Optional[str] = None


class UsageTotals(BaseModel):
    data_type: str
    total_requests: int
    last_request_at: Optional[str] = None


class StatsResponse(BaseModel):
    cache_stats: List[CacheTypeStats]
    usage: List[UsageTotals]
    cache_durations: Dict[str, int]
    timestamp: str


class SweepResponse(BaseModel):
    deleted: int
    message: str = "Cleanup completed"


class ViewportTile(BaseModel):
    x: int
    y: int
    region_x: int
    region_y: int


class ViewportResponse(BaseModel):
    zoom: int
    grid_size: int
    tiles: List[ViewportTile]
    count: int
    truncated: bool
