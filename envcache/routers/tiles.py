# envcache/routers/tiles.py
# -----------------------------------------------------------------------------
# /tiles/{dataType}/{heatmapType}/{zoom}/{x}/{y} : cached heatmap tile bytes
# /tiles/locate                                 : lat/lng -> tile + bounds
# /tiles/region/...                             : active tiles of a region cell
# /tiles/viewport                               : tiles + region cells for a bbox
# -----------------------------------------------------------------------------
import base64

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from envcache.core.clock import iso_utc
from envcache.core.config import settings
from envcache.schemas.tiles import (
    RegionResponse,
    RegionTile,
    TileBoundsOut,
    TileLocation,
    ViewportResponse,
    ViewportTile,
)
from envcache.routers.deps import get_tile_cache
from envcache.services import geo
from envcache.services.tile_cache import CacheStatus, TileCacheService, TileKey

router = APIRouter(prefix="/tiles", tags=["tiles"])


@router.get("/locate", response_model=TileLocation)
async def locate(
    lat: float = Query(...),
    lng: float = Query(...),
    zoom: int = Query(10, ge=0, le=geo.MAX_ZOOM),
):
    x, y = geo.to_tile(lat, lng, zoom)
    b = geo.to_bounds(x, y, zoom)
    return TileLocation(zoom=zoom, x=x, y=y, bounds=TileBoundsOut(**b.to_dict()))


@router.get("/viewport", response_model=ViewportResponse)
async def viewport(
    north: float = Query(...),
    south: float = Query(...),
    east: float = Query(...),
    west: float = Query(...),
    zoom: int = Query(10, ge=0, le=geo.MAX_ZOOM),
    max_tiles: int = Query(256, ge=1, le=4096),
):
    """Tiles a client must load for a map viewport, each tagged with its region cell."""
    grid = settings.REGION_GRID_SIZE
    # one extra tile tells whether the cap cut the list short
    found = geo.tiles_for_bounds(north, south, east, west, zoom, max_tiles=max_tiles + 1)
    tiles = []
    for x, y in found[:max_tiles]:
        rx, ry = geo.region_of(x, y, grid)
        tiles.append(ViewportTile(x=x, y=y, region_x=rx, region_y=ry))
    return ViewportResponse(
        zoom=zoom,
        grid_size=grid,
        tiles=tiles,
        count=len(tiles),
        truncated=len(found) > max_tiles,
    )


@router.get(
    "/region/{data_type}/{heatmap_type}/{zoom}/{grid_x}/{grid_y}",
    response_model=RegionResponse,
)
async def region(
    data_type: str,
    heatmap_type: str,
    zoom: int,
    grid_x: int,
    grid_y: int,
    cache: TileCacheService = Depends(get_tile_cache),
):
    rows = await cache.list_region(data_type, heatmap_type, zoom, grid_x, grid_y)
    tiles = [
        RegionTile(
            x=r.tile_x,
            y=r.tile_y,
            data=base64.b64encode(r.tile_data).decode("ascii"),
            content_type=r.content_type,
            expires_at=r.expires_at,
        )
        for r in rows
    ]
    return RegionResponse(
        region=f"{data_type}_{heatmap_type}_{zoom}_{grid_x}_{grid_y}",
        tiles=tiles,
        count=len(tiles),
    )


@router.get("/{data_type}/{heatmap_type}/{zoom}/{x}/{y}")
async def get_tile(
    data_type: str,
    heatmap_type: str,
    zoom: int,
    x: int,
    y: int,
    cache: TileCacheService = Depends(get_tile_cache),
):
    """
    Tile bytes with the upstream Content-Type.

    Headers:
      X-Cache          HIT | MISS
      X-Cache-Expires  ISO-8601 expiry of the cached entry
      X-Cache-Stored   "true" when this request populated the cache
    """
    key = TileKey(data_type, heatmap_type, zoom, x, y)
    result = await cache.get_tile(key)

    remaining = int((result.expires_at - cache.clock()).total_seconds())
    headers = {
        "X-Cache": result.cache_status.value,
        "X-Cache-Expires": iso_utc(result.expires_at),
        "Cache-Control": f"public, max-age={max(0, remaining)}",
    }
    if result.cache_status is CacheStatus.MISS:
        headers["X-Cache-Stored"] = "true"
    return Response(content=result.payload, media_type=result.content_type, headers=headers)
