# envcache/routers/admin.py
# -----------------------------------------------------------------------------
# Manual expiry sweep / cache + usage statistics
# -----------------------------------------------------------------------------
from fastapi import APIRouter, Depends

from envcache.routers.deps import get_tile_cache
from envcache.schemas.tiles import StatsResponse, SweepResponse
from envcache.services.tile_cache import TileCacheService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/sweep", response_model=SweepResponse)
async def sweep(cache: TileCacheService = Depends(get_tile_cache)):
    deleted = await cache.sweep_expired()
    return SweepResponse(deleted=deleted)


@router.get("/stats", response_model=StatsResponse)
async def stats(cache: TileCacheService = Depends(get_tile_cache)):
    return await cache.cache_stats()
