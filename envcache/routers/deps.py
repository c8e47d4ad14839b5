# envcache/routers/deps.py
# -----------------------------------------------------------------------------
# Service lookups for Depends(); components live on app.state
# -----------------------------------------------------------------------------
from fastapi import Request

from envcache.services.exposure import ExposureService
from envcache.services.tile_cache import TileCacheService


def get_tile_cache(request: Request) -> TileCacheService:
    return request.app.state.tile_cache


def get_exposure(request: Request) -> ExposureService:
    return request.app.state.exposure
