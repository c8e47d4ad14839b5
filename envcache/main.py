# envcache/main.py
# -----------------------------------------------------------------------------
# FastAPI entrypoint
# - builds the store, upstream provider and services once per process
# - creates tables at startup, runs the periodic expiry sweep in background
# - maps ServiceError subclasses to structured JSON errors
# -----------------------------------------------------------------------------
import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from envcache.core.clock import iso_utc
from envcache.core.config import settings
from envcache.core.errors import ServiceError, StoreError
from envcache.core.logging import setup_logging
from envcache.db.session import create_all, make_engine, make_session_factory
from envcache.routers import admin, exposure, tiles
from envcache.services.exposure import ExposureService
from envcache.services.tile_cache import TileCacheService
from envcache.services.upstream import HeatmapTileProvider


def create_app(
    *,
    tile_cache: Optional[TileCacheService] = None,
    exposure_service: Optional[ExposureService] = None,
    sweep_interval: Optional[int] = None,
) -> FastAPI:
    """
    Prebuilt services (tests) are attached immediately; otherwise the lifespan
    builds them from settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        engine = provider = None
        if tile_cache is None or exposure_service is None:
            engine = make_engine(settings.DATABASE_URL)
            await create_all(engine)
            sessions = make_session_factory(engine)
            provider = HeatmapTileProvider()
            app.state.tile_cache = tile_cache or TileCacheService(sessions, provider)
            app.state.exposure = exposure_service or ExposureService(sessions)

        interval = settings.SWEEP_INTERVAL_SECONDS if sweep_interval is None else sweep_interval
        sweeper = None
        if interval > 0:
            sweeper = asyncio.create_task(app.state.tile_cache.run_sweeper(interval))
        logger.info(f"{settings.APP_NAME} started (sweep every {interval}s)")

        yield

        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        if provider is not None:
            await provider.aclose()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    if tile_cache is not None:
        app.state.tile_cache = tile_cache
    if exposure_service is not None:
        app.state.exposure = exposure_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache", "X-Cache-Expires", "X-Cache-Stored"],
    )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.detail}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "validation_error", "detail": jsonable_encoder(exc.errors())},
        )

    app.include_router(tiles.router)
    app.include_router(exposure.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health():
        try:
            await app.state.tile_cache.ping()
        except StoreError as e:
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", "database": "disconnected", "detail": e.detail},
            )
        return {
            "status": "ok",
            "database": "connected",
            "cache_durations": app.state.tile_cache.ttl_minutes,
            "timestamp": iso_utc(app.state.tile_cache.clock()),
        }

    return app


app = create_app()


# -------- local dev entrypoint --------
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
