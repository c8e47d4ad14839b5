# envcache/services/upstream.py
# -----------------------------------------------------------------------------
# Upstream heatmap tile provider (Google air quality / pollen map tiles)
# - one shared httpx.AsyncClient, bounded timeout
# - any failure -> UpstreamUnavailable; no retries at this layer
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import httpx
from loguru import logger

from envcache.core.config import settings
from envcache.core.errors import UpstreamUnavailable


@dataclass(frozen=True)
class UpstreamTile:
    payload: bytes
    content_type: str


class HeatmapTileProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_urls: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GOOGLE_CLOUD_API_KEY
        self.base_urls = base_urls or {
            "airquality": settings.AIR_QUALITY_API_URL,
            "pollen": settings.POLLEN_API_URL,
            "uv": settings.UV_API_URL,
        }
        t = timeout if timeout is not None else settings.UPSTREAM_TIMEOUT_SECONDS
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(t, connect=min(t, 6.0)),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )

    def build_url(self, key) -> str:
        base = self.base_urls.get(key.data_type)
        if not base:
            raise UpstreamUnavailable(f"no upstream configured for data type {key.data_type}")
        return (
            f"{base.rstrip('/')}/v1/mapTypes/{key.heatmap_type}"
            f"/heatmapTiles/{key.zoom}/{key.x}/{key.y}"
        )

    async def fetch_tile(self, key) -> UpstreamTile:
        if not self.api_key:
            raise UpstreamUnavailable("GOOGLE_CLOUD_API_KEY is not configured")

        url = self.build_url(key)
        logger.info(f"[upstream] fetching {key}")
        try:
            r = await self._client.get(url, params={"key": self.api_key})
            r.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning(f"[upstream] timeout for {key}: {e}")
            raise UpstreamUnavailable(f"upstream timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"[upstream] HTTP {e.response.status_code} for {key}")
            raise UpstreamUnavailable(
                f"upstream returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"[upstream] transport error for {key}: {e}")
            raise UpstreamUnavailable(f"upstream request failed: {e}") from e

        if not r.content:
            logger.error(f"[upstream] empty body for {key}")
            raise UpstreamUnavailable("upstream returned an empty tile")

        content_type = r.headers.get("content-type") or "image/png"
        return UpstreamTile(payload=r.content, content_type=content_type)

    async def aclose(self) -> None:
        await self._client.aclose()
