# envcache/services/geo.py
# -----------------------------------------------------------------------------
# Web-Mercator tile math (slippy-map scheme, 2^zoom x 2^zoom tiles per zoom)
# - to_tile(lat, lng, zoom) -> (x, y); to_bounds(x, y, zoom) -> TileBounds
# - viewport -> tile list, tile -> region cell
# - pure functions; latitudes of exactly +/-90 are rejected (projection is
#   singular at the poles)
# -----------------------------------------------------------------------------
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, List, Tuple

from envcache.core.errors import ValidationError

MAX_ZOOM = 22


@dataclass(frozen=True)
class TileBounds:
    north: float
    south: float
    east: float
    west: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def _check_zoom(zoom: int) -> int:
    if not isinstance(zoom, int) or isinstance(zoom, bool):
        raise ValidationError(f"zoom must be an integer, got {zoom!r}")
    if zoom < 0 or zoom > MAX_ZOOM:
        raise ValidationError(f"zoom {zoom} out of range [0, {MAX_ZOOM}]")
    return zoom


def validate_tile(zoom: int, x: int, y: int) -> None:
    """Raise ValidationError unless 0 <= x, y < 2^zoom."""
    n = 1 << _check_zoom(zoom)
    if not (0 <= x < n) or not (0 <= y < n):
        raise ValidationError(f"tile {x}/{y} out of range for zoom {zoom} (0..{n - 1})")


def to_tile(lat: float, lng: float, zoom: int) -> Tuple[int, int]:
    if not (-90.0 < lat < 90.0):
        raise ValidationError(f"latitude {lat} out of range (-90, 90)")
    if not (-180.0 <= lng <= 180.0):
        raise ValidationError(f"longitude {lng} out of range [-180, 180]")
    n = 1 << _check_zoom(zoom)

    phi = math.radians(lat)
    x = math.floor((lng + 180.0) / 360.0 * n)
    y = math.floor((1.0 - math.log(math.tan(phi) + 1.0 / math.cos(phi)) / math.pi) / 2.0 * n)
    # lng == 180 and near-polar latitudes land one past the grid edge
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def _tile_lat(y: float, n: int) -> float:
    return math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n))))


def to_bounds(x: int, y: int, zoom: int) -> TileBounds:
    validate_tile(zoom, x, y)
    n = 1 << zoom
    return TileBounds(
        north=_tile_lat(y, n),
        south=_tile_lat(y + 1, n),
        east=(x + 1) / n * 360.0 - 180.0,
        west=x / n * 360.0 - 180.0,
    )


def tiles_for_bounds(
    north: float,
    south: float,
    east: float,
    west: float,
    zoom: int,
    max_tiles: int | None = None,
) -> List[Tuple[int, int]]:
    """
    Tiles covering a viewport, row by row from the north-west corner.
    Stops after `max_tiles` entries when given.
    """
    if south > north:
        raise ValidationError("south bound is above north bound")
    x0, y0 = to_tile(north, west, zoom)
    x1, y1 = to_tile(south, east, zoom)
    out: List[Tuple[int, int]] = []
    for y in range(y0, y1 + 1):
        for x in range(x0, x1 + 1):
            if max_tiles is not None and len(out) >= max_tiles:
                return out
            out.append((x, y))
    return out


def region_of(x: int, y: int, grid_size: int) -> Tuple[int, int]:
    """Region cell a tile belongs to when the grid is cut into grid_size blocks."""
    if grid_size <= 0:
        raise ValidationError("grid_size must be positive")
    return x // grid_size, y // grid_size
