"""Web Mercator tile math for the precached map region."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from domain.models import TileCoordinate
from shared.constants import WORLD_LNG_HALF_SPAN_DEG, WORLD_LNG_SPAN_DEG

if TYPE_CHECKING:
    from collections.abc import Iterator

    from domain.models import BoundingRegion


def tile_of(lat: float, lon: float, zoom: int) -> TileCoordinate:
    """Return the slippy-map tile containing a WGS84 point.

    Latitude must be strictly inside the Mercator range. Indices are clamped
    into [0, 2**zoom - 1] so the east edge (lon=180) maps to the last column.
    """
    n = 2**zoom
    lat_rad = math.radians(lat)
    x = math.floor((lon + WORLD_LNG_HALF_SPAN_DEG) / WORLD_LNG_SPAN_DEG * n)
    y = math.floor(
        (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi) / 2.0 * n
    )
    x = max(0, min(n - 1, x))
    y = max(0, min(n - 1, y))
    return TileCoordinate(zoom=zoom, x=x, y=y)


def tile_range(region: BoundingRegion, zoom: int) -> tuple[int, int, int, int]:
    """Inclusive (x_min, x_max, y_min, y_max) covering the region at one zoom."""
    a = tile_of(region.lat_min, region.lon_min, zoom)
    b = tile_of(region.lat_max, region.lon_max, zoom)
    # tile-y grows southwards, so the corners must be re-sorted after projection
    return min(a.x, b.x), max(a.x, b.x), min(a.y, b.y), max(a.y, b.y)


def iter_coverage(region: BoundingRegion) -> Iterator[TileCoordinate]:
    """Yield covering tiles ordered by zoom, then row, then column."""
    for zoom in sorted(set(region.zoom_levels)):
        x_min, x_max, y_min, y_max = tile_range(region, zoom)
        for y in range(y_min, y_max + 1):
            for x in range(x_min, x_max + 1):
                yield TileCoordinate(zoom=zoom, x=x, y=y)


def coverage(region: BoundingRegion) -> set[TileCoordinate]:
    return set(iter_coverage(region))


def count_tiles(region: BoundingRegion) -> int:
    total = 0
    for zoom in set(region.zoom_levels):
        x_min, x_max, y_min, y_max = tile_range(region, zoom)
        total += (x_max - x_min + 1) * (y_max - y_min + 1)
    return total
