"""Precache manifest: site shell followed by tile endpoints for every subdomain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from domain.models import TileEndpoint
from shared.constants import TILE_URL_TEMPLATE
from tiles.coverage import iter_coverage

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from domain.models import BoundingRegion, TileCoordinate


@dataclass
class PrecacheManifest:
    """Ordered resources to fetch at install time.

    Static assets come first and keep their configured order. Duplicates are
    allowed; they only cost an extra request.
    """

    static_assets: list[str] = field(default_factory=list)
    tile_endpoints: list[TileEndpoint] = field(default_factory=list)

    @property
    def urls(self) -> list[str]:
        return list(self)

    def __iter__(self) -> Iterator[str]:
        yield from self.static_assets
        for endpoint in self.tile_endpoints:
            yield endpoint.url

    def __len__(self) -> int:
        return len(self.static_assets) + len(self.tile_endpoints)


def tile_endpoint(template: str, coord: TileCoordinate, subdomain: str) -> TileEndpoint:
    url = (
        template.replace('{s}', subdomain)
        .replace('{z}', str(coord.zoom))
        .replace('{x}', str(coord.x))
        .replace('{y}', str(coord.y))
    )
    return TileEndpoint(coordinate=coord, subdomain=subdomain, url=url)


def build_manifest(
    static_assets: Sequence[str],
    region: BoundingRegion,
    subdomains: Sequence[str],
    template: str = TILE_URL_TEMPLATE,
) -> PrecacheManifest:
    """Combine the shell list with one tile endpoint per (tile, subdomain).

    Every tile is requested once per subdomain so whichever mirror a later
    request lands on is already warm.
    """
    endpoints = [
        tile_endpoint(template, coord, subdomain)
        for coord in iter_coverage(region)
        for subdomain in subdomains
    ]
    return PrecacheManifest(static_assets=list(static_assets), tile_endpoints=endpoints)
