from __future__ import annotations

import re
from dataclasses import dataclass, field

from pydantic import BaseModel, field_validator, model_validator

from shared.constants import (
    ASYNC_MAX_CONCURRENCY,
    CACHE_DB_PATH,
    CACHE_NAME_TEMPLATE,
    CACHE_VERSION,
    DEFAULT_ORIGIN,
    HTTP_OK,
    HTTP_TIMEOUT_DEFAULT,
    MAX_TILE_ZOOM,
    MERCATOR_MAX_LAT_DEG,
    PRECACHE_URLS,
    REGION_LAT_MAX,
    REGION_LAT_MIN,
    REGION_LON_MAX,
    REGION_LON_MIN,
    REGION_ZOOM_LEVELS,
    SITE_NAME,
    TILE_HOST,
    TILE_SUBDOMAINS,
    TILE_URL_TEMPLATE,
    WORLD_LNG_HALF_SPAN_DEG,
)

_CACHE_NAME_RE = re.compile(r'^(?P<site>.+)-cache-v(?P<number>[0-9]+)$')


class CacheVersion(BaseModel):
    """One generation of cached resources, rendered as '<site>-cache-v<N>'."""

    model_config = {'frozen': True}

    site_name: str
    number: int

    @field_validator('site_name')
    @classmethod
    def validate_site_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = 'site_name must not be empty'
            raise ValueError(msg)
        return v

    @field_validator('number')
    @classmethod
    def validate_number(cls, v: int) -> int:
        if v < 1:
            msg = 'cache version number must be >= 1'
            raise ValueError(msg)
        return v

    @property
    def name(self) -> str:
        return CACHE_NAME_TEMPLATE.format(site=self.site_name, number=self.number)

    @classmethod
    def parse(cls, name: str) -> CacheVersion:
        m = _CACHE_NAME_RE.match(name)
        if m is None:
            msg = f'Not a cache generation name: {name!r}'
            raise ValueError(msg)
        return cls(site_name=m.group('site'), number=int(m.group('number')))

    def bump(self) -> CacheVersion:
        return CacheVersion(site_name=self.site_name, number=self.number + 1)

    def __str__(self) -> str:
        return self.name


class BoundingRegion(BaseModel):
    """Closed lat/lon rectangle plus the zoom levels to cover."""

    model_config = {'frozen': True}

    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float
    zoom_levels: tuple[int, ...]

    @field_validator('lat_min', 'lat_max')
    @classmethod
    def validate_lat(cls, v: float) -> float:
        v = float(v)
        if not (-MERCATOR_MAX_LAT_DEG < v < MERCATOR_MAX_LAT_DEG):
            msg = f'Latitude {v} is outside the Web Mercator range'
            raise ValueError(msg)
        return v

    @field_validator('lon_min', 'lon_max')
    @classmethod
    def validate_lon(cls, v: float) -> float:
        v = float(v)
        if not (-WORLD_LNG_HALF_SPAN_DEG <= v <= WORLD_LNG_HALF_SPAN_DEG):
            msg = f'Longitude {v} must be within [-180, 180]'
            raise ValueError(msg)
        return v

    @field_validator('zoom_levels')
    @classmethod
    def validate_zoom_levels(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if not v:
            msg = 'At least one zoom level is required'
            raise ValueError(msg)
        for z in v:
            if not (0 <= z <= MAX_TILE_ZOOM):
                msg = f'Zoom level {z} must be within [0, {MAX_TILE_ZOOM}]'
                raise ValueError(msg)
        return v

    @model_validator(mode='after')
    def validate_order(self) -> BoundingRegion:
        if self.lat_min > self.lat_max:
            msg = 'lat_min must not exceed lat_max'
            raise ValueError(msg)
        if self.lon_min > self.lon_max:
            msg = 'lon_min must not exceed lon_max'
            raise ValueError(msg)
        return self


@dataclass(frozen=True, order=True)
class TileCoordinate:
    """Slippy-map tile index, 0 <= x, y < 2**zoom."""

    zoom: int
    x: int
    y: int

    def __post_init__(self) -> None:
        n = 2**self.zoom
        if self.zoom < 0 or not (0 <= self.x < n) or not (0 <= self.y < n):
            msg = f'Tile z/x/y={self.zoom}/{self.x}/{self.y} is out of range'
            raise ValueError(msg)


@dataclass(frozen=True)
class TileEndpoint:
    """Concrete tile URL on one load-balancing subdomain."""

    coordinate: TileCoordinate
    subdomain: str
    url: str


@dataclass
class Resource:
    """A response body with the metadata needed to replay it."""

    url: str
    status: int
    body: bytes
    content_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == HTTP_OK

    @property
    def size_bytes(self) -> int:
        return len(self.body)


class OfflineSettings(BaseModel):
    """Offline cache configuration, loaded from a TOML profile."""

    model_config = {
        'extra': 'ignore',
    }

    site_name: str = SITE_NAME
    cache_version: int = CACHE_VERSION
    # Relative shell paths are resolved against this origin
    origin: str = DEFAULT_ORIGIN
    static_assets: list[str] = list(PRECACHE_URLS)
    region: BoundingRegion = BoundingRegion(
        lat_min=REGION_LAT_MIN,
        lat_max=REGION_LAT_MAX,
        lon_min=REGION_LON_MIN,
        lon_max=REGION_LON_MAX,
        zoom_levels=REGION_ZOOM_LEVELS,
    )
    tile_url_template: str = TILE_URL_TEMPLATE
    tile_host: str = TILE_HOST
    subdomains: list[str] = list(TILE_SUBDOMAINS)
    cache_path: str = CACHE_DB_PATH
    concurrency: int = ASYNC_MAX_CONCURRENCY
    timeout_s: float = HTTP_TIMEOUT_DEFAULT

    @field_validator('origin')
    @classmethod
    def validate_origin(cls, v: str) -> str:
        if not v.startswith(('http://', 'https://')):
            msg = 'origin must be an http(s) URL'
            raise ValueError(msg)
        return v.rstrip('/')

    @field_validator('tile_url_template')
    @classmethod
    def validate_template(cls, v: str) -> str:
        for placeholder in ('{s}', '{z}', '{x}', '{y}'):
            if placeholder not in v:
                msg = f'tile_url_template is missing {placeholder}'
                raise ValueError(msg)
        return v

    @field_validator('subdomains')
    @classmethod
    def validate_subdomains(cls, v: list[str]) -> list[str]:
        if not v:
            msg = 'At least one tile subdomain is required'
            raise ValueError(msg)
        return v

    @field_validator('concurrency')
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        v = int(v)
        if v < 1:
            msg = 'concurrency must be >= 1'
            raise ValueError(msg)
        return v

    @field_validator('timeout_s')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        v = float(v)
        if v <= 0:
            msg = 'timeout_s must be positive'
            raise ValueError(msg)
        return v

    @property
    def version(self) -> CacheVersion:
        return CacheVersion(site_name=self.site_name, number=self.cache_version)
