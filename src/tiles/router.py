"""Fetch interception: cache-first policies for tile and static requests."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from domain.models import Resource, TileCoordinate
from infrastructure.http.client import NetworkError
from shared.constants import (
    FALLBACK_CONTENT_TYPE,
    FALLBACK_TILE_PNG,
    HTTP_OK,
    TILE_HOST,
)

if TYPE_CHECKING:
    from infrastructure.http.client import NetworkFetcher
    from services.cache_manager import CacheStoreManager

logger = logging.getLogger(__name__)

_SUBDOMAIN_RE = re.compile(r'^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$')
_TILE_PATH_RE = re.compile(r'^/(?P<z>[0-9]{1,2})/(?P<x>[0-9]+)/(?P<y>[0-9]+)\.png$')


@dataclass(frozen=True)
class TileRequest:
    url: str
    coordinate: TileCoordinate
    subdomain: str


@dataclass(frozen=True)
class StaticRequest:
    url: str


def classify_request(url: str, tile_host: str = TILE_HOST) -> TileRequest | StaticRequest:
    """Tell tile requests from everything else.

    A tile request is http(s) on exactly '<label>.<tile_host>' with a
    '/{z}/{x}/{y}.png' path whose indices are valid at that zoom.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return StaticRequest(url)
    host = (parts.hostname or '').lower()
    suffix = '.' + tile_host.lower()
    if parts.scheme not in ('http', 'https') or not host.endswith(suffix):
        return StaticRequest(url)
    label = host[: -len(suffix)]
    if not _SUBDOMAIN_RE.match(label):
        return StaticRequest(url)
    m = _TILE_PATH_RE.match(parts.path)
    if m is None:
        return StaticRequest(url)
    try:
        coord = TileCoordinate(zoom=int(m['z']), x=int(m['x']), y=int(m['y']))
    except ValueError:
        return StaticRequest(url)
    return TileRequest(url=url, coordinate=coord, subdomain=label)


def fallback_tile(url: str, body: bytes = FALLBACK_TILE_PNG) -> Resource:
    return Resource(
        url=url,
        status=HTTP_OK,
        body=body,
        content_type=FALLBACK_CONTENT_TYPE,
        headers={'Content-Type': FALLBACK_CONTENT_TYPE},
    )


class FetchRouter:
    """Route each request through the tile or the static policy.

    Tiles: cached copy as-is, else network with write-back of 200 responses,
    else the fallback PNG. Static: cached copy, else network without
    write-back; network failures propagate.
    """

    def __init__(
        self,
        manager: CacheStoreManager,
        fetcher: NetworkFetcher,
        *,
        tile_host: str = TILE_HOST,
        fallback: bytes = FALLBACK_TILE_PNG,
    ) -> None:
        self.manager = manager
        self.fetcher = fetcher
        self.tile_host = tile_host
        self.fallback = fallback
        self._stats_cache_hits = 0
        self._stats_cache_misses = 0
        self._stats_downloads = 0
        self._stats_fallbacks = 0
        self._stats_errors = 0

    @property
    def stats(self) -> dict[str, int]:
        return {
            'cache_hits': self._stats_cache_hits,
            'cache_misses': self._stats_cache_misses,
            'downloads': self._stats_downloads,
            'fallbacks': self._stats_fallbacks,
            'errors': self._stats_errors,
        }

    async def handle(self, url: str) -> Resource:
        request = classify_request(url, self.tile_host)
        if isinstance(request, TileRequest):
            return await self._handle_tile(request)
        return await self._handle_static(request)

    async def _handle_tile(self, request: TileRequest) -> Resource:
        cached = self.manager.get(request.url)
        if cached is not None:
            self._stats_cache_hits += 1
            return cached
        self._stats_cache_misses += 1

        try:
            resource = await self.fetcher.fetch(request.url)
        except NetworkError as e:
            self._stats_fallbacks += 1
            logger.debug('Tile %s unavailable, serving fallback: %s', request.url, e)
            return fallback_tile(request.url, self.fallback)
        self._stats_downloads += 1

        if resource.status == HTTP_OK:
            try:
                self.manager.put(request.url, resource)
            except Exception as e:
                self._stats_errors += 1
                logger.warning('Failed to cache tile %s: %s', request.url, e)
        return resource

    async def _handle_static(self, request: StaticRequest) -> Resource:
        cached = self.manager.get(request.url)
        if cached is not None:
            self._stats_cache_hits += 1
            return cached
        self._stats_cache_misses += 1
        try:
            resource = await self.fetcher.fetch(request.url)
        except NetworkError:
            self._stats_errors += 1
            raise
        self._stats_downloads += 1
        return resource
