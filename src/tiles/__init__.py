"""Tile math, precache manifest, cache storage and fetch routing.

This module provides:
- tile_of / coverage: Web Mercator tile coordinates for a region
- build_manifest: site shell plus tile endpoints per subdomain
- CacheStorage: SQLite storage of named cache generations
- FetchRouter: cache-first handling of tile and static requests
"""

from tiles.cache import CacheGeneration, CacheStats, CacheStorage
from tiles.coverage import count_tiles, coverage, tile_of, tile_range
from tiles.manifest import PrecacheManifest, build_manifest, tile_endpoint
from tiles.router import FetchRouter, StaticRequest, TileRequest, classify_request

__all__ = [
    'CacheGeneration',
    'CacheStats',
    'CacheStorage',
    'FetchRouter',
    'PrecacheManifest',
    'StaticRequest',
    'TileRequest',
    'build_manifest',
    'classify_request',
    'count_tiles',
    'coverage',
    'tile_endpoint',
    'tile_of',
    'tile_range',
]
