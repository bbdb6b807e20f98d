import base64
from enum import Enum

# Site name used in cache generation names: '<site>-cache-v<N>'
SITE_NAME = 'leeward-point'

# Current cache generation number (bump whenever the shell list changes)
CACHE_VERSION = 1

# Template of a cache generation name
CACHE_NAME_TEMPLATE = '{site}-cache-v{number}'

# Origin used to resolve relative shell paths into request URLs
DEFAULT_ORIGIN = 'http://localhost:8000'

# Site shell precached at install time
PRECACHE_URLS = (
    '/',
    '/index.html',
    '/info.html',
    '/subcategory.html',
    '/search.html',
    '/map.html',
    '/admin.html',
    '/style.css',
    '/script.js',
    '/data.json',
    '/manifest.json',
    '/icon-192.png',
    '/icon-512.png',
)

# Tile server (OpenStreetMap slippy map)
TILE_HOST = 'tile.openstreetmap.org'
TILE_URL_TEMPLATE = 'https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png'
TILE_SUBDOMAINS = ('a', 'b', 'c')

# Area around the property (~80 miles) warmed at install time
REGION_LAT_MIN = 29.18
REGION_LAT_MAX = 31.48
REGION_LON_MIN = -82.98
REGION_LON_MAX = -80.32
REGION_ZOOM_LEVELS = (12,)

# Web Mercator limits
MERCATOR_MAX_LAT_DEG = 85.05112878
WORLD_LNG_SPAN_DEG = 360.0
WORLD_LNG_HALF_SPAN_DEG = 180.0
MAX_TILE_ZOOM = 22

# Cache database location (relative paths resolve against the working dir)
CACHE_DB_PATH = '.cache/guestbook/offline_cache.sqlite'

# Profiles directory
PROFILES_DIR = 'configs/profiles'
DEFAULT_PROFILE = 'default'

# Maximum number of parallel tile downloads during install
ASYNC_MAX_CONCURRENCY = 10

# Total timeout for a single request (seconds)
HTTP_TIMEOUT_DEFAULT = 20.0

HTTP_OK = 200

# Log memory usage every N tiles while installing
INSTALL_LOG_MEMORY_EVERY_TILES = 500

PSUTIL_AVAILABLE = True

# 1x1 transparent PNG served when a tile is neither cached nor reachable
FALLBACK_TILE_PNG_B64 = (
    'iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII='
)
FALLBACK_TILE_PNG = base64.b64decode(FALLBACK_TILE_PNG_B64)
FALLBACK_CONTENT_TYPE = 'image/png'


class CacheState(str, Enum):
    UNINITIALIZED = 'UNINITIALIZED'
    INSTALLING = 'INSTALLING'
    ACTIVE = 'ACTIVE'
    STALE = 'STALE'
