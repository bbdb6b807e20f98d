"""Domain layer - models and profiles."""
from domain.models import (
    BoundingRegion,
    CacheVersion,
    OfflineSettings,
    Resource,
    TileCoordinate,
    TileEndpoint,
)
from domain.profiles import (
    delete_profile,
    ensure_profiles_dir,
    list_profiles,
    load_profile,
    save_profile,
)

__all__ = [
    'BoundingRegion',
    'CacheVersion',
    'OfflineSettings',
    'Resource',
    'TileCoordinate',
    'TileEndpoint',
    'delete_profile',
    'ensure_profiles_dir',
    'list_profiles',
    'load_profile',
    'save_profile',
]
