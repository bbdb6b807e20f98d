"""Services package - cache lifecycle and the offline worker."""

from services.cache_manager import (
    CacheStateError,
    CacheStoreManager,
    InstallError,
    InstallReport,
)
from services.offline_worker import (
    ActivateEvent,
    FetchEvent,
    InstallEvent,
    OfflineWorker,
    open_worker,
)

__all__ = [
    'ActivateEvent',
    'CacheStateError',
    'CacheStoreManager',
    'FetchEvent',
    'InstallError',
    'InstallEvent',
    'InstallReport',
    'OfflineWorker',
    'open_worker',
]
