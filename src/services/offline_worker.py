"""
Offline worker: dispatches install, activate and fetch events.

The worker is built once per runtime lifecycle and owns the manifest, the
cache store manager and the fetch router; nothing is looked up globally.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from infrastructure.http.client import NetworkFetcher, make_http_session
from services.cache_manager import CacheStoreManager
from shared.constants import CacheState
from tiles.cache import CacheStorage
from tiles.manifest import build_manifest
from tiles.router import FetchRouter

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from domain.models import OfflineSettings, Resource
    from services.cache_manager import InstallReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallEvent:
    pass


@dataclass(frozen=True)
class ActivateEvent:
    pass


@dataclass(frozen=True)
class FetchEvent:
    url: str


LifecycleEvent = InstallEvent | ActivateEvent | FetchEvent


class OfflineWorker:
    def __init__(
        self,
        settings: OfflineSettings,
        storage: CacheStorage,
        fetcher: NetworkFetcher,
    ) -> None:
        self.settings = settings
        self.version = settings.version
        self.manifest = build_manifest(
            settings.static_assets,
            settings.region,
            settings.subdomains,
            settings.tile_url_template,
        )
        self.manager = CacheStoreManager(
            storage,
            self.version,
            fetcher,
            origin=settings.origin,
            concurrency=settings.concurrency,
        )
        self.router = FetchRouter(self.manager, fetcher, tile_host=settings.tile_host)
        self.fetcher = fetcher

    @property
    def state(self) -> CacheState:
        return self.manager.state

    @property
    def controlling(self) -> bool:
        return self.manager.state is CacheState.ACTIVE

    async def install(self) -> InstallReport:
        return await self.manager.install(self.manifest)

    async def activate(self) -> list[str]:
        return await self.manager.activate()

    async def fetch(self, url: str) -> Resource:
        """Serve a request; relative paths resolve against the site origin.

        Until activation the worker does not intercept and goes to the network.
        """
        url = self.manager.resolve(url)
        if not self.controlling:
            logger.debug('Not controlling yet, passing %s to the network', url)
            return await self.fetcher.fetch(url)
        return await self.router.handle(url)

    async def handle(self, event: LifecycleEvent) -> InstallReport | list[str] | Resource:
        if isinstance(event, InstallEvent):
            return await self.install()
        if isinstance(event, ActivateEvent):
            return await self.activate()
        if isinstance(event, FetchEvent):
            return await self.fetch(event.url)
        msg = f'Unsupported lifecycle event: {event!r}'
        raise TypeError(msg)


@asynccontextmanager
async def open_worker(settings: OfflineSettings) -> AsyncIterator[OfflineWorker]:
    """Create storage and HTTP session for a worker and close both afterwards.

    A generation left by an earlier run is adopted, so fetches are served from
    it without reinstalling.
    """
    storage = CacheStorage(Path(settings.cache_path).expanduser())
    fetcher = NetworkFetcher(make_http_session(settings.timeout_s))
    try:
        worker = OfflineWorker(settings, storage, fetcher)
        worker.manager.resume()
        yield worker
    finally:
        await fetcher.close()
        storage.close()
