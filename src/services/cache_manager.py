"""
Cache store manager: install, activate and serve one cache generation.

Lifecycle: UNINITIALIZED -> INSTALLING -> ACTIVE -> STALE. Install fetches the
site shell as one all-or-nothing batch, then warms tiles concurrently where
each tile failure is dropped on its own. Activation deletes every generation
other than the current one.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urljoin

from domain.models import CacheVersion
from shared.constants import (
    ASYNC_MAX_CONCURRENCY,
    INSTALL_LOG_MEMORY_EVERY_TILES,
    CacheState,
)
from shared.diagnostics import log_memory_usage
from tiles.cache import CacheGeneration

if TYPE_CHECKING:
    from collections.abc import Sequence

    from domain.models import Resource, TileEndpoint
    from infrastructure.http.client import NetworkFetcher
    from tiles.cache import CacheStorage
    from tiles.manifest import PrecacheManifest

logger = logging.getLogger(__name__)


class InstallError(RuntimeError):
    """The site shell could not be cached; the generation is not ready."""


class CacheStateError(RuntimeError):
    """A lifecycle step was requested in the wrong state."""


@dataclass
class InstallReport:
    cache_name: str
    static_cached: int
    tiles_cached: int
    tiles_failed: int

    @property
    def tiles_attempted(self) -> int:
        return self.tiles_cached + self.tiles_failed


class CacheStoreManager:
    """Owns the current cache generation inside a CacheStorage."""

    def __init__(
        self,
        storage: CacheStorage,
        version: CacheVersion,
        fetcher: NetworkFetcher,
        *,
        origin: str | None = None,
        concurrency: int = ASYNC_MAX_CONCURRENCY,
    ) -> None:
        self.storage = storage
        self.version = version
        self.fetcher = fetcher
        self.origin = origin
        self.concurrency = concurrency
        self.state = CacheState.UNINITIALIZED
        self._installed = False

    @property
    def cache_name(self) -> str:
        return self.version.name

    @property
    def generation(self) -> CacheGeneration:
        return CacheGeneration(self.storage, self.cache_name)

    @property
    def installed(self) -> bool:
        return self._installed

    def resolve(self, url: str) -> str:
        """Absolute request URL for a shell path; absolute URLs pass through."""
        if self.origin is None:
            return url
        return urljoin(self.origin.rstrip('/') + '/', url)

    async def install(self, manifest: PrecacheManifest) -> InstallReport:
        """Populate the current generation from the manifest.

        Raises:
            InstallError: any static asset failed; nothing of the shell is stored.
        """
        self.state = CacheState.INSTALLING
        self._installed = False
        logger.info(
            'Installing %s: %d static assets, %d tile endpoints',
            self.cache_name,
            len(manifest.static_assets),
            len(manifest.tile_endpoints),
        )
        try:
            static_cached = await self._install_static(manifest.static_assets)
        except InstallError:
            self.state = CacheState.UNINITIALIZED
            logger.exception('Install of %s aborted', self.cache_name)
            raise

        tiles_cached, tiles_failed = await self._install_tiles(manifest.tile_endpoints)
        self._installed = True
        report = InstallReport(
            cache_name=self.cache_name,
            static_cached=static_cached,
            tiles_cached=tiles_cached,
            tiles_failed=tiles_failed,
        )
        logger.info(
            'Installed %s: %d static, %d/%d tiles (%d failed)',
            self.cache_name,
            report.static_cached,
            report.tiles_cached,
            report.tiles_attempted,
            report.tiles_failed,
        )
        return report

    async def _install_static(self, assets: Sequence[str]) -> int:
        urls = [self.resolve(a) for a in assets]
        results = await asyncio.gather(
            *(self.fetcher.fetch(url) for url in urls),
            return_exceptions=True,
        )
        fetched: list[tuple[str, Resource]] = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                msg = f'Failed to precache {url}: {result}'
                raise InstallError(msg) from result
            if not result.ok:
                msg = f'Failed to precache {url}: HTTP {result.status}'
                raise InstallError(msg)
            fetched.append((url, result))

        try:
            self.generation.put_batch(fetched)
        except Exception as e:
            msg = f'Failed to store site shell in {self.cache_name}: {e}'
            raise InstallError(msg) from e
        return len({url for url, _ in fetched})

    async def _install_tiles(self, endpoints: Sequence[TileEndpoint]) -> tuple[int, int]:
        if not endpoints:
            return 0, 0
        cache = self.generation
        sem = asyncio.Semaphore(self.concurrency)
        cached = 0
        failed = 0

        async def _cache_tile(endpoint: TileEndpoint) -> None:
            nonlocal cached, failed
            try:
                async with sem:
                    resource = await self.fetcher.fetch(endpoint.url)
                if not resource.ok:
                    failed += 1
                    logger.debug('Tile %s skipped: HTTP %s', endpoint.url, resource.status)
                    return
                cache.put(endpoint.url, resource)
                cached += 1
            except Exception as e:
                failed += 1
                logger.debug('Tile %s skipped: %s', endpoint.url, e)
            done = cached + failed
            if done % INSTALL_LOG_MEMORY_EVERY_TILES == 0:
                log_memory_usage(f'after {done} tiles')

        await asyncio.gather(*(_cache_tile(e) for e in endpoints))
        return cached, failed

    async def activate(self) -> list[str]:
        """Delete every generation except the current one.

        Returns:
            Names of the deleted generations.
        """
        if not self._installed:
            msg = f'Cannot activate {self.cache_name}: install has not completed'
            raise CacheStateError(msg)
        deleted = []
        for name in self.storage.keys():
            if name != self.cache_name and self.storage.delete(name):
                deleted.append(name)
        self.state = CacheState.ACTIVE
        logger.info(
            'Activated %s, removed %d stale generation(s)', self.cache_name, len(deleted)
        )
        return deleted

    def resume(self) -> bool:
        """Adopt a generation installed by an earlier run.

        The generation row is written in the same transaction as the shell, so
        an existing generation counts as installed. It is active when no other
        generation is left. A newer generation of the same site retires this
        one instead.
        """
        newer = self.newer_generations()
        if newer:
            logger.info('%s superseded by %s', self.cache_name, ', '.join(newer))
            self.retire()
            return False
        if not self.storage.has(self.cache_name):
            return False
        self._installed = True
        if self.storage.keys() == [self.cache_name]:
            self.state = CacheState.ACTIVE
        else:
            self.state = CacheState.INSTALLING
        logger.info('Resumed %s in state %s', self.cache_name, self.state.value)
        return True

    def newer_generations(self) -> list[str]:
        """Stored generations of this site with a higher version number."""
        newer = []
        for name in self.storage.keys():
            try:
                other = CacheVersion.parse(name)
            except ValueError:
                continue
            if other.site_name == self.version.site_name and other.number > self.version.number:
                newer.append(name)
        return newer

    def retire(self) -> None:
        self.state = CacheState.STALE
        self._installed = False

    def get(self, key: str) -> Resource | None:
        return self.generation.match(key)

    def put(self, key: str, resource: Resource) -> None:
        self.generation.put(key, resource)
