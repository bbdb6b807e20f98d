"""Tests for CacheStoreManager lifecycle."""

import asyncio

import pytest

from domain.models import BoundingRegion, CacheVersion, Resource
from services.cache_manager import (
    CacheStateError,
    CacheStoreManager,
    InstallError,
    InstallReport,
)
from shared.constants import CacheState
from tiles.manifest import PrecacheManifest, build_manifest

ORIGIN = 'http://localhost:8000'
STATIC = ['/', '/index.html', '/js/map.js']
STATIC_URLS = [ORIGIN + '/', ORIGIN + '/index.html', ORIGIN + '/js/map.js']


def version(n=1):
    return CacheVersion(site_name='leeward-point', number=n)


def shell_bodies():
    return {url: f'<{url}>'.encode() for url in STATIC_URLS}


def make_manager(storage, fetcher, n=1, **kwargs):
    return CacheStoreManager(storage, version(n), fetcher, origin=ORIGIN, **kwargs)


class TestResolve:
    """Tests for relative path resolution."""

    def test_relative_paths(self, storage, fake_fetcher_cls):
        mgr = make_manager(storage, fake_fetcher_cls())
        assert mgr.resolve('/') == 'http://localhost:8000/'
        assert mgr.resolve('/css/site.css') == 'http://localhost:8000/css/site.css'
        assert mgr.resolve('about.html') == 'http://localhost:8000/about.html'

    def test_absolute_url_unchanged(self, storage, fake_fetcher_cls):
        mgr = make_manager(storage, fake_fetcher_cls())
        url = 'https://a.tile.openstreetmap.org/1/0/0.png'
        assert mgr.resolve(url) == url

    def test_no_origin(self, storage, fake_fetcher_cls):
        mgr = CacheStoreManager(storage, version(), fake_fetcher_cls())
        assert mgr.resolve('/index.html') == '/index.html'


class TestInstall:
    """Tests for install."""

    @pytest.mark.asyncio
    async def test_install_stores_shell_and_tiles(self, storage, small_region, fake_fetcher_cls):
        """N static + M tile endpoints -> at most N + M entries."""
        manifest = build_manifest(STATIC, small_region, ['a', 'b', 'c'])
        fetcher = fake_fetcher_cls(shell_bodies(), default_body=b'png')
        mgr = make_manager(storage, fetcher)

        report = await mgr.install(manifest)

        assert isinstance(report, InstallReport)
        assert report.cache_name == 'leeward-point-cache-v1'
        assert report.static_cached == 3
        assert report.tiles_cached == 3
        assert report.tiles_failed == 0
        assert mgr.installed
        assert mgr.state is CacheState.INSTALLING
        assert mgr.generation.count() == len(manifest) == 6
        for url in STATIC_URLS:
            assert mgr.get(url).body == f'<{url}>'.encode()

    @pytest.mark.asyncio
    async def test_static_failure_aborts(self, storage, small_region, fake_fetcher_cls):
        """One unreachable static asset fails the install and stores nothing."""
        manifest = build_manifest(STATIC, small_region, ['a'])
        bodies = shell_bodies()
        fetcher = fake_fetcher_cls(bodies, failing=[STATIC_URLS[1]], default_body=b'png')
        mgr = make_manager(storage, fetcher)

        with pytest.raises(InstallError):
            await mgr.install(manifest)

        assert not mgr.installed
        assert mgr.state is CacheState.UNINITIALIZED
        assert not storage.has(mgr.cache_name)
        assert mgr.generation.count() == 0
        # tiles are not attempted after the shell failed
        assert not any(url.endswith('.png') for url in fetcher.calls)

    @pytest.mark.asyncio
    async def test_static_non_200_aborts(self, storage, small_region, fake_fetcher_cls):
        """A 404 for a shell asset is an install failure."""
        manifest = build_manifest(STATIC, small_region, ['a'])
        fetcher = fake_fetcher_cls(shell_bodies(), statuses={STATIC_URLS[2]: 404})
        mgr = make_manager(storage, fetcher)

        with pytest.raises(InstallError, match='HTTP 404'):
            await mgr.install(manifest)
        assert mgr.generation.count() == 0

    @pytest.mark.asyncio
    async def test_tile_failures_are_swallowed(self, storage, small_region, fake_fetcher_cls):
        """Unreachable tiles are skipped without failing the install."""
        manifest = build_manifest(STATIC, small_region, ['a', 'b', 'c'])
        tile_urls = [e.url for e in manifest.tile_endpoints]
        bodies = shell_bodies()
        bodies[tile_urls[0]] = b'png'
        fetcher = fake_fetcher_cls(bodies, failing=tile_urls[1:])
        mgr = make_manager(storage, fetcher)

        report = await mgr.install(manifest)

        assert report.tiles_cached == 1
        assert report.tiles_failed == 2
        assert report.tiles_attempted == 3
        assert mgr.get(tile_urls[0]) is not None
        assert mgr.get(tile_urls[1]) is None

    @pytest.mark.asyncio
    async def test_non_200_tiles_not_stored(self, storage, small_region, fake_fetcher_cls):
        manifest = build_manifest([], small_region, ['a'])
        url = manifest.tile_endpoints[0].url
        fetcher = fake_fetcher_cls({url: b'gone'}, statuses={url: 410})
        mgr = make_manager(storage, fetcher)

        report = await mgr.install(manifest)

        assert report.tiles_failed == 1
        assert mgr.get(url) is None

    @pytest.mark.asyncio
    async def test_concurrency_limit(self, storage, fake_fetcher_cls):
        """No more than `concurrency` tile fetches run at once."""
        region = BoundingRegion(
            lat_min=30.0, lat_max=30.3, lon_min=-81.5, lon_max=-81.2, zoom_levels=(12,)
        )
        manifest = build_manifest([], region, ['a'])
        in_flight = 0
        peak = 0

        class SlowFetcher:
            async def fetch(self, url):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0)
                in_flight -= 1
                return Resource(url=url, status=200, body=b'png')

        mgr = make_manager(storage, SlowFetcher(), concurrency=2)
        report = await mgr.install(manifest)

        assert report.tiles_cached == len(manifest.tile_endpoints) > 2
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_empty_manifest(self, storage, fake_fetcher_cls):
        """Empty shell and no tiles still produces a generation."""
        mgr = make_manager(storage, fake_fetcher_cls())
        report = await mgr.install(PrecacheManifest(static_assets=[], tile_endpoints=[]))
        assert report.static_cached == 0
        assert storage.has(mgr.cache_name)


class TestActivate:
    """Tests for activate and generation cleanup."""

    @pytest.mark.asyncio
    async def test_only_current_generation_survives(self, storage, small_region, fake_fetcher_cls):
        """Installing v1, v2, v3 then activating v3 leaves only v3."""
        manifest = build_manifest(STATIC, small_region, ['a'])
        fetcher = fake_fetcher_cls(shell_bodies(), default_body=b'png')
        managers = [make_manager(storage, fetcher, n) for n in (1, 2, 3)]
        for mgr in managers:
            await mgr.install(manifest)
        assert len(storage.keys()) == 3

        deleted = await managers[-1].activate()

        assert sorted(deleted) == ['leeward-point-cache-v1', 'leeward-point-cache-v2']
        assert storage.keys() == ['leeward-point-cache-v3']
        assert managers[-1].state is CacheState.ACTIVE
        assert storage.get_stats().total_entries == len(manifest)

    @pytest.mark.asyncio
    async def test_unrelated_generations_removed(self, storage, fake_fetcher_cls):
        """Every other name is deleted, not only older versions."""
        storage.open('something-else')
        storage.open('leeward-point-cache-v9')
        mgr = make_manager(storage, fake_fetcher_cls())
        await mgr.install(PrecacheManifest(static_assets=[], tile_endpoints=[]))

        await mgr.activate()

        assert storage.keys() == ['leeward-point-cache-v1']

    @pytest.mark.asyncio
    async def test_activate_before_install(self, storage, fake_fetcher_cls):
        mgr = make_manager(storage, fake_fetcher_cls())
        with pytest.raises(CacheStateError):
            await mgr.activate()
        assert mgr.state is CacheState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_activate_is_repeatable(self, storage, fake_fetcher_cls):
        mgr = make_manager(storage, fake_fetcher_cls())
        await mgr.install(PrecacheManifest(static_assets=[], tile_endpoints=[]))
        await mgr.activate()
        assert await mgr.activate() == []


class TestResume:
    """Tests for adopting an existing generation."""

    def test_resume_missing(self, storage, fake_fetcher_cls):
        mgr = make_manager(storage, fake_fetcher_cls())
        assert not mgr.resume()
        assert mgr.state is CacheState.UNINITIALIZED

    def test_resume_sole_generation_is_active(self, storage, fake_fetcher_cls):
        storage.open('leeward-point-cache-v1')
        mgr = make_manager(storage, fake_fetcher_cls())
        assert mgr.resume()
        assert mgr.installed
        assert mgr.state is CacheState.ACTIVE

    def test_resume_with_old_generations_waits(self, storage, fake_fetcher_cls):
        storage.open('leeward-point-cache-v1')
        storage.open('leeward-point-cache-v2')
        mgr = make_manager(storage, fake_fetcher_cls(), n=2)
        assert mgr.resume()
        assert mgr.state is CacheState.INSTALLING

    def test_resume_superseded_is_stale(self, storage, fake_fetcher_cls):
        """A newer generation of the same site retires an older manager."""
        storage.open('leeward-point-cache-v2')
        mgr = make_manager(storage, fake_fetcher_cls())
        assert not mgr.resume()
        assert mgr.state is CacheState.STALE
        assert not mgr.installed
        assert storage.keys() == ['leeward-point-cache-v2']

    def test_other_sites_do_not_supersede(self, storage, fake_fetcher_cls):
        storage.open('leeward-point-cache-v1')
        storage.open('other-site-cache-v5')
        storage.open('scratch')
        mgr = make_manager(storage, fake_fetcher_cls())
        assert mgr.newer_generations() == []
        assert mgr.resume()
        assert mgr.state is CacheState.INSTALLING

    @pytest.mark.asyncio
    async def test_stale_manager_cannot_activate(self, storage, fake_fetcher_cls):
        storage.open('leeward-point-cache-v1')
        storage.open('leeward-point-cache-v2')
        mgr = make_manager(storage, fake_fetcher_cls())
        mgr.resume()
        with pytest.raises(CacheStateError):
            await mgr.activate()
        assert storage.has('leeward-point-cache-v2')

    @pytest.mark.asyncio
    async def test_shell_store_failure_is_not_resumed(self, storage, fake_fetcher_cls):
        """A shell batch that fails in the database leaves no generation to adopt."""
        class UnstorableResource(Resource):
            ok = True

        class Fetcher:
            async def fetch(self, url):
                if url.endswith('/js/map.js'):
                    return UnstorableResource(url=url, status=None, body=b'js')
                return Resource(url=url, status=200, body=b'page')

        mgr = make_manager(storage, Fetcher())
        with pytest.raises(InstallError, match='Failed to store site shell'):
            await mgr.install(PrecacheManifest(static_assets=STATIC, tile_endpoints=[]))

        assert not storage.has(mgr.cache_name)
        assert storage.get_stats().total_entries == 0
        again = make_manager(storage, fake_fetcher_cls())
        assert not again.resume()
        assert again.state is CacheState.UNINITIALIZED

    def test_retire(self, storage, fake_fetcher_cls):
        mgr = make_manager(storage, fake_fetcher_cls())
        mgr.retire()
        assert mgr.state is CacheState.STALE


class TestGetPut:
    """Tests for direct store access."""

    def test_put_then_get(self, storage, fake_fetcher_cls):
        mgr = make_manager(storage, fake_fetcher_cls())
        res = Resource(url='http://localhost:8000/a', status=200, body=b'a')
        mgr.put('http://localhost:8000/a', res)
        assert mgr.get('http://localhost:8000/a').body == b'a'

    def test_reads_current_generation_only(self, storage, fake_fetcher_cls):
        storage.open('leeward-point-cache-v1').put(
            '/a', Resource(url='/a', status=200, body=b'old')
        )
        mgr = make_manager(storage, fake_fetcher_cls(), n=2)
        assert mgr.get('/a') is None
