"""Pytest configuration and fixtures for guestbook-offline tests."""

import sys
import tempfile
from pathlib import Path

import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from domain.models import BoundingRegion, Resource  # noqa: E402
from infrastructure.http.client import NetworkError  # noqa: E402
from tiles.cache import CacheStorage  # noqa: E402


class FakeFetcher:
    """In-memory stand-in for NetworkFetcher that counts calls.

    Unknown URLs and URLs listed in `failing` raise NetworkError; `statuses`
    overrides the HTTP status for a URL.
    """

    def __init__(self, bodies=None, *, failing=(), statuses=None, default_body=None):
        self.bodies = dict(bodies or {})
        self.failing = set(failing)
        self.statuses = dict(statuses or {})
        self.default_body = default_body
        self.calls: list[str] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def fetch(self, url: str) -> Resource:
        self.calls.append(url)
        if url in self.failing:
            raise NetworkError(url, ConnectionError('offline'))
        body = self.bodies.get(url, self.default_body)
        if body is None:
            raise NetworkError(url, ConnectionError('unreachable'))
        content_type = 'image/png' if url.endswith('.png') else 'text/html'
        return Resource(
            url=url,
            status=self.statuses.get(url, 200),
            body=body,
            content_type=content_type,
        )


@pytest.fixture
def temp_dir():
    """Create temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_dir):
    """CacheStorage in a temporary SQLite file."""
    st = CacheStorage(temp_dir / 'cache.sqlite')
    yield st
    st.close()


@pytest.fixture
def small_region():
    """A region one tile wide and tall at zoom 12."""
    return BoundingRegion(
        lat_min=30.0, lat_max=30.01, lon_min=-81.5, lon_max=-81.49, zoom_levels=(12,)
    )


@pytest.fixture
def fake_fetcher_cls():
    return FakeFetcher
