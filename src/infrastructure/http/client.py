from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from domain.models import Resource
from shared.constants import HTTP_TIMEOUT_DEFAULT

logger = logging.getLogger(__name__)


class NetworkError(RuntimeError):
    """A request could not be completed at the transport level."""

    def __init__(self, url: str, cause: BaseException | None = None) -> None:
        self.url = url
        self.cause = cause
        detail = f': {cause}' if cause is not None else ''
        super().__init__(f'Network request failed for {url}{detail}')


def make_http_session(timeout_s: float = HTTP_TIMEOUT_DEFAULT) -> aiohttp.ClientSession:
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    connector = aiohttp.TCPConnector(ssl=ssl_context)
    timeout = aiohttp.ClientTimeout(total=timeout_s)
    return aiohttp.ClientSession(connector=connector, timeout=timeout)


class NetworkFetcher:
    """Single-attempt GET returning a Resource.

    HTTP error statuses are returned as-is; only transport failures
    (connection refused, DNS, timeout, truncated body) raise NetworkError.
    """

    def __init__(self, session: aiohttp.ClientSession) -> None:
        self.session = session
        self._stats_downloads = 0
        self._stats_errors = 0

    @property
    def stats(self) -> dict[str, int]:
        return {
            'downloads': self._stats_downloads,
            'errors': self._stats_errors,
        }

    async def fetch(self, url: str) -> Resource:
        try:
            async with self.session.get(url) as resp:
                body = await resp.read()
                resource = Resource(
                    url=url,
                    status=resp.status,
                    body=body,
                    content_type=resp.content_type,
                    headers=dict(resp.headers.items()),
                )
        except (TimeoutError, aiohttp.ClientError) as e:
            self._stats_errors += 1
            logger.debug('GET %s failed: %s', url, e)
            raise NetworkError(url, e) from e
        self._stats_downloads += 1
        return resource

    async def close(self) -> None:
        await self.session.close()
