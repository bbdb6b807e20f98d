"""HTTP client infrastructure."""
from infrastructure.http.client import (
    NetworkError,
    NetworkFetcher,
    make_http_session,
)

__all__ = [
    'NetworkError',
    'NetworkFetcher',
    'make_http_session',
]
