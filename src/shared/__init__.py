"""Shared utilities and helpers."""
from shared.diagnostics import (
    log_cache_stats,
    log_connection_status,
    log_memory_usage,
)

__all__ = [
    'log_cache_stats',
    'log_connection_status',
    'log_memory_usage',
]
