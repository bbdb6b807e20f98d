"""
Diagnostic utilities.

Resource usage and cache state logging for long installs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import psutil

from shared.constants import PSUTIL_AVAILABLE as _PSUTIL_AVAILABLE

if TYPE_CHECKING:
    from tiles.cache import CacheStats

logger = logging.getLogger(__name__)


def get_memory_info() -> dict[str, Any]:
    """Get process and system memory usage."""
    if not _PSUTIL_AVAILABLE:
        return {'error': 'psutil not available'}

    try:
        process = psutil.Process()
        memory_info = process.memory_info()
        system_memory = psutil.virtual_memory()

        return {
            'process_rss_mb': round(memory_info.rss / 1024 / 1024, 2),
            'process_vms_mb': round(memory_info.vms / 1024 / 1024, 2),
            'system_total_mb': round(system_memory.total / 1024 / 1024, 2),
            'system_available_mb': round(
                system_memory.available / 1024 / 1024,
                2,
            ),
            'system_used_percent': system_memory.percent,
        }
    except Exception as e:
        return {'error': f'Failed to get memory info: {e}'}


def get_connection_info() -> dict[str, Any]:
    """Open files and sockets of this process."""
    if not _PSUTIL_AVAILABLE:
        return {'error': 'psutil not available'}

    try:
        process = psutil.Process()
        open_files = len(process.open_files())
        connections = len(process.net_connections())
    except Exception as e:
        return {'error': f'Failed to get connection info: {e}'}
    else:
        return {
            'open_files': open_files,
            'network_connections': connections,
            'pid': process.pid,
        }


def log_memory_usage(context: str = '') -> None:
    """Quick memory usage logging."""
    memory_info = get_memory_info()
    context_label = f' ({context})' if context else ''
    logger.info(
        'Memory usage%s: RSS=%sMB, Available=%sMB',
        context_label,
        memory_info.get('process_rss_mb', 'N/A'),
        memory_info.get('system_available_mb', 'N/A'),
    )


def log_connection_status(context: str = '') -> None:
    info = get_connection_info()
    context_label = f' ({context})' if context else ''
    logger.info(
        'Connections%s: open files=%s, sockets=%s',
        context_label,
        info.get('open_files', 'N/A'),
        info.get('network_connections', 'N/A'),
    )


def log_cache_stats(stats: CacheStats, level: int = logging.INFO) -> None:
    """Log per-generation entry counts and sizes."""
    logger.log(
        level,
        'Cache: %d entries, %.2f MB in %d generation(s)',
        stats.total_entries,
        stats.total_size_bytes / 1024 / 1024,
        len(stats.entries_by_generation),
    )
    for name, count in stats.entries_by_generation.items():
        logger.log(
            level,
            '  %s: %d entries, %.2f MB',
            name,
            count,
            stats.size_by_generation.get(name, 0) / 1024 / 1024,
        )
