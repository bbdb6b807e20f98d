"""Command-line entry point for the guestbook offline cache."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from domain.profiles import load_profile
from infrastructure.http.client import NetworkError
from services.cache_manager import CacheStateError, InstallError
from services.offline_worker import open_worker
from shared.constants import DEFAULT_PROFILE
from shared.diagnostics import log_cache_stats, log_connection_status, log_memory_usage
from tiles.cache import CacheStorage
from tiles.coverage import tile_range

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Path, *, verbose: bool = False) -> Path:
    """Log to stdout and to <log_dir>/guestbook_offline.log."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / 'guestbook_offline.log'
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_file), encoding='utf-8'),
        ],
    )
    return log_file


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='guestbook-offline',
        description='Precache the guestbook site shell and map tiles for offline use',
    )
    parser.add_argument(
        '--profile',
        default=DEFAULT_PROFILE,
        help='Profile name or path to a .toml file (default: %(default)s)',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('install', help='Install the current generation, then activate it')
    sub.add_parser('activate', help='Drop every generation except the current one')
    fetch = sub.add_parser('fetch', help='Serve one request through the cache')
    fetch.add_argument('url')
    fetch.add_argument('-o', '--output', type=Path, help='Write the body to a file')
    sub.add_parser('coverage', help='Show tile ranges and counts (no network)')
    sub.add_parser('status', help='Show stored generations')
    sub.add_parser('clear', help='Delete all generations')
    return parser


async def _install(settings) -> int:
    async with open_worker(settings) as worker:
        try:
            report = await worker.install()
        except InstallError as e:
            logger.error('Install failed: %s', e)
            return 1
        deleted = await worker.activate()
        log_connection_status('after install')
    print(
        f'{report.cache_name}: {report.static_cached} static, '
        f'{report.tiles_cached}/{report.tiles_attempted} tiles cached'
    )
    if deleted:
        print(f'removed: {", ".join(deleted)}')
    return 0


async def _activate(settings) -> int:
    async with open_worker(settings) as worker:
        try:
            deleted = await worker.activate()
        except CacheStateError as e:
            logger.error('%s', e)
            return 1
    print(f'{worker.version.name} active, removed {len(deleted)} generation(s)')
    return 0


async def _fetch(settings, url: str, output: Path | None) -> int:
    async with open_worker(settings) as worker:
        try:
            resource = await worker.fetch(url)
        except NetworkError as e:
            logger.error('%s', e)
            return 1
        stats = worker.router.stats
    if output is not None:
        output.write_bytes(resource.body)
    source = 'network'
    if stats['cache_hits']:
        source = 'cache'
    elif stats['fallbacks']:
        source = 'fallback'
    print(
        f'{resource.status} {resource.content_type or "-"} '
        f'{resource.size_bytes} bytes ({source})'
    )
    return 0


def _coverage(settings) -> int:
    region = settings.region
    total = 0
    for zoom in sorted(set(region.zoom_levels)):
        x_min, x_max, y_min, y_max = tile_range(region, zoom)
        count = (x_max - x_min + 1) * (y_max - y_min + 1)
        total += count
        print(f'z={zoom}: x {x_min}..{x_max}, y {y_min}..{y_max} -> {count} tiles')
    endpoints = total * len(settings.subdomains)
    print(
        f'{total} tiles x {len(settings.subdomains)} subdomains = {endpoints} endpoints, '
        f'{len(settings.static_assets)} static assets'
    )
    return 0


def _status(settings) -> int:
    with CacheStorage(Path(settings.cache_path).expanduser()) as storage:
        stats = storage.get_stats()
    log_cache_stats(stats)
    current = settings.version.name
    if not stats.entries_by_generation:
        print('no cache generations')
    for name, count in stats.entries_by_generation.items():
        marker = '*' if name == current else ' '
        size_mb = stats.size_by_generation.get(name, 0) / 1024 / 1024
        print(f'{marker} {name}: {count} entries, {size_mb:.2f} MB')
    return 0


def _clear(settings) -> int:
    with CacheStorage(Path(settings.cache_path).expanduser()) as storage:
        names = storage.keys()
        for name in names:
            storage.delete(name)
    print(f'deleted {len(names)} generation(s)')
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_profile(args.profile)
    except (FileNotFoundError, ValueError) as e:
        print(e, file=sys.stderr)
        return 1
    setup_logging(Path(settings.cache_path).expanduser().parent / 'log', verbose=args.verbose)
    logger.info('guestbook-offline %s (%s)', args.command, settings.version.name)

    try:
        if args.command == 'install':
            log_memory_usage('before install')
            return asyncio.run(_install(settings))
        if args.command == 'activate':
            return asyncio.run(_activate(settings))
        if args.command == 'fetch':
            return asyncio.run(_fetch(settings, args.url, args.output))
        if args.command == 'coverage':
            return _coverage(settings)
        if args.command == 'status':
            return _status(settings)
        if args.command == 'clear':
            return _clear(settings)
    except Exception as e:
        logger.error('Command %s failed: %s', args.command, e, exc_info=True)
        return 1
    return 1


if __name__ == '__main__':
    sys.exit(main())
