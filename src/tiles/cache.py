"""SQLite-backed cache storage holding named cache generations.

One database file stores every generation. Entries are keyed by the exact
request URL inside a generation; no normalisation is applied.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from domain.models import Resource
from shared.constants import CACHE_DB_PATH

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Statistics about the cache storage."""

    total_entries: int
    total_size_bytes: int
    entries_by_generation: dict[str, int]
    size_by_generation: dict[str, int]
    oldest_entry: int | None
    newest_entry: int | None


class CacheGeneration:
    """Handle on one named generation inside a CacheStorage."""

    def __init__(self, storage: CacheStorage, name: str) -> None:
        self._storage = storage
        self.name = name

    def match(self, url: str) -> Resource | None:
        """Return the stored resource for url, or None."""
        cursor = self._storage.connection.execute(
            '''SELECT status, content_type, headers, body FROM entries
               WHERE cache_name = ? AND url = ?''',
            (self.name, url),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        status, content_type, headers, body = row
        return Resource(
            url=url,
            status=status,
            body=bytes(body),
            content_type=content_type,
            headers=json.loads(headers) if headers else {},
        )

    def put(self, url: str, resource: Resource) -> None:
        """Store resource under url, replacing any previous entry."""
        self.put_batch([(url, resource)])

    def put_batch(self, items: Iterable[tuple[str, Resource]]) -> None:
        """Store several entries in one transaction; nothing is kept on failure.

        The generation is registered in the same transaction, so a generation
        that did not exist before is not left behind empty when the batch fails.
        """
        now = int(time.time())
        rows = [
            (
                self.name,
                url,
                res.status,
                res.content_type,
                json.dumps(res.headers),
                res.body,
                now,
                len(res.body),
            )
            for url, res in items
        ]
        conn = self._storage.connection
        with conn:
            conn.execute(
                'INSERT OR IGNORE INTO generations (name, created_at) VALUES (?, ?)',
                (self.name, now),
            )
            conn.executemany(
                '''INSERT OR REPLACE INTO entries
                   (cache_name, url, status, content_type, headers, body, stored_at, size_bytes)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
                rows,
            )

    def keys(self) -> list[str]:
        cursor = self._storage.connection.execute(
            'SELECT url FROM entries WHERE cache_name = ? ORDER BY stored_at, url',
            (self.name,),
        )
        return [row[0] for row in cursor]

    def count(self) -> int:
        cursor = self._storage.connection.execute(
            'SELECT COUNT(*) FROM entries WHERE cache_name = ?',
            (self.name,),
        )
        return cursor.fetchone()[0]

    def __repr__(self) -> str:
        return f'CacheGeneration({self.name!r})'


class CacheStorage:
    """Named cache generations in a single SQLite file.

    Features:
    - open() creates a generation on first use
    - keys()/delete() enumerate and drop whole generations
    - WAL mode so readers are not blocked by the install writer

    Usage:
        storage = CacheStorage('offline_cache.sqlite')
        cache = storage.open('leeward-point-cache-v1')
        cache.put('/index.html', resource)
        storage.close()
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Initialize cache storage.

        Args:
            db_path: SQLite file. Defaults to CACHE_DB_PATH. ':memory:' keeps
                everything in memory.
        """
        raw = str(db_path or CACHE_DB_PATH)
        self.db_path = raw if raw == ':memory:' else Path(raw)
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        logger.info('CacheStorage initialized at %s', self.db_path)

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.execute('PRAGMA journal_mode=WAL')
            conn.execute('PRAGMA synchronous=NORMAL')
            self._init_schema(conn)
            self._conn = conn
        return self._conn

    def _init_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript('''
            CREATE TABLE IF NOT EXISTS generations (
                name TEXT PRIMARY KEY,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS entries (
                cache_name TEXT NOT NULL,
                url TEXT NOT NULL,
                status INTEGER NOT NULL,
                content_type TEXT,
                headers TEXT,
                body BLOB NOT NULL,
                stored_at INTEGER NOT NULL,
                size_bytes INTEGER NOT NULL,
                PRIMARY KEY (cache_name, url)
            );

            CREATE INDEX IF NOT EXISTS idx_entries_cache ON entries(cache_name);
        ''')
        conn.commit()

    def open(self, name: str) -> CacheGeneration:
        """Open the named generation, creating it if absent."""
        conn = self.connection
        with conn:
            conn.execute(
                'INSERT OR IGNORE INTO generations (name, created_at) VALUES (?, ?)',
                (name, int(time.time())),
            )
        return CacheGeneration(self, name)

    def has(self, name: str) -> bool:
        cursor = self.connection.execute(
            'SELECT 1 FROM generations WHERE name = ?', (name,)
        )
        return cursor.fetchone() is not None

    def keys(self) -> list[str]:
        """Names of all existing generations, oldest first."""
        cursor = self.connection.execute(
            'SELECT name FROM generations ORDER BY created_at, name'
        )
        return [row[0] for row in cursor]

    def delete(self, name: str) -> bool:
        """Drop a generation and all of its entries."""
        conn = self.connection
        with conn:
            conn.execute('DELETE FROM entries WHERE cache_name = ?', (name,))
            cursor = conn.execute('DELETE FROM generations WHERE name = ?', (name,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info('Deleted cache generation %s', name)
        return deleted

    def get_stats(self) -> CacheStats:
        """Entry counts and sizes across all generations."""
        entries_by_generation = {name: 0 for name in self.keys()}
        size_by_generation = dict.fromkeys(entries_by_generation, 0)
        cursor = self.connection.execute(
            '''SELECT cache_name, COUNT(*), COALESCE(SUM(size_bytes), 0)
               FROM entries GROUP BY cache_name'''
        )
        for name, count, size in cursor:
            entries_by_generation[name] = count
            size_by_generation[name] = size
        oldest, newest = self.connection.execute(
            'SELECT MIN(stored_at), MAX(stored_at) FROM entries'
        ).fetchone()
        return CacheStats(
            total_entries=sum(entries_by_generation.values()),
            total_size_bytes=sum(size_by_generation.values()),
            entries_by_generation=entries_by_generation,
            size_by_generation=size_by_generation,
            oldest_entry=oldest,
            newest_entry=newest,
        )

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info('CacheStorage closed')

    def __enter__(self) -> CacheStorage:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
