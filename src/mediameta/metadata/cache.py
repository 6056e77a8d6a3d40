"""SQLite-based cache for provider responses."""

import json
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

MS_PER_HOUR = 60 * 60 * 1000


class CacheTTL:
    """TTL presets in hours, chosen by how volatile the fetched data is."""

    BOOK_METADATA = 30 * 24
    SERIES_INFO = 7 * 24
    RATINGS = 24
    MOVIE_TV_METADATA = 7 * 24
    TV_EPISODES = 24  # still-airing shows
    SEARCH_RESULTS = 1


def epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheEntry:
    """A deserialized cache row."""

    key: str
    value: Any
    source: str
    created_at: int
    expires_at: int
    hit_count: int


@dataclass
class StaleRead:
    """Result of a stale-tolerant read."""

    entry: CacheEntry
    stale: bool


class MetadataCache:
    """SQLite-based cache with per-entry TTL, hit counting and stale reads.

    When disabled every write is a no-op and every read is a miss.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        default_ttl_hours: float = 168,
        enabled: bool = True,
        clock: Callable[[], int] = epoch_ms,
        auto_cleanup: bool = True,
    ):
        """Initialize cache.

        Args:
            db_path: Path to SQLite database file
            default_ttl_hours: TTL applied when ``set`` gets no explicit TTL
            enabled: When False the cache never stores anything
            clock: Returns the current time in epoch milliseconds
            auto_cleanup: Remove expired entries on startup
        """
        self.db_path = Path(db_path)
        self.default_ttl_hours = default_ttl_hours
        self.enabled = enabled
        self._clock = clock

        if not self.enabled:
            logger.info("Cache disabled")
            return

        self._init_db()
        if auto_cleanup:
            self.cleanup()
        logger.info(
            "Initialized metadata cache",
            db_path=str(self.db_path),
            default_ttl_hours=default_ttl_hours,
        )

    def _init_db(self):
        """Initialize database schema if not exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS cache (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    source TEXT NOT NULL,
                    created_at INTEGER NOT NULL,
                    expires_at INTEGER NOT NULL,
                    hit_count INTEGER DEFAULT 0
                )
            """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_expires ON cache(expires_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_source ON cache(source)")
            conn.commit()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get database connection context manager."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @staticmethod
    def make_key(source: str, *parts: Optional[Union[str, int, float]]) -> str:
        """Build a normalized cache key.

        ``None`` parts are omitted; the rest are stringified, trimmed and
        lowercased so case/whitespace variants share a key.
        """
        valid = [str(p).lower().strip() for p in parts if p is not None]
        return ":".join([source.lower(), *valid])

    def get(self, key: str) -> Optional[CacheEntry]:
        """Get a live entry and count the hit.

        An entry that fails to deserialize is deleted and reported as a miss.
        """
        if not self.enabled:
            return None

        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM cache WHERE key = ? AND expires_at > ?",
                (key, self._clock()),
            ).fetchone()

            if row is None:
                logger.debug("Cache miss", key=key)
                return None

            conn.execute("UPDATE cache SET hit_count = hit_count + 1 WHERE key = ?", (key,))
            conn.commit()

        try:
            value = json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            logger.warning("Cache entry corrupt, deleting", key=key)
            self.delete(key)
            return None

        logger.debug("Cache hit", key=key, source=row["source"])
        return CacheEntry(
            key=row["key"],
            value=value,
            source=row["source"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            hit_count=row["hit_count"] + 1,
        )

    def get_stale(self, key: str) -> Optional[StaleRead]:
        """Get an entry regardless of expiry, flagged with its staleness.

        Does not count as a hit.
        """
        if not self.enabled:
            return None

        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM cache WHERE key = ?", (key,)).fetchone()

        if row is None:
            return None

        try:
            value = json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            return None

        return StaleRead(
            entry=CacheEntry(
                key=row["key"],
                value=value,
                source=row["source"],
                created_at=row["created_at"],
                expires_at=row["expires_at"],
                hit_count=row["hit_count"],
            ),
            stale=row["expires_at"] <= self._clock(),
        )

    def set(self, key: str, value: Any, source: str, ttl_hours: Optional[float] = None):
        """Cache a JSON-serializable value, replacing any entry under ``key``."""
        if not self.enabled:
            return

        ttl = ttl_hours if ttl_hours is not None else self.default_ttl_hours
        now = self._clock()
        expires_at = now + max(int(ttl * MS_PER_HOUR), 1)

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO cache
                    (key, value, source, created_at, expires_at, hit_count)
                VALUES (?, ?, ?, ?, ?, 0)
                """,
                (key, json.dumps(value), source, now, expires_at),
            )
            conn.commit()

        logger.debug("Cached value", key=key, source=source, ttl_hours=ttl)

    def delete(self, key: str):
        if not self.enabled:
            return
        with self._get_connection() as conn:
            conn.execute("DELETE FROM cache WHERE key = ?", (key,))
            conn.commit()

    def delete_by_source(self, source: str) -> int:
        """Remove every entry tagged with ``source``.

        Returns:
            Number of entries removed
        """
        if not self.enabled:
            return 0
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM cache WHERE source = ?", (source,))
            conn.commit()
            count = cursor.rowcount
        logger.info("Deleted cache entries by source", source=source, count=count)
        return count

    def cleanup(self) -> int:
        """Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        if not self.enabled:
            return 0
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM cache WHERE expires_at <= ?", (self._clock(),))
            conn.commit()
            count = cursor.rowcount
        if count > 0:
            logger.info("Cleaned up expired cache entries", count=count)
        return count

    def stats(self) -> Dict[str, Any]:
        """Live entry counts and an approximate hit rate.

        Returns:
            Dictionary with ``total``, ``by_source`` and ``hit_rate``
        """
        if not self.enabled:
            return {"total": 0, "by_source": {}, "hit_rate": 0.0}

        now = self._clock()
        with self._get_connection() as conn:
            total = conn.execute(
                "SELECT COUNT(*) FROM cache WHERE expires_at > ?", (now,)
            ).fetchone()[0]
            by_source = {
                row["source"]: row["count"]
                for row in conn.execute(
                    """
                    SELECT source, COUNT(*) AS count FROM cache
                    WHERE expires_at > ? GROUP BY source
                    """,
                    (now,),
                )
            }
            hits = conn.execute("SELECT SUM(hit_count) FROM cache").fetchone()[0] or 0

        return {
            "total": total,
            "by_source": by_source,
            "hit_rate": hits / (hits + total) if hits else 0.0,
        }
