"""Unit tests for metadata cache."""

import sqlite3

import pytest

from mediameta.metadata.cache import MS_PER_HOUR, MetadataCache


class TestMakeKey:
    """Test cache key construction."""

    def test_normalizes_case_and_whitespace(self):
        """Test logically equal queries share a key."""
        assert MetadataCache.make_key("open_library", "search", "  The Hobbit ", "Tolkien") == (
            MetadataCache.make_key("open_library", "search", "the hobbit", "TOLKIEN")
        )

    def test_omits_none_and_stringifies_numbers(self):
        """Test None parts are dropped rather than emptied."""
        assert MetadataCache.make_key("tmdb", "search-movie", "Inception", None) == (
            "tmdb:search-movie:inception"
        )
        assert MetadataCache.make_key("tmdb", "movie", 27205) == "tmdb:movie:27205"

    def test_source_only(self):
        """Test a key with no parts is just the source."""
        assert MetadataCache.make_key("tmdb") == "tmdb"


class TestMetadataCache:
    """Test MetadataCache class."""

    def test_initialization_creates_schema(self, tmp_path):
        """Test the database file and indexes are created."""
        db_path = tmp_path / "nested" / "cache.db"
        MetadataCache(db_path)

        assert db_path.exists()
        with sqlite3.connect(db_path) as conn:
            indexes = {row[0] for row in conn.execute("SELECT name FROM sqlite_master")}
        assert {"cache", "idx_expires", "idx_source"} <= indexes

    def test_set_then_get(self, cache):
        """Test an immediate read returns the value with one hit."""
        cache.set("k", {"title": "Dune"}, "open_library", ttl_hours=1)

        entry = cache.get("k")

        assert entry.value == {"title": "Dune"}
        assert entry.source == "open_library"
        assert entry.hit_count == 1
        assert entry.expires_at - entry.created_at == MS_PER_HOUR

    def test_hit_count_increments(self, cache):
        """Test each live read counts one hit."""
        cache.set("k", 1, "tmdb")
        cache.get("k")

        assert cache.get("k").hit_count == 2

    def test_expired_entry_is_miss(self, cache, clock):
        """Test a read after the TTL returns nothing."""
        cache.set("k", "v", "tmdb", ttl_hours=1)
        clock.advance(MS_PER_HOUR)

        assert cache.get("k") is None

    def test_default_ttl(self, tmp_path, clock):
        """Test the default TTL applies when none is given."""
        cache = MetadataCache(tmp_path / "c.db", default_ttl_hours=2, clock=clock)
        cache.set("k", "v", "tmdb")

        clock.advance(2 * MS_PER_HOUR - 1)
        assert cache.get("k") is not None
        clock.advance(1)
        assert cache.get("k") is None

    def test_get_stale(self, cache, clock):
        """Test stale reads return expired data flagged as stale."""
        cache.set("k", "v", "tmdb", ttl_hours=1)

        fresh = cache.get_stale("k")
        assert fresh.stale is False
        assert fresh.entry.value == "v"

        clock.advance(MS_PER_HOUR + 1)
        stale = cache.get_stale("k")
        assert stale.stale is True
        assert stale.entry.value == "v"
        assert cache.get_stale("missing") is None

    def test_get_stale_does_not_count_hits(self, cache):
        """Test stale reads leave hit_count alone."""
        cache.set("k", "v", "tmdb")
        cache.get_stale("k")

        assert cache.get("k").hit_count == 1

    def test_overwrite_replaces(self, cache):
        """Test setting a key again supersedes the entry."""
        cache.set("k", "old", "tmdb")
        cache.get("k")
        cache.set("k", "new", "tmdb")

        entry = cache.get("k")
        assert entry.value == "new"
        assert entry.hit_count == 1

    def test_corrupt_entry_self_heals(self, cache):
        """Test undecodable entries are deleted and reported as misses."""
        cache.set("k", "v", "tmdb")
        with sqlite3.connect(cache.db_path) as conn:
            conn.execute("UPDATE cache SET value = ? WHERE key = ?", ("{not json", "k"))

        assert cache.get("k") is None
        assert cache.get_stale("k") is None

    def test_delete(self, cache):
        """Test deleting a single key, idempotently."""
        cache.set("k", "v", "tmdb")
        cache.delete("k")
        cache.delete("k")

        assert cache.get("k") is None

    def test_delete_by_source(self, cache):
        """Test only entries of the given source are removed."""
        cache.set("a", 1, "goodreads")
        cache.set("b", 2, "goodreads")
        cache.set("c", 3, "tmdb")

        assert cache.delete_by_source("goodreads") == 2
        assert cache.get("a") is None
        assert cache.get("c").value == 3
        assert cache.delete_by_source("goodreads") == 0

    def test_cleanup_removes_expired(self, cache, clock):
        """Test cleanup removes exactly the expired rows."""
        cache.set("short", 1, "tmdb", ttl_hours=1)
        cache.set("short2", 2, "tmdb", ttl_hours=1)
        cache.set("long", 3, "tmdb", ttl_hours=24)
        clock.advance(MS_PER_HOUR)

        assert cache.cleanup() == 2
        assert cache.get("long").value == 3
        assert cache.cleanup() == 0

    def test_stats(self, cache, clock):
        """Test live counts per source."""
        cache.set("a", 1, "goodreads")
        cache.set("b", 2, "tmdb")
        cache.set("c", 3, "tmdb", ttl_hours=1)
        cache.get("a")
        clock.advance(MS_PER_HOUR)

        stats = cache.stats()

        assert stats["total"] == 2
        assert stats["by_source"] == {"goodreads": 1, "tmdb": 1}
        assert 0 < stats["hit_rate"] <= 1

    def test_startup_sweep_can_be_skipped(self, tmp_path, clock):
        """Test expired rows survive opening without the startup sweep."""
        cache = MetadataCache(tmp_path / "c.db", clock=clock)
        cache.set("k", "v", "tmdb", ttl_hours=1)
        clock.advance(MS_PER_HOUR)

        MetadataCache(tmp_path / "c.db", clock=clock, auto_cleanup=False)
        assert cache.get_stale("k").stale is True

        MetadataCache(tmp_path / "c.db", clock=clock)
        assert cache.get_stale("k") is None

    def test_disabled_cache(self, tmp_path):
        """Test a disabled cache stores nothing and misses every read."""
        cache = MetadataCache(tmp_path / "off.db", enabled=False)
        cache.set("k", "v", "tmdb")

        assert cache.get("k") is None
        assert cache.get_stale("k") is None
        assert cache.cleanup() == 0
        assert cache.delete_by_source("tmdb") == 0
        assert cache.stats() == {"total": 0, "by_source": {}, "hit_rate": 0.0}
        assert not (tmp_path / "off.db").exists()

    @pytest.mark.parametrize("value", [None, 0, "", [], {"nested": [1, 2]}])
    def test_json_values(self, cache, value):
        """Test falsy and nested JSON values survive storage."""
        cache.set("k", value, "tmdb")

        assert cache.get("k").value == value
