"""Tests for the lookup cache."""

from unittest.mock import MagicMock

from session_radar.cache import LookupCache


class TestLookupCache:
    """Tests for LookupCache."""

    def test_get_or_load_calls_loader_once(self) -> None:
        """Should serve repeated lookups from the cache."""
        cache = LookupCache()
        loader = MagicMock(return_value="value")

        assert cache.get_or_load("key", loader) == "value"
        assert cache.get_or_load("key", loader) == "value"

        loader.assert_called_once()

    def test_none_is_not_cached(self) -> None:
        """Should look absent values up again."""
        cache = LookupCache()
        loader = MagicMock(return_value=None)

        cache.get_or_load("key", loader)
        cache.get_or_load("key", loader)

        assert loader.call_count == 2
        assert "key" not in cache

    def test_put_if_absent_keeps_first_value(self) -> None:
        """Should not overwrite an existing entry."""
        cache = LookupCache()

        assert cache.put_if_absent("key", "first") == "first"
        assert cache.put_if_absent("key", "second") == "first"
        assert cache.get("key") == "first"

    def test_clear_drops_everything(self) -> None:
        cache = LookupCache()
        cache.put_if_absent("a", 1)
        cache.put_if_absent("b", 2)

        cache.clear()

        assert len(cache) == 0
        assert cache.get("a") is None

    def test_disabled_cache_always_loads(self) -> None:
        """Should bypass storage when disabled."""
        cache = LookupCache(enabled=False)
        loader = MagicMock(return_value="value")

        cache.get_or_load("key", loader)
        cache.get_or_load("key", loader)

        assert loader.call_count == 2
        assert len(cache) == 0

    def test_clear_during_load_discards_result(self) -> None:
        """Should not store a value loaded before a concurrent clear."""
        cache = LookupCache()

        def loader() -> str:
            cache.clear()
            return "stale"

        assert cache.get_or_load("key", loader) == "stale"
        assert "key" not in cache
        assert cache.get_or_load("key", lambda: "fresh") == "fresh"
        assert cache.get("key") == "fresh"

    def test_put_with_old_generation_is_ignored(self) -> None:
        cache = LookupCache()
        generation = cache.generation
        cache.clear()

        assert cache.put_if_absent("key", "stale", generation) == "stale"
        assert len(cache) == 0
