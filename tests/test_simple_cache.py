"""Unit tests for the in-memory SimpleTTLCache."""

import threading

from app.utils.simple_cache import SimpleTTLCache, build_cache_key


class FakeTime:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def test_build_cache_key_is_stable_and_sensitive_to_changes() -> None:
    readme = "# Project\nDoes things."

    key1 = build_cache_key(readme, salt="v1:gpt-4o-mini")
    key2 = build_cache_key(readme, salt="v1:gpt-4o-mini")
    key3 = build_cache_key(readme + " More.", salt="v1:gpt-4o-mini")
    key4 = build_cache_key(readme, salt="v2:gpt-4o-mini")

    assert key1 == key2
    assert key1 != key3
    assert key1 != key4


def test_build_cache_key_separates_parts() -> None:
    assert build_cache_key("ab", "c") != build_cache_key("a", "bc")


def test_set_and_get_updates_hit_miss_counters() -> None:
    cache = SimpleTTLCache(ttl_seconds=10)

    assert cache.get("missing") is None

    summary = {"summary": "Test summary", "cool_facts": ["fast"]}
    cache.set("key", summary)

    assert cache.get("key") == summary

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1


def test_expired_entry_is_evicted() -> None:
    fake_time = FakeTime()

    cache = SimpleTTLCache(ttl_seconds=5, clock=fake_time.time)
    cache.set("key", {"data": True})

    fake_time.advance(6)

    assert cache.get("key") is None
    stats = cache.stats()
    assert stats["evictions"] == 1


def test_lru_eviction_removes_least_recently_used() -> None:
    cache = SimpleTTLCache(ttl_seconds=100, max_entries=2)
    cache.set("a", {"v": 1})
    cache.set("b", {"v": 2})

    # Access "a" so that "b" becomes least recently used
    assert cache.get("a") == {"v": 1}

    cache.set("c", {"v": 3})

    assert cache.get("a") == {"v": 1}
    assert cache.get("c") == {"v": 3}
    assert cache.get("b") is None


def test_clear_resets_state() -> None:
    cache = SimpleTTLCache(ttl_seconds=10)
    cache.set("a", {"v": 1})
    cache.set("b", {"v": 2})
    cache.get("a")

    cache.clear()

    stats = cache.stats()
    assert stats["entries"] == 0
    assert stats["hits"] == 0
    assert stats["misses"] == 0
    assert stats["evictions"] == 0


def test_thread_safety_under_concurrent_sets() -> None:
    cache = SimpleTTLCache(ttl_seconds=30, max_entries=None)
    total_keys = 50

    def _writer(idx: int) -> None:
        cache.set(f"k-{idx}", {"v": idx})

    threads = [threading.Thread(target=_writer, args=(i,)) for i in range(total_keys)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert cache.stats()["entries"] == total_keys
    # Ensure a random subset is readable
    assert cache.get("k-0") == {"v": 0}
    assert cache.get("k-25") == {"v": 25}
    assert cache.get("k-49") == {"v": 49}

def test_returned_values_are_copies() -> None:
    cache = SimpleTTLCache(ttl_seconds=10)
    cache.set("key", {"summary": "original"})

    cache.get("key")["summary"] = "mutated"

    assert cache.get("key") == {"summary": "original"}
