"""Unit tests for core.cache.LRUCache."""

import threading

import pytest

from promptbox.core.cache import LRUCache


class TestLRUCache:
    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            LRUCache(0)

    def test_get_set(self) -> None:
        cache: LRUCache[int] = LRUCache(2)
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("missing") is None
        assert "a" in cache
        assert len(cache) == 1

    def test_evicts_least_recently_used(self) -> None:
        cache: LRUCache[int] = LRUCache(2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")  # a is now most recent
        cache.set("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2

    def test_never_exceeds_capacity(self) -> None:
        cache: LRUCache[int] = LRUCache(5)
        for i in range(100):
            cache.set(i, i)
            assert len(cache) <= 5
        assert sorted(cache.get(i) for i in range(95, 100)) == [95, 96, 97, 98, 99]

    def test_get_or_create_runs_factory_once(self) -> None:
        cache: LRUCache[str] = LRUCache(4)
        calls: list[str] = []

        def factory() -> str:
            calls.append("x")
            return "value"

        assert cache.get_or_create("k", factory) == "value"
        assert cache.get_or_create("k", factory) == "value"
        assert calls == ["x"]

    def test_get_or_create_does_not_store_failures(self) -> None:
        cache: LRUCache[str] = LRUCache(4)

        def factory() -> str:
            raise SyntaxError("bad")

        with pytest.raises(SyntaxError):
            cache.get_or_create("k", factory)
        assert "k" not in cache

    def test_stats_and_clear(self) -> None:
        cache: LRUCache[int] = LRUCache(3, name="expr")
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        stats = cache.stats()
        assert stats == {"name": "expr", "size": 1, "max_size": 3, "hits": 1, "misses": 1}
        cache.clear()
        assert len(cache) == 0
        assert cache.stats()["hits"] == 0

    def test_delete(self) -> None:
        cache: LRUCache[int] = LRUCache(3)
        cache.set("a", 1)
        cache.delete("a")
        cache.delete("a")
        assert "a" not in cache

    def test_concurrent_inserts_stay_bounded(self) -> None:
        cache: LRUCache[int] = LRUCache(16)

        def worker(offset: int) -> None:
            for i in range(500):
                cache.set((offset, i), i)
                cache.get((offset, i // 2))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 16
