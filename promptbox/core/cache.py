"""
Bounded, thread-safe LRU cache used for compiled expressions and loaded
helper modules.

Instances are plain objects handed to the renderer / loader at construction,
so tests can build isolated caches instead of sharing process globals.
"""

import logging
import threading
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any, Generic, TypeVar

_log = logging.getLogger(__name__)

V = TypeVar("V")


class LRUCache(Generic[V]):
    """Least-recently-used map with a hard capacity.

    ``get`` refreshes recency; inserting past ``max_size`` evicts the oldest
    entry. All mutations happen under one lock.
    """

    def __init__(self, max_size: int, *, name: str = "cache") -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.name = name
        self._data: OrderedDict[Hashable, V] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            value = self._data.get(key)
            if value is None:
                self.misses += 1
                return None
            self._data.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self.max_size:
                evicted, _ = self._data.popitem(last=False)
                _log.debug("%s: evicted %r", self.name, evicted)

    def get_or_create(self, key: Hashable, factory: Callable[[], V]) -> V:
        """Return the cached value or build it with *factory* and store it.

        The factory runs outside the lock; if it raises, nothing is stored.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = factory()
        self.set(key, value)
        return value

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
            self.hits = 0
            self.misses = 0

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "size": len(self._data),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
            }
