"""
Process-lifetime caches for half-map lookups.

Two kinds of entries live here:
- "{source}:{code}" -> tuple of HalfMaps, filled by every store read;
- memoized method results, keyed by method name and arguments.

Entries are never invalidated: a new reference file means a new table and
a new ConceptStore.
"""

from __future__ import annotations

import functools
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Hashable, Optional


def half_map_key(source: str, code: str) -> str:
    return f"{source}:{code}"


class HalfMapCache(ABC):
    """Minimal get/put cache; a miss returns None and never raises."""

    @abstractmethod
    def get(self, key: Hashable) -> Optional[Any]:
        ...

    @abstractmethod
    def put(self, key: Hashable, value: Any) -> None:
        ...


class InMemoryCache(HalfMapCache):
    """Unbounded dict behind a lock. Concurrent same-key fills simply overwrite."""

    def __init__(self) -> None:
        self._data: Dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def _freeze(value: Any) -> Hashable:
    # each container kind gets its own tag so a set never keys like a list
    if isinstance(value, (set, frozenset)):
        return (frozenset, frozenset(_freeze(v) for v in value))
    if isinstance(value, (list, tuple)):
        return (list, tuple(_freeze(v) for v in value))
    if isinstance(value, dict):
        return (dict, frozenset((k, _freeze(v)) for k, v in value.items()))
    return value


def memoized(method):
    """
    Cache a method's result in `self.memo` under its name and arguments.

    Lists are keyed by order, sets regardless of order. Results are shared
    between callers, so they must not be mutated.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        key = (method.__name__, _freeze(args), _freeze(kwargs))
        cached = self.memo.get(key)
        if cached is not None:
            return cached
        result = method(self, *args, **kwargs)
        self.memo.put(key, result)
        return result

    return wrapper
