from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from fit_repo.settings import Settings

T = TypeVar("T")


class FitCache(Protocol[T]):
    """Cache capability injected around fitting calls."""

    def get(self, key: str) -> T | None: ...

    def set(self, key: str, value: T) -> None: ...

    def clear(self) -> None: ...


@dataclass
class _Entry(Generic[T]):
    value: T
    created_at: float


@dataclass
class TTLCache(Generic[T]):
    """In-memory cache whose entries expire ``ttl`` seconds after being set.

    When full, the oldest entry is evicted first.

    Example:
        >>> cache = TTLCache[str](ttl=60)
        >>> cache.set("key", "fitted content")
        >>> cache.get("key")
        'fitted content'
    """

    ttl: float = 60.0
    max_entries: int = 100
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, _Entry[T]] = field(default_factory=dict, init=False, repr=False)
    _stats: dict[str, int] = field(
        default_factory=lambda: {"hits": 0, "misses": 0, "evictions": 0},
        init=False,
        repr=False,
    )

    @classmethod
    def from_settings(cls, settings: Settings, max_entries: int = 100) -> TTLCache[T]:
        return cls(ttl=settings.cache_ttl_seconds, max_entries=max_entries)

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        if self.clock() - entry.created_at >= self.ttl:
            del self._entries[key]
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry.value

    def set(self, key: str, value: T) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
            del self._entries[oldest]
            self._stats["evictions"] += 1
        self._entries[key] = _Entry(value=value, created_at=self.clock())

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {**self._stats, "size": len(self._entries)}


def make_cache_key(path: str | Path, options: Mapping[str, Any]) -> str:
    """Stable key from a resolved path and fitting options."""
    resolved = Path(path).resolve()
    return f"{resolved}:{json.dumps(options, sort_keys=True, default=str)}"
