import time
from dataclasses import dataclass, field
from typing import Callable

from obrasflow.schemas import Ferramenta


@dataclass
class _CacheEntry:
    data: list[Ferramenta]
    stored_at: float


@dataclass
class FerramentasCache:
    """Listas de ferramentas por usuario, validas por ``ttl_seconds``."""

    ttl_seconds: float = 300
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, _CacheEntry] = field(default_factory=dict)

    def get(self, key: str) -> list[Ferramenta] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return list(entry.data)

    def set(self, key: str, data: list[Ferramenta]) -> None:
        self._entries[key] = _CacheEntry(list(data), self.clock())

    def clear(self) -> None:
        self._entries.clear()
