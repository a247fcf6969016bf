"""Metadata cache abstraction used by the asset resolver.

Entries store the time they were fetched; freshness is decided by the caller
against its own TTL and clock. Entries are only ever overwritten whole.
"""

from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional, Protocol


@dataclass(frozen=True)
class CacheEntry:
    """Cached payload with the time (seconds) it was fetched."""

    fetched_at: float
    value: Any

    def is_fresh(self, now: float, ttl: float) -> bool:
        """Check if the entry is younger than ``ttl`` seconds at ``now``."""
        return now - self.fetched_at < ttl


class MetadataCache(Protocol):
    """Protocol for caches the resolver can read and write."""

    def get(self, key: Hashable) -> Optional[CacheEntry]:
        """Get an entry.

        Args:
            key: Cache key, e.g. ``("meta", "mainnet", base_url, "")``

        Returns:
            The stored entry (fresh or not) or None
        """
        ...

    def set(self, key: Hashable, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous one."""
        ...


class MemoryMetadataCache:
    """Dict-backed :class:`MetadataCache`.

    Unbounded and never evicts; each client owns its own instance.
    """

    def __init__(self) -> None:
        self._entries: Dict[Hashable, CacheEntry] = {}

    def get(self, key: Hashable) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: Hashable, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
