"""In-process embedding cache with TTL and bounded size."""

from __future__ import annotations

import threading
import time
import zlib
from typing import Callable, Dict, List, Optional

from rag_core.config import CacheSettings
from rag_core.models.embedding import CacheEntry, CacheStats
from rag_core.utils.logging import get_logger

logger = get_logger("embedding_cache")

# Texts up to this length are used verbatim in the key
SHORT_TEXT_KEY_LENGTH = 100
KEY_PREFIX_LENGTH = 50


class EmbeddingCache:
    """
    Process-local embedding cache.

    Entries expire after `ttl_seconds` (checked lazily on read). When the
    number of entries exceeds `max_entries`, the oldest `prune_fraction` of
    them is removed in a single sweep. The cache is not shared between
    processes and is lost on restart; correctness never depends on a hit.
    """

    def __init__(
        self,
        ttl_seconds: float = 24 * 60 * 60,
        max_entries: int = 1000,
        prune_fraction: float = 0.2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if not 0 < prune_fraction <= 1:
            raise ValueError("prune_fraction must be in (0, 1]")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.prune_fraction = prune_fraction
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: CacheSettings, clock: Callable[[], float] = time.time) -> "EmbeddingCache":
        return cls(
            ttl_seconds=settings.ttl_seconds,
            max_entries=settings.max_entries,
            prune_fraction=settings.prune_fraction,
            clock=clock,
        )

    @staticmethod
    def make_key(text: str, model: str, dimension: int) -> str:
        """
        Deterministic key for (model, dimension, text).

        Long texts are keyed by checksum, length and a prefix to keep keys small.
        """
        if len(text) <= SHORT_TEXT_KEY_LENGTH:
            return f"{model}:{dimension}:{text}"
        checksum = zlib.crc32(text.encode("utf-8")) & 0xFFFFFFFF
        return f"{model}:{dimension}:{checksum:08x}:{len(text)}:{text[:KEY_PREFIX_LENGTH]}"

    def get(self, key: str) -> Optional[List[float]]:
        """Return the cached vector, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry):
                del self._entries[key]
                return None
            return list(entry.embedding)

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self.ttl_seconds

    def set(self, key: str, embedding: List[float]) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(embedding=list(embedding), timestamp=self._clock())
            if len(self._entries) > self.max_entries:
                self._prune_locked()

    def _prune_locked(self) -> None:
        remove_count = max(1, int(len(self._entries) * self.prune_fraction))
        oldest = sorted(self._entries.items(), key=lambda item: item[1].timestamp)[:remove_count]
        for key, _ in oldest:
            del self._entries[key]
        logger.debug(f"Pruned embedding cache: removed={remove_count}, remaining={len(self._entries)}")

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Remove every entry and return how many there were."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Embedding cache cleared: entries={count}")
        return count

    def stats(self) -> CacheStats:
        with self._lock:
            timestamps = [entry.timestamp for entry in self._entries.values()]
            now = self._clock()
        if not timestamps:
            return CacheStats(size=0)
        return CacheStats(
            size=len(timestamps),
            oldest_entry=min(timestamps),
            newest_entry=max(timestamps),
            average_age=max(0.0, sum(now - ts for ts in timestamps) / len(timestamps)),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        """Membership follows `get`: expired entries are not present."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._is_expired(entry)
