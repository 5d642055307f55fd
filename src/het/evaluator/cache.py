"""
Decision cache.

Decisions are cached by a digest of the tool type and arguments only.
Session id and working directory are not part of the key, so an identical
invocation made from another repository hits the same entry.
"""

import hashlib
import json
import threading
import time
from collections.abc import Callable
from typing import Any

from het.schema import Decision, Invocation

PURGE_INTERVAL_SECONDS = 60.0


def compute_hash(data: Any) -> str:
    """SHA-256 of canonical JSON (sorted keys)."""
    content = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def cache_key(invocation: Invocation) -> str:
    """Cache key for an invocation."""
    return compute_hash({
        "tool": invocation.tool_type.value,
        "arguments": invocation.arguments,
    })


class DecisionCache:
    """
    Thread-safe TTL cache of decisions.

    Expired entries are dropped when read, and swept from the whole cache
    by set() at most once per purge interval. A TTL of 0 disables caching.

    Attributes:
        ttl_seconds: Lifetime of an entry
        purge_interval_seconds: Minimum time between sweeps
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
        purge_interval_seconds: float = PURGE_INTERVAL_SECONDS,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.purge_interval_seconds = purge_interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, Decision]] = {}
        self._next_purge = clock() + purge_interval_seconds

    def get(self, key: str) -> Decision | None:
        """Cached decision for key, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, decision = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return decision

    def set(self, key: str, decision: Decision) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            now = self._clock()
            if now >= self._next_purge:
                self._purge_locked(now)
            self._entries[key] = (now + self.ttl_seconds, decision)

    def clear(self) -> int:
        """Drop every entry. Returns how many were dropped."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def purge_expired(self) -> int:
        """Drop expired entries. Returns how many were dropped."""
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [key for key, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._next_purge = now + self.purge_interval_seconds
        return len(expired)

    def __len__(self) -> int:
        """Number of live entries."""
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)
