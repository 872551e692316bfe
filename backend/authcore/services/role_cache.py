"""In-memory cache of role sets, invalidated explicitly on role mutation."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Hashable, Optional, Tuple

ROLES_NAMESPACE = "roles"


@dataclass
class _Entry:
    value: FrozenSet[str]
    stored_at: float


class RoleCache:
    """
    TTL + LRU cache keyed by (namespace, user id).

    Stale role sets are a privilege-escalation risk, so every role mutation
    must call invalidate() before it returns.
    """

    def __init__(
        self,
        ttl_seconds: float = 86400.0,
        max_entries: int = 10000,
        namespace: str = ROLES_NAMESPACE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.Lock()
        self._entries: "OrderedDict[Tuple[str, Hashable], _Entry]" = OrderedDict()
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.namespace = namespace
        self._timer = timer
        self.hits = 0
        self.misses = 0

    def _key(self, user_id: Hashable) -> Tuple[str, Hashable]:
        return (self.namespace, user_id)

    def get(self, user_id: Hashable) -> Optional[FrozenSet[str]]:
        key = self._key(user_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._timer() - entry.stored_at > self.ttl_seconds:
                self._entries.pop(key, None)
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

    def put(self, user_id: Hashable, roles) -> FrozenSet[str]:
        value = frozenset(roles)
        key = self._key(user_id)
        with self._lock:
            self._entries[key] = _Entry(value=value, stored_at=self._timer())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return value

    def get_or_load(self, user_id: Hashable, loader: Callable[[], Optional[FrozenSet[str]]]) -> Optional[FrozenSet[str]]:
        cached = self.get(user_id)
        if cached is not None:
            return cached
        loaded = loader()
        if loaded is None:
            return None
        return self.put(user_id, loaded)

    def invalidate(self, user_id: Hashable) -> None:
        with self._lock:
            self._entries.pop(self._key(user_id), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "hits": self.hits, "misses": self.misses}
