from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pension_projector.schemas.projection import PlanInput


@dataclass
class CacheEntry:
    value: Any
    expires_at: float  # clock() seconds


class TTLCache:
    """Thread-safe in-memory cache whose entries expire after a fixed TTL."""

    def __init__(
        self,
        default_ttl_seconds: int = 300,
        max_items: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl_seconds = int(default_ttl_seconds)
        self.max_items = int(max_items)
        self._clock = clock
        self._lock = threading.Lock()
        self._store: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """The cached value, or None when absent or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._store[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else int(ttl_seconds)
        expires_at = self._clock() + max(1, ttl)

        with self._lock:
            # full: drop the tenth of entries closest to expiry
            if key not in self._store and len(self._store) >= self.max_items:
                items = sorted(self._store.items(), key=lambda kv: kv[1].expires_at)
                for k, _ in items[: max(1, self.max_items // 10)]:
                    del self._store[k]

            self._store[key] = CacheEntry(value=value, expires_at=expires_at)


def plan_cache_key(plan: PlanInput) -> str:
    """SHA-256 of the plan's canonical JSON (sorted keys, Decimals as strings)."""
    canonical = json.dumps(plan.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
    return "projection:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
