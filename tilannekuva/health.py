"""In-memory health registry for the aggregation core.

Adapters report failures and successes here, the cache facade reports its
hit/miss/write counters.  The registry is process-local and only ever used
to answer "is anything currently degraded"; it is never persisted.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Optional

@dataclass(frozen=True)
class CacheStats:
    """Simple container for cache related counters."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    write_failures: int = 0
    backend_errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "writeFailures": self.write_failures,
            "backendErrors": self.backend_errors,
        }

class HealthRegistry:
    """Stores provider error counters, last successful fetches and cache stats."""

    def __init__(self) -> None:
        self._last_success: Dict[str, str] = {}
        self._provider_errors: Dict[str, int] = {}
        self._failing: Dict[str, str] = {}
        self._cache_stats = CacheStats()
        self._lock = Lock()

    # -- Providers ----------------------------------------------------------
    def record_success(self, provider: str, when: Optional[datetime] = None) -> None:
        if not provider:
            raise ValueError("provider must be provided")
        when = when or datetime.now(timezone.utc)
        with self._lock:
            self._last_success[provider] = self._format_datetime(when)
            self._failing.pop(provider, None)

    def record_provider_error(self, provider: str, reason: str = "") -> None:
        if not provider:
            raise ValueError("provider must be provided")
        with self._lock:
            self._provider_errors[provider] = self._provider_errors.get(provider, 0) + 1
            self._failing[provider] = reason or "error"

    def failing_providers(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._failing)

    # -- Cache stats --------------------------------------------------------
    def record_cache(self, event: str) -> None:
        field_name = {
            "hit": "hits",
            "miss": "misses",
            "write": "writes",
            "write_failure": "write_failures",
            "backend_error": "backend_errors",
        }[event]
        with self._lock:
            current = getattr(self._cache_stats, field_name)
            self._cache_stats = replace(self._cache_stats, **{field_name: current + 1})

    @property
    def cache_stats(self) -> CacheStats:
        return self._cache_stats

    # -- Snapshot -----------------------------------------------------------
    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            providers = {
                name: {
                    "errors": self._provider_errors.get(name, 0),
                    "lastSuccess": self._last_success.get(name),
                    "failing": name in self._failing,
                }
                for name in sorted(set(self._provider_errors) | set(self._last_success) | set(self._failing))
            }
            cache = self._cache_stats.as_dict()
        return {"providers": providers, "cache": cache}

    @staticmethod
    def _format_datetime(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

__all__ = ["CacheStats", "HealthRegistry"]
