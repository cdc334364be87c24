"""Stale-tolerant cache facade and its backends.

A backend failure, an expired key and a missing key all look the same to
callers: a miss.  Writes are best effort and happen off the response path.
"""
from __future__ import annotations

import json
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import partial
from threading import BoundedSemaphore, Lock
from typing import Any, Callable, Dict, Optional, Protocol, Set, Tuple, TypeVar
from urllib.parse import quote

import requests

from .config import Settings
from .health import HealthRegistry


T = TypeVar("T")


class CacheBackendError(RuntimeError):
    """Raised by a backend when the store cannot be reached or answers garbage."""


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: int) -> bool:
        ...

    def ping(self) -> bool:
        ...


class MemoryBackend:
    """A lightweight TTL store emulating Redis behaviour in-process."""

    def __init__(self, time_func: Callable[[], float] = time.monotonic) -> None:
        self._time_func = time_func
        self._storage: Dict[str, Tuple[float, str]] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._storage.get(key)
            if not item:
                return None
            expires_at, value = item
            if expires_at <= self._time_func():
                self._storage.pop(key, None)
                return None
            return value

    def set(self, key: str, value: str, ttl: int) -> bool:
        with self._lock:
            self._storage[key] = (self._time_func() + ttl, value)
        return True

    def ping(self) -> bool:
        return True


class RestRedisBackend:
    """Redis over the Upstash REST protocol (GET /get/<key>, POST command arrays)."""

    def __init__(
        self,
        url: str,
        token: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 5.0,
    ) -> None:
        self.url = url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def get(self, key: str) -> Optional[str]:
        response = self._call("GET", f"{self.url}/get/{quote(key, safe=':')}")
        try:
            data = response.json()
        except ValueError as exc:
            raise CacheBackendError("invalid json from cache") from exc
        raw = data.get("result", data.get("value")) if isinstance(data, dict) else None
        if raw is None or raw == "":
            return None
        return raw if isinstance(raw, str) else json.dumps(raw)

    def set(self, key: str, value: str, ttl: int) -> bool:
        self._call("POST", self.url, json=["SET", key, value, "EX", int(ttl)])
        return True

    def ping(self) -> bool:
        self._call("GET", f"{self.url}/ping")
        return True

    def _call(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.token}"}
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise CacheBackendError(f"cache request failed: {exc}") from exc
        if response.status_code >= 400:
            raise CacheBackendError(f"HTTP {response.status_code}")
        return response


class StaleTolerantCache:
    """Memoization facade used by every layer.

    With ``backend=None`` every lookup is a miss and every write is skipped,
    so callers simply recompute on each request.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        *,
        registry: Optional[HealthRegistry] = None,
        max_pending_writes: int = 8,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.backend = backend
        self.registry = registry or HealthRegistry()
        self._slots = BoundedSemaphore(max_pending_writes)
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="cache-writer")
        self._pending: Set[Future] = set()
        self._lock = Lock()
        self._log = logging.getLogger(self.__class__.__name__)

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    # Public API ---------------------------------------------------------
    def get(self, key: str) -> Optional[Any]:
        if self.backend is None:
            return None
        try:
            raw = self.backend.get(key)
        except CacheBackendError as exc:
            self._log.error("Cache get failed for %s: %s", key, exc)
            self.registry.record_cache("backend_error")
            return None
        if raw is None:
            self.registry.record_cache("miss")
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            self._log.error("Cache entry %s is not valid json, treating as miss", key)
            self.registry.record_cache("miss")
            return None
        self.registry.record_cache("hit")
        return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if self.backend is None:
            return False
        try:
            serialized = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            self._log.error("Cannot serialize value for %s: %s", key, exc)
            self.registry.record_cache("write_failure")
            return False
        try:
            stored = self.backend.set(key, serialized, ttl_seconds)
        except CacheBackendError as exc:
            self._log.error("Cache set failed for %s: %s", key, exc)
            self.registry.record_cache("write_failure")
            return False
        self.registry.record_cache("write" if stored else "write_failure")
        return stored

    def get_or_compute(
        self,
        key: str,
        ttl_seconds: int,
        producer: Callable[[], T],
        *,
        dump: Optional[Callable[[T], Any]] = None,
        load: Optional[Callable[[Any], T]] = None,
        ttl_for: Optional[Callable[[T], int]] = None,
    ) -> T:
        """Return the cached value for ``key`` or compute, return and store it.

        The write-back runs detached; its outcome never changes the return
        value.  ``dump``/``load`` convert between the produced object and its
        JSON form, ``ttl_for`` may shorten the TTL for a particular value.
        """
        cached = self.get(key)
        if cached is not None:
            try:
                value = load(cached) if load else cached
            except (KeyError, TypeError, ValueError) as exc:
                self._log.warning("Discarding unreadable cache entry %s: %s", key, exc)
            else:
                self._log.info("Cache hit: %s", key)
                return value

        if self.enabled:
            self._log.info("Cache miss: %s, computing", key)
        value = producer()
        if self.enabled:
            ttl = ttl_for(value) if ttl_for else ttl_seconds
            payload = dump(value) if dump else value
            self.run_detached(f"cache write {key}", self.set, key, payload, ttl)
        return value

    def run_detached(self, label: str, func: Callable[..., Any], *args: Any) -> Optional[Future]:
        """Fire and forget ``func``; failures are logged, never raised."""
        if not self._slots.acquire(blocking=False):
            self._log.warning("Background queue full, dropping %s", label)
            return None
        try:
            future = self._executor.submit(func, *args)
        except RuntimeError as exc:
            self._slots.release()
            self._log.error("Cannot schedule %s: %s", label, exc)
            return None
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(partial(self._finished, label))
        return future

    def ping(self) -> bool:
        if self.backend is None:
            return False
        try:
            return bool(self.backend.ping())
        except CacheBackendError as exc:
            self._log.error("Cache ping failed: %s", exc)
            return False

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for detached work scheduled so far."""
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    # Helpers ------------------------------------------------------------
    def _finished(self, label: str, future: Future) -> None:
        self._slots.release()
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._log.error("%s failed: %s", label, exc)


def build_cache(
    settings: Settings,
    *,
    registry: Optional[HealthRegistry] = None,
    session: Optional[requests.Session] = None,
) -> StaleTolerantCache:
    backend: Optional[CacheBackend] = None
    if settings.cache_enabled:
        backend = RestRedisBackend(
            settings.cache_url,
            settings.cache_token,
            session=session,
            timeout=settings.request_timeout,
        )
    return StaleTolerantCache(backend, registry=registry, max_pending_writes=settings.max_pending_writes)


__all__ = [
    "CacheBackend",
    "CacheBackendError",
    "MemoryBackend",
    "RestRedisBackend",
    "StaleTolerantCache",
    "build_cache",
]
