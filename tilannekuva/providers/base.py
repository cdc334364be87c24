from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, TypeVar

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import DEFAULT_USER_AGENT, Settings
from ..health import HealthRegistry


logger = logging.getLogger(__name__)

R = TypeVar("R")
T = TypeVar("T")

# Raised by record parsing when an upstream body is well-formed but has an unexpected shape.
MALFORMED = (KeyError, TypeError, ValueError, AttributeError, IndexError)


class ProviderError(RuntimeError):
    """Base provider error."""


class QuotaExceeded(ProviderError):
    """Raised when a provider reports a quota/usage limit issue."""


@dataclass
class RequestConfig:
    timeout: float = 8.0
    retries: int = 2
    backoff_factor: float = 0.3
    status_forcelist: Iterable[int] = (429, 500, 502, 503, 504)
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_settings(cls, settings: Settings) -> "RequestConfig":
        return cls(
            timeout=settings.request_timeout,
            retries=settings.request_retries,
            user_agent=settings.user_agent,
        )


@dataclass
class Batch(Generic[R]):
    """Raw records from one adapter run; ``error`` is set when it degraded."""

    source: str
    records: List[R] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class SourceAdapter(Generic[R]):
    """Base class that adds retry/timeouts and failure isolation for HTTP providers.

    Subclasses implement ``fetch()`` and may raise ``ProviderError`` freely;
    ``collect()`` turns that into an empty batch so one provider can never
    fail a whole layer.
    """

    name = "source"
    accept = "application/json"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
        registry: Optional[HealthRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or self._build_session(self.request_config)
        self.registry = registry
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._log = logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def fetch(self, **params: Any) -> List[R]:
        raise NotImplementedError

    def collect(self, **params: Any) -> Batch[R]:
        try:
            records = self.fetch(**params)
        except ProviderError as exc:
            return self._degraded(str(exc))
        except MALFORMED as exc:
            self._log.exception("Provider %s sent a malformed payload", self.name)
            return self._degraded(f"malformed payload: {exc}")
        if self.registry is not None:
            self.registry.record_success(self.name, self.clock())
        self._log.info("Provider %s returned %d records", self.name, len(records))
        return Batch(source=self.name, records=list(records))

    # Helpers ------------------------------------------------------------
    def _degraded(self, reason: str) -> Batch[R]:
        self._log.error("Provider %s degraded to empty: %s", self.name, reason)
        if self.registry is not None:
            self.registry.record_provider_error(self.name, reason)
        return Batch(source=self.name, records=[], error=reason)

    def _build_session(self, config: RequestConfig) -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=config.retries,
            backoff_factor=config.backoff_factor,
            status_forcelist=tuple(config.status_forcelist),
            allowed_methods=frozenset({"GET", "POST"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Accept": self.accept,
            "Accept-Encoding": "gzip",
            "User-Agent": self.request_config.user_agent,
            "Digitraffic-User": self.request_config.user_agent,
        }
        if extra:
            headers.update(extra)
        return headers

    def _handle_response(self, response: Response) -> Response:
        if response.status_code == 429:
            self._log.warning("Quota exceeded: %s", response.text[:200])
            raise QuotaExceeded("quota exceeded")
        if response.status_code >= 400:
            self._log.error("Provider returned %s: %s", response.status_code, response.text[:200])
            raise ProviderError(f"HTTP {response.status_code}")
        return response

    def _request(self, method: str, url: str, headers: Optional[Mapping[str, str]] = None, **kwargs) -> Response:
        try:
            response = self.session.request(
                method,
                url,
                headers=self._headers(headers),
                timeout=self.request_config.timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            self._log.error("Request to %s timed out", url)
            raise ProviderError("timeout") from exc
        except requests.RequestException as exc:
            self._log.error("Request to %s failed: %s", url, exc)
            raise ProviderError("request failed") from exc
        return self._handle_response(response)

    def _json(self, response: Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            self._log.error("Failed to decode JSON from %s", response.url)
            raise ProviderError("invalid json") from exc

    def _get_json(self, url: str, **kwargs) -> Any:
        return self._json(self._request("GET", url, **kwargs))

    def _get_object(self, url: str, **kwargs) -> Dict[str, Any]:
        return self._expect(self._get_json(url, **kwargs), dict, url)

    def _get_list(self, url: str, **kwargs) -> List[Any]:
        return self._expect(self._get_json(url, **kwargs), list, url)

    def _expect(self, payload: Any, kind: type, url: str) -> Any:
        if not isinstance(payload, kind):
            self._log.error("Expected a JSON %s from %s, got %s", kind.__name__, url, type(payload).__name__)
            raise ProviderError(f"unexpected payload: {type(payload).__name__}")
        return payload

    def _each_record(self, items: Optional[Iterable[Any]], parse: Callable[[Any], Optional[T]]) -> List[T]:
        """Apply ``parse`` to every item; an item that does not parse is dropped alone.

        ``parse`` returns ``None`` for items it deliberately skips.
        """
        parsed: List[T] = []
        dropped = 0
        for item in items or []:
            try:
                result = parse(item)
            except MALFORMED as exc:
                dropped += 1
                self._log.debug("Dropping malformed %s record: %r", self.name, exc)
                continue
            if result is not None:
                parsed.append(result)
        if dropped:
            self._log.warning("Dropped %d malformed records from %s", dropped, self.name)
        return parsed

    def _gather(self, calls: Mapping[str, Callable[[], Any]], default: Any = None) -> Dict[str, Any]:
        """Run sub-requests in parallel, each failing one falls back to ``default``.

        Results are keyed by name so callers never depend on completion order.
        """
        results: Dict[str, Any] = {}
        if not calls:
            return results
        with ThreadPoolExecutor(max_workers=len(calls), thread_name_prefix=self.name) as pool:
            futures = {name: pool.submit(call) for name, call in calls.items()}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except ProviderError as exc:
                    self._log.warning("Sub-request %s of %s degraded to empty: %s", name, self.name, exc)
                    if self.registry is not None:
                        self.registry.record_provider_error(f"{self.name}:{name}", str(exc))
                    results[name] = default() if callable(default) else default
        return results


def safe_float(value: Optional[object]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if result != result:  # NaN
        return None
    return result


def parse_timestamp(value: Optional[str], fallback: datetime) -> datetime:
    if not value:
        return fallback
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return fallback
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = [
    "MALFORMED",
    "Batch",
    "ProviderError",
    "QuotaExceeded",
    "RequestConfig",
    "SourceAdapter",
    "parse_timestamp",
    "safe_float",
]
