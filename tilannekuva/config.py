"""Runtime settings for the aggregation core."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "tilannekuva.online/1.0"


class ConfigurationError(ValueError):
    """Raised when an environment variable holds a malformed value."""


def _number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Environment variable {name} must be a {cast.__name__}, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    """Explicit configuration passed to the cache and every adapter.

    Missing credentials never fail startup: without cache credentials the
    cache runs as a no-op and without a Fingrid key the energy adapter
    returns nothing.
    """

    cache_url: Optional[str] = None
    cache_token: Optional[str] = None
    fingrid_api_key: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 8.0
    request_retries: int = 2
    max_pending_writes: int = 8
    log_level: str = "INFO"

    @property
    def cache_enabled(self) -> bool:
        return bool(self.cache_url and self.cache_token)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        environ = os.environ if environ is None else environ
        settings = cls(
            cache_url=environ.get("UPSTASH_REDIS_REST_URL") or None,
            cache_token=environ.get("UPSTASH_REDIS_REST_TOKEN") or None,
            fingrid_api_key=environ.get("FINGRID_API_KEY") or None,
            user_agent=environ.get("TILANNEKUVA_USER_AGENT") or DEFAULT_USER_AGENT,
            request_timeout=_number(environ, "TILANNEKUVA_HTTP_TIMEOUT", 8.0, float),
            request_retries=_number(environ, "TILANNEKUVA_HTTP_RETRIES", 2, int),
            max_pending_writes=_number(environ, "TILANNEKUVA_MAX_PENDING_WRITES", 8, int),
            log_level=(environ.get("TILANNEKUVA_LOG_LEVEL") or "INFO").upper(),
        )
        if settings.max_pending_writes < 1:
            raise ConfigurationError("TILANNEKUVA_MAX_PENDING_WRITES must be at least 1")
        if not settings.cache_enabled:
            logger.warning("Cache disabled: UPSTASH_REDIS_REST_URL or UPSTASH_REDIS_REST_TOKEN missing")
        if not settings.fingrid_api_key:
            logger.warning("FINGRID_API_KEY missing, energy layer will be empty")
        return settings


__all__ = ["ConfigurationError", "DEFAULT_USER_AGENT", "Settings"]
