from __future__ import annotations

import pytest

from tilannekuva.config import DEFAULT_USER_AGENT, ConfigurationError, Settings


def test_defaults_without_environment():
    settings = Settings.from_env({})

    assert settings.cache_enabled is False
    assert settings.fingrid_api_key is None
    assert settings.user_agent == DEFAULT_USER_AGENT
    assert settings.request_timeout == 8.0
    assert settings.request_retries == 2
    assert settings.log_level == "INFO"


def test_reads_environment():
    settings = Settings.from_env(
        {
            "UPSTASH_REDIS_REST_URL": "https://cache.test",
            "UPSTASH_REDIS_REST_TOKEN": "secret",
            "FINGRID_API_KEY": "key",
            "TILANNEKUVA_HTTP_TIMEOUT": "2.5",
            "TILANNEKUVA_HTTP_RETRIES": "0",
            "TILANNEKUVA_LOG_LEVEL": "debug",
        }
    )

    assert settings.cache_enabled is True
    assert settings.fingrid_api_key == "key"
    assert settings.request_timeout == 2.5
    assert settings.request_retries == 0
    assert settings.log_level == "DEBUG"


def test_cache_needs_both_url_and_token():
    assert Settings.from_env({"UPSTASH_REDIS_REST_URL": "https://cache.test"}).cache_enabled is False


@pytest.mark.parametrize(
    "environ",
    [
        {"TILANNEKUVA_HTTP_TIMEOUT": "fast"},
        {"TILANNEKUVA_HTTP_RETRIES": "1.5"},
        {"TILANNEKUVA_MAX_PENDING_WRITES": "0"},
    ],
)
def test_malformed_values_raise(environ):
    with pytest.raises(ConfigurationError):
        Settings.from_env(environ)
