import pytest

from apps.common.config import load_settings
from apps.common.errors import ConfigError


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("ES_PASSWORD", "API_TOKEN", "ELASTIC_URL", "POLL_INTERVAL_SEC", "POLL_TIMES",
                 "STOP_ON_ERROR", "METRICS_PORT", "API_TOKEN_HEADER", "ES_INDEX"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_password_has_no_fallback(clean_env):
    with pytest.raises(ConfigError):
        load_settings("file")


def test_blank_password_is_missing(clean_env):
    clean_env.setenv("ES_PASSWORD", "   ")
    with pytest.raises(ConfigError):
        load_settings("file")


def test_token_required_only_for_url(clean_env):
    clean_env.setenv("ES_PASSWORD", "pw")
    assert load_settings("file").api_token is None
    with pytest.raises(ConfigError):
        load_settings("url")


def test_token_becomes_source_header(clean_env):
    clean_env.setenv("ES_PASSWORD", "pw")
    clean_env.setenv("API_TOKEN", "secret")
    s = load_settings("url")
    assert s.source_headers() == {"X-Algo-API-Token": "secret"}
    assert s.es_index == "algorand-final"
    assert s.poll_times == 1


def test_env_overrides(clean_env):
    clean_env.setenv("ES_PASSWORD", "pw")
    clean_env.setenv("POLL_INTERVAL_SEC", "30")
    clean_env.setenv("POLL_TIMES", "-1")
    clean_env.setenv("STOP_ON_ERROR", "1")
    s = load_settings("file")
    assert (s.poll_interval_sec, s.poll_times, s.stop_on_error) == (30, -1, True)


@pytest.mark.parametrize("name,value", [("POLL_INTERVAL_SEC", "soon"), ("POLL_INTERVAL_SEC", "0"), ("METRICS_PORT", "x")])
def test_bad_numbers_are_config_errors(clean_env, name, value):
    clean_env.setenv("ES_PASSWORD", "pw")
    clean_env.setenv(name, value)
    with pytest.raises(ConfigError):
        load_settings("file")
