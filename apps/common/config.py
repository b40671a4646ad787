# Runtime config via env. Everything is read once per process by load_settings().
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .errors import ConfigError

Mode = Literal["url", "file"]


class Settings(BaseModel):
    es_url: str = "http://localhost:9200"
    es_username: str = "elastic"
    es_password: str
    es_index: str = "algorand-final"
    es_request_timeout: float = 10
    es_bulk_timeout: float = 120
    es_refresh: str = "wait_for"

    source_url: str = "http://127.0.0.1:8080/v2/transactions/pending"
    api_token: Optional[str] = None
    api_token_header: str = "X-Algo-API-Token"
    http_connect_timeout: float = 5
    http_read_timeout: float = 30
    collection_key: str = "top-transactions"

    poll_interval_sec: int = Field(default=10, gt=0)
    poll_times: int = 1
    stop_on_error: bool = False
    metrics_port: Optional[int] = None

    def source_headers(self) -> dict:
        if not self.api_token:
            return {}
        return {self.api_token_header: self.api_token}


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _num(name: str, cast, default):
    raw = _env(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def load_settings(mode: Mode) -> Settings:
    """
    Build Settings from the environment and fail fast on anything missing.

    ES_PASSWORD has no fallback. API_TOKEN is only required when the
    endpoint source is used.
    """
    password = _env("ES_PASSWORD")
    if password is None:
        raise ConfigError("ES_PASSWORD is not set; refusing to connect to Elasticsearch without credentials")

    token = _env("API_TOKEN")
    if mode == "url" and token is None:
        raise ConfigError("API_TOKEN is required when reading from --url")

    metrics_port = _num("METRICS_PORT", int, None)
    try:
        return Settings(
            es_url=_env("ELASTIC_URL") or "http://localhost:9200",
            es_username=_env("ES_USERNAME") or "elastic",
            es_password=password,
            es_index=_env("ES_INDEX") or "algorand-final",
            es_request_timeout=_num("ES_REQUEST_TIMEOUT", float, 10),
            es_bulk_timeout=_num("ES_BULK_TIMEOUT", float, 120),
            es_refresh=_env("ES_REFRESH") or "wait_for",
            source_url=_env("SOURCE_URL") or "http://127.0.0.1:8080/v2/transactions/pending",
            api_token=token,
            api_token_header=_env("API_TOKEN_HEADER") or "X-Algo-API-Token",
            http_connect_timeout=_num("HTTP_CONNECT_TIMEOUT", float, 5),
            http_read_timeout=_num("HTTP_READ_TIMEOUT", float, 30),
            collection_key=_env("COLLECTION_KEY") or "top-transactions",
            poll_interval_sec=_num("POLL_INTERVAL_SEC", int, 10),
            poll_times=_num("POLL_TIMES", int, 1),
            stop_on_error=(_env("STOP_ON_ERROR") or "0") == "1",
            metrics_port=metrics_port,
        )
    except ValueError as e:
        # pydantic ValidationError is a ValueError
        raise ConfigError(str(e)) from e
