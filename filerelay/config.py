import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_PORT = 3030
DEFAULT_HOST = "0.0.0.0"
DEFAULT_RETENTION_HOURS = 24.0 * 7
DEFAULT_SNIFF_PREFIX_BYTES = 1024 * 1024  # 1 MiB
DEFAULT_DOWNLOAD_RATE_LIMIT = "120 per minute"
DEFAULT_RATE_LIMIT_STORAGE = "memory://"
DEFAULT_UPLOAD_TIMEOUT_SECONDS = 300.0
BYTES_PER_MB = 1024 * 1024

logger = logging.getLogger("filerelay.config")


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True)
class ServerSettings:
    upload_token: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    retention_seconds: float = DEFAULT_RETENTION_HOURS * 3600
    max_upload_size_bytes: Optional[int] = None
    download_rate_limit: str = DEFAULT_DOWNLOAD_RATE_LIMIT
    rate_limit_storage: str = DEFAULT_RATE_LIMIT_STORAGE
    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass(frozen=True)
class ClientSettings:
    url: str
    upload_token: str
    sniff_prefix_bytes: int = DEFAULT_SNIFF_PREFIX_BYTES
    timeout: float = DEFAULT_UPLOAD_TIMEOUT_SECONDS
    log_level: str = "INFO"

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


def _require(environ: Mapping[str, str], key: str) -> str:
    value = environ.get(key)
    if value is None or value == "":
        raise ConfigurationError(f"{key} must be set")
    return value


def _optional_float(environ: Mapping[str, str], key: str, default: float) -> float:
    """Parse a positive float tunable, logging and falling back on bad input."""

    raw_value = environ.get(key)
    if raw_value is None or raw_value == "":
        return default
    try:
        value = float(raw_value)
    except ValueError:
        logger.warning("Invalid value for %s: %s. Using default: %s", key, raw_value, default)
        return default
    if math.isnan(value) or math.isinf(value) or value <= 0:
        logger.warning("Invalid value for %s: %s. Using default: %s", key, raw_value, default)
        return default
    return value


def _optional_int(environ: Mapping[str, str], key: str, default: int, min_value: int = 1) -> int:
    raw_value = environ.get(key)
    if raw_value is None or raw_value == "":
        return default
    try:
        value = int(raw_value)
    except ValueError:
        logger.warning("Invalid value for %s: %s. Using default: %d", key, raw_value, default)
        return default
    if value < min_value:
        logger.warning("Invalid value for %s: %s. Using default: %d", key, raw_value, default)
        return default
    return value


def _parse_port(environ: Mapping[str, str]) -> int:
    raw_value = environ.get("PORT")
    if raw_value is None or raw_value == "":
        return DEFAULT_PORT
    try:
        port = int(raw_value)
    except ValueError as error:
        raise ConfigurationError(f"PORT must be a valid port number, got {raw_value!r}") from error
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"PORT must be a valid port number, got {raw_value!r}")
    return port


def _log_level(environ: Mapping[str, str]) -> str:
    level = environ.get("LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        return "INFO"
    return level


def load_server_settings(environ: Optional[Mapping[str, str]] = None) -> ServerSettings:
    """Build server settings from the environment.

    ``UPLOAD_TOKEN`` is mandatory and ``PORT`` must parse; both raise
    :class:`ConfigurationError`. Optional tunables fall back to their defaults.
    """

    if environ is None:
        environ = os.environ

    upload_token = _require(environ, "UPLOAD_TOKEN")
    port = _parse_port(environ)

    retention_hours = _optional_float(
        environ, "FILERELAY_RETENTION_HOURS", DEFAULT_RETENTION_HOURS
    )

    max_upload_size_bytes = None
    raw_limit = environ.get("FILERELAY_MAX_UPLOAD_SIZE_MB")
    if raw_limit:
        limit_mb = _optional_float(environ, "FILERELAY_MAX_UPLOAD_SIZE_MB", 0.0)
        if limit_mb > 0:
            max_upload_size_bytes = int(limit_mb * BYTES_PER_MB)

    return ServerSettings(
        upload_token=upload_token,
        port=port,
        host=environ.get("FILERELAY_HOST") or DEFAULT_HOST,
        retention_seconds=retention_hours * 3600,
        max_upload_size_bytes=max_upload_size_bytes,
        download_rate_limit=environ.get("FILERELAY_DOWNLOAD_RATE_LIMIT")
        or DEFAULT_DOWNLOAD_RATE_LIMIT,
        rate_limit_storage=environ.get("FILERELAY_RATE_LIMIT_STORAGE")
        or DEFAULT_RATE_LIMIT_STORAGE,
        log_level=_log_level(environ),
        log_file=environ.get("FILERELAY_LOG_FILE") or None,
    )


def load_client_settings(environ: Optional[Mapping[str, str]] = None) -> ClientSettings:
    if environ is None:
        environ = os.environ

    upload_token = _require(environ, "UPLOAD_TOKEN")
    url = _require(environ, "URL")

    return ClientSettings(
        url=url,
        upload_token=upload_token,
        sniff_prefix_bytes=_optional_int(
            environ, "FILERELAY_SNIFF_PREFIX_BYTES", DEFAULT_SNIFF_PREFIX_BYTES
        ),
        timeout=_optional_float(
            environ, "FILERELAY_UPLOAD_TIMEOUT", DEFAULT_UPLOAD_TIMEOUT_SECONDS
        ),
        log_level=_log_level(environ),
    )
