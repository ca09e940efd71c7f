"""Environment-driven configuration for the server.

The configuration is resolved exactly once at process start and then handed
to every component that needs it.  Resolution never fails: anything that
cannot be parsed falls back to its documented default so a typo in the
environment never keeps the process from starting.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional


APP_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_RATE_LIMIT_WINDOW_MS = 60_000
DEFAULT_RATE_LIMIT_MAX = 100

_FALSY = {"false", "0", "no", "off"}


@dataclass(frozen=True)
class AppConfig:
    """Immutable runtime configuration."""

    port: int = DEFAULT_PORT
    environment: str = DEFAULT_ENVIRONMENT
    rate_limit_window_ms: int = DEFAULT_RATE_LIMIT_WINDOW_MS
    rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX
    log_level: str = "debug"
    cors_enabled: bool = True
    data_file_path: Path = APP_ROOT / "data" / "app-data.json"
    contact_log_path: Path = APP_ROOT / "logs" / "contact.log"
    static_root: Path = APP_ROOT / "public"
    host: str = DEFAULT_HOST


def _positive_int(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    if value <= 0:
        return default
    return value


def _port(raw: Optional[str]) -> int:
    value = _positive_int(raw, DEFAULT_PORT)
    if value > 65535:
        return DEFAULT_PORT
    return value


def _flag(raw: Optional[str], default: bool) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in _FALSY


def _path(raw: Optional[str], default: Path) -> Path:
    if not raw or not raw.strip():
        return default
    return Path(raw.strip()).expanduser()


def load_config(environ: Mapping[str, str]) -> AppConfig:
    """Build an :class:`AppConfig` from ``environ`` (usually ``os.environ``)."""

    environment = (
        environ.get("APP_ENV") or environ.get("NODE_ENV") or DEFAULT_ENVIRONMENT
    ).strip() or DEFAULT_ENVIRONMENT
    default_level = "info" if environment == "production" else "debug"
    log_level = (environ.get("LOG_LEVEL") or "").strip().lower() or default_level

    return AppConfig(
        port=_port(environ.get("PORT")),
        environment=environment,
        rate_limit_window_ms=_positive_int(
            environ.get("RATE_LIMIT_WINDOW_MS"), DEFAULT_RATE_LIMIT_WINDOW_MS
        ),
        rate_limit_max=_positive_int(environ.get("RATE_LIMIT_MAX"), DEFAULT_RATE_LIMIT_MAX),
        log_level=log_level,
        cors_enabled=_flag(environ.get("ENABLE_CORS"), True),
        data_file_path=_path(environ.get("DATA_FILE_PATH"), AppConfig.data_file_path),
        contact_log_path=_path(environ.get("CONTACT_LOG_PATH"), AppConfig.contact_log_path),
        static_root=_path(environ.get("STATIC_ROOT"), AppConfig.static_root),
        host=(environ.get("HOST") or "").strip() or DEFAULT_HOST,
    )


def describe(config: AppConfig) -> Dict[str, str]:
    """Flatten ``config`` into display-friendly strings."""

    return {
        "port": str(config.port),
        "host": config.host,
        "environment": config.environment,
        "rate_limit_window_ms": str(config.rate_limit_window_ms),
        "rate_limit_max": str(config.rate_limit_max),
        "log_level": config.log_level,
        "cors_enabled": "yes" if config.cors_enabled else "no",
        "data_file_path": str(config.data_file_path),
        "contact_log_path": str(config.contact_log_path),
        "static_root": str(config.static_root),
    }
