from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    cors_allow_credentials: bool
    fx_live_enabled: bool
    fx_live_url: str
    fx_timeout_seconds: float
    fx_cache_ttl_seconds: int
    reference_data_dir: str | None
    methodology_config_path: str | None


settings = Settings(
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
    cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", False),
    fx_live_enabled=_get_env_bool("FX_LIVE_ENABLED", False),
    fx_live_url=_get_env("FX_LIVE_URL", "https://api.frankfurter.app") or "https://api.frankfurter.app",
    fx_timeout_seconds=_get_env_float("FX_TIMEOUT_SECONDS", 4.0),
    fx_cache_ttl_seconds=_get_env_int("FX_CACHE_TTL_SECONDS", 3600),
    reference_data_dir=_get_env("REFERENCE_DATA_DIR"),
    methodology_config_path=_get_env("METHODOLOGY_CONFIG_PATH"),
)

if settings.fx_live_enabled and not settings.fx_live_url.startswith(("http://", "https://")):
    raise RuntimeError("FX_LIVE_URL must be an http(s) URL when FX_LIVE_ENABLED is set.")

if settings.fx_timeout_seconds <= 0:
    raise RuntimeError("FX_TIMEOUT_SECONDS must be greater than zero.")

if settings.cors_allow_credentials and "*" in settings.cors_allowed_origins:
    raise RuntimeError("CORS_ALLOW_CREDENTIALS cannot be combined with a wildcard CORS_ALLOWED_ORIGINS.")
