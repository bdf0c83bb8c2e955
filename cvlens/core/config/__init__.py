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
    log_level: str
    sentry_dsn: str | None
    rate_limit: str
    rate_limit_enabled: bool
    cors_allowed_origins: tuple[str, ...]
    llm_enabled: bool
    ai_provider: str
    ai_model: str
    llm_timeout_s: float
    llm_retry_attempts: int
    llm_retry_backoff_s: float
    llm_rate_limit_backoff_s: float
    segmentation_strategy: str
    segmentation_max_chars: int
    phrasing_timeout_s: float
    max_upload_bytes: int
    default_language: str
    session_store_max_cvs: int
    thresholds_path: str | None


def load_settings() -> Settings:
    return Settings(
        log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
        sentry_dsn=_get_env("SENTRY_DSN"),
        rate_limit=_get_env("RATE_LIMIT", "30/minute") or "30/minute",
        rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
        cors_allowed_origins=_get_env_list(
            "CORS_ALLOWED_ORIGINS",
            [
                "http://localhost:5173",
                "http://127.0.0.1:5173",
                "http://localhost:3000",
            ],
        ),
        llm_enabled=_get_env_bool("CVLENS_LLM_ENABLED", True),
        ai_provider=(_get_env("AI_PROVIDER", "openai") or "openai").strip().lower(),
        ai_model=(_get_env("AI_MODEL", "gpt-4o-mini") or "gpt-4o-mini").strip(),
        llm_timeout_s=_get_env_float("LLM_TIMEOUT_S", 60.0),
        llm_retry_attempts=max(0, _get_env_int("LLM_RETRY_ATTEMPTS", 2)),
        llm_retry_backoff_s=_get_env_float("LLM_RETRY_BACKOFF_S", 1.0),
        llm_rate_limit_backoff_s=_get_env_float("LLM_RATE_LIMIT_BACKOFF_S", 5.0),
        segmentation_strategy=(_get_env("SEGMENTATION_STRATEGY", "llm") or "llm").strip().lower(),
        segmentation_max_chars=_get_env_int("SEGMENTATION_MAX_CHARS", 30000),
        phrasing_timeout_s=_get_env_float("PHRASING_TIMEOUT_S", 15.0),
        max_upload_bytes=_get_env_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
        default_language=(_get_env("DEFAULT_LANGUAGE", "en") or "en").strip().lower(),
        session_store_max_cvs=_get_env_int("SESSION_STORE_MAX_CVS", 500),
        thresholds_path=_get_env("CVLENS_THRESHOLDS_PATH"),
    )


settings = load_settings()

if settings.segmentation_strategy not in {"llm", "heuristic"}:
    raise RuntimeError("SEGMENTATION_STRATEGY must be either 'llm' or 'heuristic'.")

__all__ = ["Settings", "load_settings", "settings"]
