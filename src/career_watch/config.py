from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

MODULE_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DB_PATH = MODULE_ROOT / "data" / "career_watch.sqlite"
DEFAULT_LLM_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_LLM_MODEL = "llama-3.1-8b-instant"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

RUN_REQUIRED_ENVS = (
    "LLM_API_KEY",
    "CRON_SECRET",
)

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    db_path: Path = Field(default=DEFAULT_DB_PATH)
    llm_api_key: str = ""
    llm_base_url: str = DEFAULT_LLM_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL
    llm_timeout_seconds: float = Field(default=30.0, gt=0.0)
    llm_retry_attempts: int = Field(default=2, ge=1)
    cron_secret: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True
    navigation_timeout_ms: int = Field(default=30_000, ge=1)
    probe_timeout_ms: int = Field(default=20_000, ge=1)
    settle_ms: int = Field(default=1_500, ge=0)
    scroll_delay_ms: int = Field(default=800, ge=0)
    onboard_job_limit: int = Field(default=10, ge=1)
    recheck_job_limit: int = Field(default=5, ge=1)
    max_sites_per_run: int = Field(default=5, ge=1)
    scheduler_interval_minutes: int = Field(default=30, ge=1)
    scheduler_enabled: bool = True
    store_retry_attempts: int = Field(default=3, ge=1)
    store_retry_delay_seconds: float = Field(default=0.5, ge=0.0)
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)

    @field_validator("llm_base_url")
    @classmethod
    def _validate_llm_base_url(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError("LLM_BASE_URL must use https://")
        return value.rstrip("/")


def _env_value(environ: Mapping[str, str], key: str) -> str:
    return environ.get(key, "").strip()


def _env_flag(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = _env_value(environ, key)
    if not raw:
        return default
    return raw.casefold() in _TRUTHY


def missing_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> list[str]:
    source = os.environ if environ is None else environ
    return [key for key in required if not _env_value(source, key)]


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    source = os.environ if environ is None else environ
    try:
        payload = {
            "db_path": Path(_env_value(source, "DB_PATH") or DEFAULT_DB_PATH),
            "llm_api_key": _env_value(source, "LLM_API_KEY"),
            "llm_base_url": _env_value(source, "LLM_BASE_URL") or DEFAULT_LLM_BASE_URL,
            "llm_model": _env_value(source, "LLM_MODEL") or DEFAULT_LLM_MODEL,
            "llm_timeout_seconds": float(_env_value(source, "LLM_TIMEOUT_SECONDS") or "30"),
            "llm_retry_attempts": int(_env_value(source, "LLM_RETRY_ATTEMPTS") or "2"),
            "cron_secret": _env_value(source, "CRON_SECRET"),
            "user_agent": _env_value(source, "USER_AGENT") or DEFAULT_USER_AGENT,
            "headless": _env_flag(source, "HEADLESS", True),
            "navigation_timeout_ms": int(_env_value(source, "NAVIGATION_TIMEOUT_MS") or "30000"),
            "probe_timeout_ms": int(_env_value(source, "PROBE_TIMEOUT_MS") or "20000"),
            "settle_ms": int(_env_value(source, "SETTLE_MS") or "1500"),
            "scroll_delay_ms": int(_env_value(source, "SCROLL_DELAY_MS") or "800"),
            "onboard_job_limit": int(_env_value(source, "ONBOARD_JOB_LIMIT") or "10"),
            "recheck_job_limit": int(_env_value(source, "RECHECK_JOB_LIMIT") or "5"),
            "max_sites_per_run": int(_env_value(source, "MAX_SITES_PER_RUN") or "5"),
            "scheduler_interval_minutes": int(
                _env_value(source, "SCHEDULER_INTERVAL_MINUTES") or "30"
            ),
            "scheduler_enabled": _env_flag(source, "SCHEDULER_ENABLED", True),
            "store_retry_attempts": int(_env_value(source, "STORE_RETRY_ATTEMPTS") or "3"),
            "store_retry_delay_seconds": float(
                _env_value(source, "STORE_RETRY_DELAY_SECONDS") or "0.5"
            ),
            "log_level": _env_value(source, "LOG_LEVEL") or "INFO",
            "host": _env_value(source, "HOST") or "0.0.0.0",
            "port": int(_env_value(source, "PORT") or "3000"),
        }
        return Settings(**payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def assert_required_envs(required: Sequence[str], environ: Mapping[str, str] | None = None) -> None:
    missing = missing_envs(required, environ)
    if missing:
        keys = ", ".join(missing)
        raise ValueError(f"Missing required environment variables: {keys}")


def mask_secret(value: str, visible_prefix: int = 3, visible_suffix: int = 2) -> str:
    if not value:
        return ""
    if len(value) <= visible_prefix + visible_suffix:
        return "*" * len(value)
    hidden = "*" * (len(value) - visible_prefix - visible_suffix)
    return f"{value[:visible_prefix]}{hidden}{value[-visible_suffix:]}"
