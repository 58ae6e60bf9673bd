from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Grading policy
    drop_unmatched_answers: bool = True
    submission_grace_seconds: int = 0
    # AI feedback collaborator
    ai_api_key: str | None = None
    ai_model: str = "gemini-1.5-flash"
    ai_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_timeout_seconds: float = 10.0
    leaderboard_cache_ttl: int = 60

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def ai_enabled(self) -> bool:
        return self.ai_api_key is not None


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    grace_raw = _getenv("SUBMISSION_GRACE_SECONDS", "0")
    try:
        grace = int(grace_raw)
    except ValueError:
        raise ValueError(
            f"SUBMISSION_GRACE_SECONDS must be an integer (got {grace_raw!r})"
        ) from None
    if grace < 0:
        raise ValueError(f"SUBMISSION_GRACE_SECONDS must be >= 0 (got {grace})")

    timeout_raw = _getenv("AI_TIMEOUT_SECONDS", "10")
    try:
        ai_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"AI_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None
    if ai_timeout <= 0:
        raise ValueError(f"AI_TIMEOUT_SECONDS must be > 0 (got {ai_timeout})")

    ttl_raw = _getenv("LEADERBOARD_CACHE_TTL", "60")
    try:
        cache_ttl = int(ttl_raw)
    except ValueError:
        raise ValueError(
            f"LEADERBOARD_CACHE_TTL must be an integer (got {ttl_raw!r})"
        ) from None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        drop_unmatched_answers=_getbool("DROP_UNMATCHED_ANSWERS", True),
        submission_grace_seconds=grace,
        ai_api_key=_getenv("AI_API_KEY", "") or None,
        ai_model=_getenv("AI_MODEL", "gemini-1.5-flash"),
        ai_base_url=_getenv(
            "AI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/"),
        ai_timeout_seconds=ai_timeout,
        leaderboard_cache_ttl=cache_ttl,
    )


SETTINGS = load_settings()
