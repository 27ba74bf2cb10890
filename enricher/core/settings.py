"""Runtime settings for the refresh pipeline."""

from __future__ import annotations

import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Optional

from enricher.core.backoff import RetryConfig
from enricher.core.config import Config
from enricher.core.errors import ConfigError


def _env_number(var_name: str, default, cast):
    raw = os.getenv(var_name)
    if raw is None or raw.strip() == "":
        return cast(default)
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{var_name} must be numeric, got {raw!r}", key=var_name) from exc


class RefreshSettings:
    """Container for runtime-tunable refresh settings.

    Defaults come from settings.yaml; environment variables win.
    """

    def __init__(self) -> None:
        self.cooldown_seconds: float = _env_number(
            "REFRESH_COOLDOWN_SECONDS", Config.get("refresh", "cooldown_seconds", default=3600), float
        )
        self.batch_limit: int = _env_number(
            "ENRICH_BATCH_LIMIT", Config.get("refresh", "batch_limit", default=20), int
        )
        self.outcome_cap: int = _env_number(
            "ENRICH_OUTCOME_CAP", Config.get("refresh", "outcome_cap", default=20), int
        )
        self.timeout_seconds: float = _env_number(
            "REFRESH_TIMEOUT_SECONDS", Config.get("refresh", "timeout_seconds", default=300), float
        )
        self.max_attempts: int = _env_number(
            "ENRICH_MAX_ATTEMPTS", Config.get("refresh", "retry", "max_attempts", default=3), int
        )
        self.base_delay_seconds: float = _env_number(
            "ENRICH_BASE_DELAY_SECONDS", Config.get("refresh", "retry", "base_delay_seconds", default=1.0), float
        )
        self.max_jitter_seconds: float = float(Config.get("refresh", "retry", "max_jitter_seconds", default=0.5))

        self.state_dir: Path = Path(
            os.getenv("REFRESH_STATE_DIR") or Config.get("refresh", "state_dir", default="data/system")
        )

        self.cron_secret: Optional[str] = os.getenv("CRON_SECRET") or None
        self.mongo_uri: Optional[str] = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI") or None
        self.tavily_api_key: Optional[str] = os.getenv("TAVILY_API_KEY") or None
        self.openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY") or None

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.cooldown_seconds)

    @property
    def retry(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay_seconds,
            max_jitter=self.max_jitter_seconds,
        )

    def missing_provider_keys(self) -> list[str]:
        missing = []
        if not self.mongo_uri:
            missing.append("MONGO_URI")
        if not self.tavily_api_key:
            missing.append("TAVILY_API_KEY")
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        return missing

    def validate(self) -> None:
        if self.cooldown_seconds < 0:
            raise ConfigError("cooldown_seconds must be non-negative", key="cooldown_seconds", section="refresh")
        if self.batch_limit <= 0:
            raise ConfigError("batch_limit must be positive", key="batch_limit", section="refresh")
        if self.outcome_cap < 0:
            raise ConfigError("outcome_cap must be non-negative", key="outcome_cap", section="refresh")
        if self.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be positive", key="timeout_seconds", section="refresh")
        try:
            self.retry
        except ValueError as exc:
            raise ConfigError(str(exc), section="refresh.retry") from exc


@lru_cache(maxsize=1)
def get_settings() -> RefreshSettings:
    """Return cached refresh settings instance."""

    return RefreshSettings()


__all__ = ["RefreshSettings", "get_settings"]
