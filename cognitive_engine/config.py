"""Engine configuration read from the environment."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Tunable limits and timeouts.

    Every value can be overridden with a `COGNITIVE_ENGINE_` prefixed
    environment variable, e.g. `COGNITIVE_ENGINE_FREE_MONTHLY_LIMIT=5`.
    """

    model_config = SettingsConfigDict(env_prefix="COGNITIVE_ENGINE_", env_file=".env", extra="ignore")

    # Monthly AI breakdown allowance
    free_monthly_limit: int = Field(default=10, gt=0)
    premium_monthly_limit: int = Field(default=100, ge=100)

    # Text-generation call
    ai_timeout_seconds: float = Field(default=9.0, ge=1.0, le=30.0)
    ai_max_tokens: int = Field(default=600, gt=0)

    # Breakdown shape
    default_estimated_minutes: int = Field(default=30, gt=0)
    min_steps: int = 3
    max_steps: int = 6

    queue_offline_requests: bool = True


@lru_cache()
def get_settings() -> EngineSettings:
    return EngineSettings()
