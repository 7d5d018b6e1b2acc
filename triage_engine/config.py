"""
Engine settings.

Read from TRIAGE_* environment variables or a local .env file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ---- Triage ----
    urgency_window_minutes: int = Field(default=30, ge=0)

    # ---- Incentive accrual ----
    discount_step: float = Field(default=1.2, gt=0)
    discount_cap: float = Field(default=20.0, gt=0)

    # ---- Checklist ----
    checklist_placeholder: str = "Nova pergunta"
    checklist_key_prefix: str = "pergunta"

    # ---- Logging ----
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(
        env_prefix="TRIAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
