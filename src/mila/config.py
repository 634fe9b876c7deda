"""
Mila - Configuration and settings.

All settings come from the environment (or a local .env file).
Engine tunables default to the values the onboarding flow was designed around.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    Only the keys for the collaborators actually used need to be present:
    the interview CLI needs OpenAI + Google, the web app also needs Supabase.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI
    openai_api_key: str = ""
    inference_model: str = "gpt-4o"
    narrator_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 30.0

    # Google Places (New)
    google_places_api_key: str = ""
    google_places_base_url: str = "https://places.googleapis.com/v1"
    places_timeout_seconds: float = 10.0

    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Application
    mila_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # MILA_LOG_PROMPTS=1 - log LLM prompts to local files (dev only)
    mila_log_prompts: bool = False

    # Candidate sourcing
    places_batch_size: int = 20
    places_base_radius_m: int = 5000
    places_max_radius_m: int = 50000
    fetch_attempts: int = 3
    radius_attempts: int = 5
    fetch_backoff_seconds: float = 0.1

    # Stopping policy
    confidence_target: float = 0.85
    max_questions_per_category: int = 10
    plateau_threshold: float = 0.1


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
