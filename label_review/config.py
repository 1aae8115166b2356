import os
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve paths relative to the project root (one level up from label_review/).
# The .env file is looked up here regardless of where uvicorn is invoked.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Settings(BaseSettings):
    """Runtime settings, read from LABEL_REVIEW_* environment variables or .env."""

    app_name: str = "Label Review Validation Core"
    log_level: str = "INFO"

    # OpenAI-compatible vision endpoint used by the label analyzer
    openai_api_key: str = ""
    analyzer_base_url: str = "https://api.openai.com/v1"
    analyzer_model: str = "gpt-4o-mini"
    analyzer_timeout: float = 60.0
    analyzer_max_tokens: int = 2000
    analyzer_temperature: float = 0.1

    # Analyzer retry policy: waits base, 2*base, ... between attempts.
    # Slower deployment tiers run with a 2s base.
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0

    # Image upload may lag submission creation; the creation path polls
    # for the first image with a fixed delay before giving up.
    image_poll_attempts: int = 5
    image_poll_delay: float = 2.0

    model_config = SettingsConfigDict(
        env_prefix="LABEL_REVIEW_",
        env_file=os.path.join(BASE_DIR, ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
