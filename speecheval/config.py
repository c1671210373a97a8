"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Generation backend (any OpenAI-compatible endpoint)
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None  # e.g. a local llama.cpp / Ollama server
    openai_model: str = "gpt-4.1-mini"
    generation_timeout_seconds: int = 60

    # Safety tiers
    use_model_safety_scan: bool = False  # adds one generation call per run
    use_model_injection_scan: bool = False
    enable_injection_guard: bool = True

    # Merged evaluation call
    include_rubric: bool = True
    include_evaluation: bool = True

    # Prompt registry (optional, falls back to bundled defaults)
    prompt_registry_enabled: bool = False
    prompt_alias: str = "production"
    prompt_cache_ttl_seconds: int = 300
    mlflow_tracking_uri: str = "http://localhost:5000"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
