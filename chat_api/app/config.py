"""Configuration module for the chat API.

Dialogue behaviour (LLM endpoint, session TTL, VIN lookup) is configured
through :class:`diag_dialogue.config.DialogueSettings`; this module only
holds settings of the HTTP service itself.
"""

import os
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Metadata
    app_name: str = "Diagnostic Dialogue API"
    app_version: str = "0.1.0"
    debug_mode: bool = False

    # CORS
    cors_origins: List[str] = ["http://127.0.0.1:3000", "http://localhost:3000"]

    # Logging Configuration
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
