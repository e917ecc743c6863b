"""Controller configuration via environment variables.

Uses pydantic-settings so every field can be overridden with an
env var.  Offline capabilities (keyword extractor, template phrasing)
are the zero-network default.

Note: ``env_prefix`` is empty, so field names map directly to env vars
(e.g. ``LOG_LEVEL``, ``USE_LLM``).
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class DialogueSettings(BaseSettings):
    """Dialogue controller runtime settings."""

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    # -- language model -----------------------------------------------------
    use_llm: bool = Field(
        default=False,
        description="Use the OpenAI-compatible endpoint for phrasing/extraction",
    )
    llm_base_url: str = Field(
        default="http://ollama:11434/v1",
        description="OpenAI-compatible base URL",
    )
    llm_model: str = Field(default="llama3:8b", description="Phrasing model")
    llm_extract_model: Optional[str] = Field(
        default=None,
        description="Model for vehicle extraction (defaults to llm_model)",
    )
    llm_api_key: str = Field(default="ollama", description="API key for the endpoint")
    phrasing_timeout_seconds: float = Field(
        default=20.0,
        description="Timeout wrapping a single phrasing call",
    )

    # -- sessions -------------------------------------------------------------
    session_ttl_seconds: int = Field(
        default=86_400,
        description="Idle conversations are evicted after this many seconds",
    )
    session_max: int = Field(default=500, description="Max cached conversations")

    # -- VIN lookup -----------------------------------------------------------
    vin_decode_base_url: str = Field(
        default="https://vpic.nhtsa.dot.gov/api/vehicles",
        description="NHTSA vPIC base URL",
    )
    vin_cache_ttl_seconds: int = Field(
        default=7 * 86_400,
        description="Decoded VINs are cached for this many seconds",
    )

    # -- behaviour ----------------------------------------------------------
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="console",
        description="Log output format: 'console' or 'json'",
    )

    # -- derived ------------------------------------------------------------
    @property
    def extract_model(self) -> str:
        """Return the model used for vehicle extraction."""
        return self.llm_extract_model or self.llm_model
