"""Validation of raw model output."""

import json
import re
from typing import Optional

import structlog
from pydantic import ValidationError

from diag_dialogue.schemas import VehicleContext

logger = structlog.get_logger(__name__)


def strip_fences(raw_text: str) -> str:
    """Return the body of a ```json ... ``` block, or the stripped text."""
    clean_text = (raw_text or "").strip()
    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", clean_text)
    if match:
        clean_text = match.group(1)
    return clean_text


def validate_vehicle_output(raw_text: str) -> Optional[VehicleContext]:
    """
    Parse and validate an extraction response.

    Handles:
    - Markdown code block stripping
    - JSON parsing
    - Pydantic schema validation
    """
    clean_text = strip_fences(raw_text)

    try:
        data = json.loads(clean_text)
    except json.JSONDecodeError as e:
        logger.warning("llm_output_invalid_json", error=str(e))
        return None

    if not isinstance(data, dict):
        logger.warning("llm_output_schema_mismatch", error="expected a JSON object")
        return None

    try:
        # Only the four extracted fields are trusted from the model.
        return VehicleContext(**{k: data.get(k) for k in ("year", "make", "model", "engine")})
    except ValidationError as e:
        logger.warning("llm_output_schema_mismatch", error=str(e))
        return None


def validate_phrasing_output(raw_text: Optional[str]) -> Optional[str]:
    """Non-empty display text, or ``None`` for empty/whitespace output."""
    if not isinstance(raw_text, str):
        return None
    text = raw_text.strip()
    return text or None
