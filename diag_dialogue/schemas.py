"""Pydantic v2 models for the turn contract and capability payloads."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from diag_dialogue.vocabulary import CODE_FAMILIES

_CODE_RE = re.compile(r"^[PBUC]\d{4}$")

_VEHICLE_FIELDS = ("year", "make", "model", "engine")


# ---------------------------------------------------------------------------
# Vehicle
# ---------------------------------------------------------------------------


class EngineDetails(BaseModel):
    """Engine classification derived from a decoded engine RPO code."""

    code: str
    generation: str = ""
    displacement_l: str = ""
    has_afm: bool = False
    is_direct_injected: bool = False
    notes: str = ""


class VehicleContext(BaseModel):
    """Partial vehicle record.  Unknown fields are empty strings."""

    vin: str = Field(default="", description="17-char VIN if known")
    year: str = Field(default="", examples=["2018"])
    make: str = Field(default="", examples=["Ford"])
    model: str = Field(default="", examples=["F-150"])
    engine: str = Field(default="", examples=["5.0L V8"])
    engine_details: Optional[EngineDetails] = None

    model_config = {"extra": "ignore"}

    @field_validator("vin", "year", "make", "model", "engine", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @property
    def missing_fields(self) -> List[str]:
        """Names of the required fields that are still empty."""
        return [name for name in _VEHICLE_FIELDS if not getattr(self, name)]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    @property
    def is_empty(self) -> bool:
        return len(self.missing_fields) == len(_VEHICLE_FIELDS)

    def describe(self) -> str:
        """``"2018 Ford F-150 5.0L"`` style label (empty parts skipped)."""
        parts = [self.year, self.make, self.model, self.engine]
        return " ".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# Trouble codes
# ---------------------------------------------------------------------------


class TroubleCode(BaseModel):
    """Single diagnostic trouble code."""

    code: str = Field(..., examples=["P0302", "C0035", "B0100", "U0073"])

    @field_validator("code", mode="before")
    @classmethod
    def validate_code(cls, v: Any) -> str:
        v = str(v).strip().upper()
        if not _CODE_RE.match(v):
            raise ValueError(f"Trouble code must match ^[PBUC]\\d{{4}}$, got '{v}'")
        return v

    @property
    def family(self) -> str:
        """Coarse subsystem family from the first letter."""
        return CODE_FAMILIES[self.code[0]]


# ---------------------------------------------------------------------------
# Turn API
# ---------------------------------------------------------------------------


class TurnRequest(BaseModel):
    """One user message in a conversation."""

    message: str = Field(..., description="Raw user text")
    conversation_id: str = Field(..., min_length=1, description="Conversation key")
    vehicle_context: VehicleContext = Field(default_factory=VehicleContext)


class TurnResponse(BaseModel):
    """Controller reply for one turn."""

    reply: str
    vehicle: VehicleContext
    conversation_id: str


# ---------------------------------------------------------------------------
# Capability payloads
# ---------------------------------------------------------------------------


class SafetyVerdict(BaseModel):
    """Result of a safety check on one message."""

    hard_stop: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


PhrasingIntent = Literal["explain_code", "clarify", "free_form"]


class PhrasingDirective(BaseModel):
    """Structured request to the phrasing capability.

    The directive says *what* to talk about; the phrasing capability only
    decides *how* to say it.  Its output is display-only.
    """

    intent: PhrasingIntent
    message: str = ""
    code: Optional[str] = None
    code_family: Optional[str] = None
    domain: Optional[str] = None
    vehicle: VehicleContext = Field(default_factory=VehicleContext)
    locked_facts: Dict[str, Any] = Field(default_factory=dict)
    pending_prompt: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    disclaimer: Optional[str] = None
