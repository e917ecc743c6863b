"""Request/response models of the v1 HTTP API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from diag_dialogue.schemas import VehicleContext


class ChatRequest(BaseModel):
    message: str = Field(..., description="Technician message for this turn")
    conversation_id: str = Field(..., min_length=1, max_length=128, description="Conversation key")
    vehicle_context: VehicleContext = Field(default_factory=VehicleContext)


class ChatResponse(BaseModel):
    reply: str
    vehicle: VehicleContext
    conversation_id: str


class ResetResponse(BaseModel):
    conversation_id: str
    reset: bool


class VinRequest(BaseModel):
    vin: str = Field(..., description="Vehicle Identification Number")


class VinDecodeResponse(BaseModel):
    vehicle: VehicleContext


class VinValidateResponse(BaseModel):
    vin: str
    is_valid: bool
    details: Optional[Dict[str, Any]] = None
