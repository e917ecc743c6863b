"""VIN tools: POST /v1/vehicle/decode-vin, POST /v1/vehicle/validate-vin."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.schemas import VinDecodeResponse, VinRequest, VinValidateResponse
from app.deps import get_service
from diag_dialogue.service import DialogueService
from diag_dialogue.vin import InvalidVinError, VinDecodeError, mask_vin, validate_vin

logger = structlog.get_logger()

router = APIRouter()


@router.post("/decode-vin", response_model=VinDecodeResponse)
async def decode_vin(
    request: VinRequest,
    service: DialogueService = Depends(get_service),
) -> VinDecodeResponse:
    """
    Tool: Decode a VIN into year / make / model / engine.

    422 for a malformed VIN, 502 when the decode service fails.
    """
    vin = request.vin.upper().strip()
    try:
        vehicle = await service.decode_vin(vin)
    except InvalidVinError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except VinDecodeError as exc:
        logger.warning("vin_decode_unavailable", vin_masked=mask_vin(vin), error=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="VIN decode error") from exc
    return VinDecodeResponse(vehicle=vehicle)


@router.post("/validate-vin", response_model=VinValidateResponse)
def validate(request: VinRequest) -> VinValidateResponse:
    """
    Tool: Validate a Vehicle Identification Number (VIN).
    Performs format, character, and check-digit validation per ISO 3779.
    """
    check = validate_vin(request.vin)
    if not check.is_valid:
        return VinValidateResponse(vin=check.vin, is_valid=False, details={"error": check.error})
    return VinValidateResponse(
        vin=check.vin,
        is_valid=True,
        details={"standard": "ISO 3779", "validation_level": "full"},
    )
