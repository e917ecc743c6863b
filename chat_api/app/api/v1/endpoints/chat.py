"""POST /v1/chat -- one dialogue turn; POST /v1/chat/{id}/reset."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.schemas import ChatRequest, ChatResponse, ResetResponse
from app.deps import get_service
from diag_dialogue.schemas import TurnRequest
from diag_dialogue.service import DialogueService

logger = structlog.get_logger()

router = APIRouter()


@router.post(
    "",
    response_model=ChatResponse,
    status_code=status.HTTP_200_OK,
    summary="Run one diagnostic dialogue turn",
)
async def chat_turn(
    request: ChatRequest,
    service: DialogueService = Depends(get_service),
) -> ChatResponse:
    """Feed one technician message into the conversation.

    Raises
    ------
    HTTPException 422
        Empty message.
    HTTPException 500
        Unexpected failure while processing the turn.
    """
    if not request.message.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Message must not be empty.",
        )

    try:
        response = await service.handle_turn(
            TurnRequest(
                message=request.message,
                conversation_id=request.conversation_id,
                vehicle_context=request.vehicle_context,
            )
        )
    except Exception as exc:
        logger.exception("chat_turn_failed", conversation_id=request.conversation_id, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process the message.",
        ) from exc

    return ChatResponse(
        reply=response.reply,
        vehicle=response.vehicle,
        conversation_id=response.conversation_id,
    )


@router.post(
    "/{conversation_id}/reset",
    response_model=ResetResponse,
    status_code=status.HTTP_200_OK,
    summary="Clear a conversation's diagnostic state",
)
async def reset_conversation(
    conversation_id: str,
    service: DialogueService = Depends(get_service),
) -> ResetResponse:
    """Reset *conversation_id*.

    Raises
    ------
    HTTPException 404
        Unknown (or expired) conversation.
    """
    if not await service.reset(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    logger.info("conversation_reset", conversation_id=conversation_id)
    return ResetResponse(conversation_id=conversation_id, reset=True)
