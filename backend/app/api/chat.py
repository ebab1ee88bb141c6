"""Chat router: send a message to a companion, read its history."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_chat_service
from app.core.rate_limit import RateLimitExceededError
from app.core.security import authenticate
from app.models.conversation import ChatMessage, ChatRequest, ChatResponse
from app.services.chat import ChatService
from app.services.companion import CompanionNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/companions", tags=["chat"])


@router.post("/{companion_id}/chat", response_model=ChatResponse)
async def send_message(
    companion_id: str,
    body: ChatRequest,
    user_id: str = Depends(authenticate),
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    """Send a user message and receive the companion's reply.

    Delegates to ChatService which orchestrates:
    - ContextAnalyzer (before and after the reply)
    - LLMClient (reply)
    - ImageGenerationService (optional)

    Raises:
        HTTPException 404: Companion missing or owned by someone else.
        HTTPException 429: Chat rate limit hit.
        HTTPException 503: LLM error.
        HTTPException 422: Validation error (handled by FastAPI automatically).
    """
    try:
        return await service.send_message(user_id, companion_id, body)
    except CompanionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Companion not found") from exc
    except RateLimitExceededError as exc:
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(
            "send_message failed",
            exc_info=True,
            extra={"companion_id": companion_id, "error_type": type(exc).__name__},
        )
        raise HTTPException(
            status_code=503,
            detail="Companion is unavailable. Please try again later.",
        ) from exc


@router.get("/{companion_id}/messages", response_model=list[ChatMessage])
async def get_history(
    companion_id: str,
    limit: int = 50,
    user_id: str = Depends(authenticate),
    service: ChatService = Depends(get_chat_service),
) -> list[ChatMessage]:
    """Retrieve stored messages for a companion.

    Args:
        companion_id: Companion identifier.
        limit: Maximum number of messages to return (default 50).

    Returns:
        List of ChatMessage objects, oldest first (may be empty).
    """
    try:
        return service.get_history(user_id, companion_id, limit)
    except CompanionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Companion not found") from exc
