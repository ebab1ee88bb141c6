"""FastAPI dependencies that pull initialized services from app.state."""
from typing import Any

from fastapi import HTTPException, Request

from app.core.rate_limit import RateLimiter
from app.services.chat import ChatService
from app.services.companion import CompanionRepository
from app.services.image import ImageGenerationService


def _from_state(request: Request, name: str) -> Any:
    """Return app.state.<name>, or HTTP 503 if startup did not initialize it."""
    svc = getattr(request.app.state, name, None)
    if svc is None:
        raise HTTPException(
            status_code=503,
            detail="Service unavailable. Service not initialized.",
        )
    return svc


def get_chat_service(request: Request) -> ChatService:
    return _from_state(request, "chat_service")


def get_companion_repository(request: Request) -> CompanionRepository:
    return _from_state(request, "companion_repository")


def get_image_service(request: Request) -> ImageGenerationService:
    return _from_state(request, "image_service")


def get_rate_limiter(request: Request) -> RateLimiter:
    return _from_state(request, "rate_limiter")
