"""Companion profile router: create, list, read, edit, delete, wipe memory."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_companion_repository, get_image_service, get_rate_limiter
from app.core.rate_limit import COMPANION_CREATE_POLICY, SETTINGS_POLICY, RateLimiter, RateLimitPolicy
from app.core.security import authenticate
from app.models.companion import Companion, CompanionCreate, CompanionUpdate
from app.models.result import ActionResult
from app.services.companion import CompanionNotFoundError, CompanionRepository
from app.services.image import ImageGenerationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/companions", tags=["companions"])


def _enforce(limiter: RateLimiter, user_id: str, policy: RateLimitPolicy, fallback: str) -> None:
    result = limiter.check(user_id, policy)
    if not result.allowed:
        raise HTTPException(status_code=429, detail=result.error or fallback)


def _owned(repo: CompanionRepository, companion_id: str, user_id: str) -> Companion:
    try:
        return repo.get_owned(companion_id, user_id)
    except CompanionNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Companion not found") from exc


@router.post("", response_model=Companion, status_code=201)
async def create_companion(
    body: CompanionCreate,
    user_id: str = Depends(authenticate),
    repo: CompanionRepository = Depends(get_companion_repository),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Companion:
    """Create a companion owned by the caller.

    Raises:
        HTTPException 429: Companion creation rate limit hit.
    """
    _enforce(limiter, user_id, COMPANION_CREATE_POLICY, "Too many companions created. Please try again later.")
    return repo.create(user_id, body)


@router.get("", response_model=list[Companion])
async def list_companions(
    user_id: str = Depends(authenticate),
    repo: CompanionRepository = Depends(get_companion_repository),
) -> list[Companion]:
    """List the caller's companions, newest first."""
    return repo.list_for_user(user_id)


@router.get("/{companion_id}", response_model=Companion)
async def get_companion(
    companion_id: str,
    user_id: str = Depends(authenticate),
    repo: CompanionRepository = Depends(get_companion_repository),
) -> Companion:
    return _owned(repo, companion_id, user_id)


@router.patch("/{companion_id}", response_model=Companion)
async def update_companion(
    companion_id: str,
    body: CompanionUpdate,
    user_id: str = Depends(authenticate),
    repo: CompanionRepository = Depends(get_companion_repository),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Companion:
    _owned(repo, companion_id, user_id)
    _enforce(limiter, user_id, SETTINGS_POLICY, "Too many settings changes. Please try again later.")
    return repo.update(companion_id, body)


@router.delete("/{companion_id}", response_model=ActionResult[None])
async def delete_companion(
    companion_id: str,
    user_id: str = Depends(authenticate),
    repo: CompanionRepository = Depends(get_companion_repository),
    limiter: RateLimiter = Depends(get_rate_limiter),
    images: ImageGenerationService = Depends(get_image_service),
) -> ActionResult[None]:
    """Delete a companion, its messages and its stored images.

    Always answers 200 with a tagged result; failures never raise.
    """
    try:
        repo.get_owned(companion_id, user_id)
        result = limiter.check(user_id, SETTINGS_POLICY)
        if not result.allowed:
            return ActionResult.fail(result.error or "Too many settings changes. Please try again later.")
        images.delete_companion_images(companion_id)
        repo.delete(companion_id)
        return ActionResult.ok()
    except Exception:
        logger.error(
            "delete_companion failed",
            exc_info=True,
            extra={"companion_id": companion_id, "user_id": user_id},
        )
        return ActionResult.fail("Failed to delete companion")


@router.post("/{companion_id}/wipe", response_model=Companion)
async def wipe_companion_memory(
    companion_id: str,
    user_id: str = Depends(authenticate),
    repo: CompanionRepository = Depends(get_companion_repository),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Companion:
    """Delete the chat history and reset the companion's visual state."""
    companion = _owned(repo, companion_id, user_id)
    _enforce(limiter, user_id, SETTINGS_POLICY, "Too many settings changes. Please try again later.")
    repo.wipe_memory(companion)
    return _owned(repo, companion_id, user_id)
