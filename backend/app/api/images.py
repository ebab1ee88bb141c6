"""Image generation router."""
from fastapi import APIRouter, Depends

from app.api.deps import get_image_service
from app.core.security import authenticate
from app.models.image import GeneratedImage, GenerationParams
from app.models.result import ActionResult
from app.services.image import ImageGenerationService

router = APIRouter(prefix="/api/images", tags=["images"])


@router.post("/generate", response_model=ActionResult[GeneratedImage])
async def generate_image(
    body: GenerationParams,
    user_id: str = Depends(authenticate),
    service: ImageGenerationService = Depends(get_image_service),
) -> ActionResult[GeneratedImage]:
    """Generate an image through the SD API.

    Answers 200 with a tagged result: data.image_url is a base64 data URI on
    success, error carries the rate-limit or upstream message otherwise.
    Authentication failures are answered with 401 before the service runs.
    """
    return await service.generate_image(user_id, body)
