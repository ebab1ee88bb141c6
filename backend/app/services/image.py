"""Image generation service backed by an SD Forge (A1111-compatible) API."""
import base64
import re
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import httpx

from app.core.checkpoints import get_checkpoint_for_style
from app.core.generation import (
    BASE_NEGATIVE,
    COUPLE_NEGATIVE_ADDITIONS,
    EXPLICIT_KEYWORDS,
    IMAGE_HEIGHT,
    IMAGE_SAMPLER,
    IMAGE_SCHEDULER,
    IMAGE_SEED,
    IMAGE_WIDTH,
    NUDE_NEGATIVE_ADDITIONS,
    OUTERWEAR_KEYWORDS,
    SOLO_NEGATIVE_ADDITIONS,
    UNDERWEAR_KEYWORDS,
    VIRTUAL_CONTEXT,
)
from app.core.logging import setup_logging
from app.core.rate_limit import IMAGE_POLICY
from app.models.companion import Companion
from app.models.context import ContextAnalysis
from app.models.image import CheckpointConfig, GeneratedImage, GenerationParams, Txt2ImgPayload
from app.models.result import ActionResult

if TYPE_CHECKING:
    from app.core.rate_limit import RateLimiter

logger = setup_logging("image")

CONNECTION_ERROR_MESSAGE = "Failed to generate image. Please check your SD Forge connection."
TXT2IMG_PATH = "/sdapi/v1/txt2img"

_WHITESPACE = re.compile(r"\s+")


class SDAPIError(Exception):
    """Upstream SD API answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"SD API returned {status_code}")
        self.status_code = status_code
        self.body = body


class ImageGenerationError(Exception):
    """Companion image could not be generated."""


def _join(parts: list[str]) -> str:
    return ", ".join(part for part in parts if part and part.strip())


def build_generation_payload(
    params: GenerationParams, checkpoint: CheckpointConfig
) -> Txt2ImgPayload:
    """Merge user parameters with checkpoint defaults into a txt2img payload.

    positive = quality tags, LoRA tag (if any), user prompt
    negative = checkpoint negative, user negative
    """
    lora_tag = checkpoint.lora.tag if checkpoint.lora else ""
    return Txt2ImgPayload(
        prompt=_join([checkpoint.quality_tags, lora_tag, params.prompt]),
        negative_prompt=_join([checkpoint.negative_prompt, params.negative_prompt]),
        steps=params.steps if params.steps is not None else checkpoint.steps,
        cfg_scale=params.cfg_scale if params.cfg_scale is not None else checkpoint.cfg_scale,
        width=params.width,
        height=params.height,
        sampler_name=params.sampler_name,
        seed=params.seed,
    )


def filter_outfit_for_layering(outfit: str, visual_tags: str, location: str) -> tuple[str, bool]:
    """Drop hidden underwear when outerwear is worn.

    Returns:
        (filtered_outfit, is_nude). When the scene reads as explicit the
        outfit is emptied and is_nude is True.
    """
    if EXPLICIT_KEYWORDS.search(f"{outfit} {visual_tags} {location}"):
        return "", True

    if not outfit or not outfit.strip():
        return outfit, False

    tags = [tag.strip().lower() for tag in outfit.split(",")]
    has_outerwear = any(kw in tag for tag in tags for kw in OUTERWEAR_KEYWORDS)
    if not has_outerwear:
        return outfit, False

    kept = [tag for tag in tags if not any(kw in tag for kw in UNDERWEAR_KEYWORDS)]
    logger.debug("Outerwear present, dropped %d underwear tags", len(tags) - len(kept))
    return ", ".join(kept), False


def build_companion_prompt(
    companion: Companion, state: ContextAnalysis
) -> tuple[str, str, CheckpointConfig]:
    """Build positive/negative prompts for a companion scene image.

    Args:
        companion: Companion profile (style, visual description, user appearance).
        state: Visual state from context analysis.

    Returns:
        (positive, negative, checkpoint) for the companion's art style.
    """
    checkpoint = get_checkpoint_for_style(companion.style)

    filtered_outfit, is_nude = filter_outfit_for_layering(
        state.outfit, state.visual_tags, state.location
    )
    outfit = filtered_outfit if is_nude else (
        filtered_outfit or companion.default_outfit or "casual clothes"
    )

    # POV / selfie / camera framing means the user is not physically there.
    is_virtual = bool(VIRTUAL_CONTEXT.search(state.visual_tags + state.location))
    user_present = state.is_user_present and not is_virtual

    if user_present:
        character_tags = "(1girl, 1boy, hetero), couple focus"
        user_tags = f"(1boy, {companion.user_appearance})" if companion.user_appearance else ""
    else:
        character_tags = "(1girl, solo)"
        user_tags = ""

    lora_tag = f"{checkpoint.lora.tag} inuk, uncensored" if checkpoint.lora else ""

    positive = _join(
        [
            checkpoint.quality_tags,
            lora_tag,
            character_tags,
            user_tags,
            outfit,
            companion.visual_description,
            f"({state.visual_tags})" if state.visual_tags else "",
            f"({state.expression})" if state.expression else "",
            f"({state.location})" if state.location else "",
            state.lighting,
        ]
    )
    positive = _WHITESPACE.sub(" ", positive).strip()

    negative_parts = [checkpoint.negative_prompt, BASE_NEGATIVE]
    negative_parts.append(COUPLE_NEGATIVE_ADDITIONS if user_present else SOLO_NEGATIVE_ADDITIONS)
    if is_nude:
        negative_parts.append(NUDE_NEGATIVE_ADDITIONS)

    return positive, ", ".join(negative_parts), checkpoint


class ImageGenerationService:
    """Builds SD prompts and calls {SD_API_URL}/sdapi/v1/txt2img.

    Every call carries an explicit timeout. Transport errors (connection
    refused, timeouts) are retried up to ``max_retries`` extra times; HTTP
    error statuses are never retried.
    """

    def __init__(
        self,
        sd_api_url: str,
        rate_limiter: "RateLimiter",
        images_dir: Optional[Path] = None,
        timeout_seconds: float = 120.0,
        max_retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.sd_api_url = sd_api_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.images_dir = Path(images_dir) if images_dir is not None else Path("data/images")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max(0, max_retries)
        self._transport = transport

    async def generate_image(self, user_id: str, params: GenerationParams) -> ActionResult[GeneratedImage]:
        """Generate an image from user parameters.

        The caller is already authenticated. The image rate limit is checked
        before any network traffic.

        Returns:
            ActionResult with a data URI on success. On failure the error is
            the rate-limit message, the upstream body text (non-2xx), or
            CONNECTION_ERROR_MESSAGE (network / parse failures).
        """
        rate_limit = self.rate_limiter.check(user_id, IMAGE_POLICY)
        if not rate_limit.allowed:
            return ActionResult.fail(rate_limit.error or "Image generation rate limit exceeded")

        checkpoint = get_checkpoint_for_style(params.style)
        payload = build_generation_payload(params, checkpoint)

        try:
            image_b64 = await self._call_txt2img(payload)
        except SDAPIError as exc:
            logger.error(
                "SD API error: %s",
                exc.body,
                extra={"user_id": user_id, "status_code": exc.status_code},
            )
            return ActionResult.fail(exc.body)
        except Exception:
            logger.error(
                "Image generation failed",
                exc_info=True,
                extra={"user_id": user_id, "style": params.style.value},
            )
            return ActionResult.fail(CONNECTION_ERROR_MESSAGE)

        return ActionResult.ok(GeneratedImage(image_url=f"data:image/png;base64,{image_b64}"))

    async def generate_companion_image(self, companion: Companion, state: ContextAnalysis) -> str:
        """Render the companion in its current state and store the PNG.

        Returns:
            URL path of the saved image (served from /images).

        Raises:
            ImageGenerationError: Upstream error or unusable response.
        """
        positive, negative, checkpoint = build_companion_prompt(companion, state)
        payload = Txt2ImgPayload(
            prompt=positive,
            negative_prompt=negative,
            steps=checkpoint.steps,
            cfg_scale=checkpoint.cfg_scale,
            width=IMAGE_WIDTH,
            height=IMAGE_HEIGHT,
            sampler_name=IMAGE_SAMPLER,
            scheduler=IMAGE_SCHEDULER,
            seed=IMAGE_SEED,
        )
        logger.debug(
            "Companion image prompt (%d chars) checkpoint=%s",
            len(positive),
            checkpoint.name,
            extra={"companion_id": companion.id, "style": companion.style.value},
        )

        try:
            image_b64 = await self._call_txt2img(payload)
            image_bytes = base64.b64decode(image_b64)
        except SDAPIError as exc:
            raise ImageGenerationError(f"Stable Diffusion API error: {exc.body}") from exc
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            raise ImageGenerationError(f"Image generation failed: {exc}") from exc

        path = self._save_image(image_bytes, companion.id)
        logger.info(
            "Companion image saved to %s",
            path,
            extra={"companion_id": companion.id, "style": companion.style.value},
        )
        return path

    def delete_companion_images(self, companion_id: str) -> None:
        """Remove every stored image of a companion. Missing directories are ignored."""
        shutil.rmtree(self.images_dir / companion_id, ignore_errors=True)
        logger.info("Companion images deleted", extra={"companion_id": companion_id})

    async def _call_txt2img(self, payload: Txt2ImgPayload) -> str:
        """POST payload to the SD API and return the first base64 image.

        Raises:
            SDAPIError: Non-2xx response.
            httpx.HTTPError: Transport failure after all retries.
            ValueError / KeyError / IndexError / TypeError: Unusable response body.
        """
        url = f"{self.sd_api_url}{TXT2IMG_PATH}"
        body = payload.model_dump(exclude_none=True)
        attempts = self.max_retries + 1

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            for attempt in range(1, attempts + 1):
                try:
                    response = await client.post(url, json=body)
                    break
                except httpx.TransportError as exc:
                    logger.warning(
                        "SD API transport error (attempt %d/%d): %s: %s",
                        attempt,
                        attempts,
                        type(exc).__name__,
                        exc,
                        extra={"attempt": attempt},
                    )
                    if attempt == attempts:
                        raise

        if not response.is_success:
            raise SDAPIError(response.status_code, response.text)

        return response.json()["images"][0]

    def _save_image(self, image_bytes: bytes, companion_id: str) -> str:
        """Write image bytes to images_dir/{companion_id}/ and return the URL path.

        File name format: {YYYYMMDDHHMMSS}_{8 hex chars}.png
        """
        target_dir = self.images_dir / companion_id
        target_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        filename = f"{timestamp}_{uuid.uuid4().hex[:8]}.png"
        (target_dir / filename).write_bytes(image_bytes)
        return f"/images/{companion_id}/{filename}"
