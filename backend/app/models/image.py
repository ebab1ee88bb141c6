"""Image generation data models."""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.generation import IMAGE_HEIGHT, IMAGE_SAMPLER, IMAGE_SEED, IMAGE_WIDTH


class ArtStyle(str, Enum):
    """Art styles, one checkpoint each."""

    anime = "anime"
    realistic = "realistic"


class LoraConfig(BaseModel):
    """LoRA adapter appended to the positive prompt."""

    model_config = ConfigDict(frozen=True)

    name: str
    weight: float

    @property
    def tag(self) -> str:
        return f"<lora:{self.name}:{self.weight}>"


class CheckpointConfig(BaseModel):
    """Model configuration bundle for one art style."""

    model_config = ConfigDict(frozen=True)

    name: str
    lora: Optional[LoraConfig] = None
    quality_tags: str
    negative_prompt: str
    cfg_scale: float
    steps: int


class GenerationParams(BaseModel):
    """User-supplied txt2img parameters.

    steps / cfg_scale left as None fall back to the checkpoint's
    recommended values.
    """

    prompt: str = Field(..., min_length=1, max_length=4000)
    negative_prompt: str = ""
    steps: Optional[int] = Field(default=None, ge=1, le=150)
    cfg_scale: Optional[float] = Field(default=None, ge=1, le=30)
    width: int = Field(default=IMAGE_WIDTH, ge=64, le=2048)
    height: int = Field(default=IMAGE_HEIGHT, ge=64, le=2048)
    sampler_name: str = IMAGE_SAMPLER
    seed: int = IMAGE_SEED
    style: ArtStyle = ArtStyle.anime


class Txt2ImgPayload(BaseModel):
    """JSON body sent to {SD_API_URL}/sdapi/v1/txt2img."""

    prompt: str
    negative_prompt: str
    steps: int
    width: int
    height: int
    sampler_name: str
    cfg_scale: float
    seed: int
    scheduler: Optional[str] = None


class GeneratedImage(BaseModel):
    """Successful image action payload."""

    image_url: str
