"""Checkpoint configuration for Stable Diffusion image generation.

Model names are the checkpoint file names as exposed by the SD Forge
instance; swap them here when the installed models change.
"""
from types import MappingProxyType
from typing import Mapping

from app.models.image import ArtStyle, CheckpointConfig, LoraConfig

CHECKPOINTS: Mapping[ArtStyle, CheckpointConfig] = MappingProxyType(
    {
        ArtStyle.anime: CheckpointConfig(
            name="illustrious_or_your_anime_model.safetensors",
            lora=LoraConfig(name="[inukai mofu] Artist Style Illustrious_2376885", weight=0.4),
            quality_tags=(
                "(masterpiece, best quality:1.2), absurdres, highres, anime style, "
                "key visual, vibrant colors, uncensored"
            ),
            negative_prompt=(
                "(bad quality:1.15), (worst quality:1.3), neghands, monochrome, 3d, "
                "realistic, photorealistic, long neck"
            ),
            cfg_scale=6,
            steps=28,
        ),
        ArtStyle.realistic: CheckpointConfig(
            name="realisticVision_or_your_realistic_model.safetensors",
            lora=None,
            quality_tags=(
                "(photorealistic:1.3), raw photo, 8k uhd, dslr, soft lighting, "
                "high quality, film grain"
            ),
            negative_prompt=(
                "(bad quality:1.15), (worst quality:1.3), neghands, anime, cartoon, "
                "illustration, drawing, painting"
            ),
            cfg_scale=7,
            steps=30,
        ),
    }
)


def get_checkpoint_for_style(style: ArtStyle) -> CheckpointConfig:
    """Return the checkpoint configuration for an art style."""
    return CHECKPOINTS[ArtStyle(style)]
