"""Companion data models."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.core.generation import DEFAULT_COMPANION_STATE
from app.models.image import ArtStyle


class CompanionCreate(BaseModel):
    """Request model for creating a companion."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=10)
    visual_description: str = Field(..., min_length=10)
    default_outfit: str = Field(..., min_length=1)
    user_appearance: Optional[str] = None
    style: ArtStyle = ArtStyle.anime
    header_image_url: Optional[str] = None


class CompanionUpdate(BaseModel):
    """Partial update of companion profile fields. None means unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10)
    visual_description: Optional[str] = Field(default=None, min_length=10)
    default_outfit: Optional[str] = Field(default=None, min_length=1)
    user_appearance: Optional[str] = None
    style: Optional[ArtStyle] = None
    header_image_url: Optional[str] = None


class Companion(BaseModel):
    """Stored companion profile plus its current visual state."""

    id: str
    user_id: str
    name: str
    description: str
    visual_description: str
    default_outfit: str
    user_appearance: Optional[str] = None
    style: ArtStyle = ArtStyle.anime
    header_image_url: Optional[str] = None

    current_outfit: str = DEFAULT_COMPANION_STATE["outfit"]
    current_location: str = DEFAULT_COMPANION_STATE["location"]
    current_action: str = DEFAULT_COMPANION_STATE["action"]
    current_expression: str = DEFAULT_COMPANION_STATE["expression"]
    current_lighting: str = DEFAULT_COMPANION_STATE["lighting"]
    visual_tags: str = ""

    created_at: datetime
    updated_at: datetime
