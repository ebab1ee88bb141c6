"""Context analysis data models."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class ContextAnalysisResponse(BaseModel):
    """Raw JSON returned by the context-analysis LLM call."""

    model_config = ConfigDict(extra="ignore")

    reasoning: str = ""
    outfit: str = ""
    location: str = ""
    action_summary: str = ""
    is_user_present: bool = False
    visual_tags: str = ""
    expression: str = ""
    lighting: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        # The model emits null for fields it has nothing to say about.
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class ContextAnalysis(BaseModel):
    """Companion visual state derived from the latest chat turn."""

    model_config = ConfigDict(populate_by_name=True)

    outfit: str
    location: str
    action: str
    visual_tags: str = Field(default="", alias="visualTags")
    is_user_present: bool = Field(default=False, alias="isUserPresent")
    expression: str = "neutral"
    lighting: str = "cinematic lighting"
