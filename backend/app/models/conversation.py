"""Conversation and message data models."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.models.context import ContextAnalysis


class MessageRole(str, Enum):
    """Speaker of a stored chat message."""

    user = "user"
    assistant = "assistant"


class ChatMessage(BaseModel):
    """One stored chat message. Used by the history endpoint and as LLM history."""

    id: str
    role: MessageRole
    content: str
    image_url: Optional[str] = None
    created_at: datetime


class ChatRequest(BaseModel):
    """Request model for sending a message to a companion."""

    message: str = Field(..., min_length=1, max_length=2000)
    generate_image: bool = False
    user_name: Optional[str] = Field(default=None, max_length=100)


class ChatResponse(BaseModel):
    """Result of one chat turn returned to the frontend."""

    companion_id: str
    reply: str
    image_url: Optional[str] = None
    state: ContextAnalysis
    timestamp: str
