"""Gemini chat-completion client on Vertex AI."""
import time
from typing import Any, Optional, Sequence

from google import genai
from google.genai import types as genai_types

from app.core.logging import setup_logging
from app.models.conversation import ChatMessage, MessageRole

logger = setup_logging("llm")


class LLMError(Exception):
    """Raised when the LLM call fails or returns no text."""


def _to_contents(
    history: Sequence[ChatMessage], user_message: Optional[str]
) -> list[genai_types.Content]:
    """Convert stored chat messages into Gemini contents (assistant → model)."""
    contents = [
        genai_types.Content(
            role="model" if msg.role == MessageRole.assistant else "user",
            parts=[genai_types.Part(text=msg.content)],
        )
        for msg in history
    ]
    if user_message is not None:
        contents.append(
            genai_types.Content(role="user", parts=[genai_types.Part(text=user_message)])
        )
    return contents


class LLMClient:
    """Thin wrapper over google-genai's async generate_content.

    One instance is shared by the chat pipeline and context analysis; the
    sampling settings are passed per call.
    """

    def __init__(
        self,
        project_id: str,
        location: str,
        model: str,
        client: Optional[Any] = None,
    ) -> None:
        self.project_id = project_id
        self.location = location
        self.model = model
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = genai.Client(
                vertexai=True,
                project=self.project_id,
                location=self.location,
            )
        return self._client

    async def generate(
        self,
        system_instruction: str,
        history: Sequence[ChatMessage] = (),
        user_message: Optional[str] = None,
        *,
        temperature: float,
        max_tokens: int,
        top_p: Optional[float] = None,
    ) -> str:
        """Run one completion and return the response text.

        Raises:
            LLMError: The API call failed or returned no text.
        """
        config = genai_types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_tokens,
            top_p=top_p,
        )
        t0 = time.perf_counter()
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=_to_contents(history, user_message),
                config=config,
            )
        except Exception as exc:
            raise LLMError(f"LLM request failed: {exc}") from exc

        text = response.text
        if not text:
            raise LLMError("LLM returned an empty response")

        logger.debug(
            "LLM call model=%s chars=%d",
            self.model,
            len(text),
            extra={"duration_ms": round((time.perf_counter() - t0) * 1000)},
        )
        return text
