"""Context analysis: derive the companion's visual state from recent chat."""
import json
import re
import time
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import ValidationError

from app.core.generation import CONTEXT_ANALYSIS_CONFIG, LAZY_OUTFIT
from app.core.logging import setup_logging
from app.models.context import ContextAnalysis, ContextAnalysisResponse
from app.models.conversation import ChatMessage, MessageRole
from app.services.llm import LLMError
from app.services.prompts import build_context_analysis_prompt

if TYPE_CHECKING:
    from app.services.llm import LLMClient

logger = setup_logging("context")

# Messages rendered into the analysis prompt.
_PROMPT_HISTORY_WINDOW = 4

_CONTROL_CHARS = re.compile(r"[\u0000-\u0019]+")
_LINE_COMMENT = re.compile(r"//.*$", re.MULTILINE)
_UPPER_TRUE = re.compile(r":\s*TRUE", re.IGNORECASE)
_UPPER_FALSE = re.compile(r":\s*FALSE", re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",(\s*})")


class ContextAnalysisError(Exception):
    """Raised when the analysis LLM call fails or returns no usable JSON."""


def extract_json(text: str) -> dict[str, Any]:
    """Parse a JSON object out of an LLM response.

    Tries a direct parse first, then the span between the first '{' and the
    last '}' after stripping escaped newlines, line comments, control
    characters, upper-case booleans and trailing commas.

    Raises:
        ContextAnalysisError: No JSON object could be recovered.
    """
    try:
        parsed = json.loads(text)
    except ValueError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or start >= end:
            raise ContextAnalysisError("No JSON object found in analysis response")

        candidate = text[start : end + 1]
        candidate = candidate.replace("\\n", " ")
        candidate = _LINE_COMMENT.sub("", candidate)
        candidate = _CONTROL_CHARS.sub("", candidate)
        candidate = _UPPER_TRUE.sub(": true", candidate)
        candidate = _UPPER_FALSE.sub(": false", candidate)
        candidate = _TRAILING_COMMA.sub(r"\1", candidate)
        try:
            parsed = json.loads(candidate)
        except ValueError as exc:
            raise ContextAnalysisError(f"Malformed analysis JSON: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ContextAnalysisError("Analysis response is not a JSON object")
    return parsed


def clean_tag_string(value: str) -> str:
    """Strip parentheses and a trailing period from an SD tag string."""
    if not value:
        return ""
    value = value.replace("(", "").replace(")", "")
    if value.endswith("."):
        value = value[:-1]
    return value.strip()


def normalize_analysis(raw: ContextAnalysisResponse) -> ContextAnalysis:
    """Map the raw LLM fields onto ContextAnalysis, dropping `reasoning`."""
    return ContextAnalysis(
        outfit=raw.outfit,
        location=raw.location,
        action=raw.action_summary,
        visual_tags=raw.visual_tags,
        is_user_present=raw.is_user_present,
        expression=raw.expression,
        lighting=raw.lighting,
    )


def apply_continuity(
    analysis: ContextAnalysis,
    current_outfit: str,
    current_location: str,
    current_action: str,
) -> ContextAnalysis:
    """Clean tags and keep the previous state where the model left gaps."""
    outfit = clean_tag_string(analysis.outfit)
    if not outfit or LAZY_OUTFIT.search(outfit):
        outfit = current_outfit

    return ContextAnalysis(
        outfit=outfit,
        location=clean_tag_string(analysis.location) or current_location,
        action=analysis.action or current_action,
        visual_tags=clean_tag_string(analysis.visual_tags),
        is_user_present=analysis.is_user_present,
        expression=clean_tag_string(analysis.expression) or "neutral",
        lighting=clean_tag_string(analysis.lighting) or "cinematic lighting",
    )


def _format_history(
    history: Sequence[ChatMessage], companion_name: str, user_name: str
) -> str:
    lines = []
    for msg in history[-_PROMPT_HISTORY_WINDOW:]:
        speaker = (
            f"User ({user_name})"
            if msg.role == MessageRole.user
            else f"Companion ({companion_name})"
        )
        lines.append(f"{speaker}: {msg.content}")
    return "\n".join(lines)


class ContextAnalyzer:
    """Asks the LLM for the companion's outfit, location, action and scene tags."""

    def __init__(self, llm: "LLMClient") -> None:
        self.llm = llm

    async def analyze(
        self,
        *,
        companion_name: str,
        user_name: str,
        current_outfit: str,
        current_location: str,
        current_action: str,
        user_message: str,
        history: Sequence[ChatMessage],
        ai_response: str = "",
    ) -> ContextAnalysis:
        """Run one context analysis pass.

        Args:
            companion_name: Companion display name.
            user_name: User display name.
            current_outfit: Outfit before this turn.
            current_location: Location before this turn.
            current_action: Action before this turn.
            user_message: Latest user message.
            history: Recent messages, oldest first.
            ai_response: Companion reply to analyze; empty before the reply exists.

        Returns:
            Normalized ContextAnalysis with continuity rules applied.

        Raises:
            ContextAnalysisError: LLM failure or unusable response.
        """
        system_prompt = build_context_analysis_prompt(
            companion_name,
            user_name,
            current_outfit,
            current_action,
            current_location,
        )
        limit = CONTEXT_ANALYSIS_CONFIG["history_limit"]
        recent = _format_history(history[-limit:], companion_name, user_name)
        content = (
            f"CONTEXT HISTORY:\n{recent}\n\n"
            f'LATEST INPUT from {user_name}: "{user_message}"\n\n'
            f'LATEST AI RESPONSE ({companion_name}): "{ai_response}"'
        )

        t0 = time.perf_counter()
        try:
            text = await self.llm.generate(
                system_prompt,
                user_message=content,
                temperature=CONTEXT_ANALYSIS_CONFIG["temperature"],
                max_tokens=CONTEXT_ANALYSIS_CONFIG["max_tokens"],
            )
        except LLMError as exc:
            raise ContextAnalysisError(str(exc)) from exc

        try:
            raw = ContextAnalysisResponse.model_validate(extract_json(text))
        except ValidationError as exc:
            raise ContextAnalysisError(f"Unexpected analysis fields: {exc}") from exc

        result = apply_continuity(
            normalize_analysis(raw), current_outfit, current_location, current_action
        )
        logger.info(
            "Context analysis completed: outfit_changed=%s location_changed=%s present=%s",
            result.outfit != current_outfit,
            result.location != current_location,
            result.is_user_present,
            extra={"duration_ms": round((time.perf_counter() - t0) * 1000)},
        )
        return result
