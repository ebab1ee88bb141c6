"""ChatService: orchestrates one chat turn with a companion."""
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from app.core.generation import CHAT_HISTORY_LIMIT, LLM_CHAT_CONFIG
from app.core.logging import setup_logging
from app.core.rate_limit import CHAT_POLICY, IMAGE_POLICY, RateLimitExceededError
from app.models.companion import Companion
from app.models.context import ContextAnalysis
from app.models.conversation import ChatMessage, ChatRequest, ChatResponse, MessageRole
from app.services.image import ImageGenerationError
from app.services.prompts import build_chat_system_prompt

if TYPE_CHECKING:
    from app.core.rate_limit import RateLimiter
    from app.services.companion import CompanionRepository
    from app.services.context import ContextAnalyzer
    from app.services.image import ImageGenerationService
    from app.services.llm import LLMClient

logger = setup_logging("chat")

DEFAULT_USER_NAME = "User"

_SCENE_BLOCK = re.compile(r"\[.*?(SCENE|STATE).*?\][\s\S]*?\[/.*?(SCENE|STATE).*?\]", re.IGNORECASE)
_STAGE_DIRECTION = re.compile(r"\s*\([a-z\s]+\)\s*", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def clean_reply(text: str) -> str:
    """Strip scene/state blocks and parenthetical stage directions from a reply."""
    text = _SCENE_BLOCK.sub("", text)
    text = _STAGE_DIRECTION.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def _current_state(companion: Companion) -> ContextAnalysis:
    return ContextAnalysis(
        outfit=companion.current_outfit,
        location=companion.current_location,
        action=companion.current_action,
        visual_tags=companion.visual_tags,
        expression=companion.current_expression,
        lighting=companion.current_lighting,
    )


class ChatService:
    """Orchestrates a single chat turn.

    Responsibilities:
    1. Ownership and chat rate-limit checks
    2. Persist the user message and load recent history
    3. Context analysis before the reply (state the companion replies from)
    4. Companion reply from the conversational LLM
    5. Context analysis again including the reply
    6. Write the new visual state back when it changed
    7. Optional companion image from the final state
    8. Persist the assistant message and return ChatResponse
    """

    def __init__(
        self,
        repository: "CompanionRepository",
        analyzer: "ContextAnalyzer",
        llm: "LLMClient",
        image_service: "ImageGenerationService",
        rate_limiter: "RateLimiter",
    ) -> None:
        self.repository = repository
        self.analyzer = analyzer
        self.llm = llm
        self.image_service = image_service
        self.rate_limiter = rate_limiter

    async def send_message(
        self, user_id: str, companion_id: str, request: ChatRequest
    ) -> ChatResponse:
        """Run one chat turn.

        Raises:
            CompanionNotFoundError: Companion missing or not owned by user_id.
            RateLimitExceededError: Chat rate limit hit.
            ContextAnalysisError / LLMError: Upstream LLM failure.
        """
        # --- 1. Ownership + rate limit ---
        companion = self.repository.get_owned(companion_id, user_id)
        rate_limit = self.rate_limiter.check(user_id, CHAT_POLICY)
        if not rate_limit.allowed:
            raise RateLimitExceededError(rate_limit.error or "Too many messages. Please slow down.")

        user_name = request.user_name or DEFAULT_USER_NAME
        prev = _current_state(companion)

        # --- 2. Store user message, load history (includes it as the last item) ---
        self.repository.add_message(companion_id, MessageRole.user, request.message)
        history = self.repository.recent_messages(companion_id, CHAT_HISTORY_LIMIT)
        prior_history = history[:-1] if history and history[-1].role == MessageRole.user else history

        # --- 3. Pre-reply context analysis ---
        initial = await self.analyzer.analyze(
            companion_name=companion.name,
            user_name=user_name,
            current_outfit=prev.outfit,
            current_location=prev.location,
            current_action=prev.action,
            user_message=request.message,
            history=prior_history,
        )

        # --- 4. Companion reply ---
        raw_reply = await self.llm.generate(
            build_chat_system_prompt(companion, user_name, initial),
            prior_history,
            request.message,
            temperature=LLM_CHAT_CONFIG["temperature"],
            max_tokens=LLM_CHAT_CONFIG["max_tokens"],
            top_p=LLM_CHAT_CONFIG["top_p"],
        )
        reply = clean_reply(raw_reply)

        # --- 5. Post-reply context analysis ---
        final = await self.analyzer.analyze(
            companion_name=companion.name,
            user_name=user_name,
            current_outfit=prev.outfit,
            current_location=prev.location,
            current_action=prev.action,
            user_message=request.message,
            history=self._with_reply(prior_history, request.message, reply),
            ai_response=reply,
        )

        logger.info(
            "turn: outfit=%s location=%s action=%s present=%s",
            final.outfit,
            final.location,
            final.action,
            final.is_user_present,
            extra={"companion_id": companion_id, "user_id": user_id},
        )

        # --- 6. Persist state ---
        if final.model_dump() != prev.model_dump():
            self.repository.update_state(companion_id, final)

        # --- 7. Optional image ---
        image_url: Optional[str] = None
        if request.generate_image:
            image_url = await self._generate_image(user_id, companion, final)

        # --- 8. Store assistant message and respond ---
        self.repository.add_message(companion_id, MessageRole.assistant, reply, image_url=image_url)
        return ChatResponse(
            companion_id=companion_id,
            reply=reply,
            image_url=image_url,
            state=final,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def get_history(self, user_id: str, companion_id: str, limit: int = 50) -> list[ChatMessage]:
        """Return stored messages for an owned companion, oldest first."""
        self.repository.get_owned(companion_id, user_id)
        return self.repository.recent_messages(companion_id, limit)

    async def _generate_image(
        self, user_id: str, companion: Companion, state: ContextAnalysis
    ) -> Optional[str]:
        """Generate the turn's image. Failures are logged and yield None."""
        rate_limit = self.rate_limiter.check(user_id, IMAGE_POLICY)
        if not rate_limit.allowed:
            logger.info("Image skipped: rate limited", extra={"companion_id": companion.id})
            return None
        try:
            return await self.image_service.generate_companion_image(companion, state)
        except ImageGenerationError as exc:
            logger.error(
                "Companion image generation failed: %s",
                exc,
                extra={"companion_id": companion.id, "user_id": user_id},
            )
            return None

    @staticmethod
    def _with_reply(history: list[ChatMessage], message: str, reply: str) -> list[ChatMessage]:
        now = datetime.now(timezone.utc)
        return [
            *history,
            ChatMessage(id="pending-user", role=MessageRole.user, content=message, created_at=now),
            ChatMessage(id="pending-reply", role=MessageRole.assistant, content=reply, created_at=now),
        ]
