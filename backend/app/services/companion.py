"""Firestore-backed storage for companions and their chat messages.

Layout:
    companions/{companion_id}                      companion document
    companions/{companion_id}/messages/{msg_id}    chat messages
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import BaseModel

from app.core.generation import DEFAULT_COMPANION_STATE
from app.core.logging import setup_logging
from app.models.companion import Companion, CompanionCreate, CompanionUpdate
from app.models.context import ContextAnalysis
from app.models.conversation import ChatMessage, MessageRole

logger = setup_logging("companion")

COMPANIONS = "companions"
MESSAGES = "messages"

# Firestore batch writes accept at most 500 operations.
_BATCH_SIZE = 500


class CompanionNotFoundError(Exception):
    """Companion does not exist or belongs to another user."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_document(model: BaseModel) -> dict[str, Any]:
    """Dump a model for Firestore. Datetimes stay native so they are stored as timestamps."""
    data = model.model_dump(mode="json", exclude={"id"})
    for field in ("created_at", "updated_at"):
        if field in data:
            data[field] = getattr(model, field)
    return data


class CompanionRepository:
    """CRUD for companions plus per-companion message history."""

    def __init__(self, db: Optional[Any] = None, database: Optional[str] = None) -> None:
        self._db = db if db is not None else firestore.Client(database=database)

    def _doc(self, companion_id: str) -> Any:
        return self._db.collection(COMPANIONS).document(companion_id)

    def _messages(self, companion_id: str) -> Any:
        return self._doc(companion_id).collection(MESSAGES)

    # ------------------------------------------------------------------
    # Companions
    # ------------------------------------------------------------------

    def create(self, user_id: str, data: CompanionCreate) -> Companion:
        """Create a companion owned by user_id. Current outfit starts as the default outfit."""
        now = _now()
        companion = Companion(
            id=uuid.uuid4().hex,
            user_id=user_id,
            **data.model_dump(),
            current_outfit=data.default_outfit,
            created_at=now,
            updated_at=now,
        )
        self._doc(companion.id).set(_to_document(companion))
        logger.info("Companion created", extra={"companion_id": companion.id, "user_id": user_id})
        return companion

    def get(self, companion_id: str) -> Optional[Companion]:
        snapshot = self._doc(companion_id).get()
        if not snapshot.exists:
            return None
        return Companion(id=snapshot.id, **snapshot.to_dict())

    def get_owned(self, companion_id: str, user_id: str) -> Companion:
        """Return the companion if user_id owns it.

        Raises:
            CompanionNotFoundError: Missing, or owned by someone else.
        """
        companion = self.get(companion_id)
        if companion is None or companion.user_id != user_id:
            raise CompanionNotFoundError(companion_id)
        return companion

    def list_for_user(self, user_id: str) -> list[Companion]:
        """All companions of user_id, newest first."""
        query = (
            self._db.collection(COMPANIONS)
            .where(filter=FieldFilter("user_id", "==", user_id))
            .order_by("created_at", direction=firestore.Query.DESCENDING)
        )
        return [Companion(id=snap.id, **snap.to_dict()) for snap in query.stream()]

    def update(self, companion_id: str, data: CompanionUpdate) -> Companion:
        """Apply profile edits. A new default outfit also replaces the current outfit.

        Raises:
            CompanionNotFoundError: Companion does not exist.
        """
        changes = data.model_dump(mode="json", exclude_none=True)
        if "default_outfit" in changes:
            changes["current_outfit"] = changes["default_outfit"]
        changes["updated_at"] = _now()
        self._doc(companion_id).set(changes, merge=True)

        companion = self.get(companion_id)
        if companion is None:
            raise CompanionNotFoundError(companion_id)
        return companion

    def update_state(self, companion_id: str, state: ContextAnalysis) -> None:
        """Write the analyzed visual state back onto the companion (last write wins)."""
        self._doc(companion_id).set(
            {
                "current_outfit": state.outfit,
                "current_location": state.location,
                "current_action": state.action,
                "current_expression": state.expression,
                "current_lighting": state.lighting,
                "visual_tags": state.visual_tags,
                "updated_at": _now(),
            },
            merge=True,
        )

    def wipe_memory(self, companion: Companion) -> int:
        """Delete all messages and reset the visual state. Returns deleted message count."""
        deleted = self._delete_messages(companion.id)
        self._doc(companion.id).set(
            {
                "current_outfit": companion.default_outfit or DEFAULT_COMPANION_STATE["outfit"],
                "current_location": DEFAULT_COMPANION_STATE["location"],
                "current_action": DEFAULT_COMPANION_STATE["action"],
                "current_expression": DEFAULT_COMPANION_STATE["expression"],
                "current_lighting": DEFAULT_COMPANION_STATE["lighting"],
                "visual_tags": "",
                "updated_at": _now(),
            },
            merge=True,
        )
        logger.info("Companion memory wiped (%d messages)", deleted, extra={"companion_id": companion.id})
        return deleted

    def delete(self, companion_id: str) -> None:
        """Delete the companion and all of its messages."""
        self._delete_messages(companion_id)
        self._doc(companion_id).delete()
        logger.info("Companion deleted", extra={"companion_id": companion_id})

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_message(
        self,
        companion_id: str,
        role: MessageRole,
        content: str,
        image_url: Optional[str] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            id=uuid.uuid4().hex,
            role=role,
            content=content,
            image_url=image_url,
            created_at=_now(),
        )
        self._messages(companion_id).document(message.id).set(
            _to_document(message)
        )
        return message

    def recent_messages(self, companion_id: str, limit: int) -> list[ChatMessage]:
        """Last `limit` messages, oldest first."""
        query = (
            self._messages(companion_id)
            .order_by("created_at", direction=firestore.Query.DESCENDING)
            .limit(limit)
        )
        messages = [ChatMessage(id=snap.id, **snap.to_dict()) for snap in query.stream()]
        messages.reverse()
        return messages

    def _delete_messages(self, companion_id: str) -> int:
        deleted = 0
        batch = self._db.batch()
        pending = 0
        for snap in self._messages(companion_id).stream():
            batch.delete(snap.reference)
            pending += 1
            deleted += 1
            if pending == _BATCH_SIZE:
                batch.commit()
                batch = self._db.batch()
                pending = 0
        if pending:
            batch.commit()
        return deleted
