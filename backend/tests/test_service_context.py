"""Tests for context analysis: JSON recovery, normalization, continuity and the analyzer."""
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from app.models.context import ContextAnalysis, ContextAnalysisResponse
from app.models.conversation import ChatMessage, MessageRole
from app.services.context import (
    ContextAnalysisError,
    ContextAnalyzer,
    apply_continuity,
    clean_tag_string,
    extract_json,
    normalize_analysis,
)
from app.services.llm import LLMError

RAW = {
    "reasoning": "She says she's at home on the couch, texting.",
    "outfit": "(grey hoodie), black shorts",
    "location": "sitting on couch.",
    "action_summary": "Texting on her phone",
    "is_user_present": False,
    "visual_tags": "holding phone, smiling",
    "expression": "smiling",
    "lighting": "warm lamp light",
}


def _msg(role: MessageRole, content: str) -> ChatMessage:
    return ChatMessage(id=content, role=role, content=content, created_at=datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------------


class TestExtractJson:
    def test_plain_json(self) -> None:
        assert extract_json(json.dumps(RAW)) == RAW

    def test_json_inside_prose_and_fences(self) -> None:
        text = "Sure! Here you go:\n```json\n" + json.dumps(RAW) + "\n```\nHope it helps."
        assert extract_json(text)["outfit"] == RAW["outfit"]

    def test_repairs_trailing_comma_and_upper_booleans(self) -> None:
        text = '{"outfit": "dress", "is_user_present": TRUE,}'
        assert extract_json(text) == {"outfit": "dress", "is_user_present": True}

    def test_strips_line_comments(self) -> None:
        text = '{\n"outfit": "dress" // changed\n}'
        assert extract_json(text) == {"outfit": "dress"}

    def test_no_object_raises(self) -> None:
        with pytest.raises(ContextAnalysisError):
            extract_json("I cannot help with that.")

    def test_unrepairable_raises(self) -> None:
        with pytest.raises(ContextAnalysisError):
            extract_json('{"outfit": dress}')

    def test_non_object_raises(self) -> None:
        with pytest.raises(ContextAnalysisError):
            extract_json("[1, 2, 3]")


# ---------------------------------------------------------------------------
# Normalization and continuity
# ---------------------------------------------------------------------------


class TestCleanTagString:
    def test_removes_parentheses_and_trailing_period(self) -> None:
        assert clean_tag_string("(red dress), heels.") == "red dress, heels"

    def test_empty(self) -> None:
        assert clean_tag_string("") == ""


class TestNormalizeAnalysis:
    """Renames action_summary, is_user_present and visual_tags; passes the rest through."""

    RAW_PRESENT = {**RAW, "is_user_present": True}

    def test_maps_renamed_fields(self) -> None:
        result = normalize_analysis(ContextAnalysisResponse.model_validate(self.RAW_PRESENT))
        assert result.action == "Texting on her phone"
        assert result.visual_tags == "holding phone, smiling"
        assert result.is_user_present is True

    def test_passes_other_fields_unchanged(self) -> None:
        result = normalize_analysis(ContextAnalysisResponse.model_validate(self.RAW_PRESENT))
        assert result.outfit == RAW["outfit"]
        assert result.location == RAW["location"]
        assert result.expression == RAW["expression"]
        assert result.lighting == RAW["lighting"]

    def test_serializes_with_aliases_and_drops_reasoning(self) -> None:
        dumped = normalize_analysis(
            ContextAnalysisResponse.model_validate(self.RAW_PRESENT)
        ).model_dump(by_alias=True)
        assert dumped["isUserPresent"] is True
        assert dumped["visualTags"] == "holding phone, smiling"
        assert "reasoning" not in dumped


class TestNullFields:
    def test_null_fields_take_defaults(self) -> None:
        raw = ContextAnalysisResponse.model_validate(
            {**RAW, "lighting": None, "is_user_present": None, "outfit": None}
        )
        assert raw.lighting == ""
        assert raw.is_user_present is False
        assert raw.outfit == ""

    def test_wrong_types_still_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ContextAnalysisResponse.model_validate({**RAW, "outfit": ["a", "b"]})


class TestApplyContinuity:
    def _apply(self, **overrides: object) -> ContextAnalysis:
        analysis = ContextAnalysis(outfit="red dress", location="kitchen", action="Cooking")
        return apply_continuity(
            analysis.model_copy(update=overrides),
            current_outfit="grey hoodie",
            current_location="living room",
            current_action="Waving",
        )

    def test_keeps_new_values(self) -> None:
        result = self._apply()
        assert (result.outfit, result.location, result.action) == ("red dress", "kitchen", "Cooking")

    @pytest.mark.parametrize("lazy", ["", "unknown", "casual clothes", "N/A", "not specified clothing"])
    def test_lazy_outfit_keeps_previous(self, lazy: str) -> None:
        assert self._apply(outfit=lazy).outfit == "grey hoodie"

    def test_empty_location_and_action_keep_previous(self) -> None:
        result = self._apply(location="", action="")
        assert result.location == "living room"
        assert result.action == "Waving"

    def test_empty_expression_and_lighting_get_defaults(self) -> None:
        result = self._apply(expression="", lighting="")
        assert result.expression == "neutral"
        assert result.lighting == "cinematic lighting"


# ---------------------------------------------------------------------------
# ContextAnalyzer
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_llm() -> MagicMock:
    llm = MagicMock()
    llm.generate = AsyncMock(return_value=json.dumps(RAW))
    return llm


async def _analyze(analyzer: ContextAnalyzer, **kwargs: object) -> ContextAnalysis:
    params: dict = dict(
        companion_name="Lumen",
        user_name="Sam",
        current_outfit="grey hoodie, black shorts",
        current_location="living room",
        current_action="looking at viewer",
        user_message="what are you up to?",
        history=[],
    )
    params.update(kwargs)
    return await analyzer.analyze(**params)


class TestContextAnalyzer:
    async def test_returns_cleaned_analysis(self, mock_llm: MagicMock) -> None:
        result = await _analyze(ContextAnalyzer(mock_llm))
        assert result.outfit == "grey hoodie, black shorts"
        assert result.location == "sitting on couch"
        assert result.action == "Texting on her phone"
        assert result.is_user_present is False

    async def test_uses_low_temperature(self, mock_llm: MagicMock) -> None:
        await _analyze(ContextAnalyzer(mock_llm))
        kwargs = mock_llm.generate.call_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 600

    async def test_prompt_carries_history_and_reply(self, mock_llm: MagicMock) -> None:
        history = [_msg(MessageRole.user, f"m{i}") for i in range(6)]
        await _analyze(ContextAnalyzer(mock_llm), history=history, ai_response="I'm on the couch!")
        content = mock_llm.generate.call_args.kwargs["user_message"]
        assert "User (Sam): m5" in content
        assert "m1" not in content
        assert 'LATEST AI RESPONSE (Lumen): "I\'m on the couch!"' in content
        assert 'LATEST INPUT from Sam: "what are you up to?"' in content

    async def test_malformed_response_raises(self, mock_llm: MagicMock) -> None:
        mock_llm.generate.return_value = "no json at all"
        with pytest.raises(ContextAnalysisError):
            await _analyze(ContextAnalyzer(mock_llm))

    async def test_wrong_field_types_raise(self, mock_llm: MagicMock) -> None:
        mock_llm.generate.return_value = json.dumps({**RAW, "is_user_present": {"nested": 1}})
        with pytest.raises(ContextAnalysisError):
            await _analyze(ContextAnalyzer(mock_llm))

    async def test_llm_error_raises(self, mock_llm: MagicMock) -> None:
        mock_llm.generate.side_effect = LLMError("quota")
        with pytest.raises(ContextAnalysisError, match="quota"):
            await _analyze(ContextAnalyzer(mock_llm))

    async def test_null_fields_fall_back_to_current_state(self, mock_llm: MagicMock) -> None:
        mock_llm.generate.return_value = json.dumps(
            {**RAW, "outfit": None, "location": None, "action_summary": None,
             "is_user_present": None, "expression": None, "lighting": None}
        )
        result = await _analyze(ContextAnalyzer(mock_llm))
        assert result.outfit == "grey hoodie, black shorts"
        assert result.location == "living room"
        assert result.action == "looking at viewer"
        assert result.is_user_present is False
        assert result.expression == "neutral"
        assert result.lighting == "cinematic lighting"

    async def test_presence_is_reported(self, mock_llm: MagicMock) -> None:
        mock_llm.generate.return_value = json.dumps({**RAW, "is_user_present": True})
        result = await _analyze(ContextAnalyzer(mock_llm))
        assert result.is_user_present is True
