# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for summary protection, growth validation and reasoning blocks."""

from typing import List, Optional

import pytest
from agent_context.compaction.growth import GrowthValidator
from agent_context.compaction.protection import SummaryProtectionFilter
from agent_context.compaction.reasoning import (
    ReasoningBlockHandler,
    extract_reasoning_content,
    requires_reasoning_block,
)
from agent_context.compaction.settings import (
    GrowthValidationConfig,
    ReasoningBlockConfig,
    SummaryProtectionConfig,
)
from agent_context.models import Message
from agent_context.prompts.base import DEFAULT_THINKING_PREFIX
from agent_context.schemas.messages import MessageRole

# ---------------------------------------------------------------------------
# Common helpers
# ---------------------------------------------------------------------------


def _msg(id: str, role: MessageRole = MessageRole.USER, created_at: float = 0.0) -> Message:
    """Create an ordinary message."""
    return Message(id=id, role=role, content=f"content {id}", created_at=created_at)


def _summary(
    id: str,
    created_at: float = 0.0,
    tokens: int = 100,
    compressed_count: int = 5,
) -> Message:
    """Create a summary message."""
    return Message(
        id=id,
        role=MessageRole.ASSISTANT,
        content=f"[Context Summary]\n\nsummary {id}",
        is_summary=True,
        condense_id=id,
        created_at=created_at,
        tokens=tokens,
        metadata={"compressed_count": compressed_count},
    )


def _conversation(summary_count: int) -> List[Message]:
    messages: List[Message] = []
    for i in range(summary_count):
        messages.append(_summary(f"s{i}", created_at=float(i)))
        messages.append(_msg(f"m{i}", created_at=float(i) + 0.5))
    return messages


# ---------------------------------------------------------------------------
# SummaryProtectionFilter
# ---------------------------------------------------------------------------


class TestSummaryProtectionFilter:
    """Tests for SummaryProtectionFilter strategies and filtering."""

    def test_identifies_summaries(self):
        """Verify summaries are recognised by flag or condense_id."""
        assert SummaryProtectionFilter.is_summary_message(_summary("s"))
        assert SummaryProtectionFilter.is_summary_message(
            Message(role=MessageRole.ASSISTANT, content="x", condense_id="condense-1")
        )
        assert not SummaryProtectionFilter.is_summary_message(_msg("m"))

    def test_recent_protects_newest(self):
        """Verify the recent strategy protects the newest summaries by creation time."""
        protection = SummaryProtectionFilter(SummaryProtectionConfig(max_protected_summaries=2, strategy="recent"))
        assert protection.get_protected_ids(_conversation(4)) == {"s2", "s3"}

    def test_all_protects_every_summary(self):
        """Verify the all strategy ignores the cap."""
        protection = SummaryProtectionFilter(SummaryProtectionConfig(max_protected_summaries=1, strategy="all"))
        assert protection.get_protected_ids(_conversation(3)) == {"s0", "s1", "s2"}

    def test_weighted_prefers_large_dense_summaries(self):
        """Verify the weighted strategy favours size and fold count over position."""
        messages = [
            _summary("big", created_at=0, tokens=1000, compressed_count=40),
            _summary("small-a", created_at=1, tokens=50, compressed_count=2),
            _summary("small-b", created_at=2, tokens=60, compressed_count=3),
        ]
        protection = SummaryProtectionFilter(SummaryProtectionConfig(max_protected_summaries=1, strategy="weighted"))
        assert protection.get_protected_ids(messages) == {"big"}

    def test_weighted_breaks_ties_by_position(self):
        """Verify equal summaries are ranked by recency."""
        messages = [_summary("first"), _summary("second"), _summary("third")]
        protection = SummaryProtectionFilter(SummaryProtectionConfig(max_protected_summaries=2, strategy="weighted"))
        assert protection.get_protected_ids(messages) == {"second", "third"}

    def test_disabled_protects_nothing(self):
        """Verify a disabled filter passes all candidates through."""
        protection = SummaryProtectionFilter(SummaryProtectionConfig(enabled=False))
        messages = _conversation(3)
        assert protection.get_protected_ids(messages) == set()
        assert protection.filter_candidates(messages, messages) == messages

    def test_filter_evaluates_whole_conversation(self):
        """Verify protection is decided on all messages, not only candidates."""
        messages = _conversation(3)  # s0 m0 s1 m1 s2 m2
        protection = SummaryProtectionFilter(SummaryProtectionConfig(max_protected_summaries=2))
        candidates = messages[:4]  # s0 m0 s1 m1; s2 is newest but outside the range
        kept = protection.filter_candidates(candidates, messages)
        assert [m.id for m in kept] == ["s0", "m0", "m1"]

    def test_protection_stats(self):
        """Verify protection statistics reflect the configuration."""
        protection = SummaryProtectionFilter(SummaryProtectionConfig(max_protected_summaries=2))
        stats = protection.get_protection_stats(_conversation(5))
        assert stats.total_summaries == 5
        assert stats.protected_count == 2
        assert stats.unprotected_count == 3
        assert stats.strategy == "recent"
        assert stats.enabled


# ---------------------------------------------------------------------------
# GrowthValidator
# ---------------------------------------------------------------------------


class TestGrowthValidator:
    """Tests for the advisory growth check."""

    def test_smaller_summary_is_valid(self):
        """Verify a shrinking summary passes."""
        result = GrowthValidator().validate(1000, 200)
        assert result.is_valid
        assert result.growth_tokens == -800
        assert result.ratio == pytest.approx(0.2)

    def test_equal_or_larger_summary_is_invalid(self):
        """Verify a summary that does not shrink the context fails."""
        assert not GrowthValidator().validate(100, 100).is_valid
        result = GrowthValidator().validate(100, 150)
        assert not result.is_valid
        assert result.growth_tokens == 50
        assert "not smaller" in result.message

    def test_empty_original(self):
        """Verify an empty original yields ratio 0 and an invalid verdict."""
        result = GrowthValidator().validate(0, 10)
        assert result.ratio == 0.0
        assert not result.is_valid

    def test_max_ratio(self):
        """Verify max_ratio tightens the threshold."""
        validator = GrowthValidator(GrowthValidationConfig(max_ratio=0.5))
        assert validator.validate(100, 49).is_valid
        assert not validator.validate(100, 60).is_valid


# ---------------------------------------------------------------------------
# ReasoningBlockHandler
# ---------------------------------------------------------------------------


class TestReasoningBlockHandler:
    """Tests for reasoning block detection and injection."""

    @pytest.mark.parametrize(
        "model,expected",
        [
            ("deepseek-chat", True),
            ("DeepSeek-R1", True),
            ("deep-seek-coder", True),
            ("gpt-4o", False),
            ("", False),
            (None, False),
        ],
    )
    def test_requires_reasoning_block(self, model: Optional[str], expected: bool):
        """Verify DeepSeek models are detected case-insensitively."""
        assert requires_reasoning_block(model) is expected

    def test_detect_model_family(self):
        """Verify model family detection."""
        handler = ReasoningBlockHandler()
        assert handler.detect_model_family("deepseek-r1-distill") == "deepseek-r1"
        assert handler.detect_model_family("deepseek-v3") == "deepseek"
        assert handler.detect_model_family("claude-sonnet") is None

    def test_adds_block_to_assistant(self):
        """Verify an assistant message receives a thinking block."""
        result = ReasoningBlockHandler().add_reasoning_block(_msg("a", MessageRole.ASSISTANT))
        assert result.was_added
        assert result.reasoning_content.startswith("<thinking>\n" + DEFAULT_THINKING_PREFIX)
        assert result.reasoning_content.endswith("</thinking>")
        assert result.message.reasoning_content == result.reasoning_content

    def test_prepends_to_existing_reasoning(self):
        """Verify existing reasoning is kept after the new block."""
        msg = _msg("a", MessageRole.ASSISTANT).model_copy(update={"reasoning_content": "earlier thoughts"})
        result = ReasoningBlockHandler().add_reasoning_block(msg)
        assert result.message.reasoning_content.endswith("\n\nearlier thoughts")
        assert msg.reasoning_content == "earlier thoughts"

    def test_ignores_non_assistant(self):
        """Verify user messages are returned unchanged."""
        msg = _msg("u")
        result = ReasoningBlockHandler().add_reasoning_block(msg)
        assert not result.was_added
        assert result.message is msg

    def test_process_for_model(self):
        """Verify reasoning is only added for models that require it."""
        handler = ReasoningBlockHandler(ReasoningBlockConfig(thinking_prefix="Custom prefix"))
        msg = _msg("a", MessageRole.ASSISTANT)
        assert not handler.process_for_model(msg, "gpt-4o").was_added
        added = handler.process_for_model(msg, "deepseek-chat")
        assert added.was_added
        assert "Custom prefix" in added.reasoning_content

    def test_timestamp_included(self):
        """Verify the optional timestamp line is added inside the block."""
        handler = ReasoningBlockHandler(ReasoningBlockConfig(include_timestamp=True))
        result = handler.add_reasoning_block(_msg("a", MessageRole.ASSISTANT))
        assert "Generated at: " in result.reasoning_content
        assert result.reasoning_content.endswith("</thinking>")


class TestExtractReasoningContent:
    """Tests for extract_reasoning_content."""

    def test_collects_conclusions(self):
        """Verify conclusions are gathered from reasoning fields and thinking tags."""
        messages = [
            Message(
                role=MessageRole.ASSISTANT,
                content="done",
                reasoning_content="Looking at it.\n- Decision: use the streaming tokenizer for large files",
            ),
            Message(
                role=MessageRole.ASSISTANT,
                content="<thinking>\nTherefore the cache key must include the model name\n</thinking>",
            ),
            Message(role=MessageRole.USER, content="<thinking>Therefore ignore user text here</thinking>"),
        ]
        extracted = extract_reasoning_content(messages)
        assert "use the streaming tokenizer for large files" in extracted.conclusions
        assert "the cache key must include the model name" in extracted.conclusions
        assert extracted.messages_with_reasoning == 2
        assert extracted.summary_text.startswith("## Key Reasoning Conclusions\n- ")

    def test_no_reasoning(self):
        """Verify messages without reasoning yield nothing."""
        extracted = extract_reasoning_content([_msg("u"), _msg("a", MessageRole.ASSISTANT)])
        assert extracted.conclusions == []
        assert extracted.summary_text == ""
