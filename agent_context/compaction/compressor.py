# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Non-destructive compaction.

A range of the conversation is replaced, in the effective view, by one
summary message. Nothing is deleted: the caller links the originals to the
summary (``link_compressed_messages``) and keeps them in a
``CondensedMessageStore`` so the compaction can be undone.

Pipeline of ``NonDestructiveCompressor.compress``:

  1. Range       default excludes the most recent turns
  2. Pairing     widen the range so no tool pair is split
  3. Protection  drop protected summaries from the candidates
  4. Minimum     too few candidates raises InsufficientMessagesError
  5. Summarize   fallback chain or single client
  6. Summary     build the summary message with a fresh condense_id
  7. Policies    growth check, reasoning block, quality report, stats

Policies are advisory and never fail a compaction.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from agent_context.compaction.errors import CompactionError, CompactionErrorCode, InsufficientMessagesError
from agent_context.compaction.growth import GrowthValidationResult, GrowthValidator
from agent_context.compaction.pairing import adjust_range_for_tool_pairs
from agent_context.compaction.protection import SummaryProtectionFilter
from agent_context.compaction.quality import QualityEvaluationClient, SummaryQualityReport, SummaryQualityValidator
from agent_context.compaction.reasoning import ReasoningBlockHandler, extract_reasoning_content
from agent_context.compaction.settings import CompressorSettings
from agent_context.compaction.stats import CompactionStatsTracker
from agent_context.compaction.summarizer import (
    ClientFactory,
    FallbackChain,
    FallbackResult,
    SummarizationClient,
    build_summary_prompt,
)
from agent_context.compaction.tokens import TokenCounter, count_message_tokens, estimate_tokens_heuristic
from agent_context.models import CompressionRange, Message, is_summary_message
from agent_context.prompts.base import SUMMARY_PREFIX
from agent_context.schemas.messages import MessagePriority, MessageRole, ToolResultBlock

logger = logging.getLogger(__name__)


@dataclass
class CompressionResult:
    """Outcome of a compaction.

    Attributes:
        summary (Message): The summary message that replaces the range.
        compressed_message_ids (List[str]): Ids of the compacted messages,
            in conversation order.
        original_tokens (int): Tokens of the compacted messages.
        summary_tokens (int): Tokens of the summary message.
        ratio (float): ``summary_tokens / original_tokens`` (0 when the
            original is empty).
        condense_id (str): Identifier shared by the summary and, once
            linked, by the originals' ``condense_parent``.
        is_cascade (bool): Whether the input held earlier compaction output.
        growth_validation (Optional[GrowthValidationResult]): Growth check.
        reasoning_block_added (Optional[bool]): Whether reasoning was
            attached. ``None`` when no handler is configured.
        model_used (Optional[str]): Model that produced the summary when a
            fallback chain is configured.
        fallback_result (Optional[FallbackResult]): Attempt history.
        quality_report (Optional[SummaryQualityReport]): Quality report.
        warnings (List[str]): Findings of the advisory checks.
    """

    summary: Message
    compressed_message_ids: List[str]
    original_tokens: int
    summary_tokens: int
    ratio: float
    condense_id: str
    is_cascade: bool = False
    growth_validation: Optional[GrowthValidationResult] = None
    reasoning_block_added: Optional[bool] = None
    model_used: Optional[str] = None
    fallback_result: Optional[FallbackResult] = None
    quality_report: Optional[SummaryQualityReport] = None
    warnings: List[str] = field(default_factory=list)


def generate_condense_id() -> str:
    """Fresh compaction identifier (``condense-<uuid4>``)."""
    return f"condense-{uuid.uuid4()}"


def _starts_turn(message: Message) -> bool:
    """User message that is not only a carrier for tool results."""
    if message.role != MessageRole.USER:
        return False
    if isinstance(message.content, str):
        return True
    return not message.content or not all(isinstance(b, ToolResultBlock) for b in message.content)


def calculate_default_range(messages: Sequence[Message], recent_turns: int) -> CompressionRange:
    """Range covering everything before the most recent turns.

    A turn is a user message and everything up to the next user message.
    User messages holding nothing but tool results belong to the turn they
    answer and never start one. With fewer turns than ``recent_turns`` the
    last ``2 * recent_turns`` messages are kept instead.

    Args:
        messages (Sequence[Message]): The whole conversation.
        recent_turns (int): Turns to keep out of the range.

    Returns:
        CompressionRange: ``[0, end)``.
    """
    if recent_turns <= 0:
        return CompressionRange(start=0, end=len(messages))
    user_indices = [i for i, m in enumerate(messages) if _starts_turn(m)]
    if len(user_indices) >= recent_turns:
        end = user_indices[-recent_turns]
    else:
        end = max(0, len(messages) - 2 * recent_turns)
    return CompressionRange(start=0, end=end)


def estimate_compression_tokens(
    messages: Sequence[Message],
    target_ratio: float,
    token_counter: TokenCounter = estimate_tokens_heuristic,
) -> Tuple[int, int]:
    """Plan a compaction.

    Args:
        messages (Sequence[Message]): Messages that would be compacted.
        target_ratio (float): Desired summary/original ratio.
        token_counter (TokenCounter): Used for messages without a cached count.

    Returns:
        Tuple[int, int]: ``(input_tokens, expected_summary_tokens)``.
    """
    input_tokens = sum(m.tokens if m.tokens is not None else count_message_tokens(m, token_counter) for m in messages)
    return input_tokens, math.ceil(input_tokens * target_ratio)


def calculate_compression_savings(result: CompressionResult) -> Tuple[int, float]:
    """Tokens saved by a compaction and the saving as a percentage.

    Returns:
        Tuple[int, float]: ``(saved_tokens, percent)``. Negative values
            mean the summary was larger than its input.
    """
    saved = result.original_tokens - result.summary_tokens
    percent = saved / result.original_tokens * 100 if result.original_tokens > 0 else 0.0
    return saved, percent


class NonDestructiveCompressor:
    """Summarizes a range of the conversation into one linked summary."""

    def __init__(
        self,
        llm_client: Optional[SummarizationClient] = None,
        settings: Optional[CompressorSettings] = None,
        *,
        client_factory: Optional[ClientFactory] = None,
        token_counter: Optional[TokenCounter] = None,
        quality_client: Optional[QualityEvaluationClient] = None,
        stats_tracker: Optional[CompactionStatsTracker] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the compressor and resolve optional policies.

        Args:
            llm_client (Optional[SummarizationClient]): Single summarizer,
                used when no fallback chain is configured.
            settings (Optional[CompressorSettings]): Configuration.
            client_factory (Optional[ClientFactory]): Builds summarizers for
                ``settings.fallback_models``.
            token_counter (Optional[TokenCounter]): Counts tokens of text.
                Defaults to the ``ceil(chars / 4)`` heuristic.
            quality_client (Optional[QualityEvaluationClient]): Evaluation
                model for LLM quality validation.
            stats_tracker (Optional[CompactionStatsTracker]): Shared tracker.
                Built from ``settings.stats`` when omitted.
            log (Optional[logging.Logger]): Logger for compaction events.

        Raises:
            ValueError: If neither a client nor a fallback chain can be built.
        """
        self._settings = settings or CompressorSettings()
        self._log = log or logger
        self._count: TokenCounter = token_counter or estimate_tokens_heuristic

        self._fallback_chain: Optional[FallbackChain] = None
        if self._settings.fallback_models:
            if client_factory is None:
                raise ValueError("fallback_models requires a client_factory")
            self._fallback_chain = FallbackChain(self._settings.fallback_models, client_factory, log=self._log)
        elif llm_client is None:
            raise ValueError("NonDestructiveCompressor requires an llm_client or fallback_models")
        self._client = llm_client

        s = self._settings
        self._protection = SummaryProtectionFilter(s.protection) if s.protection else None
        self._growth = GrowthValidator(s.growth_validation) if s.growth_validation and s.growth_validation.enabled else None
        self._reasoning = ReasoningBlockHandler(s.reasoning) if s.reasoning else None
        self._quality = SummaryQualityValidator(s.quality, quality_client, self._count) if s.quality else None
        if stats_tracker is not None:
            self._stats: Optional[CompactionStatsTracker] = stats_tracker
        else:
            self._stats = CompactionStatsTracker(s.stats) if s.stats else None

    @property
    def settings(self) -> CompressorSettings:
        return self._settings

    @property
    def stats_tracker(self) -> Optional[CompactionStatsTracker]:
        return self._stats

    def calculate_default_range(self, messages: Sequence[Message]) -> CompressionRange:
        return calculate_default_range(messages, self._settings.recent_turns)

    def _message_tokens(self, message: Message) -> int:
        if message.tokens is not None:
            return message.tokens
        return count_message_tokens(message, self._count)

    def _build_prompt(self, candidates: Sequence[Message], original_tokens: int) -> str:
        s = self._settings
        # length guidance is the smaller of the hard cap and the ratio target
        max_tokens = s.max_summary_tokens
        expected = math.ceil(original_tokens * s.target_ratio)
        if expected > 0:
            max_tokens = min(max_tokens, expected) if max_tokens else expected
        prompt = build_summary_prompt(
            max_summary_tokens=max_tokens,
            preserve_tool_outputs=s.preserve_tool_outputs,
            custom_prompt=s.custom_prompt,
        )
        reasoning = extract_reasoning_content(candidates)
        if reasoning.summary_text:
            prompt = f"{prompt}\n\nCarry these conclusions into the summary:\n\n{reasoning.summary_text}"
        return prompt

    async def _summarize(self, candidates: Sequence[Message], original_tokens: int) -> Tuple[str, Optional[FallbackResult]]:
        prompt = self._build_prompt(candidates, original_tokens)
        if self._fallback_chain is not None:
            result = await self._fallback_chain.summarize(candidates, prompt)
            return result.summary, result

        try:
            text = await self._client.summarize(candidates, prompt)
        except CompactionError:
            raise
        except Exception as exc:
            raise CompactionError(
                f"Summarization failed: {exc}",
                CompactionErrorCode.SUMMARIZATION_FAILED,
                context={"message_count": len(candidates)},
                is_retryable=True,
            ) from exc
        return text, None

    def _create_summary_message(self, text: str, candidates: Sequence[Message], condense_id: str) -> Message:
        content = f"{SUMMARY_PREFIX}\n\n{text}"
        return Message(
            id=condense_id,
            role=MessageRole.ASSISTANT,
            content=content,
            priority=MessagePriority.ANCHOR,
            tokens=self._count(content),
            is_summary=True,
            condense_id=condense_id,
            metadata={
                "compressed_count": len(candidates),
                "compressed_range": {
                    "first_id": candidates[0].id,
                    "last_id": candidates[-1].id,
                },
            },
        )

    async def compress(
        self,
        messages: Sequence[Message],
        compression_range: Optional[CompressionRange] = None,
    ) -> CompressionResult:
        """Summarize a range of ``messages``.

        The input is never mutated. Linking the originals and storing them
        for recovery is left to the caller.

        Args:
            messages (Sequence[Message]): The whole conversation.
            compression_range (Optional[CompressionRange]): Range to
                compact. Defaults to everything before the most recent turns.

        Returns:
            CompressionResult: Summary message and measurements.

        Raises:
            InsufficientMessagesError: If fewer than
                ``min_messages_to_compress`` candidates remain.
            AllModelsFailedError: If every model of the fallback chain failed.
            CompactionError: If the single summarization client failed.
        """
        requested = compression_range if compression_range is not None else self.calculate_default_range(messages)
        effective = adjust_range_for_tool_pairs(messages, requested.start, requested.end)
        if effective != requested:
            self._log.debug(
                "Compaction range widened from [%d, %d) to [%d, %d) to keep tool pairs intact",
                requested.start,
                requested.end,
                effective.start,
                effective.end,
            )

        selected = list(messages[effective.start:effective.end])
        candidates = self._protection.filter_candidates(selected, messages) if self._protection else selected

        minimum = self._settings.min_messages_to_compress
        if len(candidates) < minimum:
            raise InsufficientMessagesError(required=minimum, actual=len(candidates))

        original_tokens = sum(self._message_tokens(m) for m in candidates)
        if self._stats is not None:
            is_cascade = self._stats.is_cascade_compaction(candidates)
        else:
            is_cascade = any(is_summary_message(m) or bool(m.condense_parent) for m in candidates)

        text, fallback_result = await self._summarize(candidates, original_tokens)

        condense_id = generate_condense_id()
        summary = self._create_summary_message(text, candidates, condense_id)
        summary_tokens = summary.tokens or 0
        ratio = summary_tokens / original_tokens if original_tokens > 0 else 0.0
        result = CompressionResult(
            summary=summary,
            compressed_message_ids=[m.id for m in candidates],
            original_tokens=original_tokens,
            summary_tokens=summary_tokens,
            ratio=ratio,
            condense_id=condense_id,
            is_cascade=is_cascade,
            model_used=fallback_result.model if fallback_result else None,
            fallback_result=fallback_result,
        )

        if self._growth is not None:
            result.growth_validation = self._growth.validate(original_tokens, summary_tokens)
            if not result.growth_validation.is_valid:
                result.warnings.append(result.growth_validation.message)

        if self._reasoning is not None:
            processed = self._reasoning.process_for_model(summary, self._settings.target_model)
            result.summary = processed.message
            result.reasoning_block_added = processed.was_added

        if self._quality is not None:
            result.quality_report = await self._quality.validate(candidates, text)
            if not result.quality_report.passed:
                self._log.warning(
                    "Summary %s failed quality validation: %s",
                    condense_id,
                    "; ".join(result.quality_report.warnings),
                )
                result.warnings.extend(result.quality_report.warnings)

        if self._stats is not None:
            self._stats.record(
                original_tokens=original_tokens,
                compressed_tokens=summary_tokens,
                message_count=len(candidates),
                is_cascade=is_cascade,
                quality_passed=result.quality_report.passed if result.quality_report else None,
            )
            self._stats.track_compacted_messages(result.compressed_message_ids, condense_id)

        self._log.info(
            "Compacted %d messages (%d -> %d tokens, ratio %.2f)%s",
            len(candidates),
            original_tokens,
            summary_tokens,
            ratio,
            " [cascade]" if is_cascade else "",
        )
        return result


def create_compressor(
    llm_client: Optional[SummarizationClient] = None,
    settings: Optional[CompressorSettings] = None,
    **kwargs,
) -> NonDestructiveCompressor:
    """Convenience constructor for :class:`NonDestructiveCompressor`."""
    return NonDestructiveCompressor(llm_client, settings, **kwargs)
