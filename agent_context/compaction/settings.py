# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Compaction settings.

``CompressorSettings`` is the single configuration object of the
compressor. Optional policies are sub-configs that are either present
(enabled with the given values) or ``None`` (disabled). The compressor
resolves them once at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

from agent_context.config import settings as _env
from agent_context.prompts.base import DEFAULT_THINKING_PREFIX

ProtectionStrategy = Literal["all", "recent", "weighted"]


@dataclass(frozen=True)
class FallbackModelConfig:
    """One entry of the summarization fallback chain.

    Attributes:
        model (str): Model identifier passed to the client factory.
        timeout_ms (int): Upper bound for a single attempt.
        max_retries (int): Attempts made on this model before falling back.
        retry_delay_ms (int): Base delay between attempts on this model,
            doubled on each subsequent retry.
    """

    model: str
    timeout_ms: int = _env.SUMMARY_MODEL_TIMEOUT_MS
    max_retries: int = 1
    retry_delay_ms: int = _env.SUMMARY_RETRY_DELAY_MS


@dataclass(frozen=True)
class GrowthValidationConfig:
    """Advisory check that a summary is smaller than its input.

    Attributes:
        enabled (bool): Whether the check runs.
        max_ratio (float): A summary is valid when
            ``summary_tokens < original_tokens * max_ratio``.
    """

    enabled: bool = True
    max_ratio: float = 1.0


@dataclass(frozen=True)
class SummaryProtectionConfig:
    """Cascade containment for existing summaries.

    Attributes:
        enabled (bool): Whether protection is applied at all.
        max_protected_summaries (int): How many summaries stay protected
            under the ``recent`` and ``weighted`` strategies.
        strategy (ProtectionStrategy): ``all`` protects every summary,
            ``recent`` the newest by creation time, ``weighted`` the highest
            scoring by size, fold count and position.
    """

    enabled: bool = True
    max_protected_summaries: int = _env.MAX_PROTECTED_SUMMARIES
    strategy: ProtectionStrategy = "recent"


@dataclass(frozen=True)
class ReasoningBlockConfig:
    """Synthetic reasoning block for models that require one.

    Attributes:
        thinking_prefix (str): First line inside the ``<thinking>`` block.
        include_timestamp (bool): Append a generation timestamp line.
    """

    thinking_prefix: str = DEFAULT_THINKING_PREFIX
    include_timestamp: bool = False


@dataclass(frozen=True)
class SummaryQualityConfig:
    """Summary quality thresholds.

    Attributes:
        enable_rule_validation (bool): Run term-retention checks.
        enable_llm_validation (bool): Ask an evaluation model for scores.
        min_tech_term_retention (float): Minimum share of technical terms
            from the original that must appear in the summary.
        min_code_ref_retention (float): Minimum share of code references
            (function/class names, inline code) that must be retained.
        max_compression_ratio (float): Warn when original/summary exceeds
            this ratio.
    """

    enable_rule_validation: bool = True
    enable_llm_validation: bool = False
    min_tech_term_retention: float = 0.8
    min_code_ref_retention: float = 0.9
    max_compression_ratio: float = 10.0


@dataclass(frozen=True)
class CompactionStatsConfig:
    """Compaction statistics tracking.

    Attributes:
        enabled (bool): Whether records are kept.
        persist (bool): Save to and load from ``stats_file_path``.
        max_history_entries (int): History entries kept, oldest dropped first.
        stats_file_path (Optional[str]): JSON file used when ``persist`` is set.
    """

    enabled: bool = True
    persist: bool = False
    max_history_entries: int = 100
    stats_file_path: Optional[str] = _env.COMPACTION_STATS_FILE or None


@dataclass
class CompressorSettings:
    """All compressor configuration in one place.

    Attributes:
        min_messages_to_compress (int): Minimum candidates required.
        recent_turns (int): Turns excluded from the default range.
        target_ratio (float): Desired summary/original ratio. The summary
            length requested from the summarizer is the smaller of
            ``original_tokens * target_ratio`` and ``max_summary_tokens``.
        max_summary_tokens (int): Upper bound requested from the summarizer.
        preserve_tool_outputs (bool): Ask the summarizer to keep tool
            outputs verbatim where practical.
        custom_prompt (Optional[str]): Replaces the six-section prompt.
        target_model (Optional[str]): Model that will consume the summary.
            Drives reasoning block injection.
        fallback_models (Optional[List[FallbackModelConfig]]): Ordered
            summarization models. Requires a client factory.
        growth_validation (Optional[GrowthValidationConfig]): ``None``
            disables the growth check.
        protection (Optional[SummaryProtectionConfig]): ``None`` disables
            summary protection.
        reasoning (Optional[ReasoningBlockConfig]): ``None`` disables
            reasoning block injection.
        quality (Optional[SummaryQualityConfig]): ``None`` disables quality
            validation.
        stats (Optional[CompactionStatsConfig]): ``None`` disables stats
            tracking.
    """

    min_messages_to_compress: int = _env.MIN_MESSAGES_TO_COMPRESS
    recent_turns: int = _env.RECENT_TURNS
    target_ratio: float = _env.TARGET_RATIO
    max_summary_tokens: int = _env.MAX_SUMMARY_TOKENS
    preserve_tool_outputs: bool = False
    custom_prompt: Optional[str] = None
    target_model: Optional[str] = None
    fallback_models: Optional[List[FallbackModelConfig]] = None
    growth_validation: Optional[GrowthValidationConfig] = field(default_factory=GrowthValidationConfig)
    protection: Optional[SummaryProtectionConfig] = field(default_factory=SummaryProtectionConfig)
    reasoning: Optional[ReasoningBlockConfig] = None
    quality: Optional[SummaryQualityConfig] = None
    stats: Optional[CompactionStatsConfig] = None
