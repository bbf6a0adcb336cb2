# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Context compaction module.

Keeps a growing conversation within its token budget without losing
structure or information:

  Tool pairing  (pairing.py, repair.py)
      Find tool_use/tool_result pairs and orphans, repair broken pairing,
      and widen compaction ranges so a pair is never split.

  Compaction  (compressor.py, summarizer.py)
      Summarize a range into one linked summary message. Summaries come
      from a single client or an ordered fallback chain of models.

  Policies  (protection.py, growth.py, reasoning.py, quality.py, stats.py)
      Keep recent summaries out of re-compaction, flag summaries that do
      not shrink the context, attach reasoning for models that need it,
      measure summary quality and record compaction history.

  Recovery  (condensed.py)
      Store the originals of a compaction, hide them from the effective
      history, and restore them on demand.

  Token counting  (tokens.py)
      tiktoken-based estimation and an LRU + TTL token-count cache.

Usage:

    compressor = NonDestructiveCompressor(ChatModelSummarizer(llm))
    result = await compressor.compress(messages)

    store.store(result.condense_id, originals, result)
    messages = link_compressed_messages(messages, result)
    messages.insert(position, result.summary)
    history = get_effective_api_history(messages)

    recovery = recover_condensed(messages, result.condense_id, store)
"""

from agent_context.compaction.compressor import (
    CompressionResult,
    NonDestructiveCompressor,
    calculate_compression_savings,
    calculate_default_range,
    create_compressor,
    estimate_compression_tokens,
    generate_condense_id,
)
from agent_context.compaction.condensed import (
    CondensedMessageEntry,
    CondensedMessageStore,
    RecoveryResult,
    get_compressed_messages,
    get_effective_api_history,
    link_compressed_messages,
    recover_condensed,
)
from agent_context.compaction.errors import (
    AllModelsFailedError,
    CompactionError,
    CompactionErrorCode,
    InsufficientMessagesError,
)
from agent_context.compaction.growth import GrowthValidationResult, GrowthValidator
from agent_context.compaction.pairing import (
    OrphanedBlock,
    ToolPair,
    ToolPairAnalysis,
    adjust_range_for_tool_pairs,
    analyze_tool_pairs,
    are_in_same_tool_pair,
    extract_tool_result_blocks,
    extract_tool_use_blocks,
    get_linked_indices,
    has_tool_blocks,
)
from agent_context.compaction.protection import ProtectionStats, SummaryProtectionFilter
from agent_context.compaction.quality import (
    ChatModelEvaluator,
    SummaryQualityReport,
    SummaryQualityValidator,
    extract_technical_terms,
)
from agent_context.compaction.reasoning import (
    ReasoningBlockHandler,
    ReasoningBlockResult,
    extract_reasoning_content,
    requires_reasoning_block,
)
from agent_context.compaction.repair import (
    RepairAction,
    RepairOptions,
    RepairResult,
    ToolBlockHealthSummary,
    ValidationError,
    create_placeholder_tool_use,
    get_tool_block_health_summary,
    has_tool_block_issues,
    reorder_tool_result,
    repair_tool_blocks,
    validate_tool_block_pairing,
)
from agent_context.compaction.settings import (
    CompactionStatsConfig,
    CompressorSettings,
    FallbackModelConfig,
    GrowthValidationConfig,
    ReasoningBlockConfig,
    SummaryProtectionConfig,
    SummaryQualityConfig,
)
from agent_context.compaction.stats import CompactionRecord, CompactionStats, CompactionStatsTracker
from agent_context.compaction.summarizer import (
    AttemptRecord,
    ChatModelSummarizer,
    FallbackChain,
    FallbackResult,
    create_fallback_chain,
    messages_to_text,
)
from agent_context.compaction.tokens import (
    TokenCacheStats,
    TokenCountCache,
    count_message_tokens,
    estimate_tokens,
    estimate_tokens_heuristic,
)
from agent_context.models import is_summary_message

__all__ = [
    "CompressorSettings",
    "FallbackModelConfig",
    "GrowthValidationConfig",
    "SummaryProtectionConfig",
    "ReasoningBlockConfig",
    "SummaryQualityConfig",
    "CompactionStatsConfig",
    "CompactionError",
    "CompactionErrorCode",
    "InsufficientMessagesError",
    "AllModelsFailedError",
    "estimate_tokens",
    "estimate_tokens_heuristic",
    "count_message_tokens",
    "TokenCountCache",
    "TokenCacheStats",
    "ToolPair",
    "OrphanedBlock",
    "ToolPairAnalysis",
    "analyze_tool_pairs",
    "extract_tool_use_blocks",
    "extract_tool_result_blocks",
    "has_tool_blocks",
    "are_in_same_tool_pair",
    "get_linked_indices",
    "adjust_range_for_tool_pairs",
    "RepairOptions",
    "RepairAction",
    "RepairResult",
    "ValidationError",
    "ToolBlockHealthSummary",
    "repair_tool_blocks",
    "validate_tool_block_pairing",
    "has_tool_block_issues",
    "get_tool_block_health_summary",
    "reorder_tool_result",
    "create_placeholder_tool_use",
    "messages_to_text",
    "ChatModelSummarizer",
    "AttemptRecord",
    "FallbackResult",
    "FallbackChain",
    "create_fallback_chain",
    "SummaryProtectionFilter",
    "ProtectionStats",
    "GrowthValidator",
    "GrowthValidationResult",
    "ReasoningBlockHandler",
    "ReasoningBlockResult",
    "requires_reasoning_block",
    "extract_reasoning_content",
    "SummaryQualityValidator",
    "SummaryQualityReport",
    "ChatModelEvaluator",
    "extract_technical_terms",
    "CompactionStatsTracker",
    "CompactionStats",
    "CompactionRecord",
    "NonDestructiveCompressor",
    "CompressionResult",
    "create_compressor",
    "calculate_default_range",
    "generate_condense_id",
    "estimate_compression_tokens",
    "calculate_compression_savings",
    "CondensedMessageStore",
    "CondensedMessageEntry",
    "RecoveryResult",
    "link_compressed_messages",
    "get_effective_api_history",
    "get_compressed_messages",
    "recover_condensed",
    "is_summary_message",
]
