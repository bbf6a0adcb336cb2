# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Tool-pairing analysis and pair-preserving range adjustment.

Every ``tool_use`` block (assistant) must be answered by exactly one
``tool_result`` block (later message) with the same id. Providers reject
conversations in which a result has no invocation, or an invocation has
no result. This module finds the pairs and orphans of a message list, and
widens compaction ranges so that a boundary never separates a pair.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple, Union

from agent_context.models import CompressionRange, Message
from agent_context.schemas.messages import ContentBlock, ToolResultBlock, ToolUseBlock


@dataclass(frozen=True)
class ToolPair:
    """A tool invocation and its result.

    Attributes:
        tool_id (str): Shared identifier.
        tool_name (str): Name of the invoked tool.
        use_message_index (int): Index of the message with the tool_use.
        use_block_index (int): Block index inside that message.
        result_message_index (int): Index of the message with the tool_result.
        result_block_index (int): Block index inside that message.
    """

    tool_id: str
    tool_name: str
    use_message_index: int
    use_block_index: int
    result_message_index: int
    result_block_index: int

    @property
    def is_ordered(self) -> bool:
        """Whether the result message is not earlier than the invocation message.

        Block order inside a single message is not an ordering defect.
        """
        return self.result_message_index >= self.use_message_index

    @property
    def span(self) -> Tuple[int, int]:
        """Lowest and highest message index touched by the pair."""
        return (
            min(self.use_message_index, self.result_message_index),
            max(self.use_message_index, self.result_message_index),
        )


@dataclass(frozen=True)
class OrphanedBlock:
    """A tool_use without result, or a tool_result without invocation.

    Attributes:
        tool_id (str): Identifier of the unmatched block.
        message_index (int): Index of the message holding the block.
        block_index (int): Block index inside that message.
    """

    tool_id: str
    message_index: int
    block_index: int


@dataclass
class ToolPairAnalysis:
    """Pairs and orphans of a message list.

    Attributes:
        pairs (List[ToolPair]): Matched pairs, ordered by first invocation.
        orphaned_uses (List[OrphanedBlock]): Invocations without a result.
        orphaned_results (List[OrphanedBlock]): Results without an invocation.
        paired_message_indices (Set[int]): Indices of messages taking part
            in at least one matched pair.
    """

    pairs: List[ToolPair] = field(default_factory=list)
    orphaned_uses: List[OrphanedBlock] = field(default_factory=list)
    orphaned_results: List[OrphanedBlock] = field(default_factory=list)
    paired_message_indices: Set[int] = field(default_factory=set)

    @property
    def has_orphans(self) -> bool:
        return bool(self.orphaned_uses or self.orphaned_results)


def _blocks(content: Union[str, Sequence[ContentBlock]]) -> Sequence[ContentBlock]:
    if isinstance(content, str):
        return ()
    return content


def extract_tool_use_blocks(message: Message) -> List[ToolUseBlock]:
    """Return the tool_use blocks of a message (empty for string content)."""
    return [b for b in _blocks(message.content) if isinstance(b, ToolUseBlock)]


def extract_tool_result_blocks(message: Message) -> List[ToolResultBlock]:
    """Return the tool_result blocks of a message (empty for string content)."""
    return [b for b in _blocks(message.content) if isinstance(b, ToolResultBlock)]


def has_tool_blocks(content: Union[str, Sequence[ContentBlock]]) -> bool:
    """Whether the content holds any tool_use or tool_result block."""
    return any(isinstance(b, (ToolUseBlock, ToolResultBlock)) for b in _blocks(content))


def analyze_tool_pairs(messages: Sequence[Message]) -> ToolPairAnalysis:
    """Find matched tool pairs and orphaned tool blocks.

    A single pass records, per tool id, the first tool_use location and the
    first tool_result location. Ids seen in both become pairs, the rest are
    orphans. Later duplicates of an id are ignored.

    Args:
        messages (Sequence[Message]): Conversation to analyse.

    Returns:
        ToolPairAnalysis: Pairs ordered by first invocation, and orphans
            ordered by position.
    """
    uses: Dict[str, Tuple[int, int, str]] = {}
    results: Dict[str, Tuple[int, int]] = {}

    for msg_idx, msg in enumerate(messages):
        for block_idx, block in enumerate(_blocks(msg.content)):
            if isinstance(block, ToolUseBlock):
                uses.setdefault(block.id, (msg_idx, block_idx, block.name))
            elif isinstance(block, ToolResultBlock):
                results.setdefault(block.tool_use_id, (msg_idx, block_idx))

    analysis = ToolPairAnalysis()
    for tool_id, (use_msg, use_block, name) in uses.items():
        if tool_id in results:
            result_msg, result_block = results[tool_id]
            analysis.pairs.append(
                ToolPair(
                    tool_id=tool_id,
                    tool_name=name,
                    use_message_index=use_msg,
                    use_block_index=use_block,
                    result_message_index=result_msg,
                    result_block_index=result_block,
                )
            )
            analysis.paired_message_indices.update((use_msg, result_msg))
        else:
            analysis.orphaned_uses.append(
                OrphanedBlock(tool_id=tool_id, message_index=use_msg, block_index=use_block)
            )

    for tool_id, (result_msg, result_block) in results.items():
        if tool_id not in uses:
            analysis.orphaned_results.append(
                OrphanedBlock(tool_id=tool_id, message_index=result_msg, block_index=result_block)
            )

    analysis.orphaned_results.sort(key=lambda o: (o.message_index, o.block_index))
    return analysis


def are_in_same_tool_pair(analysis: ToolPairAnalysis, index_a: int, index_b: int) -> bool:
    """Whether two message indices are the two halves of one pair."""
    for pair in analysis.pairs:
        ends = {pair.use_message_index, pair.result_message_index}
        if index_a in ends and index_b in ends:
            return True
    return False


def get_linked_indices(analysis: ToolPairAnalysis, index: int) -> List[int]:
    """Message indices paired with ``index``, including itself, sorted.

    Args:
        analysis (ToolPairAnalysis): Result of :func:`analyze_tool_pairs`.
        index (int): Message index to look up.

    Returns:
        List[int]: Sorted indices that must move together with ``index``.
    """
    linked = {index}
    for pair in analysis.pairs:
        if index in (pair.use_message_index, pair.result_message_index):
            linked.update((pair.use_message_index, pair.result_message_index))
    return sorted(linked)


def adjust_range_for_tool_pairs(
    messages: Sequence[Message],
    start: int,
    end: int,
) -> CompressionRange:
    """Widen ``[start, end)`` so that no tool pair straddles a boundary.

    A pair spanning message indices ``lo..hi`` straddles ``start`` when
    ``lo < start <= hi`` and ``end`` when ``lo < end <= hi``. The start is
    moved down to ``lo``, the end up to ``hi + 1``. Widening can expose
    another straddling pair, so the adjustment repeats until stable.

    Args:
        messages (Sequence[Message]): Conversation the range applies to.
        start (int): Requested first index (inclusive).
        end (int): Requested last index (exclusive).

    Returns:
        CompressionRange: The adjusted range, clamped to the list bounds.
    """
    n = len(messages)
    start = max(0, min(start, n))
    end = max(start, min(end, n))

    analysis = analyze_tool_pairs(messages)
    spans = [pair.span for pair in analysis.pairs if pair.span[0] != pair.span[1]]

    changed = True
    while changed:
        changed = False
        for lo, hi in spans:
            if lo < start <= hi:
                start = lo
                changed = True
            if lo < end <= hi:
                end = hi + 1
                changed = True

    return CompressionRange(start=start, end=end)
