# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Tool-block repair.

Conversations reach this module after truncation, pruning or provider
round-trips that may have broken tool pairing:

  - a tool_result placed before its tool_use (wrong order)
  - a tool_use whose result was dropped (orphaned use)
  - a tool_result whose invocation was dropped (orphaned result)

``repair_tool_blocks`` fixes what it can and reports the rest. It never
raises: defects are returned as data (``repairs`` and ``warnings``).
The input list and its messages are never mutated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

from agent_context.compaction.pairing import analyze_tool_pairs
from agent_context.models import Message, generate_message_id
from agent_context.prompts.base import PLACEHOLDER_TOOL_NAME, PLACEHOLDER_TOOL_USE_TEXT
from agent_context.schemas.messages import MessagePriority, MessageRole, TextBlock, ToolUseBlock

logger = logging.getLogger(__name__)

RepairActionType = Literal["reorder", "remove_orphan_use", "remove_orphan_result", "add_placeholder"]
ValidationErrorType = Literal["wrong_order", "orphan_use", "orphan_result"]


@dataclass(frozen=True)
class RepairOptions:
    """Repair behaviour switches.

    Attributes:
        remove_orphaned_uses (bool): Delete messages holding an orphaned
            tool_use instead of only warning about them.
        add_placeholder_uses (bool): Insert a synthetic tool_use before an
            orphaned tool_result instead of only warning about it.
        verbose (bool): Log every repair action at INFO instead of DEBUG.
    """

    remove_orphaned_uses: bool = False
    add_placeholder_uses: bool = True
    verbose: bool = False


@dataclass(frozen=True)
class RepairAction:
    """A single structural edit made by the repair pass.

    Attributes:
        type (RepairActionType): Kind of edit.
        tool_id (str): Tool id the edit concerns.
        message_index (int): Index of the affected message before the edit.
        description (str): Human-readable summary.
        target_index (Optional[int]): For ``reorder``, the index of the
            tool_use message the result was moved behind.
    """

    type: RepairActionType
    tool_id: str
    message_index: int
    description: str
    target_index: Optional[int] = None


@dataclass
class RepairResult:
    """Result of a repair pass.

    Attributes:
        messages (List[Message]): Repaired message list.
        repaired (bool): Whether any repair action was applied.
        repairs (List[RepairAction]): Actions in application order.
        warnings (List[str]): Defects that were reported but not fixed.
    """

    messages: List[Message]
    repaired: bool = False
    repairs: List[RepairAction] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationError:
    """A pairing defect found by :func:`validate_tool_block_pairing`.

    Attributes:
        type (ValidationErrorType): Kind of defect.
        tool_id (str): Affected tool id.
        message_index (int): Index of the message holding the defect.
        description (str): Human-readable summary.
    """

    type: ValidationErrorType
    tool_id: str
    message_index: int
    description: str


@dataclass(frozen=True)
class ToolBlockHealthSummary:
    """Aggregate pairing health of a conversation.

    Attributes:
        total_pairs (int): ``complete_pairs + orphaned_uses + orphaned_results``.
        complete_pairs (int): Matched pairs.
        orphaned_uses (int): Invocations without a result.
        orphaned_results (int): Results without an invocation.
        order_issues (int): Matched pairs whose result precedes the use.
    """

    total_pairs: int
    complete_pairs: int
    orphaned_uses: int
    orphaned_results: int
    order_issues: int

    @property
    def is_healthy(self) -> bool:
        return not (self.orphaned_uses or self.orphaned_results or self.order_issues)


def create_placeholder_tool_use(tool_id: str, tool_name: str = PLACEHOLDER_TOOL_NAME) -> Message:
    """Build the assistant message inserted before an orphaned tool_result.

    Args:
        tool_id (str): Id of the orphaned result, reused for the synthetic use.
        tool_name (str): Tool name recorded in the synthetic use.

    Returns:
        Message: Assistant message with a marker text block and a tool_use
            block with empty input.
    """
    return Message(
        id=f"placeholder-{generate_message_id()}",
        role=MessageRole.ASSISTANT,
        content=[
            TextBlock(text=PLACEHOLDER_TOOL_USE_TEXT),
            ToolUseBlock(id=tool_id, name=tool_name, input={}),
        ],
        priority=MessagePriority.TOOL_PAIR,
    )


def reorder_tool_result(messages: Sequence[Message], result_index: int, use_index: int) -> List[Message]:
    """Move the message at ``result_index`` directly after ``use_index``.

    The relative order of all other messages is preserved. Out-of-range
    or identical indices return an unchanged copy.

    Args:
        messages (Sequence[Message]): Conversation to reorder.
        result_index (int): Index of the tool_result message to move.
        use_index (int): Index of the tool_use message it belongs after.

    Returns:
        List[Message]: New list with the result message relocated.
    """
    n = len(messages)
    if not (0 <= result_index < n and 0 <= use_index < n) or result_index == use_index:
        return list(messages)

    working = list(messages)
    result_msg = working.pop(result_index)
    if result_index < use_index:
        use_index -= 1
    working.insert(use_index + 1, result_msg)
    return working


def _log_action(log: logging.Logger, verbose: bool, msg: str, *args: object) -> None:
    log.log(logging.INFO if verbose else logging.DEBUG, msg, *args)


def repair_tool_blocks(
    messages: Sequence[Message],
    options: Optional[RepairOptions] = None,
    log: Optional[logging.Logger] = None,
) -> RepairResult:
    """Restore tool pairing where possible.

    Three phases run on a working copy, re-analysing after every edit:

      1. Misordered pairs: the result message is moved directly after its
         use message.
      2. Orphaned uses: the message is deleted when
         ``remove_orphaned_uses`` is set, otherwise a warning is recorded.
      3. Orphaned results: a placeholder tool_use is inserted directly
         before the result when ``add_placeholder_uses`` is set, otherwise a
         warning is recorded.

    Args:
        messages (Sequence[Message]): Conversation to repair.
        options (Optional[RepairOptions]): Behaviour switches. Defaults to
            ``RepairOptions()``.
        log (Optional[logging.Logger]): Logger receiving repair actions.
            Defaults to this module's logger.

    Returns:
        RepairResult: Repaired messages, applied actions and warnings.
    """
    opts = options or RepairOptions()
    log = log or logger
    working: List[Message] = list(messages)
    result = RepairResult(messages=working)

    if not working:
        return result

    # Phase 1: reorder. Each move can disturb another pair sharing the moved
    # message, so the pass is bounded.
    max_moves = len(working) * 2
    for _ in range(max_moves):
        analysis = analyze_tool_pairs(working)
        misordered = next((p for p in analysis.pairs if not p.is_ordered), None)
        if misordered is None:
            break
        working = reorder_tool_result(working, misordered.result_message_index, misordered.use_message_index)
        action = RepairAction(
            type="reorder",
            tool_id=misordered.tool_id,
            message_index=misordered.result_message_index,
            target_index=misordered.use_message_index,
            description=(
                f"Moved tool_result ({misordered.tool_id}) from index "
                f"{misordered.result_message_index} to follow tool_use at index "
                f"{misordered.use_message_index}"
            ),
        )
        result.repairs.append(action)
        _log_action(log, opts.verbose, "Tool repair: %s", action.description)
    else:
        remaining = [p.tool_id for p in analyze_tool_pairs(working).pairs if not p.is_ordered]
        if remaining:
            warning = f"Could not resolve tool_result ordering for: {', '.join(remaining)}"
            result.warnings.append(warning)
            log.warning("Tool repair: %s", warning)

    # Phase 2: orphaned uses.
    if opts.remove_orphaned_uses:
        while True:
            analysis = analyze_tool_pairs(working)
            if not analysis.orphaned_uses:
                break
            orphan = analysis.orphaned_uses[0]
            del working[orphan.message_index]
            action = RepairAction(
                type="remove_orphan_use",
                tool_id=orphan.tool_id,
                message_index=orphan.message_index,
                description=f"Removed message at index {orphan.message_index} with orphaned tool_use ({orphan.tool_id})",
            )
            result.repairs.append(action)
            _log_action(log, opts.verbose, "Tool repair: %s", action.description)
    else:
        for orphan in analyze_tool_pairs(working).orphaned_uses:
            warning = f"Orphaned tool_use ({orphan.tool_id}) at index {orphan.message_index} has no matching result"
            result.warnings.append(warning)
            _log_action(log, opts.verbose, "Tool repair: %s", warning)

    # Phase 3: orphaned results.
    if opts.add_placeholder_uses:
        while True:
            analysis = analyze_tool_pairs(working)
            if not analysis.orphaned_results:
                break
            orphan = analysis.orphaned_results[0]
            working.insert(orphan.message_index, create_placeholder_tool_use(orphan.tool_id))
            action = RepairAction(
                type="add_placeholder",
                tool_id=orphan.tool_id,
                message_index=orphan.message_index,
                description=f"Inserted placeholder tool_use ({orphan.tool_id}) before index {orphan.message_index}",
            )
            result.repairs.append(action)
            _log_action(log, opts.verbose, "Tool repair: %s", action.description)
    else:
        for orphan in analyze_tool_pairs(working).orphaned_results:
            warning = f"Orphaned tool_result ({orphan.tool_id}) at index {orphan.message_index} has no matching use"
            result.warnings.append(warning)
            _log_action(log, opts.verbose, "Tool repair: %s", warning)

    result.messages = working
    result.repaired = bool(result.repairs)
    if result.repaired:
        log.info(
            "Tool repair applied %d action(s), %d warning(s)",
            len(result.repairs),
            len(result.warnings),
        )
    return result


def validate_tool_block_pairing(messages: Sequence[Message]) -> List[ValidationError]:
    """List pairing defects without changing anything.

    Args:
        messages (Sequence[Message]): Conversation to validate.

    Returns:
        List[ValidationError]: Wrong-order pairs, orphaned uses and
            orphaned results, in that order.
    """
    analysis = analyze_tool_pairs(messages)
    errors: List[ValidationError] = []

    for pair in analysis.pairs:
        if not pair.is_ordered:
            errors.append(
                ValidationError(
                    type="wrong_order",
                    tool_id=pair.tool_id,
                    message_index=pair.result_message_index,
                    description=(
                        f"tool_result ({pair.tool_id}) at index {pair.result_message_index} "
                        f"precedes its tool_use at index {pair.use_message_index}"
                    ),
                )
            )
    for orphan in analysis.orphaned_uses:
        errors.append(
            ValidationError(
                type="orphan_use",
                tool_id=orphan.tool_id,
                message_index=orphan.message_index,
                description=f"tool_use ({orphan.tool_id}) at index {orphan.message_index} has no matching result",
            )
        )
    for orphan in analysis.orphaned_results:
        errors.append(
            ValidationError(
                type="orphan_result",
                tool_id=orphan.tool_id,
                message_index=orphan.message_index,
                description=f"tool_result ({orphan.tool_id}) at index {orphan.message_index} has no matching use",
            )
        )
    return errors


def has_tool_block_issues(messages: Sequence[Message]) -> bool:
    """Whether :func:`validate_tool_block_pairing` reports any defect."""
    return bool(validate_tool_block_pairing(messages))


def get_tool_block_health_summary(messages: Sequence[Message]) -> ToolBlockHealthSummary:
    """Count pairs, orphans and ordering problems."""
    analysis = analyze_tool_pairs(messages)
    complete = len(analysis.pairs)
    uses = len(analysis.orphaned_uses)
    results = len(analysis.orphaned_results)
    return ToolBlockHealthSummary(
        total_pairs=complete + uses + results,
        complete_pairs=complete,
        orphaned_uses=uses,
        orphaned_results=results,
        order_issues=sum(1 for p in analysis.pairs if not p.is_ordered),
    )
