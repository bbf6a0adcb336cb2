# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Condensed-message store and compaction recovery.

After a compaction the caller:

    result = await compressor.compress(messages)
    store.store(result.condense_id, originals, result)
    messages = link_compressed_messages(messages, result)
    messages.insert(position, result.summary)

``get_effective_api_history`` then hides the linked originals, and
``recover_condensed`` swaps the summary back for the originals. The store
is in-memory and session-scoped; recovery consumes its entry.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from agent_context.compaction.compressor import (
    CompressionResult,
    calculate_compression_savings,
    estimate_compression_tokens,
)
from agent_context.compaction.stats import CompactionStatsTracker
from agent_context.models import Message, is_summary_message

logger = logging.getLogger(__name__)

__all__ = [
    "CondensedMessageEntry",
    "CondensedMessageStore",
    "RecoveryResult",
    "calculate_compression_savings",
    "estimate_compression_tokens",
    "get_compressed_messages",
    "get_effective_api_history",
    "is_summary_message",
    "link_compressed_messages",
    "recover_condensed",
]


@dataclass
class CondensedMessageEntry:
    """Originals of one compaction.

    Attributes:
        condense_id (str): Compaction identifier.
        original_messages (List[Message]): Messages as they were before
            linking, in conversation order.
        compression_result (CompressionResult): The compaction outcome.
        compressed_at (float): Epoch seconds of storage.
    """

    condense_id: str
    original_messages: List[Message]
    compression_result: CompressionResult
    compressed_at: float = field(default_factory=time.time)


@dataclass
class RecoveryResult:
    """Outcome of a successful recovery.

    Attributes:
        success (bool): Always ``True``; a failed lookup returns ``None``.
        condense_id (str): Compaction that was undone.
        messages (List[Message]): Conversation with the originals restored.
        restored_messages (List[Message]): The restored originals.
    """

    success: bool
    condense_id: str
    messages: List[Message]
    restored_messages: List[Message]


class CondensedMessageStore:
    """In-memory map from ``condense_id`` to the compacted originals."""

    def __init__(self) -> None:
        self._entries: Dict[str, CondensedMessageEntry] = {}

    def store(
        self,
        condense_id: str,
        original_messages: Sequence[Message],
        result: CompressionResult,
    ) -> CondensedMessageEntry:
        """Keep the originals of a compaction. Replaces an existing entry."""
        entry = CondensedMessageEntry(
            condense_id=condense_id,
            original_messages=list(original_messages),
            compression_result=result,
        )
        self._entries[condense_id] = entry
        logger.debug("Stored %d condensed message(s) for %s", len(entry.original_messages), condense_id)
        return entry

    def get(self, condense_id: str) -> Optional[CondensedMessageEntry]:
        return self._entries.get(condense_id)

    def has(self, condense_id: str) -> bool:
        return condense_id in self._entries

    def delete(self, condense_id: str) -> bool:
        """Remove an entry. Returns whether it existed."""
        return self._entries.pop(condense_id, None) is not None

    def keys(self) -> List[str]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, condense_id: object) -> bool:
        return condense_id in self._entries


def link_compressed_messages(messages: Sequence[Message], result: CompressionResult) -> List[Message]:
    """Point the compacted messages at their summary.

    Args:
        messages (Sequence[Message]): The conversation.
        result (CompressionResult): Compaction whose messages to link.

    Returns:
        List[Message]: New list in which every message listed in
            ``result.compressed_message_ids`` has ``condense_parent`` set to
            ``result.condense_id``. Other messages are passed through.
    """
    ids = set(result.compressed_message_ids)
    return [
        m.model_copy(update={"condense_parent": result.condense_id}) if m.id in ids else m
        for m in messages
    ]


def get_effective_api_history(messages: Sequence[Message]) -> List[Message]:
    """The view sent to the model.

    Messages whose ``condense_parent`` names a summary present in the list
    are hidden. Originals whose summary is gone stay visible.
    """
    summary_ids = {m.condense_id for m in messages if m.is_summary and m.condense_id}
    return [m for m in messages if not (m.condense_parent and m.condense_parent in summary_ids)]


def get_compressed_messages(messages: Sequence[Message], condense_id: str) -> List[Message]:
    """Messages linked to ``condense_id``, in conversation order."""
    return [m for m in messages if m.condense_parent == condense_id]


def _find_summary_index(messages: Sequence[Message], condense_id: str) -> Optional[int]:
    for i, m in enumerate(messages):
        if is_summary_message(m) and (m.condense_id == condense_id or m.id == condense_id):
            return i
    return None


def recover_condensed(
    messages: Sequence[Message],
    condense_id: str,
    store: CondensedMessageStore,
    stats: Optional[CompactionStatsTracker] = None,
) -> Optional[RecoveryResult]:
    """Undo a compaction.

    The stored originals, with ``condense_parent`` cleared, take the place
    of the summary (or are appended when the summary is gone). Linked
    copies of the same originals still in the list are dropped, and any
    other message pointing at ``condense_id`` has its link cleared. The
    store entry is consumed.

    Args:
        messages (Sequence[Message]): The conversation.
        condense_id (str): Compaction to undo.
        store (CondensedMessageStore): Store holding the originals.
        stats (Optional[CompactionStatsTracker]): Tracker whose compacted ids
            for ``condense_id`` are released, so the restored messages no
            longer count as a cascade.

    Returns:
        Optional[RecoveryResult]: ``None`` when the store has no entry for
            ``condense_id``.
    """
    entry = store.get(condense_id)
    if entry is None:
        logger.debug("No condensed messages stored for %s", condense_id)
        return None

    restored = [
        m.model_copy(update={"condense_parent": None}) if m.condense_parent == condense_id else m
        for m in entry.original_messages
    ]
    restored_ids = {m.id for m in restored}
    summary_index = _find_summary_index(messages, condense_id)

    rebuilt: List[Message] = []
    for i, m in enumerate(messages):
        if i == summary_index:
            rebuilt.extend(restored)
            continue
        if m.id in restored_ids:
            continue
        if m.condense_parent == condense_id:
            m = m.model_copy(update={"condense_parent": None})
        rebuilt.append(m)
    if summary_index is None:
        rebuilt.extend(restored)

    store.delete(condense_id)
    if stats is not None:
        stats.untrack_compaction(condense_id)
    logger.info("Recovered %d message(s) from %s", len(restored), condense_id)
    return RecoveryResult(
        success=True,
        condense_id=condense_id,
        messages=rebuilt,
        restored_messages=restored,
    )
