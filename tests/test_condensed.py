# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the condensed-message store, effective history and recovery."""

from typing import List, Tuple

import pytest
from agent_context.compaction.compressor import CompressionResult, NonDestructiveCompressor
from agent_context.compaction.condensed import (
    CondensedMessageStore,
    get_compressed_messages,
    get_effective_api_history,
    link_compressed_messages,
    recover_condensed,
)
from agent_context.compaction.settings import CompressorSettings
from agent_context.compaction.stats import CompactionStatsTracker
from agent_context.models import CompressionRange, Message


def _ids(messages: List[Message]) -> List[str]:
    return [m.id for m in messages]


async def _compact(
    messages: List[Message],
    compression_range: CompressionRange,
    client,
    store: CondensedMessageStore,
) -> Tuple[List[Message], CompressionResult]:
    """Compact a range and apply the result the way a caller would."""
    compressor = NonDestructiveCompressor(client, CompressorSettings(protection=None))
    result = await compressor.compress(messages, compression_range)
    originals = [m for m in messages if m.id in set(result.compressed_message_ids)]
    store.store(result.condense_id, originals, result)
    linked = link_compressed_messages(messages, result)
    linked.insert(compression_range.end, result.summary)
    return linked, result


# ---------------------------------------------------------------------------
# CondensedMessageStore
# ---------------------------------------------------------------------------


class TestCondensedMessageStore:
    """Tests for CondensedMessageStore bookkeeping."""

    @pytest.mark.asyncio
    async def test_store_and_lookup(self, conversation, mock_summarizer):
        """Verify stored entries can be found, listed and deleted."""
        store = CondensedMessageStore()
        _, result = await _compact(conversation(6), CompressionRange(0, 4), mock_summarizer(), store)
        cid = result.condense_id

        assert store.has(cid)
        assert cid in store
        assert store.keys() == [cid]
        assert len(store) == 1
        entry = store.get(cid)
        assert _ids(entry.original_messages) == ["msg-0", "msg-1", "msg-2", "msg-3"]
        assert entry.compression_result is result

        assert store.delete(cid)
        assert not store.delete(cid)
        assert store.get(cid) is None

    def test_clear(self):
        """Verify clear empties the store."""
        store = CondensedMessageStore()
        store.clear()
        assert len(store) == 0
        assert store.keys() == []


# ---------------------------------------------------------------------------
# Linking and effective history
# ---------------------------------------------------------------------------


class TestEffectiveHistory:
    """Tests for linking and the effective API view."""

    @pytest.mark.asyncio
    async def test_linked_originals_hidden(self, conversation, mock_summarizer):
        """Verify the effective view shows the summary instead of its originals."""
        store = CondensedMessageStore()
        linked, result = await _compact(conversation(8), CompressionRange(0, 4), mock_summarizer(), store)

        assert len(linked) == 9
        effective = get_effective_api_history(linked)
        assert _ids(effective) == [result.condense_id, "msg-4", "msg-5", "msg-6", "msg-7"]
        assert _ids(get_compressed_messages(linked, result.condense_id)) == ["msg-0", "msg-1", "msg-2", "msg-3"]

    @pytest.mark.asyncio
    async def test_link_does_not_mutate(self, conversation, mock_summarizer):
        """Verify linking returns copies and leaves the input untouched."""
        messages = conversation(6)
        result = await NonDestructiveCompressor(mock_summarizer(), CompressorSettings(protection=None)).compress(
            messages, CompressionRange(0, 4)
        )
        linked = link_compressed_messages(messages, result)
        assert all(m.condense_parent is None for m in messages)
        assert [m.condense_parent for m in linked] == [result.condense_id] * 4 + [None, None]

    def test_orphaned_links_stay_visible(self, conversation):
        """Verify originals whose summary is gone remain in the view."""
        messages = [m.model_copy(update={"condense_parent": "condense-missing"}) for m in conversation(3)]
        assert _ids(get_effective_api_history(messages)) == _ids(messages)


# ---------------------------------------------------------------------------
# recover_condensed
# ---------------------------------------------------------------------------


class TestRecoverCondensed:
    """Tests for undoing a compaction."""

    @pytest.mark.asyncio
    async def test_round_trip_restores_original(self, conversation, mock_summarizer):
        """Verify compaction followed by recovery yields the original conversation."""
        messages = conversation(8, tokens=30)
        store = CondensedMessageStore()
        linked, result = await _compact(messages, CompressionRange(2, 6), mock_summarizer(), store)

        recovery = recover_condensed(linked, result.condense_id, store)

        assert recovery.success
        assert recovery.condense_id == result.condense_id
        assert [m.model_dump() for m in recovery.messages] == [m.model_dump() for m in messages]
        assert _ids(recovery.restored_messages) == ["msg-2", "msg-3", "msg-4", "msg-5"]
        assert all(m.condense_parent is None for m in recovery.messages)

    @pytest.mark.asyncio
    async def test_second_recovery_returns_none(self, conversation, mock_summarizer):
        """Verify recovery consumes the stored entry."""
        store = CondensedMessageStore()
        linked, result = await _compact(conversation(6), CompressionRange(0, 4), mock_summarizer(), store)

        first = recover_condensed(linked, result.condense_id, store)
        assert first is not None
        assert recover_condensed(first.messages, result.condense_id, store) is None
        assert len(store) == 0

    def test_unknown_id_returns_none(self, conversation):
        """Verify an unknown condense id is not an error."""
        assert recover_condensed(conversation(3), "condense-unknown", CondensedMessageStore()) is None

    @pytest.mark.asyncio
    async def test_missing_summary_appends_originals(self, conversation, mock_summarizer):
        """Verify originals are appended when the summary is no longer present."""
        store = CondensedMessageStore()
        linked, result = await _compact(conversation(6), CompressionRange(0, 4), mock_summarizer(), store)
        without_summary = [m for m in linked if m.id != result.condense_id]

        recovery = recover_condensed(without_summary, result.condense_id, store)
        assert _ids(recovery.messages) == ["msg-4", "msg-5", "msg-0", "msg-1", "msg-2", "msg-3"]
        assert all(m.condense_parent is None for m in recovery.messages)

    @pytest.mark.asyncio
    async def test_stray_links_cleared(self, conversation, text_message, mock_summarizer):
        """Verify messages still pointing at the undone summary are unlinked."""
        store = CondensedMessageStore()
        linked, result = await _compact(conversation(6), CompressionRange(0, 4), mock_summarizer(), store)
        linked.append(text_message("late", condense_parent=result.condense_id))

        recovery = recover_condensed(linked, result.condense_id, store)
        late = [m for m in recovery.messages if m.id == "late"]
        assert len(late) == 1
        assert late[0].condense_parent is None

    @pytest.mark.asyncio
    async def test_recovery_releases_tracked_ids(self, conversation, mock_summarizer):
        """Verify restored originals no longer count as a cascade once recovered."""
        messages = conversation(8)
        tracker = CompactionStatsTracker()
        compressor = NonDestructiveCompressor(
            mock_summarizer(), CompressorSettings(protection=None), stats_tracker=tracker
        )
        result = await compressor.compress(messages, CompressionRange(0, 4))
        store = CondensedMessageStore()
        store.store(result.condense_id, messages[:4], result)
        linked = link_compressed_messages(messages, result)
        linked.insert(4, result.summary)
        assert tracker.is_cascade_compaction(messages[:4])

        recovery = recover_condensed(linked, result.condense_id, store, stats=tracker)

        assert recovery.success
        assert not tracker.is_cascade_compaction(recovery.messages)

    @pytest.mark.asyncio
    async def test_nested_compaction_recovers_one_level(self, conversation, mock_summarizer):
        """Verify undoing an outer compaction restores the inner summary, still hiding its originals."""
        store = CondensedMessageStore()
        inner_linked, inner = await _compact(conversation(10), CompressionRange(0, 4), mock_summarizer("inner"), store)
        # effective view: inner summary, msg-4..msg-9
        effective = get_effective_api_history(inner_linked)
        outer_linked, outer = await _compact(effective, CompressionRange(0, 4), mock_summarizer("outer"), store)

        assert inner.condense_id in outer.compressed_message_ids
        recovery = recover_condensed(outer_linked, outer.condense_id, store)
        assert _ids(recovery.messages)[0] == inner.condense_id
        assert store.has(inner.condense_id)
