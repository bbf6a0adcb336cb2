# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for compaction statistics tracking and persistence."""

import json

import pytest
from agent_context.compaction.settings import CompactionStatsConfig
from agent_context.compaction.stats import CompactionStatsTracker
from agent_context.models import Message
from agent_context.schemas.messages import MessageRole


def _msg(id: str, **kwargs) -> Message:
    return Message(id=id, role=MessageRole.USER, content=f"content {id}", **kwargs)


class TestRecording:
    """Tests for record, aggregates and history."""

    def test_record_updates_aggregates(self):
        """Verify totals and efficiency reflect recorded compactions."""
        tracker = CompactionStatsTracker(session_id="s1")
        tracker.record(original_tokens=1000, compressed_tokens=200, message_count=10)
        tracker.record(original_tokens=500, compressed_tokens=100, message_count=4, is_cascade=True)

        stats = tracker.get_stats()
        assert stats.total_compactions == 2
        assert stats.session_compactions == 2
        assert stats.cascade_compactions == 1
        assert stats.total_original_tokens == 1500
        assert stats.total_compressed_tokens == 300
        assert stats.session_id == "s1"
        assert tracker.get_compression_efficiency() == pytest.approx(0.8)

    def test_record_fields(self):
        """Verify the returned record carries the session and verdict."""
        tracker = CompactionStatsTracker(session_id="s1")
        record = tracker.record(100, 20, 5, timestamp=123.0, quality_passed=False)
        assert record.compaction_id.startswith("compaction-")
        assert record.timestamp == 123.0
        assert record.session_id == "s1"
        assert record.quality_passed is False

    def test_disabled_records_nothing(self):
        """Verify a disabled tracker ignores records."""
        tracker = CompactionStatsTracker(CompactionStatsConfig(enabled=False))
        assert tracker.record(100, 20, 5) is None
        assert tracker.get_stats().total_compactions == 0

    def test_history_is_bounded_and_newest_first(self):
        """Verify history keeps the newest entries and limits output."""
        tracker = CompactionStatsTracker(CompactionStatsConfig(max_history_entries=3))
        for i in range(5):
            tracker.record(original_tokens=100 + i, compressed_tokens=10, message_count=4)

        history = tracker.get_history()
        assert [r.original_tokens for r in history] == [104, 103, 102]
        assert [r.original_tokens for r in tracker.get_history(limit=1)] == [104]
        assert tracker.get_stats().total_compactions == 5

    def test_efficiency_without_data(self):
        """Verify efficiency is zero before anything is recorded."""
        assert CompactionStatsTracker().get_compression_efficiency() == 0.0

    def test_new_session_resets_session_counter(self):
        """Verify switching sessions keeps totals but resets the session count."""
        tracker = CompactionStatsTracker(session_id="s1")
        tracker.record(100, 20, 4)
        tracker.set_session_id("s2")
        tracker.record(100, 20, 4)

        stats = tracker.get_stats()
        assert stats.total_compactions == 2
        assert stats.session_compactions == 1
        assert [r.session_id for r in stats.history] == ["s1", "s2"]

    def test_clear(self):
        """Verify clear drops records and tracked ids."""
        tracker = CompactionStatsTracker()
        tracker.record(100, 20, 4)
        tracker.track_compacted_messages(["m1"], "condense-1")
        tracker.clear()
        assert tracker.get_stats().total_compactions == 0
        assert tracker.get_history() == []
        assert not tracker.is_cascade_compaction([_msg("m1")])


class TestCascadeDetection:
    """Tests for is_cascade_compaction."""

    def test_plain_messages_are_not_cascade(self):
        """Verify fresh messages do not count as a cascade."""
        assert not CompactionStatsTracker().is_cascade_compaction([_msg("a"), _msg("b")])

    def test_summary_or_linked_message_is_cascade(self):
        """Verify summaries and linked originals mark a cascade."""
        tracker = CompactionStatsTracker()
        assert tracker.is_cascade_compaction([_msg("a"), _msg("s", is_summary=True)])
        assert tracker.is_cascade_compaction([_msg("a", condense_parent="condense-1")])

    def test_tracked_ids_are_cascade(self):
        """Verify ids tracked from an earlier compaction mark a cascade."""
        tracker = CompactionStatsTracker()
        tracker.track_compacted_messages(["a", "b"], "condense-1")
        assert tracker.is_cascade_compaction([_msg("b")])
        assert not tracker.is_cascade_compaction([_msg("c")])

    def test_untrack_releases_one_compaction(self):
        """Verify untracking a summary frees only the ids folded into it."""
        tracker = CompactionStatsTracker()
        tracker.track_compacted_messages(["a", "b"], "condense-1")
        tracker.track_compacted_messages(["c"], "condense-2")

        assert tracker.untrack_compaction("condense-1") == 2
        assert not tracker.is_cascade_compaction([_msg("a"), _msg("b")])
        assert tracker.is_cascade_compaction([_msg("c")])
        assert tracker.untrack_compaction("condense-1") == 0


class TestPersistence:
    """Tests for JSON persistence of statistics."""

    def test_round_trip(self, tmp_path):
        """Verify statistics survive a new tracker on the same file."""
        path = tmp_path / "nested" / "stats.json"
        config = CompactionStatsConfig(persist=True, stats_file_path=str(path))

        first = CompactionStatsTracker(config, session_id="s1")
        first.record(1000, 250, 8, is_cascade=True)
        first.track_compacted_messages(["m1"], "condense-1")
        first.record(400, 100, 4)
        assert path.exists()

        second = CompactionStatsTracker(config, session_id="s2")
        stats = second.get_stats()
        assert stats.total_compactions == 2
        assert stats.cascade_compactions == 1
        assert stats.total_original_tokens == 1400
        assert stats.session_compactions == 0
        assert [r.original_tokens for r in stats.history] == [1000, 400]
        assert second.is_cascade_compaction([_msg("m1")])

    def test_untrack_is_persisted(self, tmp_path):
        """Verify released ids stay released for a tracker reading the same file."""
        config = CompactionStatsConfig(persist=True, stats_file_path=str(tmp_path / "stats.json"))
        first = CompactionStatsTracker(config)
        first.track_compacted_messages(["m1"], "condense-1")
        first.record(100, 20, 4)
        first.untrack_compaction("condense-1")

        assert not CompactionStatsTracker(config).is_cascade_compaction([_msg("m1")])

    def test_missing_file_starts_empty(self, tmp_path):
        """Verify a missing file is not an error."""
        config = CompactionStatsConfig(persist=True, stats_file_path=str(tmp_path / "absent.json"))
        assert CompactionStatsTracker(config).get_stats().total_compactions == 0

    @pytest.mark.parametrize("payload", ["{not json", "[1, 2, 3]", json.dumps({"history": [{"bogus": 1}]})])
    def test_corrupt_file_is_ignored(self, tmp_path, caplog, payload):
        """Verify unreadable content is logged and ignored."""
        path = tmp_path / "stats.json"
        path.write_text(payload, encoding="utf-8")
        config = CompactionStatsConfig(persist=True, stats_file_path=str(path))

        tracker = CompactionStatsTracker(config)
        assert tracker.get_stats().total_compactions == 0
        assert any("Ignoring unreadable compaction stats file" in r.getMessage() for r in caplog.records)

    def test_not_persisted_without_flag(self, tmp_path):
        """Verify nothing is written unless persistence is enabled."""
        path = tmp_path / "stats.json"
        tracker = CompactionStatsTracker(CompactionStatsConfig(stats_file_path=str(path)))
        tracker.record(100, 20, 4)
        assert not path.exists()
