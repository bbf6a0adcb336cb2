# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Compaction statistics.

Keeps a bounded history of compactions, aggregate token counts and the
ids of messages already folded into a summary. The latter drives cascade
detection: compacting something that was compacted before compounds loss
and is reported as a cascade.

Persistence is an optional JSON file. A missing or unreadable file starts
empty stats; write failures are logged and never propagate.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from agent_context.compaction.settings import CompactionStatsConfig
from agent_context.models import Message, is_summary_message

logger = logging.getLogger(__name__)


@dataclass
class CompactionRecord:
    """One recorded compaction.

    Attributes:
        compaction_id (str): Unique identifier of the record.
        timestamp (float): Epoch seconds.
        original_tokens (int): Tokens of the compacted messages.
        compressed_tokens (int): Tokens of the summary.
        message_count (int): Messages compacted.
        is_cascade (bool): Whether the input held earlier compaction output.
        session_id (str): Session the compaction belongs to.
        quality_passed (Optional[bool]): Quality verdict, if validated.
    """

    compaction_id: str
    timestamp: float
    original_tokens: int
    compressed_tokens: int
    message_count: int
    is_cascade: bool
    session_id: str
    quality_passed: Optional[bool] = None


@dataclass
class CompactionStats:
    """Aggregate statistics.

    Attributes:
        total_compactions (int): Compactions across all sessions.
        session_compactions (int): Compactions in the current session.
        cascade_compactions (int): Compactions flagged as cascades.
        total_original_tokens (int): Sum of compacted tokens.
        total_compressed_tokens (int): Sum of summary tokens.
        session_id (str): Current session.
        history (List[CompactionRecord]): Records, oldest first.
    """

    total_compactions: int = 0
    session_compactions: int = 0
    cascade_compactions: int = 0
    total_original_tokens: int = 0
    total_compressed_tokens: int = 0
    session_id: str = ""
    history: List[CompactionRecord] = field(default_factory=list)


def _new_session_id() -> str:
    return f"session-{uuid.uuid4().hex[:12]}"


class CompactionStatsTracker:
    """Records compactions and detects cascades."""

    def __init__(self, config: Optional[CompactionStatsConfig] = None, session_id: Optional[str] = None) -> None:
        self._config = config or CompactionStatsConfig()
        self._session_id = session_id or _new_session_id()
        self._history: List[CompactionRecord] = []
        self._compacted: Dict[str, str] = {}
        self._total = 0
        self._session = 0
        self._cascades = 0
        self._original_tokens = 0
        self._compressed_tokens = 0
        if self._persistent:
            self.load()

    @property
    def _persistent(self) -> bool:
        return self._config.persist and bool(self._config.stats_file_path)

    @property
    def session_id(self) -> str:
        return self._session_id

    def set_session_id(self, session_id: str) -> None:
        """Switch to a new session. Resets the session counter only."""
        self._session_id = session_id
        self._session = 0

    def record(
        self,
        original_tokens: int,
        compressed_tokens: int,
        message_count: int,
        is_cascade: bool = False,
        timestamp: Optional[float] = None,
        quality_passed: Optional[bool] = None,
    ) -> Optional[CompactionRecord]:
        """Record a compaction.

        Args:
            original_tokens (int): Tokens of the compacted messages.
            compressed_tokens (int): Tokens of the summary.
            message_count (int): Messages compacted.
            is_cascade (bool): Whether the input held earlier compaction output.
            timestamp (Optional[float]): Epoch seconds. Defaults to now.
            quality_passed (Optional[bool]): Quality verdict, if validated.

        Returns:
            Optional[CompactionRecord]: The stored record, ``None`` when
                tracking is disabled.
        """
        if not self._config.enabled:
            return None

        entry = CompactionRecord(
            compaction_id=f"compaction-{uuid.uuid4().hex}",
            timestamp=time.time() if timestamp is None else timestamp,
            original_tokens=original_tokens,
            compressed_tokens=compressed_tokens,
            message_count=message_count,
            is_cascade=is_cascade,
            session_id=self._session_id,
            quality_passed=quality_passed,
        )
        self._history.append(entry)
        overflow = len(self._history) - max(0, self._config.max_history_entries)
        if overflow > 0:
            del self._history[:overflow]

        self._total += 1
        self._session += 1
        if is_cascade:
            self._cascades += 1
        self._original_tokens += original_tokens
        self._compressed_tokens += compressed_tokens

        if is_cascade:
            logger.info(
                "Cascade compaction recorded (%d messages, %d -> %d tokens)",
                message_count,
                original_tokens,
                compressed_tokens,
            )
        if self._persistent:
            self.save()
        return entry

    def get_stats(self) -> CompactionStats:
        """Snapshot of aggregate statistics."""
        return CompactionStats(
            total_compactions=self._total,
            session_compactions=self._session,
            cascade_compactions=self._cascades,
            total_original_tokens=self._original_tokens,
            total_compressed_tokens=self._compressed_tokens,
            session_id=self._session_id,
            history=list(self._history),
        )

    def get_history(self, limit: Optional[int] = None) -> List[CompactionRecord]:
        """Records, newest first, optionally limited."""
        newest_first = list(reversed(self._history))
        return newest_first if limit is None else newest_first[: max(0, limit)]

    def get_compression_efficiency(self) -> float:
        """``1 - compressed/original`` over all records, 0 without data."""
        if self._original_tokens <= 0:
            return 0.0
        return 1 - self._compressed_tokens / self._original_tokens

    def track_compacted_messages(self, message_ids: Iterable[str], summary_id: str) -> None:
        """Remember that ``message_ids`` were folded into ``summary_id``."""
        for message_id in message_ids:
            self._compacted[message_id] = summary_id

    def untrack_compaction(self, summary_id: str) -> int:
        """Forget the ids folded into ``summary_id`` after it was undone.

        Returns:
            int: Number of message ids released.
        """
        released = [mid for mid, sid in self._compacted.items() if sid == summary_id]
        for message_id in released:
            del self._compacted[message_id]
        if released and self._persistent:
            self.save()
        return len(released)

    def is_cascade_compaction(self, messages: Sequence[Message]) -> bool:
        """Whether ``messages`` contain output of an earlier compaction.

        A message counts when it is a summary, carries a ``condense_id`` or
        ``condense_parent``, or was tracked as compacted before.
        """
        return any(
            is_summary_message(m) or bool(m.condense_parent) or m.id in self._compacted
            for m in messages
        )

    def clear(self) -> None:
        """Drop all statistics and tracked ids."""
        self._history.clear()
        self._compacted.clear()
        self._total = 0
        self._session = 0
        self._cascades = 0
        self._original_tokens = 0
        self._compressed_tokens = 0
        if self._persistent:
            self.save()

    def _to_dict(self) -> Dict[str, Any]:
        return {
            "total_compactions": self._total,
            "cascade_compactions": self._cascades,
            "total_original_tokens": self._original_tokens,
            "total_compressed_tokens": self._compressed_tokens,
            "history": [asdict(r) for r in self._history],
            "compacted_messages": dict(self._compacted),
        }

    def save(self) -> None:
        """Write statistics to the configured JSON file."""
        if not self._config.stats_file_path:
            return
        path = Path(self._config.stats_file_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self._to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to save compaction stats to %s: %s", path, exc)

    def load(self) -> None:
        """Read statistics from the configured JSON file.

        A missing file leaves the tracker empty. A corrupt file is logged
        and ignored.
        """
        if not self._config.stats_file_path:
            return
        path = Path(self._config.stats_file_path)
        if not path.exists():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            history = [CompactionRecord(**item) for item in data.get("history", [])]
            total = int(data.get("total_compactions", len(history)))
            cascades = int(data.get("cascade_compactions", 0))
            original = int(data.get("total_original_tokens", 0))
            compressed = int(data.get("total_compressed_tokens", 0))
            compacted = {str(k): str(v) for k, v in dict(data.get("compacted_messages", {})).items()}
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            logger.warning("Ignoring unreadable compaction stats file %s: %s", path, exc)
            return

        self._history = history[-self._config.max_history_entries:] if self._config.max_history_entries > 0 else []
        self._total = total
        self._cascades = cascades
        self._original_tokens = original
        self._compressed_tokens = compressed
        self._compacted = compacted
