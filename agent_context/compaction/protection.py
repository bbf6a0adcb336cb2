# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Summary protection.

Re-summarising summaries compounds information loss. The protection
filter removes protected summaries from the compaction candidates so a
summary is only folded again once it has fallen out of the protected set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from agent_context.compaction.settings import SummaryProtectionConfig
from agent_context.compaction.tokens import count_message_tokens
from agent_context.models import Message, is_summary_message

logger = logging.getLogger(__name__)

TOKEN_WEIGHT = 0.4
COMPRESSED_COUNT_WEIGHT = 0.4
RECENCY_WEIGHT = 0.2


@dataclass(frozen=True)
class ProtectionStats:
    """Protection summary of a conversation.

    Attributes:
        total_summaries (int): Summaries present.
        protected_count (int): Summaries currently protected.
        unprotected_count (int): Summaries eligible for compaction.
        strategy (str): Active strategy.
        max_protected (int): Configured cap.
        enabled (bool): Whether protection is active.
    """

    total_summaries: int
    protected_count: int
    unprotected_count: int
    strategy: str
    max_protected: int
    enabled: bool


def _compressed_count(message: Message) -> int:
    if not message.metadata:
        return 0
    try:
        return int(message.metadata.get("compressed_count", 0))
    except (TypeError, ValueError):
        return 0


class SummaryProtectionFilter:
    """Decides which summaries are kept out of compaction input."""

    def __init__(self, config: Optional[SummaryProtectionConfig] = None) -> None:
        self._config = config or SummaryProtectionConfig()

    @property
    def config(self) -> SummaryProtectionConfig:
        return self._config

    @staticmethod
    def is_summary_message(message: Message) -> bool:
        return is_summary_message(message)

    def get_protected_ids(self, messages: Sequence[Message]) -> Set[str]:
        """Ids of summaries protected under the configured strategy.

        Args:
            messages (Sequence[Message]): The whole conversation.

        Returns:
            Set[str]: Protected message ids. Empty when protection is disabled.
        """
        if not self._config.enabled:
            return set()

        summaries = [m for m in messages if is_summary_message(m)]
        if not summaries:
            return set()

        strategy = self._config.strategy
        limit = max(0, self._config.max_protected_summaries)

        if strategy == "all":
            return {m.id for m in summaries}

        if strategy == "weighted":
            ranked = self._rank_weighted(summaries)
        else:
            ordered = list(enumerate(summaries))
            ordered.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
            ranked = [m for _, m in ordered]

        return {m.id for m in ranked[:limit]}

    def _rank_weighted(self, summaries: List[Message]) -> List[Message]:
        """Order summaries by size, fold count and position, best first."""
        tokens: Dict[int, int] = {
            i: m.tokens if m.tokens is not None else count_message_tokens(m)
            for i, m in enumerate(summaries)
        }
        counts = {i: _compressed_count(m) for i, m in enumerate(summaries)}
        max_tokens = max(tokens.values()) or 1
        max_count = max(counts.values()) or 1
        last = len(summaries) - 1

        def score(i: int) -> float:
            recency = i / last if last else 1.0
            return (
                TOKEN_WEIGHT * tokens[i] / max_tokens
                + COMPRESSED_COUNT_WEIGHT * counts[i] / max_count
                + RECENCY_WEIGHT * recency
            )

        order = sorted(range(len(summaries)), key=lambda i: (score(i), i), reverse=True)
        return [summaries[i] for i in order]

    def filter_candidates(
        self,
        candidates: Sequence[Message],
        all_messages: Sequence[Message],
    ) -> List[Message]:
        """Drop protected summaries from the compaction candidates.

        Protection is evaluated against the whole conversation, not only the
        candidates, so a summary outside the range still counts toward the cap.

        Args:
            candidates (Sequence[Message]): Messages selected for compaction.
            all_messages (Sequence[Message]): The whole conversation.

        Returns:
            List[Message]: Candidates without protected summaries.
        """
        protected = self.get_protected_ids(all_messages)
        if not protected:
            return list(candidates)
        kept = [m for m in candidates if m.id not in protected]
        if len(kept) != len(candidates):
            logger.debug(
                "Summary protection excluded %d message(s) from compaction",
                len(candidates) - len(kept),
            )
        return kept

    def get_protection_stats(self, messages: Sequence[Message]) -> ProtectionStats:
        """Count protected and unprotected summaries."""
        total = sum(1 for m in messages if is_summary_message(m))
        protected = len(self.get_protected_ids(messages))
        return ProtectionStats(
            total_summaries=total,
            protected_count=protected,
            unprotected_count=total - protected,
            strategy=self._config.strategy,
            max_protected=self._config.max_protected_summaries,
            enabled=self._config.enabled,
        )
