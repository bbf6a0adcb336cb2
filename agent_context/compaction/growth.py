# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Advisory check that compaction actually shrank the context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from agent_context.compaction.settings import GrowthValidationConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrowthValidationResult:
    """Outcome of a growth check.

    Attributes:
        is_valid (bool): ``summary_tokens < original_tokens * max_ratio``.
        original_tokens (int): Tokens of the compacted messages.
        summary_tokens (int): Tokens of the summary message.
        growth_tokens (int): ``summary_tokens - original_tokens``. Positive
            values mean the context grew.
        ratio (float): ``summary_tokens / original_tokens``, 0 when the
            original is empty.
        message (str): Human-readable verdict.
    """

    is_valid: bool
    original_tokens: int
    summary_tokens: int
    growth_tokens: int
    ratio: float
    message: str


class GrowthValidator:
    """Compares summary size against the size of what it replaced."""

    def __init__(self, config: Optional[GrowthValidationConfig] = None) -> None:
        self._config = config or GrowthValidationConfig()

    def validate(self, original_tokens: int, summary_tokens: int) -> GrowthValidationResult:
        """Check a summary against the tokens it replaced.

        The result is advisory. A failed check is logged but never blocks
        the compaction.

        Args:
            original_tokens (int): Tokens of the compacted messages.
            summary_tokens (int): Tokens of the summary message.

        Returns:
            GrowthValidationResult: Verdict and measurements.
        """
        ratio = summary_tokens / original_tokens if original_tokens > 0 else 0.0
        is_valid = summary_tokens < original_tokens * self._config.max_ratio
        if is_valid:
            message = f"Summary reduced context from {original_tokens} to {summary_tokens} tokens"
        else:
            message = (
                f"Summary ({summary_tokens} tokens) is not smaller than the "
                f"compacted messages ({original_tokens} tokens)"
            )
            logger.warning("Compaction growth check failed: %s", message)
        return GrowthValidationResult(
            is_valid=is_valid,
            original_tokens=original_tokens,
            summary_tokens=summary_tokens,
            growth_tokens=summary_tokens - original_tokens,
            ratio=ratio,
            message=message,
        )
