# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Compaction error taxonomy.

Only genuine failures are raised. Structural defects in a conversation,
advisory validation results and recovery misses are returned as data.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class CompactionErrorCode(str, Enum):
    """Machine-readable compaction failure codes.

    Attributes:
        INSUFFICIENT_MESSAGES (str): Too few candidates after range
            adjustment and protection filtering.
        ALL_MODELS_FAILED (str): Every summarization model in the fallback
            chain failed or timed out.
        SUMMARIZATION_FAILED (str): The single configured client failed.
    """

    INSUFFICIENT_MESSAGES = "INSUFFICIENT_MESSAGES"
    ALL_MODELS_FAILED = "ALL_MODELS_FAILED"
    SUMMARIZATION_FAILED = "SUMMARIZATION_FAILED"


class CompactionError(Exception):
    """Base error for compaction failures.

    Attributes:
        code (CompactionErrorCode): Failure code.
        context (Dict[str, Any]): Structured details for diagnostics.
        is_retryable (bool): Whether retrying the same call may succeed.
    """

    def __init__(
        self,
        message: str,
        code: CompactionErrorCode,
        context: Optional[Dict[str, Any]] = None,
        is_retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.context = context or {}
        self.is_retryable = is_retryable


class InsufficientMessagesError(CompactionError, ValueError):
    """Too few messages selected for compaction."""

    def __init__(self, required: int, actual: int):
        super().__init__(
            f"Compression requires at least {required} messages, but only {actual} were selected",
            CompactionErrorCode.INSUFFICIENT_MESSAGES,
            context={"required": required, "actual": actual},
        )
        self.required = required
        self.actual = actual


class AllModelsFailedError(CompactionError):
    """Every model of a fallback chain failed."""

    def __init__(
        self,
        attempted_models: List[str],
        total_attempts: int,
        attempt_history: List[Any],
        total_latency_ms: float,
        last_error: Optional[BaseException] = None,
    ):
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(
            f"All {len(attempted_models)} summarization models failed "
            f"after {total_attempts} attempts{detail}",
            CompactionErrorCode.ALL_MODELS_FAILED,
            context={
                "attempted_models": attempted_models,
                "total_attempts": total_attempts,
                "attempt_history": attempt_history,
                "total_latency_ms": total_latency_ms,
            },
            is_retryable=False,
        )
