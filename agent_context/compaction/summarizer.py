# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Summarization clients and the model fallback chain.

The compressor talks to a ``SummarizationClient``: anything with an async
``summarize(messages, prompt)`` returning the summary text.
``ChatModelSummarizer`` adapts a langchain chat model to it.

``FallbackChain`` tries an ordered list of models. Each attempt is bounded
by the model's timeout (the timed-out call is cancelled), a model may be
retried with progressive backoff, and every attempt is recorded. When all
models fail, ``AllModelsFailedError`` carries the full attempt history.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, List, Optional, Protocol, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from agent_context.compaction.errors import AllModelsFailedError
from agent_context.compaction.settings import FallbackModelConfig
from agent_context.models import Message
from agent_context.prompts.base import (
    COMPACTION_SYSTEM_PROMPT,
    DEFAULT_SUMMARY_PROMPT,
    PRESERVE_TOOL_OUTPUTS_GUIDANCE,
    SUMMARY_CONVERSATION_TEMPLATE,
    SUMMARY_LENGTH_GUIDANCE,
)
from agent_context.schemas.messages import MessageRole, TextBlock, ToolResultBlock, ToolUseBlock

logger = logging.getLogger(__name__)


class SummarizationClient(Protocol):
    """Produces a summary of a message list."""

    async def summarize(self, messages: Sequence[Message], prompt: str) -> str: ...


ClientFactory = Callable[[str], SummarizationClient]
FallbackCallback = Callable[[str, str], None]
AttemptFailedCallback = Callable[[str, int, BaseException], None]


def build_summary_prompt(
    max_summary_tokens: Optional[int] = None,
    preserve_tool_outputs: bool = False,
    custom_prompt: Optional[str] = None,
) -> str:
    """Compose the instruction text sent with the conversation.

    Args:
        max_summary_tokens (Optional[int]): Length guidance, omitted if ``None``.
        preserve_tool_outputs (bool): Ask for verbatim tool outputs.
        custom_prompt (Optional[str]): Replaces the six-section prompt.

    Returns:
        str: Instruction text.
    """
    parts = [custom_prompt or DEFAULT_SUMMARY_PROMPT]
    if max_summary_tokens:
        parts.append(SUMMARY_LENGTH_GUIDANCE.format(max_tokens=max_summary_tokens))
    if preserve_tool_outputs:
        parts.append(PRESERVE_TOOL_OUTPUTS_GUIDANCE)
    return "\n\n".join(parts)


def _format_tool_input(block: ToolUseBlock) -> str:
    try:
        return ", ".join(f"{k}={json.dumps(v, ensure_ascii=False)}" for k, v in block.input.items())
    except (TypeError, ValueError):
        return str(block.input)


def _tool_result_content(block: ToolResultBlock) -> str:
    if isinstance(block.content, str):
        return block.content
    try:
        return json.dumps(block.content, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(block.content)


def messages_to_text(messages: Sequence[Message], max_chars_per_message: int = 2_000) -> str:
    """Serialize messages to text for summarization.

    The text-only format keeps the summarizer from treating the content as
    a conversation to continue.

    Format:
        [User]: ...
        [Assistant]: ...          (text content only)
        [Assistant tool calls]: name(key=val); name2(key=val)
        [Tool result (id)]: ...
        [System]: ...

    Sections are separated by double newlines (``\\n\\n``).

    Args:
        messages (Sequence[Message]): Messages to convert.
        max_chars_per_message (int): Maximum characters kept per section.
            Defaults to 2000.

    Returns:
        str: Double-newline-joined string of role-prefixed entries.
    """
    label = {
        MessageRole.USER: "[User]",
        MessageRole.ASSISTANT: "[Assistant]",
        MessageRole.SYSTEM: "[System]",
        MessageRole.TOOL: "[Tool result]",
    }
    parts: List[str] = []
    for msg in messages:
        if isinstance(msg.content, str):
            content = msg.content[:max_chars_per_message]
            if content:
                parts.append(f"{label[msg.role]}: {content}")
            continue

        texts = [b.text for b in msg.content if isinstance(b, TextBlock) and b.text]
        if texts:
            parts.append(f"{label[msg.role]}: {' '.join(texts)[:max_chars_per_message]}")

        calls = [f"{b.name}({_format_tool_input(b)})" for b in msg.content if isinstance(b, ToolUseBlock)]
        if calls:
            parts.append(f"[Assistant tool calls]: {'; '.join(calls)[:max_chars_per_message]}")

        for block in msg.content:
            if isinstance(block, ToolResultBlock):
                content = _tool_result_content(block)[:max_chars_per_message]
                prefix = "[Tool error" if block.is_error else "[Tool result"
                parts.append(f"{prefix} ({block.tool_use_id})]: {content}")

    return "\n\n".join(parts)


class ChatModelSummarizer:
    """``SummarizationClient`` backed by a langchain chat model."""

    def __init__(self, llm: BaseChatModel, max_chars_per_message: int = 2_000) -> None:
        """Initialize the summarizer.

        Args:
            llm (BaseChatModel): Chat model producing the summary.
            max_chars_per_message (int): Per-section truncation applied when
                serialising the conversation.
        """
        self._llm = llm
        self._max_chars = max_chars_per_message

    async def summarize(self, messages: Sequence[Message], prompt: str) -> str:
        """Summarize ``messages`` following ``prompt``.

        Args:
            messages (Sequence[Message]): Messages to summarize.
            prompt (str): Summary instructions.

        Returns:
            str: The generated summary text.
        """
        conversation = messages_to_text(messages, self._max_chars)
        response = await self._llm.ainvoke(
            [
                SystemMessage(content=COMPACTION_SYSTEM_PROMPT),
                HumanMessage(
                    content=SUMMARY_CONVERSATION_TEMPLATE.format(
                        conversation=conversation,
                        instructions=prompt,
                    )
                ),
            ]
        )
        content = response.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return str(content).strip()


@dataclass
class AttemptRecord:
    """One summarization attempt.

    Attributes:
        model (str): Model tried.
        attempt (int): 1-based attempt number on this model.
        success (bool): Whether a summary was produced.
        latency_ms (float): Wall time of the attempt.
        timed_out (bool): Whether the attempt hit the model's timeout.
        error (Optional[str]): Error message of a failed attempt.
    """

    model: str
    attempt: int
    success: bool
    latency_ms: float
    timed_out: bool = False
    error: Optional[str] = None


@dataclass
class FallbackResult:
    """Outcome of a successful fallback-chain run.

    Attributes:
        summary (str): Summary text.
        model (str): Model that produced it.
        attempts (int): Total attempts across all models.
        attempt_history (List[AttemptRecord]): Every attempt in order.
        latency_ms (float): Wall time of the whole run.
    """

    summary: str
    model: str
    attempts: int
    attempt_history: List[AttemptRecord] = field(default_factory=list)
    latency_ms: float = 0.0


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


class FallbackChain:
    """Sequential multi-model summarization with per-attempt timeouts."""

    def __init__(
        self,
        models: Sequence[FallbackModelConfig],
        create_client: ClientFactory,
        on_fallback: Optional[FallbackCallback] = None,
        on_attempt_failed: Optional[AttemptFailedCallback] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the chain.

        Args:
            models (Sequence[FallbackModelConfig]): Models in priority order.
            create_client (ClientFactory): Builds a client for a model name.
                Called once per model, when the model is first tried.
            on_fallback (Optional[FallbackCallback]): Called with
                ``(from_model, to_model)`` when moving to the next model.
            on_attempt_failed (Optional[AttemptFailedCallback]): Called with
                ``(model, attempt, error)`` after each failed attempt.
            log (Optional[logging.Logger]): Logger for attempt failures.

        Raises:
            ValueError: If ``models`` is empty.
        """
        if not models:
            raise ValueError("FallbackChain requires at least one model configuration")
        self._models = list(models)
        self._create_client = create_client
        self._on_fallback = on_fallback
        self._on_attempt_failed = on_attempt_failed
        self._log = log or logger

    def get_models(self) -> List[FallbackModelConfig]:
        """Configured models in priority order."""
        return list(self._models)

    def get_primary_model(self) -> str:
        """Name of the first model."""
        return self._models[0].model

    async def _attempt(
        self,
        client: SummarizationClient,
        config: FallbackModelConfig,
        messages: Sequence[Message],
        prompt: str,
    ) -> str:
        return await asyncio.wait_for(
            client.summarize(messages, prompt),
            timeout=config.timeout_ms / 1000,
        )

    async def summarize(self, messages: Sequence[Message], prompt: str) -> FallbackResult:
        """Summarize with the first model that succeeds.

        Cancellation of the calling task propagates into the in-flight
        attempt and ends the run without trying further models.

        Args:
            messages (Sequence[Message]): Messages to summarize.
            prompt (str): Summary instructions.

        Returns:
            FallbackResult: Summary, producing model and attempt history.

        Raises:
            AllModelsFailedError: If every attempt on every model failed.
        """
        started = time.monotonic()
        history: List[AttemptRecord] = []
        last_error: Optional[BaseException] = None

        for position, config in enumerate(self._models):
            max_attempts = max(1, config.max_retries)
            created = time.monotonic()
            try:
                client = self._create_client(config.model)
            except Exception as exc:
                # A model without a usable client counts as one failed attempt.
                last_error = exc
                max_attempts = 0
                history.append(
                    AttemptRecord(
                        model=config.model,
                        attempt=1,
                        success=False,
                        latency_ms=_elapsed_ms(created),
                        error=str(exc) or type(exc).__name__,
                    )
                )
                self._log.warning(
                    "Could not create summarization client for %s: %s",
                    config.model,
                    history[-1].error,
                )
                if self._on_attempt_failed is not None:
                    self._on_attempt_failed(config.model, 1, exc)

            for attempt in range(1, max_attempts + 1):
                if attempt > 1:
                    delay = config.retry_delay_ms * 2 ** (attempt - 2) / 1000
                    self._log.info(
                        "Retrying summarization on %s in %.2fs (attempt %d/%d)",
                        config.model,
                        delay,
                        attempt,
                        max_attempts,
                    )
                    await asyncio.sleep(delay)

                attempt_started = time.monotonic()
                try:
                    summary = await self._attempt(client, config, messages, prompt)
                except asyncio.TimeoutError as exc:
                    last_error = exc
                    history.append(
                        AttemptRecord(
                            model=config.model,
                            attempt=attempt,
                            success=False,
                            latency_ms=_elapsed_ms(attempt_started),
                            timed_out=True,
                            error=f"Timed out after {config.timeout_ms}ms",
                        )
                    )
                except Exception as exc:
                    last_error = exc
                    history.append(
                        AttemptRecord(
                            model=config.model,
                            attempt=attempt,
                            success=False,
                            latency_ms=_elapsed_ms(attempt_started),
                            error=str(exc) or type(exc).__name__,
                        )
                    )
                else:
                    history.append(
                        AttemptRecord(
                            model=config.model,
                            attempt=attempt,
                            success=True,
                            latency_ms=_elapsed_ms(attempt_started),
                        )
                    )
                    return FallbackResult(
                        summary=summary,
                        model=config.model,
                        attempts=len(history),
                        attempt_history=history,
                        latency_ms=_elapsed_ms(started),
                    )

                self._log.warning(
                    "Summarization attempt %d on %s failed: %s",
                    attempt,
                    config.model,
                    history[-1].error,
                )
                if self._on_attempt_failed is not None:
                    self._on_attempt_failed(config.model, attempt, last_error)

            if position + 1 < len(self._models):
                next_model = self._models[position + 1].model
                self._log.info("Falling back from %s to %s", config.model, next_model)
                if self._on_fallback is not None:
                    self._on_fallback(config.model, next_model)

        raise AllModelsFailedError(
            attempted_models=[c.model for c in self._models],
            total_attempts=len(history),
            attempt_history=[asdict(record) for record in history],
            total_latency_ms=_elapsed_ms(started),
            last_error=last_error,
        )


def create_fallback_chain(
    models: Sequence[FallbackModelConfig],
    create_client: ClientFactory,
    **kwargs,
) -> FallbackChain:
    """Convenience constructor for :class:`FallbackChain`."""
    return FallbackChain(models, create_client, **kwargs)
