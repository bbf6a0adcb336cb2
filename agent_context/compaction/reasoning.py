# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Reasoning blocks.

Some model families (DeepSeek) expect assistant turns in the history to
carry reasoning content. A summary produced by another model has none, so
a synthetic ``<thinking>`` block is attached before the summary is handed
to such a model.

``extract_reasoning_content`` goes the other way: it pulls conclusions out
of existing reasoning so that they can be carried into a summary.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Literal, Optional, Sequence

from agent_context.compaction.settings import ReasoningBlockConfig
from agent_context.models import Message
from agent_context.prompts.base import THINKING_TEMPLATE
from agent_context.schemas.messages import MessageRole, TextBlock

ReasoningModelFamily = Literal["deepseek", "deepseek-r1"]

_DEEPSEEK_PATTERNS = (
    re.compile(r"deepseek", re.IGNORECASE),
    re.compile(r"deep-seek", re.IGNORECASE),
)

_THINKING_BLOCK = re.compile(r"<thinking>(.*?)</thinking>", re.IGNORECASE | re.DOTALL)

_CONCLUSION_PATTERNS = (
    re.compile(
        r"(?:^|\n)\s*[-*]\s*(?:conclusion|decision|result|therefore|hence|thus|finally|in summary)[:\s]+(.*?)(?=\n|$)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:^|\n)\s*(?:therefore|hence|thus|finally|in summary)[,:]?\s*(.*?)(?=\n|$)", re.IGNORECASE),
    re.compile(r"(?:^|\n)\s*(?:the answer is|i will|i should|we need to)[:\s]*(.*?)(?=\n|$)", re.IGNORECASE),
)

_KEY_SENTENCE_MARKERS = ("need", "should", "will", "must", "important")


@dataclass(frozen=True)
class ReasoningBlockResult:
    """Outcome of a reasoning block injection.

    Attributes:
        message (Message): The (possibly) updated message.
        was_added (bool): Whether reasoning was attached.
        reasoning_content (Optional[str]): The block that was attached.
    """

    message: Message
    was_added: bool
    reasoning_content: Optional[str] = None


@dataclass
class ExtractedReasoning:
    """Conclusions found in reasoning traces.

    Attributes:
        conclusions (List[str]): Unique conclusions in discovery order.
        messages_with_reasoning (int): Assistant messages that carried reasoning.
        summary_text (str): Markdown section listing the conclusions, empty
            when there are none.
    """

    conclusions: List[str] = field(default_factory=list)
    messages_with_reasoning: int = 0
    summary_text: str = ""


class ReasoningBlockHandler:
    """Attaches synthetic reasoning to messages for models that need it."""

    def __init__(self, config: Optional[ReasoningBlockConfig] = None) -> None:
        self._config = config or ReasoningBlockConfig()

    @property
    def thinking_prefix(self) -> str:
        return self._config.thinking_prefix

    def requires_reasoning_block(self, model_name: Optional[str]) -> bool:
        """Whether ``model_name`` belongs to a family that needs reasoning."""
        if not model_name:
            return False
        return any(p.search(model_name) for p in _DEEPSEEK_PATTERNS)

    def detect_model_family(self, model_name: Optional[str]) -> Optional[ReasoningModelFamily]:
        if not model_name:
            return None
        if "deepseek-r1" in model_name.lower():
            return "deepseek-r1"
        if self.requires_reasoning_block(model_name):
            return "deepseek"
        return None

    def _generate_reasoning_content(self) -> str:
        content = THINKING_TEMPLATE.format(prefix=self._config.thinking_prefix)
        if self._config.include_timestamp:
            timestamp = datetime.now(timezone.utc).isoformat()
            content = content.replace("</thinking>", f"\nGenerated at: {timestamp}\n</thinking>")
        return content

    def add_reasoning_block(self, message: Message) -> ReasoningBlockResult:
        """Prepend a ``<thinking>`` block to an assistant message's reasoning.

        Non-assistant messages are returned unchanged. Existing reasoning is
        kept after the new block.

        Args:
            message (Message): Message to update.

        Returns:
            ReasoningBlockResult: Updated message and the attached block.
        """
        if message.role != MessageRole.ASSISTANT:
            return ReasoningBlockResult(message=message, was_added=False)

        reasoning = self._generate_reasoning_content()
        combined = f"{reasoning}\n\n{message.reasoning_content}" if message.reasoning_content else reasoning
        return ReasoningBlockResult(
            message=message.model_copy(update={"reasoning_content": combined}),
            was_added=True,
            reasoning_content=reasoning,
        )

    def process_for_model(self, message: Message, model_name: Optional[str]) -> ReasoningBlockResult:
        """Attach reasoning only when ``model_name`` requires it."""
        if not self.requires_reasoning_block(model_name):
            return ReasoningBlockResult(message=message, was_added=False)
        return self.add_reasoning_block(message)


def requires_reasoning_block(model_name: Optional[str]) -> bool:
    return ReasoningBlockHandler().requires_reasoning_block(model_name)


def _key_sentences(text: str) -> List[str]:
    sentences = [s.strip() for s in re.split(r"[.!?]+", text)]
    picked = [
        s for s in sentences
        if 20 < len(s) < 150 and any(marker in s.lower() for marker in _KEY_SENTENCE_MARKERS)
    ]
    return picked[:3]


def _conclusions_from_text(text: str) -> List[str]:
    conclusions: List[str] = []
    for pattern in _CONCLUSION_PATTERNS:
        for match in pattern.finditer(text):
            conclusion = (match.group(1) or "").strip()
            if 10 < len(conclusion) < 200:
                conclusions.append(conclusion)
    return conclusions or _key_sentences(text)


def extract_reasoning_content(messages: Sequence[Message]) -> ExtractedReasoning:
    """Collect conclusions from assistant reasoning and ``<thinking>`` blocks.

    Args:
        messages (Sequence[Message]): Messages to scan. Only assistant
            messages are considered.

    Returns:
        ExtractedReasoning: Deduplicated conclusions and a markdown section
            ready to be included in a summary request.
    """
    found: List[str] = []
    with_reasoning = 0

    for message in messages:
        if message.role != MessageRole.ASSISTANT:
            continue

        if message.reasoning_content:
            with_reasoning += 1
            found.extend(_conclusions_from_text(message.reasoning_content))

        if isinstance(message.content, str):
            text = message.content
        else:
            text = "\n".join(b.text for b in message.content if isinstance(b, TextBlock))
        for match in _THINKING_BLOCK.finditer(text):
            conclusions = _conclusions_from_text(match.group(1))
            found.extend(conclusions)
            if conclusions:
                with_reasoning += 1

    unique = list(dict.fromkeys(found))
    summary_text = ""
    if unique:
        summary_text = "## Key Reasoning Conclusions\n" + "\n".join(f"- {c}" for c in unique)
    return ExtractedReasoning(
        conclusions=unique,
        messages_with_reasoning=with_reasoning,
        summary_text=summary_text,
    )
