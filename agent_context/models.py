# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared models for context management."""

import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from agent_context.schemas.messages import (
    ContentBlock,
    MessagePriority,
    MessageRole,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)


def generate_message_id() -> str:
    """Create a unique message identifier (``msg-<hex>``)."""
    return f"msg-{uuid.uuid4().hex[:16]}"


class Message(BaseModel):
    """Conversation message.

    Messages are treated as immutable values. Transformations in this
    package return new instances built with ``model_copy(update=...)``.

    Attributes:
        id (str): Unique identifier within the conversation.
        role (MessageRole): The role of the message sender.
        content (Union[str, List[ContentBlock]]): Plain text or an ordered
            list of text / tool_use / tool_result blocks.
        priority (MessagePriority): Retention priority.
        tokens (Optional[int]): Cached token count, if known.
        is_summary (bool): Whether this message was produced by compaction.
        condense_id (Optional[str]): Identifier of the compaction that
            produced this summary. Set on summaries only.
        condense_parent (Optional[str]): ``condense_id`` of the summary that
            folded this message. Set on compacted originals only.
        created_at (float): Creation time as epoch seconds.
        reasoning_content (Optional[str]): Reasoning trace attached to an
            assistant message (real or synthetic ``<thinking>`` block).
        metadata (Optional[Dict[str, Any]]): Free-form metadata. Summaries
            carry ``compressed_count`` and ``compressed_range``.
    """

    id: str = Field(default_factory=generate_message_id)
    role: MessageRole
    content: Union[str, List[ContentBlock]]
    priority: MessagePriority = MessagePriority.NORMAL
    tokens: Optional[int] = None
    is_summary: bool = False
    condense_id: Optional[str] = None
    condense_parent: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    reasoning_content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class CompressionRange:
    """Half-open index range ``[start, end)`` over a message list.

    Attributes:
        start (int): First index included.
        end (int): First index excluded.
    """

    start: int
    end: int

    def __len__(self) -> int:
        return max(0, self.end - self.start)


def is_summary_message(message: Message) -> bool:
    """Whether ``message`` was produced by compaction."""
    return message.is_summary or bool(message.condense_id)


def _tool_result_text(block: ToolResultBlock) -> str:
    if isinstance(block.content, str):
        return block.content
    parts: List[str] = []
    for item in block.content:
        if isinstance(item, dict) and item.get("type") == "text":
            parts.append(str(item.get("text", "")))
        elif isinstance(item, str):
            parts.append(item)
        else:
            try:
                parts.append(json.dumps(item, ensure_ascii=False, default=str))
            except (TypeError, ValueError):
                parts.append(str(item))
    return "\n".join(parts)


def message_text(message: Message) -> str:
    """Flatten message content to plain text.

    Text blocks contribute their text, tool_use blocks their tool name and
    JSON-serialised input, tool_result blocks their output.

    Args:
        message (Message): Message to flatten.

    Returns:
        str: Newline-joined textual content.
    """
    if isinstance(message.content, str):
        return message.content

    parts: List[str] = []
    for block in message.content:
        if isinstance(block, TextBlock):
            parts.append(block.text)
        elif isinstance(block, ToolUseBlock):
            try:
                args = json.dumps(block.input, ensure_ascii=False, default=str)
            except (TypeError, ValueError):
                args = str(block.input)
            parts.append(f"{block.name} {args}")
        elif isinstance(block, ToolResultBlock):
            parts.append(_tool_result_text(block))
    return "\n".join(parts)
