# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Message content schemas.

Conversation content is either plain text or an ordered list of typed
blocks. The ``type`` field is the discriminator:

  text         free text
  tool_use     a tool invocation issued by the assistant
  tool_result  the outcome of a tool invocation, linked by ``tool_use_id``
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Message role enumeration.

    Attributes:
        USER (str): User role.
        ASSISTANT (str): Assistant role.
        SYSTEM (str): System role.
        TOOL (str): Tool result role.
    """

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class MessagePriority(str, Enum):
    """Retention priority of a message during context management.

    Attributes:
        ANCHOR (str): Must survive compaction (summaries, task definitions).
        SYSTEM (str): System instructions.
        TOOL_PAIR (str): Part of a tool invocation/result pair.
        RECENT (str): Recent conversational context.
        NORMAL (str): Ordinary message, eligible for compaction.
    """

    ANCHOR = "anchor"
    SYSTEM = "system"
    TOOL_PAIR = "tool_pair"
    RECENT = "recent"
    NORMAL = "normal"


class TextBlock(BaseModel):
    """Plain text content block.

    Attributes:
        type (Literal["text"]): Content type discriminator.
        text (str): The text value.
    """

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool invocation issued by the assistant.

    Attributes:
        type (Literal["tool_use"]): Content type discriminator.
        id (str): Identifier correlating invocation and result.
        name (str): Name of the invoked tool.
        input (Dict[str, Any]): Arguments passed to the tool.
    """

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """Result of a tool invocation.

    Attributes:
        type (Literal["tool_result"]): Content type discriminator.
        tool_use_id (str): Identifier of the invocation this answers.
        content (Union[str, List[Any]]): Tool output.
        is_error (bool): Whether the tool reported a failure.
    """

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: Union[str, List[Any]] = ""
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]
