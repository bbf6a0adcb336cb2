# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared test fixtures for the agent-context test suite."""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from agent_context.models import Message
from agent_context.schemas.messages import MessageRole, ToolResultBlock, ToolUseBlock


# ---------------------------------------------------------------------------
# Message factories
# ---------------------------------------------------------------------------


@pytest.fixture
def text_message():
    """Factory fixture for plain-text messages."""

    def _factory(
        id: str,
        role: MessageRole = MessageRole.USER,
        content: str = "hello",
        tokens: Optional[int] = None,
        **kwargs: Any,
    ) -> Message:
        return Message(id=id, role=role, content=content, tokens=tokens, **kwargs)

    return _factory


@pytest.fixture
def tool_use_message():
    """Factory fixture for assistant messages issuing tool calls."""

    def _factory(id: str, *tool_ids: str, name: str = "read_file", input: Optional[Dict[str, Any]] = None) -> Message:
        return Message(
            id=id,
            role=MessageRole.ASSISTANT,
            content=[ToolUseBlock(id=t, name=name, input=input or {"path": "src/app.py"}) for t in tool_ids],
        )

    return _factory


@pytest.fixture
def tool_result_message():
    """Factory fixture for user messages carrying tool results."""

    def _factory(id: str, *tool_ids: str, content: str = "ok") -> Message:
        return Message(
            id=id,
            role=MessageRole.USER,
            content=[ToolResultBlock(tool_use_id=t, content=content) for t in tool_ids],
        )

    return _factory


@pytest.fixture
def conversation(text_message):
    """Factory fixture for an alternating user/assistant conversation."""

    def _factory(count: int, tokens: Optional[int] = None, prefix: str = "msg") -> List[Message]:
        return [
            text_message(
                f"{prefix}-{i}",
                role=MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT,
                content=f"Message number {i} about refactoring the parser.",
                tokens=tokens,
            )
            for i in range(count)
        ]

    return _factory


# ---------------------------------------------------------------------------
# Summarizer mocking helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_summarizer():
    """Factory fixture for a mocked SummarizationClient."""

    def _factory(summary: str = "Summary of conversation.", side_effect: Any = None) -> AsyncMock:
        client = AsyncMock()
        client.summarize = AsyncMock(return_value=summary, side_effect=side_effect)
        return client

    return _factory


@pytest.fixture
def mock_chat_model():
    """Factory fixture for a mocked langchain chat model."""

    def _factory(text: str = "Summary of conversation.") -> AsyncMock:
        llm = AsyncMock()
        response = MagicMock()
        response.content = text
        llm.ainvoke.return_value = response
        return llm

    return _factory

