# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Prompts and fixed strings used by context compaction.

The summary request asks for a fixed six-section checkpoint so that
downstream consumers (quality validation, UI) can rely on its shape.
"""

SUMMARY_PREFIX = "[Context Summary]"

PLACEHOLDER_TOOL_USE_TEXT = "[Placeholder: Original tool invocation was lost or truncated]"
PLACEHOLDER_TOOL_NAME = "unknown_tool"

COMPACTION_SYSTEM_PROMPT = (
    "You are a context summarization assistant. Your task is to read a conversation "
    "between a user and an AI coding assistant, then produce a structured summary "
    "following the exact format specified.\n\n"
    "Do NOT continue the conversation. Do NOT respond to any questions in the "
    "conversation. ONLY output the structured summary."
)

DEFAULT_SUMMARY_PROMPT = """Please provide a comprehensive summary of the conversation so far. Structure your summary as follows:

## 1. Task Overview
- What is the main task or goal being worked on?
- What are the key requirements or constraints?

## 2. Key Decisions Made
- What important decisions were made and why?
- What approaches were chosen or rejected?

## 3. Code Changes
- What files were created, modified, or deleted?
- What are the key functions, classes, or components involved?
- Include relevant code snippets if critical for context.

## 4. Current State
- What has been completed?
- What is currently in progress?
- Are there any errors or issues being addressed?

## 5. Pending Items
- What tasks remain to be done?
- Are there any open questions or blockers?

## 6. Important Context
- Any critical information needed to continue the work
- User preferences or specific instructions mentioned
- Technical constraints or dependencies

Keep the summary concise but preserve all important technical details. Use bullet points for lists. Prioritize actionable information."""

SUMMARY_LENGTH_GUIDANCE = "Keep the summary under approximately {max_tokens} tokens."

PRESERVE_TOOL_OUTPUTS_GUIDANCE = (
    "Preserve tool outputs that the remaining work depends on (file contents, "
    "command results, error messages) verbatim where practical."
)

SUMMARY_CONVERSATION_TEMPLATE = """<conversation>
{conversation}
</conversation>

{instructions}"""

QUALITY_EVALUATION_PROMPT = """You are evaluating the quality of a conversation summary.

<original>
{original}
</original>

<summary>
{summary}
</summary>

Rate the summary from 0 to 10 on each dimension:
- completeness: are all important facts, decisions and code references present?
- accuracy: is everything in the summary faithful to the original?
- actionability: could another assistant continue the work from the summary alone?

Respond with a single JSON object and nothing else:
{{"completeness": <0-10>, "accuracy": <0-10>, "actionability": <0-10>, "suggestions": ["..."]}}"""

DEFAULT_THINKING_PREFIX = "Let me analyze the context and summarize the key points..."

THINKING_TEMPLATE = """<thinking>
{prefix}

Context Analysis:
- Reviewing conversation history and key decisions
- Identifying important technical details
- Preserving critical information for continuation
</thinking>"""
