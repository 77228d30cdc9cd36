# src/toolbelt/context/compaction.py
"""
Conversation compaction via summarization.

When a conversation reaches a fraction of the model's context window, the
older messages are summarized by a (cheap, fast) model and replaced with a
summary turn, while the most recent messages are kept verbatim.

Compared with ``prune_messages_by_tokens``, which is instant but discards
tool payloads, compaction keeps the gist of everything at the cost of one
model call. The model call itself is injected as ``summarizer``: any
callable taking the prompt string and returning (or awaiting to) the
summary text.

Example:
    async def summarize(prompt: str) -> str:
        response = await client.messages.create(model="claude-haiku-4", ...)
        return response.content[0].text

    config = create_compact_config("claude-sonnet-4-5", summarize)
    state = CompactConversationState()

    result = await compact_conversation(messages, config, state)
    messages, state = result.messages, result.state
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Sequence
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ConfigError
from .pruning import Message, estimate_messages_tokens

logger = logging.getLogger(__name__)

Summarizer = Callable[[str], Any]

DEFAULT_COMPACTION_THRESHOLD = 0.85
DEFAULT_PROTECT_RECENT_MESSAGES = 10

MODEL_CONTEXT_LIMITS: dict[str, int] = {
    # Claude models
    "claude-opus-4-5": 200_000,
    "claude-sonnet-4-5": 200_000,
    "claude-haiku-4": 200_000,
    # OpenAI models
    "gpt-4o": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
    # Google models
    "gemini-2.5-pro": 1_000_000,
    "gemini-2.5-flash": 1_000_000,
}

SUMMARY_ACKNOWLEDGEMENT = (
    "I understand the context from the previous conversation. "
    "Continuing from where we left off."
)

SUMMARIZATION_PROMPT = """<context>
You are a conversation summarizer for an AI coding agent. The agent has been working on a task and the conversation has grown too long to fit in context. Your job is to create a comprehensive summary that allows the conversation to continue seamlessly.
</context>

<task>
Create a structured summary of the conversation below. This summary will replace the old messages, so it MUST preserve all information needed to continue the work.
</task>

<original-goal>
{task_context}
</original-goal>

<previous-summary>
{previous_summary}
</previous-summary>

<conversation-to-summarize>
{conversation}
</conversation-to-summarize>

<output-format>
Structure your summary with these sections:

## Task Overview
Brief description of what the user asked for and the current goal.

## Progress Made
- What has been accomplished so far
- Key milestones reached

## Files & Code
- Files created: list with paths
- Files modified: list with paths and what changed
- Files read/analyzed: list with paths
- Key code patterns or architecture decisions

## Technical Decisions
- Important choices made and why
- Configurations or settings established
- Dependencies or tools being used

## Errors & Resolutions
- Problems encountered
- How they were solved (or if still unresolved)

## Current State
- Where the work left off
- What was being worked on when summarized
- Any pending questions or blockers

## Key Context
- Important facts, names, or values that must not be forgotten
- User preferences or requirements mentioned
</output-format>

<instructions>
- Be thorough. Missing information cannot be recovered.
- Preserve exact file paths, variable names, and code snippets where relevant.
- If tool calls were made, note what tools were used and their outcomes.
- Maintain the user's original terminology and naming.
- Do not editorialize or add suggestions, just capture what happened.
- Omit sections that have no relevant information.
</instructions>"""


class CompactConversationConfig(BaseModel):
    """Settings for ``compact_conversation``."""

    max_tokens: int = Field(gt=0, description="Model context window in tokens")
    summarizer: Summarizer = Field(description="Prompt -> summary text, sync or async")
    compaction_threshold: float = Field(default=DEFAULT_COMPACTION_THRESHOLD, gt=0, le=1)
    protect_recent_messages: int = Field(default=DEFAULT_PROTECT_RECENT_MESSAGES, ge=0)
    task_context: str | None = Field(default=None, description="The agent's original goal")

    model_config = ConfigDict(arbitrary_types_allowed=True)


class CompactConversationState(BaseModel):
    conversation_summary: str = ""


class CompactConversationResult(BaseModel):
    messages: list[Any]
    state: CompactConversationState
    did_compact: bool


def _format_part(part: Any) -> str:
    if isinstance(part, str):
        return part
    if isinstance(part, dict):
        if isinstance(part.get("text"), str):
            return part["text"]
        if "toolName" in part and ("args" in part or "input" in part):
            args = part["args"] if "args" in part else part["input"]
            return f"[Tool Call: {part['toolName']}]\nArgs: {json.dumps(args, indent=2, default=str)}"
        if "result" in part or "output" in part:
            result = part["result"] if "result" in part else part["output"]
            text = result if isinstance(result, str) else json.dumps(result, indent=2, default=str)
            return f"[Tool Result]\n{text}"
    return json.dumps(part, indent=2, default=str)


def format_messages_for_summary(messages: Sequence[Message]) -> str:
    """Render messages as ``<message>`` blocks for the summarization prompt."""
    blocks = []
    for index, message in enumerate(messages):
        role = str(message.get("role", "unknown")).upper()
        content = message.get("content")
        if isinstance(content, str):
            body = content
        elif isinstance(content, list):
            body = "\n\n".join(_format_part(part) for part in content)
        else:
            body = json.dumps(content, indent=2, default=str)
        blocks.append(f'<message index="{index}" role="{role}">\n{body}\n</message>')
    return "\n\n".join(blocks)


def build_summary_prompt(
    messages: Sequence[Message],
    task_context: str | None = None,
    previous_summary: str | None = None,
) -> str:
    return SUMMARIZATION_PROMPT.format(
        task_context=task_context or "Not specified",
        previous_summary=previous_summary or "None - this is the first compaction",
        conversation=format_messages_for_summary(messages),
    )


async def _summarize(config: CompactConversationConfig, prompt: str) -> str:
    summary = config.summarizer(prompt)
    if inspect.isawaitable(summary):
        summary = await summary
    return summary


async def compact_conversation(
    messages: Sequence[Message],
    config: CompactConversationConfig,
    state: CompactConversationState | None = None,
) -> CompactConversationResult:
    """
    Compact a conversation once it crosses the configured threshold.

    Args:
        messages: Current conversation messages.
        config: Compaction settings including the summarizer.
        state: State returned by the previous call; carries the running
            summary so repeated compactions build on each other.

    Returns:
        CompactConversationResult. When ``did_compact`` is False, ``messages``
        holds the input unchanged.
    """
    state = state or CompactConversationState()

    current_tokens = estimate_messages_tokens(messages)
    limit = config.max_tokens * config.compaction_threshold
    if current_tokens < limit:
        return CompactConversationResult(messages=list(messages), state=state, did_compact=False)

    split = max(len(messages) - config.protect_recent_messages, 0)
    old_messages = messages[:split]
    recent_messages = messages[split:]
    if not old_messages:
        logger.debug("Context over compaction threshold but nothing old enough to summarize")
        return CompactConversationResult(messages=list(messages), state=state, did_compact=False)

    logger.info(
        f"Compacting conversation: ~{current_tokens} tokens, "
        f"summarizing {len(old_messages)} messages and keeping {len(recent_messages)}"
    )
    prompt = build_summary_prompt(old_messages, config.task_context, state.conversation_summary)
    summary = await _summarize(config, prompt)

    compacted: list[Any] = [
        {
            "role": "user",
            "content": (
                f"[Previous conversation summary]\n\n{summary}\n\n"
                "[Continuing from recent messages below...]"
            ),
        },
        {"role": "assistant", "content": SUMMARY_ACKNOWLEDGEMENT},
        *recent_messages,
    ]

    return CompactConversationResult(
        messages=compacted,
        state=CompactConversationState(conversation_summary=summary),
        did_compact=True,
    )


def create_compact_config(
    model_id: str, summarizer: Summarizer, **overrides: Any
) -> CompactConversationConfig:
    """Create a compaction config using a known model's context window.

    Raises:
        ConfigError: If ``model_id`` is not in ``MODEL_CONTEXT_LIMITS``.
    """
    if model_id not in MODEL_CONTEXT_LIMITS:
        known = ", ".join(sorted(MODEL_CONTEXT_LIMITS))
        raise ConfigError(f"Unknown model '{model_id}' for compaction. Known models: {known}")

    return CompactConversationConfig(
        max_tokens=MODEL_CONTEXT_LIMITS[model_id],
        summarizer=summarizer,
        **overrides,
    )
