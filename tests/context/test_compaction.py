# tests/context/test_compaction.py
"""
Tests for summarization-based conversation compaction.

Tests cover:
- Threshold gating
- Protection of recent messages
- Sync and async summarizers
- Running summaries across repeated compactions
- Prompt rendering
"""

from typing import Any

import pytest

from toolbelt.context import (
    MODEL_CONTEXT_LIMITS,
    CompactConversationConfig,
    CompactConversationState,
    build_summary_prompt,
    compact_conversation,
    create_compact_config,
    format_messages_for_summary,
)
from toolbelt.exceptions import ConfigError


def long_conversation(count: int, chars: int = 400) -> list[dict[str, Any]]:
    roles = ("user", "assistant")
    return [{"role": roles[i % 2], "content": f"m{i} " + "x" * chars} for i in range(count)]


class RecordingSummarizer:
    """Sync summarizer that records the prompts it receives."""

    def __init__(self, summary: str = "SUMMARY") -> None:
        self.summary = summary
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.summary


@pytest.fixture
def summarizer() -> RecordingSummarizer:
    return RecordingSummarizer()


class TestCompactionGate:
    """When compaction happens at all."""

    async def test_under_threshold_is_noop(self, summarizer) -> None:
        messages = long_conversation(4)
        config = CompactConversationConfig(max_tokens=100_000, summarizer=summarizer)

        result = await compact_conversation(messages, config)

        assert result.did_compact is False
        assert result.messages == messages
        assert result.state.conversation_summary == ""
        assert summarizer.prompts == []

    async def test_nothing_old_enough(self, summarizer) -> None:
        """Over threshold, but every message is protected."""
        messages = long_conversation(4)
        config = CompactConversationConfig(max_tokens=10, summarizer=summarizer)

        result = await compact_conversation(messages, config)

        assert result.did_compact is False
        assert summarizer.prompts == []


class TestCompaction:
    """Summarizing older messages."""

    async def test_replaces_old_messages_with_summary(self, summarizer) -> None:
        messages = long_conversation(14)
        config = CompactConversationConfig(
            max_tokens=1000, summarizer=summarizer, protect_recent_messages=4
        )

        result = await compact_conversation(messages, config)

        assert result.did_compact is True
        assert len(result.messages) == 2 + 4
        assert result.messages[0]["role"] == "user"
        assert "SUMMARY" in result.messages[0]["content"]
        assert result.messages[1]["role"] == "assistant"
        assert result.messages[2:] == messages[-4:]
        assert result.state.conversation_summary == "SUMMARY"
        # only the old messages go to the summarizer
        assert "m9 " in summarizer.prompts[0]
        assert "m10 " not in summarizer.prompts[0]

    async def test_async_summarizer(self) -> None:
        async def summarize(prompt: str) -> str:
            return "async summary"

        config = CompactConversationConfig(
            max_tokens=1000, summarizer=summarize, protect_recent_messages=2
        )

        result = await compact_conversation(long_conversation(14), config)

        assert result.state.conversation_summary == "async summary"

    async def test_zero_protection_summarizes_everything(self, summarizer) -> None:
        config = CompactConversationConfig(
            max_tokens=1000, summarizer=summarizer, protect_recent_messages=0
        )

        result = await compact_conversation(long_conversation(14), config)

        assert len(result.messages) == 2

    async def test_previous_summary_carried_into_prompt(self, summarizer) -> None:
        config = CompactConversationConfig(
            max_tokens=1000,
            summarizer=summarizer,
            protect_recent_messages=2,
            task_context="Fix the flaky test",
        )
        state = CompactConversationState(conversation_summary="EARLIER WORK")

        await compact_conversation(long_conversation(14), config, state)

        prompt = summarizer.prompts[0]
        assert "EARLIER WORK" in prompt
        assert "Fix the flaky test" in prompt

    async def test_summarizer_error_propagates(self) -> None:
        def broken(prompt: str) -> str:
            raise RuntimeError("model unavailable")

        config = CompactConversationConfig(max_tokens=1000, summarizer=broken)

        with pytest.raises(RuntimeError, match="model unavailable"):
            await compact_conversation(long_conversation(14), config)


class TestPromptRendering:
    """Tests for the prompt helpers."""

    def test_format_messages(self) -> None:
        messages = [
            {"role": "user", "content": "hello"},
            {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "checking"},
                    {"type": "tool-call", "toolName": "Read", "args": {"path": "/a"}},
                ],
            },
            {"role": "tool", "content": [{"type": "tool-result", "result": "file body"}]},
        ]

        text = format_messages_for_summary(messages)

        assert '<message index="0" role="USER">\nhello\n</message>' in text
        assert "[Tool Call: Read]" in text
        assert '"path": "/a"' in text
        assert "[Tool Result]\nfile body" in text

    def test_first_compaction_placeholders(self) -> None:
        prompt = build_summary_prompt([{"role": "user", "content": "hi"}])

        assert "Not specified" in prompt
        assert "None - this is the first compaction" in prompt


class TestCreateCompactConfig:
    def test_known_model(self, summarizer) -> None:
        config = create_compact_config("gpt-4o", summarizer, compaction_threshold=0.5)

        assert config.max_tokens == MODEL_CONTEXT_LIMITS["gpt-4o"]
        assert config.compaction_threshold == 0.5

    def test_unknown_model(self, summarizer) -> None:
        with pytest.raises(ConfigError, match="Unknown model"):
            create_compact_config("mystery-model", summarizer)
