# src/toolbelt/context/pruning.py
"""
Token estimation and token-budget message pruning.

Messages are plain dicts in the shape agent SDKs exchange::

    {"role": "user", "content": "Find the bug"}
    {"role": "assistant", "content": [
        {"type": "text", "text": "Let me look."},
        {"type": "tool-call", "toolCallId": "c1", "toolName": "Read",
         "args": {"file_path": "/src/app.py"}},
    ]}
    {"role": "tool", "content": [
        {"type": "tool-result", "toolCallId": "c1", "toolName": "Read",
         "result": {"content": "..."}},
    ]}

Pruning keeps the conversation structure intact: no message is dropped or
reordered, tool-call/tool-result pairs stay paired, and the most recent
user turns are never touched. Only the bulky payloads of older tool calls
and tool results are swapped for a small ``{"_pruned": True}`` marker.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..config import PruneConfig

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4

_TOOL_CALL_PAYLOAD_KEYS = ("args", "input")
_TOOL_RESULT_PAYLOAD_KEYS = ("result", "output")

Message = Mapping[str, Any]


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def estimate_tokens(text: str) -> int:
    """Estimate token count for a string (~4 chars per token for English)."""
    return -(-len(text) // CHARS_PER_TOKEN)


def _estimate_part_tokens(part: Any) -> int:
    if isinstance(part, str):
        return estimate_tokens(part)
    if not isinstance(part, Mapping):
        return estimate_tokens(_dumps(part))
    if isinstance(part.get("text"), str):
        return estimate_tokens(part["text"])
    for key in _TOOL_RESULT_PAYLOAD_KEYS + _TOOL_CALL_PAYLOAD_KEYS:
        if key in part:
            return estimate_tokens(_dumps(part[key]))
    return estimate_tokens(_dumps(part))


def estimate_message_tokens(message: Message) -> int:
    """Estimate token count for a single message, including role overhead."""
    tokens = 0
    content = message.get("content") if isinstance(message, Mapping) else None

    if isinstance(content, str):
        tokens += estimate_tokens(content)
    elif isinstance(content, list):
        tokens += sum(_estimate_part_tokens(part) for part in content)

    return tokens + MESSAGE_OVERHEAD_TOKENS


def estimate_messages_tokens(messages: Sequence[Message]) -> int:
    """Estimate total token count for a list of messages."""
    return sum(estimate_message_tokens(message) for message in messages)


def _protection_boundary(messages: Sequence[Message], protect_last_n: int) -> int:
    """Index of the earliest protected message; ``len(messages)`` if none."""
    if protect_last_n <= 0:
        return len(messages)

    user_indices = [
        i for i, message in enumerate(messages)
        if isinstance(message, Mapping) and message.get("role") == "user"
    ]
    if not user_indices:
        return len(messages)
    if len(user_indices) < protect_last_n:
        return user_indices[0]
    return user_indices[-protect_last_n]


def _is_marker(value: Any) -> bool:
    return isinstance(value, Mapping) and value.get("_pruned") is True


def _prune_part(part: Any, payload_keys: tuple[str, ...]) -> Any:
    if not isinstance(part, Mapping) or ("toolName" not in part and "toolCallId" not in part):
        return part

    for key in payload_keys:
        if key not in part or _is_marker(part[key]):
            continue
        marker: dict[str, Any] = {"_pruned": True}
        if isinstance(part.get("toolName"), str):
            marker["toolName"] = part["toolName"]
        # never grow a small payload
        if estimate_tokens(_dumps(marker)) < estimate_tokens(_dumps(part[key])):
            return {**part, key: marker}
        return part

    return part


def _prune_message(message: Message) -> tuple[Message, int]:
    """Return a pruned copy of the message and the tokens it saves."""
    if not isinstance(message, Mapping):
        return message, 0

    role = message.get("role")
    content = message.get("content")
    if role == "assistant":
        payload_keys = _TOOL_CALL_PAYLOAD_KEYS
    elif role == "tool":
        payload_keys = _TOOL_RESULT_PAYLOAD_KEYS
    else:
        return message, 0
    if not isinstance(content, list):
        return message, 0

    pruned_content = [_prune_part(part, payload_keys) for part in content]
    if all(new is old for new, old in zip(pruned_content, content)):
        return message, 0

    pruned = {**message, "content": pruned_content}
    return pruned, estimate_message_tokens(message) - estimate_message_tokens(pruned)


def prune_messages_by_tokens(
    messages: Sequence[Message],
    config: PruneConfig | Mapping[str, Any] | None = None,
) -> Sequence[Message]:
    """
    Prune messages to fit within a target token budget.

    Older tool-call arguments and tool-result payloads are replaced with a
    ``{"_pruned": True, "toolName": ...}`` marker, oldest first, until the
    estimate reaches ``target_tokens``. Everything from the N-th-from-last
    user message onwards is protected.

    Args:
        messages: Conversation messages, oldest first.
        config: ``PruneConfig`` or a mapping of its fields.

    Returns:
        The input sequence itself when no pruning is worthwhile; otherwise a
        new list of the same length and order. Unchanged messages are the
        original objects; pruned ones are shallow copies.
    """
    if config is None:
        config = PruneConfig()
    elif not isinstance(config, PruneConfig):
        config = PruneConfig.model_validate(config)

    total_tokens = estimate_messages_tokens(messages)
    if total_tokens <= config.target_tokens:
        return messages

    boundary = _protection_boundary(messages, config.protect_last_n_user_messages)
    candidates = [_prune_message(message) for message in messages[:boundary]]

    available = sum(saved for _, saved in candidates)
    potential_savings = min(total_tokens - config.target_tokens, available)
    if potential_savings < config.min_savings_threshold:
        logger.debug(
            f"Skipping prune: {potential_savings} tokens saveable, "
            f"threshold is {config.min_savings_threshold}"
        )
        return messages

    pruned_messages = list(messages)
    current_tokens = total_tokens
    pruned_count = 0
    for index, (pruned, saved) in enumerate(candidates):
        if current_tokens <= config.target_tokens:
            break
        if saved > 0:
            pruned_messages[index] = pruned
            current_tokens -= saved
            pruned_count += 1

    logger.info(
        f"Pruned {pruned_count} messages: ~{total_tokens} -> ~{current_tokens} tokens "
        f"(target {config.target_tokens})"
    )
    return pruned_messages
