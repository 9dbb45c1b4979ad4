"""Interface for stages that rewrite a finished transcript in place."""

from typing import Any, Callable, Protocol

from .models import BlockType, ContentBlock, Transcript

MAX_WALK_DEPTH = 16


class Transformer(Protocol):
    """Mutates a transcript in place; raises to signal failure.

    Implementations may rewrite string fields of messages and content
    blocks but must not add, remove or reorder messages, blocks or
    sub-agents.
    """

    def transform(self, transcript: Transcript) -> None: ...


def chain(transcript: Transcript, *transformers: Transformer) -> None:
    """Apply transformers in order, stopping at the first that raises."""
    for transformer in transformers:
        transformer.transform(transcript)


def walk_strings(value: Any, fn: Callable[[str], str], depth: int = 0) -> Any:
    """Return a copy of value with fn applied to every string leaf.

    Dicts and lists are rebuilt; other values are returned as-is. Nesting
    deeper than MAX_WALK_DEPTH is returned untouched.
    """
    if depth > MAX_WALK_DEPTH:
        return value
    if isinstance(value, str):
        return fn(value)
    if isinstance(value, dict):
        return {key: walk_strings(child, fn, depth + 1) for key, child in value.items()}
    if isinstance(value, list):
        return [walk_strings(child, fn, depth + 1) for child in value]
    return value


def rewrite_block_strings(block: ContentBlock, fn: Callable[[str], str]) -> None:
    """Apply fn to every user-visible string of a content block in place."""
    if block.type in (BlockType.TEXT, BlockType.THINKING):
        block.text = fn(block.text)
    elif block.type == BlockType.TOOL_USE:
        block.input = walk_strings(block.input, fn)
    elif block.type == BlockType.TOOL_RESULT:
        block.content = fn(block.content)


def rewrite_transcript_strings(transcript: Transcript, fn: Callable[[str], str]) -> None:
    """Apply fn to every content string in a transcript and its sub-agents."""
    for message in transcript.messages:
        for block in message.content:
            rewrite_block_strings(block, fn)
    for child in transcript.sub_agents:
        rewrite_transcript_strings(child, fn)
