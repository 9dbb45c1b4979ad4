"""Group messages into request/response turns for renderers."""

from dataclasses import dataclass, field
from typing import Optional

from .models import BlockType, ContentBlock, Message, Role


def is_tool_result_only(message: Message) -> bool:
    """Check whether a message holds nothing but tool_result blocks.

    Such user messages are part of the agentic loop, not human input.
    """
    if not message.content:
        return False
    return all(block.type == BlockType.TOOL_RESULT for block in message.content)


@dataclass
class Turn:
    """A user prompt with all assistant activity until the next prompt."""

    user_message: Optional[Message] = None  # None if the stream starts with assistant output
    assistant_messages: list[Message] = field(default_factory=list)

    def split_content(self) -> tuple[list[ContentBlock], list[ContentBlock]]:
        """Split the turn's assistant blocks into (steps, response).

        Everything up to and including the last non-text block is steps;
        the trailing run of text blocks is the response.
        """
        blocks = [block for message in self.assistant_messages for block in message.content]

        last_non_text = -1
        for i, block in enumerate(blocks):
            if block.type != BlockType.TEXT:
                last_non_text = i

        if last_non_text == -1:
            return [], blocks

        return blocks[: last_non_text + 1], blocks[last_non_text + 1 :]

    def step_count(self) -> int:
        """Number of tool_use blocks across the turn's assistant messages."""
        return sum(
            1
            for message in self.assistant_messages
            for block in message.content
            if block.type == BlockType.TOOL_USE
        )


def group_turns(messages: list[Message]) -> list[Turn]:
    """Split a flat message list into turns.

    A new turn starts at each user message with human-authored content.
    Tool-result-only user messages fold into the current turn.
    """
    turns: list[Turn] = []
    current: Optional[Turn] = None

    for message in messages:
        if message.role == Role.USER and not is_tool_result_only(message):
            if current is not None:
                turns.append(current)
            current = Turn(user_message=message)
            continue

        if current is None:
            current = Turn()
        current.assistant_messages.append(message)

    if current is not None:
        turns.append(current)
    return turns
