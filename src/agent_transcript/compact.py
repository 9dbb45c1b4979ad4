"""Replace verbose tool content with short line-count summaries."""

from typing import Any

from .diffstats import count_lines
from .models import BlockType, ContentBlock, Transcript

# Tool name (lowercased) -> input fields holding file content.
SUMMARIZED_INPUT_FIELDS = {
    "write": ("content",),
    "edit": ("old_string", "new_string"),
}


def line_summary(label: str, s: str) -> str:
    """Summarize s as e.g. ``[output: 245 lines]`` or ``[error: 1 line]``."""
    n = count_lines(s)
    if n == 1:
        return f"[{label}: 1 line]"
    return f"[{label}: {n} lines]"


def summarize_field(data: dict[str, Any], key: str) -> None:
    value = data.get(key)
    if isinstance(value, str):
        data[key] = line_summary(key, value)


class Compactor:
    """Transformer that shrinks tool results and file-writing tool inputs.

    Tool results become ``[output: N lines]`` (``[error: ...]`` when the
    tool failed), and the content fields of Write/Edit inputs get the same
    treatment. With strip_thinking, thinking text is emptied; the blocks
    themselves stay in place.
    """

    def __init__(self, strip_thinking: bool = False):
        self.strip_thinking = strip_thinking

    def transform(self, transcript: Transcript) -> None:
        for message in transcript.messages:
            for block in message.content:
                self.compact_block(block)
        for child in transcript.sub_agents:
            self.transform(child)

    def compact_block(self, block: ContentBlock) -> None:
        if block.type == BlockType.TOOL_RESULT:
            block.content = line_summary("error" if block.is_error else "output", block.content)
        elif block.type == BlockType.TOOL_USE:
            self._compact_tool_input(block)
        elif block.type == BlockType.THINKING and self.strip_thinking:
            block.text = ""

    def _compact_tool_input(self, block: ContentBlock) -> None:
        if not isinstance(block.input, dict):
            return
        fields = SUMMARIZED_INPUT_FIELDS.get((block.name or "").lower(), ())
        if not fields:
            return
        block.input = dict(block.input)
        for key in fields:
            summarize_field(block.input, key)
