"""Render transcripts as turn-structured TOML documents."""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .clean import clean_user_text
from .models import BlockType, ContentBlock, Transcript
from .turns import Turn, group_turns

CONTROL_CHAR_PATTERN = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
BARE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def format_timestamp(value: Optional[datetime]) -> str:
    """Format a timestamp for TOML (RFC 3339)."""
    if value is None:
        return ""
    return value.isoformat()


def escape_toml_string(s: str, multiline: bool = False) -> str:
    """Escape a string for a TOML basic string (double quotes)."""
    s = s.replace("\\", "\\\\").replace('"', '\\"')
    if not multiline:
        s = s.replace("\n", "\\n")
    s = s.replace("\r", "\\r")
    return CONTROL_CHAR_PATTERN.sub(lambda m: f"\\u{ord(m.group()):04x}", s)


def toml_key(key: str) -> str:
    if BARE_KEY_PATTERN.match(key):
        return key
    return f'"{escape_toml_string(key)}"'


def multiline_value(key: str, value: str) -> list[str]:
    """Render key = value as a multi-line basic string."""
    return [f'{key} = """', f'{escape_toml_string(value, multiline=True)}"""']


def render_value(key: str, value: Any) -> list[str]:
    """Render one key/value pair from tool input."""
    key = toml_key(key)
    if isinstance(value, str):
        if "\n" in value or len(value) > 80:
            return multiline_value(key, value)
        return [f'{key} = "{escape_toml_string(value)}"']
    if isinstance(value, bool):
        return [f"{key} = {str(value).lower()}"]
    if isinstance(value, int):
        return [f"{key} = {value}"]
    if isinstance(value, float) and value == value and value not in (float("inf"), float("-inf")):
        return [f"{key} = {value}"]
    # Complex value - serialize as JSON string
    return [f'{key} = "{escape_toml_string(json.dumps(value, ensure_ascii=False))}"']


def render_tool_call_toml(block: ContentBlock, result: Optional[ContentBlock] = None) -> list[str]:
    """Render a tool_use block and its paired result as TOML lines."""
    lines = []
    lines.append("[[turns.assistant.tool_calls]]")
    lines.append(f'tool = "{escape_toml_string(block.name)}"')
    lines.append(f'id = "{escape_toml_string(block.tool_use_id)}"')
    if block.sub_agent is not None:
        lines.append(f'agent_id = "{escape_toml_string(block.sub_agent.agent_id)}"')

    if isinstance(block.input, dict):
        lines.append("")
        lines.append("[turns.assistant.tool_calls.input]")
        for key, value in block.input.items():
            lines.extend(render_value(key, value))
    elif block.input is not None:
        lines.extend(render_value("input", block.input))

    if result is not None:
        lines.append("")
        lines.append("[turns.assistant.tool_calls.result]")
        if result.is_error:
            lines.append("is_error = true")
        lines.extend(multiline_value("content", result.content))

    return lines


def _join_text(blocks: list[ContentBlock], block_type: BlockType) -> str:
    return "\n".join(b.text for b in blocks if b.type == block_type and b.text.strip())


def render_turn_toml(number: int, turn: Turn, results: dict[str, ContentBlock]) -> list[str]:
    """Render one turn: the user prompt, the final response, and the steps."""
    lines = ["[[turns]]", f"number = {number}"]
    first = turn.user_message or turn.assistant_messages[0]
    if first.timestamp:
        lines.append(f'timestamp = "{format_timestamp(first.timestamp)}"')
    lines.append("")

    if turn.user_message is not None:
        user_text = clean_user_text(_join_text(turn.user_message.content, BlockType.TEXT))
        if user_text:
            lines.append("[turns.user]")
            lines.extend(multiline_value("content", user_text))
            lines.append("")

    if not turn.assistant_messages:
        return lines

    steps, response = turn.split_content()
    lines.append("[turns.assistant]")
    lines.append(f"steps = {turn.step_count()}")
    response_text = _join_text(response, BlockType.TEXT)
    if response_text:
        lines.extend(multiline_value("response", response_text))
    thinking = _join_text(steps, BlockType.THINKING)
    if thinking:
        lines.extend(multiline_value("thinking", thinking))
    lines.append("")

    for block in steps:
        if block.type == BlockType.TOOL_USE:
            lines.extend(render_tool_call_toml(block, results.get(block.tool_use_id)))
            lines.append("")

    return lines


def render_transcript_toml(transcript: Transcript) -> str:
    """Render a transcript as a TOML document."""
    lines = []

    lines.append("[session]")
    lines.append(f'id = "{escape_toml_string(transcript.session_id)}"')
    lines.append(f'agent = "{escape_toml_string(transcript.agent)}"')
    for key in ("parent_session_id", "title", "author", "model", "dir", "git_branch"):
        value = getattr(transcript, key)
        if value:
            lines.append(f'{key} = "{escape_toml_string(value)}"')
    lines.append(f'created_at = "{format_timestamp(transcript.created_at)}"')
    if transcript.updated_at:
        lines.append(f'updated_at = "{format_timestamp(transcript.updated_at)}"')
    if transcript.usage:
        lines.append(f"input_tokens = {transcript.usage.input_tokens}")
        lines.append(f"output_tokens = {transcript.usage.output_tokens}")
        lines.append(f"cache_read_tokens = {transcript.usage.cache_read_tokens}")
        lines.append(f"cache_creation_tokens = {transcript.usage.cache_creation_tokens}")
    if transcript.diff_stats:
        lines.append(f"lines_added = {transcript.diff_stats.added}")
        lines.append(f"lines_removed = {transcript.diff_stats.removed}")
        lines.append(f"files_changed = {transcript.diff_stats.changed}")
    lines.append("")

    results = {
        block.tool_use_id: block
        for message in transcript.messages
        for block in message.content
        if block.type == BlockType.TOOL_RESULT
    }

    for number, turn in enumerate(group_turns(transcript.messages), start=1):
        lines.extend(render_turn_toml(number, turn, results))

    for child in transcript.sub_agents:
        lines.append("[[sub_agents]]")
        lines.append(f'id = "{escape_toml_string(child.session_id)}"')
        if child.title:
            lines.append(f'title = "{escape_toml_string(child.title)}"')
        if child.model:
            lines.append(f'model = "{escape_toml_string(child.model)}"')
        lines.append(f"messages = {len(child.messages)}")
        lines.append("")

    return "\n".join(lines)


def render_transcript_to_file(transcript: Transcript, output_dir: Path) -> Path:
    """Render a transcript to <output_dir>/<date>-<short id>.toml."""
    output_dir.mkdir(parents=True, exist_ok=True)

    if transcript.created_at.year > 1:
        date_str = transcript.created_at.strftime("%Y-%m-%d")
    else:
        date_str = "unknown-date"

    short_id = transcript.session_id[:8]
    output_path = output_dir / f"{date_str}-{short_id}.toml"
    output_path.write_text(render_transcript_toml(transcript), encoding="utf-8")

    return output_path
