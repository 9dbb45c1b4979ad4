"""Edit statistics and time formatting helpers."""

from datetime import datetime, timezone
from typing import Optional

from .models import BlockType, DiffStats, Transcript


def count_lines(s: str) -> int:
    """Return the number of lines in s.

    An empty string has 0 lines. A string with no newline has 1 line.
    """
    if not s:
        return 0
    n = s.count("\n") + 1
    if s.endswith("\n"):
        n -= 1
    return n


def _string_value(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


def compute_diff_stats(transcript: Transcript) -> Optional[DiffStats]:
    """Compute aggregate line-level diff statistics from Write/Edit tool calls.

    Must run before any transform that rewrites tool input strings.
    Returns None when the session made no edits.
    """
    files: set[str] = set()
    added = 0
    removed = 0

    for message in transcript.messages:
        for block in message.content:
            if block.type != BlockType.TOOL_USE or not isinstance(block.input, dict):
                continue

            tool = block.name.lower()
            if tool == "write":
                if _string_value(block.input, "file_path"):
                    files.add(_string_value(block.input, "file_path"))
                added += count_lines(_string_value(block.input, "content"))
            elif tool == "edit":
                if _string_value(block.input, "file_path"):
                    files.add(_string_value(block.input, "file_path"))
                removed += count_lines(_string_value(block.input, "old_string"))
                added += count_lines(_string_value(block.input, "new_string"))

    if not added and not removed and not files:
        return None

    return DiffStats(added=added, removed=removed, changed=len(files))


def relative_time(then: datetime, now: Optional[datetime] = None) -> str:
    """Format a timestamp as a human-readable relative string, e.g. "3h ago"."""
    now = now or datetime.now(timezone.utc)
    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)
    seconds = (now - then).total_seconds()
    hours = seconds / 3600

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if hours < 24:
        return f"{int(hours)}h ago"
    if hours < 24 * 7:
        return f"{int(hours // 24)}d ago"
    if hours < 24 * 30:
        return f"{int(hours // (24 * 7))}w ago"
    if hours < 24 * 365:
        return f"{int(hours // (24 * 30))}mo ago"
    return f"{int(hours // (24 * 365))}y ago"
