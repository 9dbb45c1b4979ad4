"""Parse Claude Code JSONL session logs into normalized transcripts."""

import json
import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Iterable, Optional

from .clean import clean_user_text
from .diffstats import compute_diff_stats
from .errors import LineTooLongError, NoMessagesError
from .models import (
    BlockType,
    ContentBlock,
    Message,
    Role,
    TextFormat,
    Transcript,
    Usage,
)
from .turns import is_tool_result_only

logger = logging.getLogger(__name__)

AGENT_NAME = "claude"

# Tool outputs can be large; a longer line is treated as a corrupt file.
MAX_LINE_BYTES = 10 * 1024 * 1024

MAX_TITLE_LENGTH = 80

# Unparsable timestamps degrade to this value.
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

CONVERSATION_TYPES = ("user", "assistant")


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _coerce_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp, returning ZERO_TIME when it can't be parsed."""
    if not isinstance(value, str) or not value:
        return ZERO_TIME
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return ZERO_TIME
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_usage(usage: Any) -> Optional[Usage]:
    """Convert a raw usage object into Usage counters."""
    if not isinstance(usage, dict):
        return None
    return Usage(
        input_tokens=_coerce_int(usage.get("input_tokens")),
        output_tokens=_coerce_int(usage.get("output_tokens")),
        cache_read_tokens=_coerce_int(usage.get("cache_read_input_tokens")),
        cache_creation_tokens=_coerce_int(usage.get("cache_creation_input_tokens")),
    )


@dataclass
class RawEvent:
    """One conversational log line, flattened."""

    type: str
    uuid: str = ""
    parent_uuid: Optional[str] = None
    session_id: str = ""
    timestamp: datetime = ZERO_TIME
    cwd: str = ""
    git_branch: str = ""
    is_sidechain: bool = False
    agent_id: Optional[str] = None
    message_id: str = ""
    role: str = ""
    model: str = ""
    content: Any = None
    usage: Optional[Usage] = None

    @classmethod
    def from_dict(cls, entry: dict) -> "RawEvent":
        """Build an event from a decoded log line.

        Raises ValueError when the line is not shaped like a log entry.
        """
        message = entry.get("message")
        if message is None:
            message = {}
        if not isinstance(message, dict):
            raise ValueError("message is not an object")

        return cls(
            type=_as_str(entry.get("type")),
            uuid=_as_str(entry.get("uuid")),
            parent_uuid=_as_str(entry.get("parentUuid")) or None,
            session_id=_as_str(entry.get("sessionId")),
            timestamp=parse_timestamp(entry.get("timestamp")),
            cwd=_as_str(entry.get("cwd")),
            git_branch=_as_str(entry.get("gitBranch")),
            is_sidechain=entry.get("isSidechain") is True,
            agent_id=_as_str(entry.get("agentId")) or None,
            message_id=_as_str(message.get("id")),
            role=_as_str(message.get("role")),
            model=_as_str(message.get("model")),
            content=message.get("content"),
            usage=parse_usage(message.get("usage")),
        )


def scan_entries(stream: IO[bytes], include_sidechain: bool = False) -> list[RawEvent]:
    """Read newline-delimited JSON and keep the conversational entries.

    Lines that fail to decode are skipped. Only user and assistant entries
    are kept; sidechain entries are dropped unless include_sidechain is set.

    Raises LineTooLongError when a line exceeds MAX_LINE_BYTES.
    """
    events = []
    for line_number, raw in enumerate(stream, start=1):
        if len(raw) > MAX_LINE_BYTES:
            raise LineTooLongError(line_number, MAX_LINE_BYTES)
        raw = raw.strip()
        if not raw:
            continue

        try:
            entry = json.loads(raw)
            if not isinstance(entry, dict):
                raise ValueError("entry is not an object")
            event = RawEvent.from_dict(entry)
        except (ValueError, RecursionError) as e:
            logger.debug("Skipping line %d: %s", line_number, e)
            continue

        if event.type not in CONVERSATION_TYPES:
            continue
        if event.is_sidechain and not include_sidechain:
            continue
        events.append(event)
    return events


def extract_tool_result_content(content: Any) -> str:
    """Flatten tool_result content (string or list of text parts) to text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                texts.append(_as_str(part.get("text")))
        return "\n".join(texts)
    return str(content)


def map_content_block(fragment: Any, role: Role) -> Optional[ContentBlock]:
    """Decode one raw content fragment, or return None to drop it."""
    if not isinstance(fragment, dict):
        return None

    kind = fragment.get("type")
    if kind == "text":
        text = fragment.get("text")
        if not isinstance(text, str):
            return None
        text_format = TextFormat.MARKDOWN if role == Role.ASSISTANT else TextFormat.PLAIN
        return ContentBlock(type=BlockType.TEXT, format=text_format, text=text)

    if kind == "thinking":
        thinking = fragment.get("thinking")
        if not isinstance(thinking, str):
            return None
        return ContentBlock(type=BlockType.THINKING, text=thinking)

    if kind == "tool_use":
        name = fragment.get("name")
        tool_use_id = fragment.get("id", "")
        if not isinstance(name, str) or not isinstance(tool_use_id, str):
            return None
        return ContentBlock(
            type=BlockType.TOOL_USE,
            tool_use_id=tool_use_id,
            name=name,
            input=fragment.get("input"),
        )

    if kind == "tool_result":
        tool_use_id = fragment.get("tool_use_id", "")
        if not isinstance(tool_use_id, str):
            return None
        return ContentBlock(
            type=BlockType.TOOL_RESULT,
            tool_use_id=tool_use_id,
            content=extract_tool_result_content(fragment.get("content")),
            is_error=fragment.get("is_error") is True,
        )

    # Images, documents and future block kinds are not part of the format.
    return None


def map_content(content: Any, role: Role) -> list[ContentBlock]:
    """Decode a message's content payload into content blocks."""
    if isinstance(content, str):
        if not content:
            return []
        return [map_content_block({"type": "text", "text": content}, role)]
    if not isinstance(content, list):
        return []

    blocks = []
    for fragment in content:
        block = map_content_block(fragment, role)
        if block is None:
            logger.debug("Dropping content fragment: %r", _fragment_type(fragment))
            continue
        blocks.append(block)
    return blocks


def _fragment_type(fragment: Any) -> Any:
    return fragment.get("type") if isinstance(fragment, dict) else type(fragment).__name__


def _new_message(event: RawEvent, role: Role, blocks: list[ContentBlock]) -> Message:
    return Message(
        uuid=event.uuid,
        parent_uuid=event.parent_uuid,
        role=role,
        model=(event.model or None) if role == Role.ASSISTANT else None,
        timestamp=event.timestamp if event.timestamp != ZERO_TIME else None,
        content=blocks,
        usage=event.usage,
    )


@dataclass
class _OpenGroup:
    """The assistant message currently being assembled from fragments."""

    message_id: str
    message: Message


def group_and_map_messages(events: Iterable[RawEvent]) -> list[Message]:
    """Fold raw events into logical messages.

    Assistant fragments sharing a payload id merge into one message, with
    later usage replacing earlier usage (the log reports running totals).
    Tool-result-only user entries are emitted as they arrive without closing
    the open assistant message; any other user entry closes it first.
    """
    messages: list[Message] = []
    open_group: Optional[_OpenGroup] = None

    def flush():
        nonlocal open_group
        if open_group is not None:
            messages.append(open_group.message)
            open_group = None

    for event in events:
        if event.type == "assistant":
            blocks = map_content(event.content, Role.ASSISTANT)
            if (
                open_group is not None
                and event.message_id
                and event.message_id == open_group.message_id
            ):
                open_group.message.content.extend(blocks)
                if event.usage is not None:
                    open_group.message.usage = event.usage
                continue

            flush()
            open_group = _OpenGroup(
                message_id=event.message_id,
                message=_new_message(event, Role.ASSISTANT, blocks),
            )
            continue

        message = _new_message(event, Role.USER, map_content(event.content, Role.USER))
        if not is_tool_result_only(message):
            flush()
        messages.append(message)

    flush()
    return messages


def derive_title(messages: list[Message]) -> Optional[str]:
    """Title a session by its first human-authored text.

    Text that is only system-injected markup (IDE context, reminders) is
    skipped. Only the first line is used, truncated to MAX_TITLE_LENGTH.
    """
    for message in messages:
        if message.role != Role.USER or is_tool_result_only(message):
            continue
        for block in message.content:
            if block.type != BlockType.TEXT:
                continue
            text = clean_user_text(block.text)
            if not text:
                continue
            title = text.splitlines()[0].strip()
            if len(title) > MAX_TITLE_LENGTH:
                title = title[: MAX_TITLE_LENGTH - 3].rstrip() + "..."
            return title
    return None


def derive_model(messages: list[Message]) -> Optional[str]:
    """Return the first real model name reported by an assistant message."""
    for message in messages:
        if message.role == Role.ASSISTANT and message.model and not message.model.startswith("<"):
            return message.model
    return None


def aggregate_usage(messages: list[Message]) -> Optional[Usage]:
    """Sum per-message usage; None when no message reports any."""
    total: Optional[Usage] = None
    for message in messages:
        if message.usage is None:
            continue
        if total is None:
            total = Usage()
        total.add(message.usage)
    return total


def git_author(cwd: Optional[str]) -> Optional[str]:
    """Look up git user.name for a working directory."""
    if not cwd:
        return None
    try:
        result = subprocess.run(
            ["git", "config", "user.name"],
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, OSError):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def build_transcript(
    events: list[RawEvent],
    messages: list[Message],
    session_id: str,
    parent_session_id: Optional[str] = None,
    resolve_author: bool = True,
) -> Transcript:
    """Assemble a transcript and derive its session-level metadata."""
    timestamps = [e.timestamp for e in events if e.timestamp != ZERO_TIME]
    cwd = next((e.cwd for e in events if e.cwd), None)

    transcript = Transcript(
        session_id=session_id,
        parent_session_id=parent_session_id,
        agent=AGENT_NAME,
        author=git_author(cwd) if resolve_author else None,
        model=derive_model(messages),
        dir=cwd,
        git_branch=next((e.git_branch for e in events if e.git_branch), None),
        title=derive_title(messages),
        created_at=timestamps[0] if timestamps else ZERO_TIME,
        updated_at=timestamps[-1] if timestamps else None,
        usage=aggregate_usage(messages),
        messages=messages,
    )
    transcript.diff_stats = compute_diff_stats(transcript)
    return transcript


def parse_session_stream(
    stream: IO[bytes],
    fallback_session_id: str,
    session_id: Optional[str] = None,
    parent_session_id: Optional[str] = None,
    include_sidechain: bool = False,
    resolve_author: bool = True,
) -> Transcript:
    """Normalize one session log stream into a transcript.

    The session id is taken from session_id when given, otherwise from the
    first entry that carries one, otherwise fallback_session_id.

    Raises NoMessagesError when nothing conversational was retained.
    """
    events = scan_entries(stream, include_sidechain=include_sidechain)
    messages = group_and_map_messages(events)
    if not messages:
        raise NoMessagesError(f"no messages in session {session_id or fallback_session_id}")

    if session_id is None:
        session_id = next((e.session_id for e in events if e.session_id), fallback_session_id)

    return build_transcript(
        events,
        messages,
        session_id=session_id,
        parent_session_id=parent_session_id,
        resolve_author=resolve_author,
    )


def parse_session_file(
    file_path: Path,
    session_id: Optional[str] = None,
    parent_session_id: Optional[str] = None,
    include_sidechain: bool = False,
    resolve_author: bool = True,
) -> Transcript:
    """Normalize a JSONL session file into a transcript (without sub-agents)."""
    with open(file_path, "rb") as f:
        return parse_session_stream(
            f,
            fallback_session_id=file_path.stem,
            session_id=session_id,
            parent_session_id=parent_session_id,
            include_sidechain=include_sidechain,
            resolve_author=resolve_author,
        )
