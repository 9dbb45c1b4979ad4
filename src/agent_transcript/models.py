"""Data models for normalized agent transcripts."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Role(str, Enum):
    """Who produced a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class BlockType(str, Enum):
    """Content block kinds."""

    TEXT = "text"
    THINKING = "thinking"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"


class TextFormat(str, Enum):
    """Rendering hint for text blocks."""

    MARKDOWN = "markdown"
    PLAIN = "plain"


@dataclass
class Usage:
    """Token counters, used per message and as a session aggregate."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    def add(self, other: "Usage") -> None:
        """Accumulate the counts from other into this usage."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.cache_creation_tokens += other.cache_creation_tokens


@dataclass
class DiffStats:
    """File-level edit statistics across a session."""

    added: int = 0  # lines added (Write content + Edit new_string)
    removed: int = 0  # lines removed (Edit old_string)
    changed: int = 0  # unique files touched


@dataclass
class SubAgentRef:
    """Links a tool_use block to the child transcript it spawned."""

    agent_id: str
    name: Optional[str] = None
    agent_type: Optional[str] = None
    team: Optional[str] = None


@dataclass
class ContentBlock:
    """One piece of a message. The type determines which fields are set."""

    type: BlockType
    format: Optional[TextFormat] = None  # text blocks only
    text: str = ""  # text and thinking
    tool_use_id: str = ""  # tool_use and tool_result
    name: str = ""  # tool name, tool_use only
    input: Any = None  # tool input params, tool_use only
    content: str = ""  # tool output, tool_result only
    is_error: bool = False  # tool_result only
    sub_agent: Optional[SubAgentRef] = None


@dataclass
class Message:
    """A single logical turn-fragment in the conversation."""

    uuid: str
    role: Role
    parent_uuid: Optional[str] = None
    model: Optional[str] = None  # set for assistant messages
    timestamp: Optional[datetime] = None
    content: list[ContentBlock] = field(default_factory=list)
    usage: Optional[Usage] = None


@dataclass
class Transcript:
    """Top-level container for a single session and its sub-agents."""

    session_id: str
    agent: str
    created_at: datetime
    parent_session_id: Optional[str] = None  # set on child transcripts
    author: Optional[str] = None  # git user.name from the working directory
    model: Optional[str] = None  # primary model used
    dir: Optional[str] = None  # working directory
    git_branch: Optional[str] = None  # branch at session start
    title: Optional[str] = None
    updated_at: Optional[datetime] = None
    usage: Optional[Usage] = None  # aggregate session usage
    diff_stats: Optional[DiffStats] = None
    messages: list[Message] = field(default_factory=list)
    sub_agents: list["Transcript"] = field(default_factory=list)  # sorted by session_id
