"""Normalize coding-agent session logs into canonical transcripts."""

from .compact import Compactor
from .errors import (
    LineTooLongError,
    NoMessagesError,
    NotFoundError,
    ProjectNotFoundError,
    ScanError,
    SessionNotFoundError,
    TranscriptError,
)
from .models import (
    BlockType,
    ContentBlock,
    DiffStats,
    Message,
    Role,
    SubAgentRef,
    TextFormat,
    Transcript,
    Usage,
)
from .reader import ClaudeReader
from .redact import Redactor
from .transform import Transformer, chain
from .turns import Turn, group_turns

__version__ = "0.1.0"

__all__ = [
    # Models
    "BlockType",
    "ContentBlock",
    "DiffStats",
    "Message",
    "Role",
    "SubAgentRef",
    "TextFormat",
    "Transcript",
    "Usage",
    # Reading
    "ClaudeReader",
    # Turns
    "Turn",
    "group_turns",
    # Transforms
    "Transformer",
    "chain",
    "Redactor",
    "Compactor",
    # Errors
    "TranscriptError",
    "ScanError",
    "LineTooLongError",
    "NoMessagesError",
    "NotFoundError",
    "SessionNotFoundError",
    "ProjectNotFoundError",
]
