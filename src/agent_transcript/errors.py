"""Exceptions raised while normalizing session logs."""


class TranscriptError(Exception):
    """Base class for normalization failures."""


class ScanError(TranscriptError):
    """A session log could not be scanned."""


class LineTooLongError(ScanError):
    """A single log line exceeded the maximum accepted length."""

    def __init__(self, line_number: int, limit: int):
        super().__init__(f"line {line_number} exceeds {limit} bytes")
        self.line_number = line_number
        self.limit = limit


class NoMessagesError(TranscriptError):
    """A session log produced no conversational messages."""


class NotFoundError(TranscriptError, LookupError):
    """A requested session or project does not exist in the store."""


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str):
        super().__init__(f"session {session_id!r} not found")
        self.session_id = session_id


class ProjectNotFoundError(NotFoundError):
    def __init__(self, project: str):
        super().__init__(f"project {project!r} not found")
        self.project = project
