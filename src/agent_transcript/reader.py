"""Locate and read Claude Code sessions from the projects directory."""

import logging
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .config import DEFAULT_CLAUDE_PROJECTS_DIR
from .errors import ProjectNotFoundError, SessionNotFoundError, TranscriptError
from .models import Transcript
from .parser import parse_session_file
from .subagents import link_subagents

logger = logging.getLogger(__name__)

SESSION_SUFFIX = ".jsonl"


class ClaudeReader:
    """Reads Claude Code JSONL sessions into transcripts.

    Sessions live at <projects_dir>/<project>/<session-id>.jsonl, where
    <project> is the working directory with path separators replaced by
    dashes (e.g. "-home-user-myproject").
    """

    def __init__(self, projects_dir: Optional[Path] = None, resolve_author: bool = True):
        self.projects_dir = projects_dir or DEFAULT_CLAUDE_PROJECTS_DIR
        self.resolve_author = resolve_author

    def read_file(self, path: Path) -> Transcript:
        """Normalize a single session file, including its sub-agents."""
        path = Path(path)
        transcript = parse_session_file(path, resolve_author=self.resolve_author)
        link_subagents(path, transcript, resolve_author=self.resolve_author)
        return transcript

    def find_session_file(self, session_id: str) -> Path:
        """Locate a session file by id across all projects."""
        if session_id and "/" not in session_id and self.projects_dir.is_dir():
            for project_dir in sorted(self.projects_dir.iterdir()):
                candidate = project_dir / f"{session_id}{SESSION_SUFFIX}"
                if candidate.is_file():
                    return candidate
        raise SessionNotFoundError(session_id)

    def read_session(self, session_id: str) -> Transcript:
        """Locate a session by id and normalize it."""
        return self.read_file(self.find_session_file(session_id))

    def list_projects(self) -> list[str]:
        """Names of all project directories, sorted."""
        if not self.projects_dir.is_dir():
            return []
        return sorted(p.name for p in self.projects_dir.iterdir() if p.is_dir())

    def session_files(self, project: str) -> list[Path]:
        """Top-level session files of a project, sorted by name."""
        project_dir = self.projects_dir / project
        if not project_dir.is_dir():
            raise ProjectNotFoundError(project)
        return sorted(p for p in project_dir.glob(f"*{SESSION_SUFFIX}") if p.is_file())

    def read_project(self, project: str) -> list[Transcript]:
        """Normalize every session of a project, skipping files that fail."""
        return list(self._read_many(self.session_files(project)))

    def read_all(self) -> list[Transcript]:
        """Normalize every session of every project, skipping files that fail."""
        transcripts = []
        for project in self.list_projects():
            transcripts.extend(self._read_many(self.session_files(project)))
        return transcripts

    def _read_many(self, paths: Iterable[Path]) -> Iterator[Transcript]:
        for path in paths:
            try:
                yield self.read_file(path)
            except (TranscriptError, OSError, ValueError) as e:
                logger.warning("Skipping %s: %s", path, e)


def get_project_name_from_dir(dir_name: str) -> str:
    """Extract a readable project name from a project directory name.

    Claude Code stores projects in folders like:
    - -home-user-projects-myproject -> myproject
    - -Users-name-Development-app -> app
    """
    prefixes_to_strip = [
        "-home-",
        "-mnt-c-Users-",
        "-Users-",
    ]

    name = dir_name
    for prefix in prefixes_to_strip:
        if name.lower().startswith(prefix.lower()):
            name = name[len(prefix) :]
            break

    parts = [part for part in name.split("-") if part]

    # Common intermediate directories to skip
    skip_dirs = {
        "projects",
        "code",
        "repos",
        "src",
        "dev",
        "work",
        "documents",
        "development",
        "github",
        "git",
    }

    lowered = [part.lower() for part in parts]
    last_skip = max((i for i, part in enumerate(lowered) if part in skip_dirs), default=-1)
    if last_skip >= 0:
        meaningful_parts = parts[last_skip + 1 :]
    else:
        # Drop the leading username when the remainder is non-empty
        meaningful_parts = parts[1:] if len(parts) > 1 and dir_name != name else parts

    if meaningful_parts:
        return "-".join(meaningful_parts)
    return parts[-1] if parts else dir_name
