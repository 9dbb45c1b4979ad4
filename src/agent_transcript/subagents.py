"""Discover sub-agent session files and link them to their parent transcript.

Claude Code stores the conversation of each spawned agent next to the
parent session:

    <project>/<session-id>.jsonl
    <project>/<session-id>/subagents/agent-<agent-id>.jsonl

The parent only refers to a child through the free text of the spawning
tool call's result, e.g. a line ``agentId: a1b2c3``.
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional

from .errors import NoMessagesError
from .models import BlockType, SubAgentRef, Transcript
from .parser import parse_session_file

logger = logging.getLogger(__name__)

SUBAGENT_DIR_NAME = "subagents"

AGENT_FILE_PATTERN = re.compile(r"^agent-(.+)\.jsonl$")

# Compaction and other bookkeeping agents, not conversations.
RESERVED_AGENT_PREFIXES = ("acompact",)

AGENT_SPAWNING_TOOLS = frozenset({"Task", "Agent"})

AGENT_ID_PATTERNS = (
    re.compile(r"^\s*agentId\s*:\s*([A-Za-z0-9_-]+)", re.MULTILINE),
    re.compile(r"^\s*agent_id\s*:\s*([A-Za-z0-9_-]+)", re.MULTILINE),
)


def subagent_dir(session_path: Path) -> Path:
    """Directory holding the sub-agent logs of a session file."""
    return session_path.parent / session_path.stem / SUBAGENT_DIR_NAME


def discover_subagent_files(session_path: Path) -> list[tuple[str, Path]]:
    """Find sub-agent logs for a session, as (agent_id, path) sorted by id.

    A missing directory means the session spawned no agents.
    """
    directory = subagent_dir(session_path)
    if not directory.is_dir():
        return []

    found = []
    for path in directory.iterdir():
        match = AGENT_FILE_PATTERN.match(path.name)
        if not match or not path.is_file():
            continue
        agent_id = match.group(1)
        if agent_id.startswith(RESERVED_AGENT_PREFIXES):
            continue
        found.append((agent_id, path))

    return sorted(found, key=lambda item: item[0])


def extract_agent_id(result_text: str) -> Optional[str]:
    """Pull the spawned agent's id out of a tool result's text."""
    for pattern in AGENT_ID_PATTERNS:
        match = pattern.search(result_text)
        if match:
            return match.group(1)
    return None


def _input_str(tool_input: Any, key: str) -> Optional[str]:
    if not isinstance(tool_input, dict):
        return None
    value = tool_input.get(key)
    return value if isinstance(value, str) and value else None


def build_subagent_ref(agent_id: str, tool_input: Any) -> SubAgentRef:
    """Describe a child agent using the spawning call's input fields."""
    return SubAgentRef(
        agent_id=agent_id,
        name=_input_str(tool_input, "name"),
        agent_type=_input_str(tool_input, "subagent_type"),
        team=_input_str(tool_input, "team_name"),
    )


def read_subagent(
    path: Path,
    agent_id: str,
    parent_session_id: str,
    resolve_author: bool = True,
) -> Optional[Transcript]:
    """Normalize one sub-agent log; None when it holds no messages."""
    try:
        return parse_session_file(
            path,
            session_id=agent_id,
            parent_session_id=parent_session_id,
            include_sidechain=True,
            resolve_author=resolve_author,
        )
    except NoMessagesError:
        logger.debug("Sub-agent %s has no messages, skipping", agent_id)
        return None


def link_subagents(
    session_path: Path,
    transcript: Transcript,
    resolve_author: bool = True,
) -> None:
    """Attach sub-agent transcripts and annotate the calls that spawned them.

    Replaces transcript.sub_agents and the reference on every spawning
    call, so linking the same transcript twice gives the same result. Errors reading a child file propagate.
    """
    children = []
    for agent_id, path in discover_subagent_files(session_path):
        child = read_subagent(path, agent_id, transcript.session_id, resolve_author)
        if child is not None:
            children.append(child)
    transcript.sub_agents = children

    spawn_calls = [
        block
        for message in transcript.messages
        for block in message.content
        if block.type == BlockType.TOOL_USE and block.name in AGENT_SPAWNING_TOOLS
    ]
    for block in spawn_calls:
        block.sub_agent = None

    if not children:
        return

    known_ids = {child.session_id for child in children}
    results = {
        block.tool_use_id: block.content
        for message in transcript.messages
        for block in message.content
        if block.type == BlockType.TOOL_RESULT
    }

    for block in spawn_calls:
        result_text = results.get(block.tool_use_id)
        if result_text is None:
            continue
        agent_id = extract_agent_id(result_text)
        if agent_id is None or agent_id not in known_ids:
            continue
        block.sub_agent = build_subagent_ref(agent_id, block.input)
