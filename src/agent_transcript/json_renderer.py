"""Render transcripts as JSON."""

import json
from datetime import datetime
from typing import Any, Optional

from .models import ContentBlock, Message, SubAgentRef, Transcript, Usage


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a timestamp as RFC 3339 with a Z suffix for UTC."""
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty optional fields."""
    return {key: value for key, value in data.items() if value not in (None, "", False, [], {})}


def usage_to_dict(usage: Optional[Usage]) -> Optional[dict]:
    if usage is None:
        return None
    return _compact(
        {
            "input_tokens": usage.input_tokens,
            "output_tokens": usage.output_tokens,
            "cache_read_tokens": usage.cache_read_tokens,
            "cache_creation_tokens": usage.cache_creation_tokens,
        }
    )


def subagent_ref_to_dict(ref: Optional[SubAgentRef]) -> Optional[dict]:
    if ref is None:
        return None
    return _compact(
        {
            "agent_id": ref.agent_id,
            "name": ref.name,
            "agent_type": ref.agent_type,
            "team": ref.team,
        }
    )


def block_to_dict(block: ContentBlock) -> dict:
    data = _compact(
        {
            "format": block.format.value if block.format else None,
            "text": block.text,
            "tool_use_id": block.tool_use_id,
            "name": block.name,
            "content": block.content,
            "is_error": block.is_error,
            "sub_agent": subagent_ref_to_dict(block.sub_agent),
        }
    )
    # Tool input is passed through as-is; an empty dict is still meaningful.
    if block.input is not None:
        data["input"] = block.input
    return {"type": block.type.value, **data}


def message_to_dict(message: Message) -> dict:
    data = _compact(
        {
            "uuid": message.uuid,
            "parent_uuid": message.parent_uuid,
            "role": message.role.value,
            "model": message.model,
            "timestamp": format_timestamp(message.timestamp),
            "usage": usage_to_dict(message.usage),
        }
    )
    data["content"] = [block_to_dict(block) for block in message.content]
    return data


def transcript_to_dict(transcript: Transcript) -> dict:
    """Convert a transcript tree into plain JSON-serializable data."""
    diff_stats = None
    if transcript.diff_stats is not None:
        diff_stats = _compact(
            {
                "added": transcript.diff_stats.added,
                "removed": transcript.diff_stats.removed,
                "changed": transcript.diff_stats.changed,
            }
        )

    data = _compact(
        {
            "session_id": transcript.session_id,
            "parent_session_id": transcript.parent_session_id,
            "agent": transcript.agent,
            "author": transcript.author,
            "model": transcript.model,
            "dir": transcript.dir,
            "git_branch": transcript.git_branch,
            "title": transcript.title,
        }
    )
    data["created_at"] = format_timestamp(transcript.created_at)
    data.update(
        _compact(
            {
                "updated_at": format_timestamp(transcript.updated_at),
                "usage": usage_to_dict(transcript.usage),
                "diff_stats": diff_stats,
            }
        )
    )
    data["messages"] = [message_to_dict(message) for message in transcript.messages]
    if transcript.sub_agents:
        data["sub_agents"] = [transcript_to_dict(child) for child in transcript.sub_agents]
    return data


def render_json(transcript: Transcript, indent: bool = True) -> str:
    """Render a transcript as a JSON document."""
    return json.dumps(
        transcript_to_dict(transcript),
        indent=2 if indent else None,
        ensure_ascii=False,
        default=str,
    )
