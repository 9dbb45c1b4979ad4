"""User settings for agent-transcript, kept as a small JSON file."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path.home() / ".config" / "agent-transcript" / "config.json"
DEFAULT_CLAUDE_PROJECTS_DIR = Path.home() / ".claude" / "projects"


@dataclass
class Config:
    """Defaults applied by the CLI when no option overrides them."""

    projects_dir: Path = DEFAULT_CLAUDE_PROJECTS_DIR
    resolve_author: bool = True  # look up `git config user.name` per session
    redact_allowlist: list[str] = field(default_factory=list)  # regexes never redacted

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Build a config from decoded JSON, ignoring unknown or mistyped keys."""
        config = cls()
        if isinstance(data.get("projects_dir"), str) and data["projects_dir"]:
            config.projects_dir = Path(data["projects_dir"]).expanduser()
        if isinstance(data.get("resolve_author"), bool):
            config.resolve_author = data["resolve_author"]
        allowlist = data.get("redact_allowlist")
        if isinstance(allowlist, list):
            config.redact_allowlist = [p for p in allowlist if isinstance(p, str)]
        return config

    def to_dict(self) -> dict:
        return {
            "projects_dir": str(self.projects_dir),
            "resolve_author": self.resolve_author,
            "redact_allowlist": list(self.redact_allowlist),
        }

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Read settings; a missing or unreadable file yields the defaults."""
        path = config_path or DEFAULT_CONFIG_FILE
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring config file %s: %s", path, e)
            return cls()
        if not isinstance(data, dict):
            logger.warning("Ignoring config file %s: not a JSON object", path)
            return cls()
        return cls.from_dict(data)

    def save(self, config_path: Optional[Path] = None) -> Path:
        path = config_path or DEFAULT_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        return path
