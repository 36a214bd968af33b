from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path


DEFAULT_CONFIG_PATH = Path.home() / ".config" / "codexer.json"
DEFAULT_DATA_DIR = Path.home() / ".codexer"
NAMES_FILE = "session-names.json"
MIN_TITLE_LENGTH = len("...")


def load_config(config_path: Path | None = None) -> dict:
    """Load config from codexer.json. Missing file or keys use built-in defaults."""
    defaults = {"codex_command": "codex", "sessions_dir": None, "data_dir": None, "title_length": 60}
    path = config_path or DEFAULT_CONFIG_PATH
    if path.exists():
        data = json.loads(path.read_text())
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object")
        defaults.update(data)
    title_length = defaults["title_length"]
    if isinstance(title_length, bool) or not isinstance(title_length, int) or title_length < MIN_TITLE_LENGTH:
        raise ValueError(f"title_length must be an integer of at least {MIN_TITLE_LENGTH}, got {title_length!r}")
    return defaults


def default_sessions_dir() -> Path:
    """Return the Codex transcript root. Honors CODEX_HOME, defaults to ~/.codex/sessions."""
    env = os.environ.get("CODEX_HOME")
    if env:
        return Path(env) / "sessions"
    return Path.home() / ".codex" / "sessions"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class NameOverride:
    name: str
    updated_at: str = field(default_factory=_now)


class NameStore:
    """Session id -> display name overrides, kept apart from the transcripts.

    Every operation re-reads the whole file, so two running instances see each
    other's changes; concurrent writers can still lose an update.
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or DEFAULT_DATA_DIR
        self.names_file = self.data_dir / NAMES_FILE

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> dict[str, NameOverride]:
        try:
            data = json.loads(self.names_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(data, dict):
            return {}
        names = {}
        for session_id, entry in data.items():
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                continue
            names[session_id] = NameOverride(name=entry["name"], updated_at=str(entry.get("updatedAt", "")))
        return names

    def save(self, names: dict[str, NameOverride]) -> None:
        self._ensure_dir()
        data = {session_id: {"name": entry.name, "updatedAt": entry.updated_at} for session_id, entry in names.items()}
        tmp = self.names_file.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        tmp.replace(self.names_file)

    def get(self, session_id: str) -> NameOverride | None:
        return self.load().get(session_id)

    def upsert(self, session_id: str, name: str) -> NameOverride:
        names = self.load()
        entry = NameOverride(name=name)
        names[session_id] = entry
        self.save(names)
        return entry

    def delete(self, session_id: str) -> bool:
        names = self.load()
        if session_id not in names:
            return False
        del names[session_id]
        self.save(names)
        return True
