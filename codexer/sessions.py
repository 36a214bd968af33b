"""Discover Codex session transcripts and turn them into SessionRecord objects.

Transcripts are append-only JSONL files. The first line is a ``session_meta``
record carrying the session id; user messages appear later as
``response_item`` records.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable

from codexer.formatting import mtime_to_datetime, parse_timestamp, truncate


TRANSCRIPT_SUFFIX = ".jsonl"
READ_BUDGET = 64 * 1024
TITLE_LENGTH = 60

# Injected preambles, not something the user typed.
BOILERPLATE_MARKERS = (
    "<environment_context>",
    "</environment_context>",
    "# AGENTS.md instructions",
    "<user_instructions>",
    "<INSTRUCTIONS>",
    "These skills are discovered at startup",
)


@dataclass
class GitInfo:
    repository_url: str | None = None
    branch: str | None = None
    commit_hash: str | None = None


@dataclass
class SessionRecord:
    id: str
    file: str
    last_modified: datetime
    started_at: datetime | None = None
    cwd: str = ""
    title: str | None = None
    git: GitInfo | None = None


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


def scan_session_files(root: str | Path) -> list[str]:
    """Return absolute paths of every *.jsonl file under root, at any depth.

    A missing root means no sessions. Any other error reading the root is
    raised; unreadable nested directories are skipped.
    """
    root = os.path.abspath(root)
    if not os.path.isdir(root):
        return []
    files: list[str] = []
    with os.scandir(root) as entries:
        top = list(entries)
    for entry in top:
        _collect(entry, files)
    return files


def _collect(entry: os.DirEntry, files: list[str]) -> None:
    try:
        if entry.is_dir(follow_symlinks=False):
            with os.scandir(entry.path) as entries:
                children = list(entries)
            for child in children:
                _collect(child, files)
        elif entry.is_file() and entry.name.endswith(TRANSCRIPT_SUFFIX):
            files.append(entry.path)
    except OSError:
        return


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _read_prefix(path: str) -> str:
    with open(path, "rb") as f:
        chunk = f.read(READ_BUDGET)
    return chunk.decode("utf-8", errors="replace")


def _parse_line(line: str) -> dict | None:
    try:
        value = json.loads(line)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _git_info(raw: object) -> GitInfo | None:
    if not isinstance(raw, dict):
        return None
    return GitInfo(
        repository_url=raw.get("repository_url"),
        branch=raw.get("branch"),
        commit_hash=raw.get("commit_hash"),
    )


def _user_message_text(record: dict) -> str | None:
    """Joined input_text fragments of a user message record, else None."""
    if record.get("type") != "response_item":
        return None
    payload = record.get("payload")
    if not isinstance(payload, dict):
        return None
    if payload.get("type") != "message" or payload.get("role") != "user":
        return None
    content = payload.get("content")
    if not isinstance(content, list):
        return None
    parts = []
    for block in content:
        if isinstance(block, dict) and block.get("type") == "input_text":
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
    return " ".join(parts)


def is_boilerplate(text: str) -> bool:
    return any(marker in text for marker in BOILERPLATE_MARKERS)


def make_title(text: str, max_length: int = TITLE_LENGTH) -> str | None:
    """Collapse whitespace and truncate. None for empty or boilerplate text."""
    cleaned = " ".join(text.split())
    if not cleaned or is_boilerplate(cleaned):
        return None
    return truncate(cleaned, max_length)


def extract_title(records: Iterable[dict | None], max_length: int = TITLE_LENGTH) -> str | None:
    """Title from the first user message that is not an injected preamble."""
    for record in records:
        if record is None:
            continue
        text = _user_message_text(record)
        if text is None:
            continue
        title = make_title(text, max_length)
        if title is not None:
            return title
    return None


def read_session(path: str | Path, title_length: int = TITLE_LENGTH) -> SessionRecord | None:
    """Build a SessionRecord from one transcript, or None if it is not a session."""
    path = os.path.abspath(path)
    try:
        lines = [line.strip() for line in _read_prefix(path).splitlines()]
        lines = [line for line in lines if line]
        if not lines:
            return None
        meta = _parse_line(lines[0])
        if meta is None or meta.get("type") != "session_meta":
            return None
        payload = meta.get("payload")
        if not isinstance(payload, dict) or not payload.get("id"):
            return None

        cwd = payload.get("cwd")
        return SessionRecord(
            id=str(payload["id"]),
            file=path,
            last_modified=mtime_to_datetime(os.stat(path).st_mtime),
            started_at=parse_timestamp(payload.get("timestamp")),
            cwd=cwd if isinstance(cwd, str) else "",
            title=extract_title((_parse_line(line) for line in lines[1:]), title_length),
            git=_git_info(payload.get("git")),
        )
    except (OSError, ValueError, TypeError):
        return None


def sort_sessions(sessions: list[SessionRecord]) -> list[SessionRecord]:
    """Most recently modified first."""
    return sorted(sessions, key=lambda s: s.last_modified, reverse=True)


def load_sessions(root: str | Path, title_length: int = TITLE_LENGTH) -> list[SessionRecord]:
    sessions = []
    for file in scan_session_files(root):
        record = read_session(file, title_length)
        if record is not None:
            sessions.append(record)
    return sort_sessions(sessions)


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


def is_within(parent: str, child: str) -> bool:
    try:
        rel = os.path.relpath(child, parent)
    except ValueError:
        # Different drives on Windows.
        return False
    if rel == os.curdir:
        return True
    if os.path.isabs(rel):
        return False
    return rel != os.pardir and not rel.startswith(os.pardir + os.sep)


def filter_sessions_by_cwd(sessions: list[SessionRecord], scope: str | Path) -> list[SessionRecord]:
    """Keep sessions started in scope or one of its subdirectories."""
    scopes = {os.path.abspath(scope), os.path.realpath(scope)}
    result = []
    for session in sessions:
        if not session.cwd:
            continue
        cwd = os.path.abspath(session.cwd)
        if any(is_within(s, cwd) for s in scopes):
            result.append(session)
    return result


# ---------------------------------------------------------------------------
# Lookup, labels, deletion
# ---------------------------------------------------------------------------


def find_session(sessions: list[SessionRecord], session_id: str) -> SessionRecord | None:
    """Exact id match, else the only session whose id starts with session_id."""
    for session in sessions:
        if session.id == session_id:
            return session
    if not session_id:
        return None
    matches = [s for s in sessions if s.id.startswith(session_id)]
    return matches[0] if len(matches) == 1 else None


def display_name(session: SessionRecord, names: dict, placeholder: str = "unnamed") -> str:
    """Override name, else extracted title, else placeholder."""
    override = names.get(session.id)
    if override is not None and override.name:
        return override.name
    if session.title:
        return session.title
    return placeholder


def delete_transcript(session: SessionRecord, root: str | Path | None = None) -> list[str]:
    """Delete the transcript file, then any directories it leaves empty below root.

    Returns the deleted paths. Errors removing the file itself are raised.
    """
    os.remove(session.file)
    deleted = [session.file]
    if root is None:
        return deleted

    root = os.path.abspath(root)
    parent = os.path.dirname(session.file)
    while parent != root and is_within(root, parent):
        try:
            os.rmdir(parent)
        except OSError:
            break
        deleted.append(parent)
        parent = os.path.dirname(parent)
    return deleted
