from __future__ import annotations

import json
import os
from pathlib import Path

import pytest


def meta_line(session_id: str | None = "sess-1", cwd: str | None = "/repo", timestamp: str | None = "2025-01-31T09:15:00.000Z", git: dict | None = None) -> dict:
    payload: dict = {}
    if session_id is not None:
        payload["id"] = session_id
    if timestamp is not None:
        payload["timestamp"] = timestamp
    if cwd is not None:
        payload["cwd"] = cwd
    if git is not None:
        payload["git"] = git
    return {"type": "session_meta", "payload": payload}


def user_line(*texts: str) -> dict:
    return {
        "type": "response_item",
        "payload": {
            "type": "message",
            "role": "user",
            "content": [{"type": "input_text", "text": t} for t in texts],
        },
    }


@pytest.fixture
def sessions_root(tmp_path: Path) -> Path:
    root = tmp_path / "sessions"
    root.mkdir()
    return root


@pytest.fixture
def make_session(sessions_root: Path):
    """Write a transcript under sessions_root/2025/01/31 and return its path."""

    def _make(
        session_id: str | None = "sess-1",
        cwd: str | None = "/repo",
        messages: list[str] | None = None,
        mtime: float | None = None,
        lines: list | None = None,
        filename: str | None = None,
        **meta,
    ) -> Path:
        day = sessions_root / "2025" / "01" / "31"
        day.mkdir(parents=True, exist_ok=True)
        path = day / (filename or f"rollout-{session_id or 'none'}.jsonl")
        if lines is None:
            lines = [meta_line(session_id, cwd, **meta)]
            lines += [user_line(m) for m in (messages or [])]
        text = "\n".join(line if isinstance(line, str) else json.dumps(line) for line in lines)
        path.write_text(text + "\n", encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _make
