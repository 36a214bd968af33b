from __future__ import annotations

import subprocess


def resume_args(session_id: str | None = None, prompt: str | None = None) -> list[str]:
    args = ["resume"]
    if session_id:
        args.append(session_id)
    if prompt:
        args.append(prompt)
    return args


def new_args(prompt: str | None = None) -> list[str]:
    return [prompt] if prompt else []


def run(args: list[str], command: str = "codex", cwd: str | None = None) -> int:
    """Run codex attached to the current terminal and return its exit code.

    Raises OSError if the binary cannot be launched.
    """
    result = subprocess.run([command, *args], cwd=cwd)
    return result.returncode
