from __future__ import annotations

import os
import subprocess


def toplevel(cwd: str | None = None) -> str | None:
    """Root of the git work tree containing cwd, or None outside a repo."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            cwd=cwd,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    root = result.stdout.strip()
    return os.path.abspath(root) if root else None
