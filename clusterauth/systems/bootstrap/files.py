"""
clusterauth — Certificate Directory I/O

Whole-file writes only: every write goes to a sibling temp file that is then
renamed over the target, so readers see either the old or the new content.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_atomic(path: Path, content: str, mode: int | None = None) -> None:
    """Replace `path` with `content`. Raises OSError on failure."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def read_text_or_none(path: Path) -> str | None:
    """File content, or None when it is missing, unreadable or empty."""
    try:
        text = path.read_text("utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    return text or None
