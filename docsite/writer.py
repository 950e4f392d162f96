"""Atomic file writes for generated artifacts."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

from .errors import OutputWriteError
from .logging import get_logger

logger = get_logger("writer")

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


def atomic_write_text(path: Path, text: str) -> None:
    """Replace or create *path* so readers never observe a partial file."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as exc:
        raise OutputWriteError(f"Unable to write {path}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise OutputWriteError(f"Unable to write {path}: {exc}") from exc


def read_existing(path: Path) -> Optional[str]:
    """Return the current text at *path*, or None if there is no file."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise OutputWriteError(f"Unable to read existing output {path}: {exc}") from exc


def write_if_changed(path: Path, text: str, existing: Optional[str] = None) -> str:
    """Write *text* unless the file already holds exactly those bytes.

    Returns ``created``, ``updated`` or ``unchanged``.
    """
    if existing is None:
        existing = read_existing(path)
    if existing == text:
        return UNCHANGED
    atomic_write_text(path, text)
    outcome = CREATED if existing is None else UPDATED
    logger.debug("%s %s (%d bytes)", outcome, path, len(text))
    return outcome


__all__ = ["CREATED", "UNCHANGED", "UPDATED", "atomic_write_text", "read_existing", "write_if_changed"]
