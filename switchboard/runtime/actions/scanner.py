"""One-level directory listing used by the action loader."""

from __future__ import annotations

import logging
from pathlib import Path

from .audit import AuditSink

logger = logging.getLogger(__name__)


def list_entries(
    directory: Path,
    *,
    folders_only: bool = False,
    audit: AuditSink | None = None,
) -> list[Path]:
    """Return the direct children of *directory*, sorted by name.

    With ``folders_only`` only subdirectories are returned, otherwise only
    ``*.py`` files.  Private (``_``-prefixed), hidden and cache entries are
    skipped.  A missing directory is not an error: the result is empty and
    a warning naming the path is recorded.
    """
    if not directory.is_dir():
        if audit is not None:
            audit.warning(
                f"Directory {directory} not found",
                result="No actions will be loaded from it",
                fix=f"Create {directory} or point ACTIONS_DIR at the right folder",
                source="scanner",
            )
        else:
            logger.warning("[scanner] directory %s not found", directory)
        return []

    entries: list[Path] = []
    for entry in sorted(directory.iterdir()):
        if entry.name.startswith((".", "_")):
            continue
        if folders_only:
            if entry.is_dir():
                entries.append(entry)
        elif entry.is_file() and entry.suffix == ".py":
            entries.append(entry)
    return entries
