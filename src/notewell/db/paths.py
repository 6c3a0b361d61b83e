"""Canonical path form used as the files table's natural key."""

from __future__ import annotations

from pathlib import Path


def normalize_path(path: Path | str) -> str:
    """Absolute, resolved, forward-slash form of *path*.

    ``./notes/a.md``, ``notes//a.md`` and ``notes\\a.md`` all map to the same
    key, so re-indexing the same file never creates a second row.
    """
    text = str(path).replace("\\", "/")
    return Path(text).expanduser().resolve().as_posix()


def is_same_or_subpath(child: Path | str, parent: Path | str) -> bool:
    """True if *child* equals *parent* or lives somewhere beneath it."""
    child_norm = normalize_path(child)
    parent_norm = normalize_path(parent).rstrip("/")
    if child_norm == parent_norm:
        return True
    return child_norm.startswith(parent_norm + "/")
