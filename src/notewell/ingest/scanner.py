"""Which files are notes, and bringing the store in line with a notes folder."""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from notewell.db.models import FileRecord
from notewell.db.paths import is_same_or_subpath, normalize_path
from notewell.db.store import SETTING_SELECTED_DIRECTORY, ContentStore

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: tuple[str, ...] = (".md", ".markdown", ".mdx", ".txt")
DEFAULT_MAX_DEPTH = 20

_IGNORED_DIRS = frozenset(["node_modules", ".git", ".hg", ".svn", "__pycache__"])
_BINARY_EXTS = frozenset(
    [
        ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".svg", ".ico", ".tiff",
        ".pdf", ".zip", ".gz", ".tar", ".7z", ".mp3", ".mp4", ".mov", ".wav",
        ".db", ".sqlite", ".exe", ".dll", ".so", ".dylib",
    ]
)


@dataclass
class ScanResult:
    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


def is_indexable(
    path: Path | str,
    root: Path | str,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> bool:
    """True if *path* is a note file under *root* that should be indexed.

    Rejected: other extensions, binary formats, anything with a hidden
    component (``.obsidian/``, ``.draft.md``) or inside VCS/dependency
    directories, and files nested deeper than *max_depth* below *root*.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix in _BINARY_EXTS or suffix not in {e.lower() for e in extensions}:
        return False
    try:
        rel = Path(normalize_path(p)).relative_to(normalize_path(root))
    except ValueError:
        return False
    parts = rel.parts
    if not parts:
        return False
    if any(part.startswith(".") or part in _IGNORED_DIRS for part in parts):
        return False
    return len(parts) - 1 <= max_depth


def iter_note_files(
    root: Path | str,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Iterator[Path]:
    """Yield indexable files under *root* in sorted order. Unreadable directories are skipped."""
    root_path = Path(normalize_path(root))
    exts = tuple(extensions)

    def _on_error(exc: OSError) -> None:
        logger.warning("Skipping unreadable directory: %s", exc)

    for dirpath, dirnames, filenames in os.walk(root_path, onerror=_on_error):
        depth = len(Path(dirpath).relative_to(root_path).parts)
        dirnames[:] = sorted(
            d for d in dirnames
            if not d.startswith(".") and d not in _IGNORED_DIRS and depth < max_depth
        )
        for filename in sorted(filenames):
            candidate = Path(dirpath) / filename
            if is_indexable(candidate, root_path, exts, max_depth):
                yield candidate


def read_note(path: Path | str) -> str:
    """Read a note as UTF-8; undecodable bytes are replaced, never fatal."""
    return Path(path).read_text(encoding="utf-8", errors="replace")


def index_file(store: ContentStore, path: Path | str) -> FileRecord:
    """Read *path* from disk and save it into *store*."""
    p = Path(path)
    mtime = p.stat().st_mtime
    return store.save_file(p, p.name, read_note(p), mtime=mtime)


def scan_root(
    store: ContentStore,
    root: Path | str,
    extensions: Iterable[str] = DEFAULT_EXTENSIONS,
    max_depth: int = DEFAULT_MAX_DEPTH,
    force: bool = False,
) -> ScanResult:
    """Index every note under *root* that is new or modified since last seen.

    A file that fails to read or save is logged and counted; the scan goes on.
    """
    result = ScanResult()
    for path in iter_note_files(root, extensions, max_depth):
        try:
            if not force and not store.needs_processing(path):
                result.skipped += 1
                continue
            index_file(store, path)
            result.indexed += 1
        except (OSError, ValueError, sqlite3.Error) as exc:
            result.failed += 1
            result.errors.append(f"{path}: {exc}")
            logger.warning("Failed to index %s: %s", path, exc)
    logger.info(
        "Scan of %s: %d indexed, %d unchanged, %d failed",
        root, result.indexed, result.skipped, result.failed,
    )
    return result


def switch_root(store: ContentStore, new_root: Path | str) -> bool:
    """Record *new_root* as the notes folder, clearing content from an unrelated one.

    Content is kept when the new root is the previous root or lies beneath
    it. Returns True if content was cleared.
    """
    new_key = normalize_path(new_root)
    previous = store.get_setting(SETTING_SELECTED_DIRECTORY)
    cleared = False
    if previous and not is_same_or_subpath(new_key, previous):
        logger.info("Notes folder changed from %s to %s; clearing index", previous, new_key)
        store.clear_all_content()
        cleared = True
    store.set_setting(SETTING_SELECTED_DIRECTORY, new_key)
    return cleared
