"""Tests for note discovery, folder scans and notes-folder switches."""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path

from notewell.db.paths import normalize_path
from notewell.db.store import SETTING_SELECTED_DIRECTORY, ContentStore
from notewell.ingest.scanner import (
    index_file,
    is_indexable,
    iter_note_files,
    read_note,
    scan_root,
    switch_root,
)


def _write(path: Path, text: str = "Some note text.") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ------------------------------------------------------------------
# is_indexable / iter_note_files
# ------------------------------------------------------------------


def test_is_indexable_extensions(tmp_path: Path) -> None:
    assert is_indexable(tmp_path / "a.md", tmp_path)
    assert is_indexable(tmp_path / "a.TXT", tmp_path)
    assert not is_indexable(tmp_path / "a.pdf", tmp_path)
    assert not is_indexable(tmp_path / "a.png", tmp_path)
    assert not is_indexable(tmp_path / "a.org", tmp_path)
    assert is_indexable(tmp_path / "a.org", tmp_path, extensions=(".org",))


def test_is_indexable_hidden_and_ignored(tmp_path: Path) -> None:
    assert not is_indexable(tmp_path / ".obsidian" / "a.md", tmp_path)
    assert not is_indexable(tmp_path / ".draft.md", tmp_path)
    assert not is_indexable(tmp_path / "node_modules" / "a.md", tmp_path)
    assert not is_indexable(tmp_path / ".git" / "a.md", tmp_path)


def test_is_indexable_outside_root(tmp_path: Path) -> None:
    assert not is_indexable(tmp_path / "other" / "a.md", tmp_path / "notes")


def test_is_indexable_depth(tmp_path: Path) -> None:
    nested = tmp_path.joinpath(*[f"d{i}" for i in range(3)], "a.md")
    assert is_indexable(nested, tmp_path, max_depth=3)
    assert not is_indexable(nested, tmp_path, max_depth=2)


def test_iter_note_files_sorted_and_filtered(tmp_path: Path) -> None:
    _write(tmp_path / "b.md")
    _write(tmp_path / "a.txt")
    _write(tmp_path / "sub" / "c.md")
    _write(tmp_path / "image.png")
    _write(tmp_path / ".hidden" / "d.md")
    _write(tmp_path / "node_modules" / "e.md")

    found = [p.relative_to(Path(normalize_path(tmp_path))).as_posix() for p in iter_note_files(tmp_path)]
    assert found == ["a.txt", "b.md", "sub/c.md"]


def test_iter_note_files_respects_max_depth(tmp_path: Path) -> None:
    _write(tmp_path / "top.md")
    _write(tmp_path / "one" / "mid.md")
    _write(tmp_path / "one" / "two" / "deep.md")
    names = [p.name for p in iter_note_files(tmp_path, max_depth=1)]
    assert names == ["top.md", "mid.md"]


def test_read_note_replaces_bad_bytes(tmp_path: Path) -> None:
    path = tmp_path / "latin.txt"
    path.write_bytes(b"caf\xe9 au lait")
    assert read_note(path).startswith("caf")


# ------------------------------------------------------------------
# scan_root
# ------------------------------------------------------------------


def test_scan_indexes_then_skips_unchanged(tmp_store: ContentStore, tmp_path: Path) -> None:
    root = tmp_path / "notes"
    _write(root / "a.md", "Alpha note")
    _write(root / "b.txt", "Beta note")

    first = scan_root(tmp_store, root)
    assert (first.indexed, first.skipped, first.failed) == (2, 0, 0)

    second = scan_root(tmp_store, root)
    assert (second.indexed, second.skipped) == (0, 2)
    assert tmp_store.get_stats().file_count == 2


def test_scan_picks_up_modified_file(tmp_store: ContentStore, tmp_path: Path) -> None:
    root = tmp_path / "notes"
    path = _write(root / "a.md", "Alpha note")
    scan_root(tmp_store, root)

    path.write_text("Alpha note, revised", encoding="utf-8")
    later = path.stat().st_mtime + 5
    os.utime(path, (later, later))

    result = scan_root(tmp_store, root)
    assert result.indexed == 1
    assert tmp_store.get_file(path).content == "Alpha note, revised"


def test_scan_force_reindexes(tmp_store: ContentStore, tmp_path: Path) -> None:
    root = tmp_path / "notes"
    _write(root / "a.md")
    scan_root(tmp_store, root)
    assert scan_root(tmp_store, root, force=True).indexed == 1


def test_scan_continues_after_failure(tmp_store: ContentStore, tmp_path: Path, monkeypatch) -> None:
    root = tmp_path / "notes"
    _write(root / "a.md", "good")
    _write(root / "b.md", "bad")
    real_read = read_note

    def failing_read(path):
        if Path(path).name == "b.md":
            raise PermissionError("denied")
        return real_read(path)

    monkeypatch.setattr("notewell.ingest.scanner.read_note", failing_read)
    result = scan_root(tmp_store, root)

    assert (result.indexed, result.failed) == (1, 1)
    assert "denied" in result.errors[0]


def test_scan_continues_after_database_error(tmp_store: ContentStore, tmp_path: Path, monkeypatch) -> None:
    root = tmp_path / "notes"
    _write(root / "a.md", "good")
    _write(root / "b.md", "locked out")
    real_save = tmp_store.save_file

    def locked_save(path, *args, **kwargs):
        if Path(path).name == "b.md":
            raise sqlite3.OperationalError("database is locked")
        return real_save(path, *args, **kwargs)

    monkeypatch.setattr(tmp_store, "save_file", locked_save)
    result = scan_root(tmp_store, root)

    assert (result.indexed, result.failed) == (1, 1)
    assert "database is locked" in result.errors[0]
    assert [f.name for f in tmp_store.list_files()] == ["a.md"]


def test_index_file_records_mtime(tmp_store: ContentStore, tmp_path: Path) -> None:
    path = _write(tmp_path / "2024-01-05.md", "# Notes\nbody")
    record = index_file(tmp_store, path)
    assert record.file_mtime == path.stat().st_mtime
    assert record.note_date == "2024-01-05"


# ------------------------------------------------------------------
# switch_root
# ------------------------------------------------------------------


def test_switch_root_first_time_keeps_content(tmp_store: ContentStore, tmp_path: Path) -> None:
    tmp_store.save_file(tmp_path / "x.md", None, "existing", mtime=1.0)
    assert switch_root(tmp_store, tmp_path / "notes") is False
    assert tmp_store.get_setting(SETTING_SELECTED_DIRECTORY) == normalize_path(tmp_path / "notes")
    assert tmp_store.get_stats().file_count == 1


def test_switch_to_unrelated_root_clears(tmp_store: ContentStore, tmp_path: Path) -> None:
    root_a = tmp_path / "a"
    _write(root_a / "one.md", "from folder a")
    switch_root(tmp_store, root_a)
    scan_root(tmp_store, root_a)
    chat = tmp_store.create_chat("kept")

    assert switch_root(tmp_store, tmp_path / "b") is True
    assert tmp_store.get_stats().file_count == 0
    assert tmp_store.get_chat(chat.id) is not None
    assert tmp_store.get_setting(SETTING_SELECTED_DIRECTORY) == normalize_path(tmp_path / "b")


def test_switch_to_same_or_subfolder_keeps_content(tmp_store: ContentStore, tmp_path: Path) -> None:
    root = tmp_path / "notes"
    _write(root / "sub" / "one.md")
    switch_root(tmp_store, root)
    scan_root(tmp_store, root)

    assert switch_root(tmp_store, f"{root}/") is False
    assert switch_root(tmp_store, root / "sub") is False
    assert tmp_store.get_stats().file_count == 1
