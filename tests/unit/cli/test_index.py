"""Tests for notewell index, embed, watch and search commands."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from notewell.cli.main import app
from notewell.db.store import ContentStore


def _stats(db_path: Path):
    with ContentStore(db_path) as store:
        return store.get_stats()


# ---------------------------------------------------------------------------
# notewell index
# ---------------------------------------------------------------------------


def test_index_creates_db_and_indexes(runner, notes_dir: Path, db_path: Path) -> None:
    result = runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path), "--no-embed"])
    assert result.exit_code == 0, result.output
    assert "Indexed 2" in result.output
    assert _stats(db_path).file_count == 2


def test_index_twice_skips_unchanged(runner, indexed_db: Path, notes_dir: Path) -> None:
    result = runner.invoke(app, ["index", str(notes_dir), "--db", str(indexed_db), "--no-embed"])
    assert result.exit_code == 0
    assert "Indexed 0" in result.output
    assert "Unchanged: 2" in result.output


def test_index_other_folder_clears(runner, indexed_db: Path, tmp_path: Path) -> None:
    other = tmp_path / "other"
    other.mkdir()
    (other / "x.md").write_text("something else entirely", encoding="utf-8")

    result = runner.invoke(app, ["index", str(other), "--db", str(indexed_db), "--no-embed"])
    assert result.exit_code == 0
    assert "previous index cleared" in result.output
    assert _stats(indexed_db).file_count == 1


def test_index_not_a_directory(runner, tmp_path: Path, db_path: Path) -> None:
    result = runner.invoke(app, ["index", str(tmp_path / "nope"), "--db", str(db_path)])
    assert result.exit_code == 1
    assert result.output.startswith("Error:")
    assert not db_path.exists()


def test_index_first_run_writes_global_config(runner, notes_dir: Path, db_path: Path, tmp_path: Path) -> None:
    global_config = tmp_path / "global" / "config.yaml"
    assert not global_config.exists()

    result = runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path), "--no-embed"])
    assert result.exit_code == 0, result.output
    assert "generation:" in global_config.read_text(encoding="utf-8")


def test_index_keeps_existing_global_config(runner, notes_dir: Path, db_path: Path, tmp_path: Path) -> None:
    global_config = tmp_path / "global" / "config.yaml"
    global_config.parent.mkdir()
    global_config.write_text("generation:\n  model: ollama/mistral\n", encoding="utf-8")

    runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path), "--no-embed"])
    assert global_config.read_text(encoding="utf-8") == "generation:\n  model: ollama/mistral\n"


def test_index_unwritable_global_config_still_indexes(runner, notes_dir: Path, db_path: Path) -> None:
    with patch("notewell.cli.common.ensure_global_config", side_effect=PermissionError("read-only")):
        result = runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path), "--no-embed"])
    assert result.exit_code == 0, result.output
    assert "Could not create the global config" in result.output
    assert _stats(db_path).file_count == 2


def test_index_warns_when_embeddings_disabled(runner, notes_dir: Path, db_path: Path) -> None:
    result = runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path)])
    assert result.exit_code == 0
    assert "Embeddings are disabled" in result.output


def test_index_embeds_new_chunks(runner, notes_dir: Path, db_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("NOTEWELL_EMBEDDING_MODEL", "ollama/nomic-embed-text")
    with patch("notewell.ingest.embedding_pool.embed", return_value=[0.1, 0.2, 0.3]) as embed:
        result = runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    assert "Embedded 2" in result.output
    assert embed.call_count == 2
    assert _stats(db_path).embedding_count == 2


def test_index_reports_embedding_failures(runner, notes_dir: Path, db_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("NOTEWELL_EMBEDDING_MODEL", "ollama/nomic-embed-text")
    with patch("notewell.ingest.embedding_pool.embed", side_effect=ConnectionError("refused")):
        result = runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path)])
    assert result.exit_code == 0
    assert "could not be embedded" in result.output


# ---------------------------------------------------------------------------
# notewell embed
# ---------------------------------------------------------------------------


def test_embed_no_db_exits_1(runner, db_path: Path) -> None:
    result = runner.invoke(app, ["embed", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "No notes database" in result.output


def test_embed_fills_missing_vectors(runner, indexed_db: Path, monkeypatch) -> None:
    monkeypatch.setenv("NOTEWELL_EMBEDDING_MODEL", "ollama/nomic-embed-text")
    with patch("notewell.ingest.embedding_pool.embed", return_value=[1.0, 0.0]):
        first = runner.invoke(app, ["embed", "--db", str(indexed_db)])
        second = runner.invoke(app, ["embed", "--db", str(indexed_db)])
    assert "Embedded 2" in first.output
    assert "already embedded" in second.output


# ---------------------------------------------------------------------------
# notewell watch
# ---------------------------------------------------------------------------


def test_watch_scans_and_stops_on_ctrl_c(runner, notes_dir: Path, db_path: Path) -> None:
    fake_time = MagicMock()
    fake_time.sleep.side_effect = KeyboardInterrupt
    with patch("notewell.cli.watch.time", fake_time):
        result = runner.invoke(app, ["watch", str(notes_dir), "--db", str(db_path), "--no-embed"])
    assert result.exit_code == 0, result.output
    assert "Indexed 2" in result.output
    assert "Stopping" in result.output
    assert _stats(db_path).file_count == 2


def test_watch_not_a_directory(runner, tmp_path: Path, db_path: Path) -> None:
    result = runner.invoke(app, ["watch", str(tmp_path / "nope"), "--db", str(db_path)])
    assert result.exit_code == 1


# ---------------------------------------------------------------------------
# notewell search
# ---------------------------------------------------------------------------


def test_search_finds_note(runner, indexed_db: Path) -> None:
    result = runner.invoke(app, ["search", "tomatoes", "--db", str(indexed_db)])
    assert result.exit_code == 0, result.output
    assert "2024-03-15.md" in result.output
    assert "2024-04-02.txt" not in result.output


def test_search_like_mode(runner, indexed_db: Path) -> None:
    result = runner.invoke(app, ["search", "roadm", "--like", "--db", str(indexed_db)])
    assert result.exit_code == 0
    assert "2024-04-02.txt" in result.output


def test_search_with_date_hint(runner, indexed_db: Path) -> None:
    result = runner.invoke(app, ["search", "2024-04", "--db", str(indexed_db)])
    assert result.exit_code == 0
    assert "Date range: 2024-04-01" in result.output
    assert "2024-04-02.txt" in result.output
    assert "2024-03-15.md" not in result.output


def test_search_no_results(runner, indexed_db: Path) -> None:
    result = runner.invoke(app, ["search", "zebra", "--db", str(indexed_db)])
    assert result.exit_code == 0
    assert "No matching notes" in result.output


def test_search_no_db_exits_1(runner, db_path: Path) -> None:
    result = runner.invoke(app, ["search", "anything", "--db", str(db_path)])
    assert result.exit_code == 1
