"""CLI test fixtures: isolated config, a notes folder and an indexed database."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from notewell.cli.main import app


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    """No user config, no API keys, embeddings off unless a test turns them on."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("notewell.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    for var in ("NOTEWELL_DB", "NOTEWELL_GENERATION_MODEL", "OPENAI_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("NOTEWELL_EMBEDDING_MODEL", "none")


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def notes_dir(tmp_path: Path) -> Path:
    root = tmp_path / "notes"
    root.mkdir()
    (root / "2024-03-15.md").write_text(
        "# Garden\n\nPlanted tomatoes and basil along the south fence.", encoding="utf-8"
    )
    (root / "2024-04-02.txt").write_text(
        "Quarterly roadmap meeting. We postponed the migration.", encoding="utf-8"
    )
    return root


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "db" / "notewell.db"


@pytest.fixture
def indexed_db(runner: CliRunner, notes_dir: Path, db_path: Path) -> Path:
    result = runner.invoke(app, ["index", str(notes_dir), "--db", str(db_path), "--no-embed"])
    assert result.exit_code == 0, result.output
    return db_path
