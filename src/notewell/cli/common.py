"""Shared CLI plumbing: config loading, store opening, embedding pool setup."""

from __future__ import annotations

import functools
import sqlite3
from pathlib import Path
from typing import Callable

import typer
from rich.console import Console

from notewell.cli.errors import err_config, err_no_db, err_store_unavailable
from notewell.config import ConfigError, NotewellConfig, ensure_global_config, load_config
from notewell.db.store import ContentStore
from notewell.ingest import chunker_for
from notewell.ingest.embedding_pool import EmbeddingConfig, EmbeddingPool, EmbeddingProgress

console = Console()


def load_cli_config(
    db: Path | None = None,
    project_dir: Path | None = None,
    create_global: bool = False,
) -> NotewellConfig:
    """load_config() with CLI flags applied on top; exits 1 on a config error.

    With *create_global*, a commented default global config is written first
    if none exists yet (indexing commands do this on their first run).
    """
    if create_global:
        _ensure_global_config()
    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    if db is not None:
        cfg.store.path = db
    return cfg


def open_store(cfg: NotewellConfig, must_exist: bool = False) -> ContentStore:
    """Open and initialize the content store described by *cfg*."""
    db_path = Path(cfg.store.path).expanduser()
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    c = cfg.chunker
    factory = functools.partial(
        chunker_for,
        chunk_size=c.chunk_size,
        overlap=c.overlap,
        min_length=c.min_length,
        structured=c.structured,
    )
    store = ContentStore(db_path, chunker_factory=factory)
    try:
        store.initialize()
    except (sqlite3.Error, OSError) as exc:
        console.print(err_store_unavailable(str(db_path), str(exc)))
        raise typer.Exit(1)
    return store


def build_embedding_pool(
    store: ContentStore,
    cfg: NotewellConfig,
    on_progress: Callable[[EmbeddingProgress], None] | None = None,
) -> EmbeddingPool:
    e = cfg.embedding
    return EmbeddingPool(
        store,
        EmbeddingConfig(
            model=e.model,
            pool_size=e.pool_size,
            batch_size=e.batch_size,
            timeout=e.timeout,
        ),
        on_progress=on_progress,
    )


def _ensure_global_config() -> None:
    try:
        ensure_global_config()
    except OSError as exc:
        console.print(f"[yellow]⚠[/] Could not create the global config: {exc}")
