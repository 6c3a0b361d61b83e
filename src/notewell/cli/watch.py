"""notewell watch — keep the index in sync with a notes folder until Ctrl-C.

Runs the initial scan, then re-indexes changed notes (debounced) and removes
deleted ones, while the embedding pool fills in vectors in the background.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from notewell.cli.common import build_embedding_pool, load_cli_config, open_store
from notewell.cli.errors import err_not_a_directory, warn_embeddings_disabled
from notewell.ingest.watcher import NoteWatcher

console = Console()


def watch_cmd(
    root: Annotated[
        Path,
        typer.Argument(help="Folder that holds your notes."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the notes database (default from config)."),
    ] = None,
    embed: Annotated[
        bool,
        typer.Option("--embed/--no-embed", help="Generate embeddings in the background."),
    ] = True,
) -> None:
    """Watch ROOT and re-index notes as they change."""
    if not root.is_dir():
        console.print(err_not_a_directory(str(root)))
        raise typer.Exit(1)

    cfg = load_cli_config(db, project_dir=root, create_global=True)
    store = open_store(cfg)

    pool = build_embedding_pool(store, cfg) if embed else None
    if embed and not cfg.embedding.enabled:
        console.print(warn_embeddings_disabled())

    watcher = NoteWatcher(
        store,
        extensions=cfg.watcher.extensions,
        max_depth=cfg.watcher.max_depth,
        debounce_ms=cfg.watcher.debounce_ms,
        on_change=pool.notify if pool else None,
    )

    try:
        if pool:
            pool.start()
        with console.status(f"Scanning {root}…"):
            result = watcher.start(root)
        if result is not None:
            console.print(
                f"  [green]✓[/] Indexed [bold]{result.indexed}[/]  |  "
                f"Unchanged: {result.skipped}  |  Failed: {result.failed}"
            )
        if pool:
            pool.notify()
        console.print(f"[bold]Watching[/] {watcher.root}  [dim](Ctrl-C to stop)[/]")
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping…[/]")
    finally:
        watcher.stop()
        if pool:
            pool.stop()
        store.close()
