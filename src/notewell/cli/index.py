"""notewell index — one-shot scan of a notes folder, then embed new chunks.

Usage:
  notewell index ~/Notes
  notewell index ~/Notes --no-embed
  notewell index ~/Notes --force      # re-read every file, not only modified ones

Indexing a different (unrelated) folder than last time clears the index first.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from notewell.cli.common import build_embedding_pool, load_cli_config, open_store
from notewell.cli.errors import err_not_a_directory, warn_embeddings_disabled, warn_embeddings_failed
from notewell.config import NotewellConfig
from notewell.db.store import ContentStore, StoreError
from notewell.ingest.scanner import scan_root, switch_root

console = Console()


def index_cmd(
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
        typer.Option("--embed/--no-embed", help="Generate embeddings after indexing."),
    ] = True,
    force: Annotated[
        bool,
        typer.Option("--force", help="Re-index every file, even unchanged ones."),
    ] = False,
) -> None:
    """Index the notes in ROOT (new and modified files only)."""
    if not root.is_dir():
        console.print(err_not_a_directory(str(root)))
        raise typer.Exit(1)

    cfg = load_cli_config(db, project_dir=root, create_global=True)
    store = open_store(cfg)
    try:
        try:
            cleared = switch_root(store, root)
        except StoreError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1)
        if cleared:
            console.print("[yellow]Notes folder changed — previous index cleared.[/]")

        with console.status(f"Scanning {root}…"):
            result = scan_root(
                store,
                root,
                extensions=cfg.watcher.extensions,
                max_depth=cfg.watcher.max_depth,
                force=force,
            )

        console.print(
            f"  [green]✓[/] Indexed [bold]{result.indexed}[/]  |  "
            f"Unchanged: {result.skipped}  |  Failed: {result.failed}"
        )
        for error in result.errors:
            console.print(f"    [red]✗[/] {error}")

        if embed:
            run_embedding(store, cfg)
    finally:
        store.close()


def run_embedding(store: ContentStore, cfg: NotewellConfig) -> None:
    """Drain the embedding queue with a progress bar (shared with ``notewell embed``)."""
    if not cfg.embedding.enabled:
        console.print(warn_embeddings_disabled())
        return

    pending = store.count_chunks_needing_embeddings(cfg.embedding.model)
    if not pending:
        console.print("  [dim]All chunks already embedded.[/]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task(f"Embedding with {cfg.embedding.model}…", total=pending)
        pool = build_embedding_pool(store, cfg, on_progress=lambda _p: prog.advance(task))
        result = pool.drain()

    console.print(f"  [green]✓[/] Embedded [bold]{result.embedded}[/] chunks")
    if result.failed:
        console.print(warn_embeddings_failed(result.failed))
