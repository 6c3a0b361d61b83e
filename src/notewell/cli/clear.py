"""notewell clear — drop every indexed note, chunk and embedding.

Settings (notes folder, pinned notes) and conversations are kept.

Usage:
  notewell clear
  notewell clear --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from notewell.cli.common import load_cli_config, open_store
from notewell.db.store import StoreError

console = Console()


def clear_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the notes database (default from config)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove all indexed content (conversations and settings survive)."""
    cfg = load_cli_config(db)
    store = open_store(cfg, must_exist=True)
    try:
        stats = store.get_stats()
        console.print(
            f"\nClear index: [bold]{stats.file_count}[/] notes  |  "
            f"{stats.chunk_count:,} chunks  |  {stats.embedding_count:,} embeddings"
        )
        if not yes:
            if not typer.confirm("Confirm clear?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)
        try:
            store.clear_all_content()
        except StoreError as exc:
            console.print(f"[red]Error:[/] {exc}\n  Nothing was removed.")
            raise typer.Exit(1)
        console.print("  [green]✓[/] Index cleared.")
    finally:
        store.close()
