"""notewell status — index overview: notes folder, counts, models, pinned notes."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from notewell.cli.common import load_cli_config, open_store
from notewell.config import NotewellConfig
from notewell.db.store import SETTING_SELECTED_DIRECTORY, ContentStore

console = Console()


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the notes database (default from config)."),
    ] = None,
) -> None:
    """Show what is indexed and how notewell is configured."""
    cfg = load_cli_config(db)
    db_path = Path(cfg.store.path).expanduser()

    if not db_path.exists():
        console.print(
            Panel(
                f"[yellow]No database found at {escape(str(db_path))}.[/]\n"
                "  Run:  notewell index <notes-folder>",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        _show_models_panel(cfg)
        return

    store = open_store(cfg)
    try:
        _show_index_panel(store, db_path, cfg)
        _show_models_panel(cfg)
        _show_pinned_panel(store)
    finally:
        store.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_index_panel(store: ContentStore, db_path: Path, cfg: NotewellConfig) -> None:
    stats = store.get_stats()
    root = store.get_setting(SETTING_SELECTED_DIRECTORY)
    size_mb = db_path.stat().st_size / (1024 * 1024)
    pending = (
        store.count_chunks_needing_embeddings(cfg.embedding.model)
        if cfg.embedding.enabled
        else 0
    )

    lines = [
        f"Notes folder: {escape(root) if root else '[dim](none yet)[/]'}",
        f"Database:     {escape(str(db_path))} ({size_mb:.1f} MB)",
        f"Notes: [bold]{stats.file_count}[/]  |  "
        f"Chunks: [bold]{stats.chunk_count:,}[/]  |  "
        f"Characters: [bold]{stats.index_size:,}[/]",
        f"Embeddings: [bold]{stats.embedding_count:,}[/]"
        + (f"  [yellow]({pending:,} pending)[/]" if pending else ""),
    ]
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))


def _show_models_panel(cfg: NotewellConfig) -> None:
    embedding = cfg.embedding.model or "[dim]disabled (keyword search only)[/]"
    lines = [
        f"Generation: {cfg.generation.model}",
        f"Embedding:  {embedding}",
        f"Weights:    lexical {cfg.retrieval.lexical_weight}  |  "
        f"semantic {cfg.retrieval.vector_weight}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Models[/]", expand=False))


def _show_pinned_panel(store: ContentStore) -> None:
    pinned = store.get_pinned_items()
    if not pinned:
        return
    lines = [f"📌 {escape(p.name)}  [dim]{escape(p.path)}[/]" for p in pinned]
    console.print(Panel("\n".join(lines), title="[bold]Pinned[/]", expand=False))
