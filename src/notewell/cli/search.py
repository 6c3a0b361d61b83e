"""notewell search — keyword search over indexed notes (no language model involved)."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notewell.cli.common import load_cli_config, open_store
from notewell.db.models import SearchHit
from notewell.rag.dates import extract_date_range, strip_date_phrase
from notewell.rag.retriever import lexical_candidates

console = Console()


def _highlight(snippet: str) -> str:
    """Turn FTS ``<mark>`` tags into rich markup."""
    return escape(snippet).replace("<mark>", "[bold yellow]").replace("</mark>", "[/]")


def search_cmd(
    query: Annotated[str, typer.Argument(help="Words to look for; date hints like 'last week' filter by day.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the notes database (default from config)."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Maximum number of results."),
    ] = 10,
    like: Annotated[
        bool,
        typer.Option("--like", help="Use substring matching instead of full-text search."),
    ] = False,
) -> None:
    """Search indexed notes by keyword."""
    cfg = load_cli_config(db)
    store = open_store(cfg, must_exist=True)
    try:
        date_range = extract_date_range(query)
        hits: list[SearchHit]
        if like:
            hits = store.search(strip_date_phrase(query, date_range), limit, date_range)
        else:
            hits = lexical_candidates(query, store, limit, date_range)
    finally:
        store.close()

    if date_range is not None:
        console.print(f"[dim]Date range: {date_range.describe()}[/]")
    if not hits:
        console.print("[yellow]No matching notes.[/]")
        raise typer.Exit(0)

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", style="dim", width=3)
    table.add_column("Note", style="bold")
    table.add_column("Snippet")
    for i, hit in enumerate(hits, start=1):
        table.add_row(str(i), escape(hit.file_name), _highlight(hit.snippet))
    console.print(table)
