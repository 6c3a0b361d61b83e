"""notewell pin CLI commands.

Commands:
  notewell pin add <path>      — always include this note in ask context
  notewell pin remove <path>   — stop including it
  notewell pin list            — show pinned notes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notewell.cli.common import load_cli_config, open_store
from notewell.cli.errors import err_note_not_found

console = Console()

pin_app = typer.Typer(
    name="pin",
    help="Manage pinned notes (add, remove, list).",
    add_completion=False,
)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the notes database (default from config)."),
]


@pin_app.command("add")
def pin_add_cmd(
    path: Annotated[Path, typer.Argument(help="Note file to pin.")],
    name: Annotated[
        str | None,
        typer.Option("--name", help="Label shown in answers (default: file name)."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """Pin a note so it is part of every answer's context."""
    if not path.is_file():
        console.print(err_note_not_found(str(path)))
        raise typer.Exit(1)
    store = open_store(load_cli_config(db))
    try:
        item = store.pin_file(path, name)
    finally:
        store.close()
    console.print(f"  [green]✓[/] Pinned 📌 [bold]{escape(item.name)}[/]")


@pin_app.command("remove")
def pin_remove_cmd(
    path: Annotated[Path, typer.Argument(help="Pinned note to remove.")],
    db: _DbOption = None,
) -> None:
    """Unpin a note."""
    store = open_store(load_cli_config(db), must_exist=True)
    try:
        removed = store.unpin_file(path)
    finally:
        store.close()
    if not removed:
        console.print(f"[yellow]Not pinned:[/] {escape(str(path))}")
        raise typer.Exit(0)
    console.print(f"  [green]✓[/] Unpinned {escape(str(path))}")


@pin_app.command("list")
def pin_list_cmd(db: _DbOption = None) -> None:
    """List pinned notes."""
    store = open_store(load_cli_config(db), must_exist=True)
    try:
        pinned = store.get_pinned_items()
    finally:
        store.close()

    if not pinned:
        console.print("[dim]No pinned notes.[/]  Pin one with:  notewell pin add <path>")
        raise typer.Exit(0)

    table = Table(title="Pinned notes", show_header=True, header_style="bold")
    table.add_column("Name", style="bold")
    table.add_column("Path", style="dim")
    for item in pinned:
        table.add_row(f"📌 {escape(item.name)}", escape(item.path))
    console.print(table)
