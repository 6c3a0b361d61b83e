"""notewell chats CLI commands.

Commands:
  notewell chats list              — all conversations, most recent first
  notewell chats new [TITLE]       — start (and activate) a conversation
  notewell chats show ID           — print a conversation's messages
  notewell chats use ID            — make ID the active conversation
  notewell chats rename ID TITLE
  notewell chats delete ID
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notewell.cli.common import load_cli_config, open_store
from notewell.cli.errors import err_chat_not_found

console = Console()

chats_app = typer.Typer(
    name="chats",
    help="Manage conversations (list, new, show, use, rename, delete).",
    add_completion=False,
)

_DbOption = Annotated[
    Path | None,
    typer.Option("--db", help="Path to the notes database (default from config)."),
]

_ROLE_STYLE = {"user": "bold cyan", "assistant": "bold green", "system": "dim"}


@chats_app.command("list")
def chats_list_cmd(db: _DbOption = None) -> None:
    """List conversations."""
    store = open_store(load_cli_config(db), must_exist=True)
    try:
        chats = store.list_chats()
    finally:
        store.close()

    if not chats:
        console.print('[dim]No conversations yet.[/]  Start one with:  notewell ask "..."')
        raise typer.Exit(0)

    table = Table(title="Conversations", show_header=True, header_style="bold")
    table.add_column("", width=1)
    table.add_column("ID", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Updated", style="dim")
    for chat in chats:
        marker = "[green]●[/]" if chat.is_active else ""
        table.add_row(marker, str(chat.id), escape(chat.title), chat.updated_at or "")
    console.print(table)


@chats_app.command("new")
def chats_new_cmd(
    title: Annotated[str, typer.Argument(help="Conversation title.")] = "New chat",
    db: _DbOption = None,
) -> None:
    """Start a new conversation and make it active."""
    store = open_store(load_cli_config(db))
    try:
        chat = store.create_chat(title)
    finally:
        store.close()
    console.print(f"  [green]✓[/] Chat {chat.id}: [bold]{escape(chat.title)}[/] (active)")


@chats_app.command("show")
def chats_show_cmd(
    chat_id: Annotated[int, typer.Argument(help="Conversation id.")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Only the most recent N messages."),
    ] = None,
    db: _DbOption = None,
) -> None:
    """Print a conversation."""
    store = open_store(load_cli_config(db), must_exist=True)
    try:
        chat = store.get_chat(chat_id)
        messages = store.get_chat_messages(chat_id, limit=limit) if chat else []
    finally:
        store.close()

    if chat is None:
        console.print(err_chat_not_found(chat_id))
        raise typer.Exit(1)

    console.print(f"[bold]{escape(chat.title)}[/] [dim](chat {chat.id})[/]\n")
    for message in messages:
        style = _ROLE_STYLE.get(message.role, "bold")
        console.print(f"[{style}]{message.role}[/]  [dim]{message.created_at or ''}[/]")
        console.print(escape(message.content))
        console.print()


@chats_app.command("use")
def chats_use_cmd(
    chat_id: Annotated[int, typer.Argument(help="Conversation id.")],
    db: _DbOption = None,
) -> None:
    """Make a conversation the active one."""
    store = open_store(load_cli_config(db), must_exist=True)
    try:
        ok = store.set_active_chat(chat_id)
    finally:
        store.close()
    if not ok:
        console.print(err_chat_not_found(chat_id))
        raise typer.Exit(1)
    console.print(f"  [green]✓[/] Chat {chat_id} is now active.")


@chats_app.command("rename")
def chats_rename_cmd(
    chat_id: Annotated[int, typer.Argument(help="Conversation id.")],
    title: Annotated[str, typer.Argument(help="New title.")],
    db: _DbOption = None,
) -> None:
    """Rename a conversation."""
    store = open_store(load_cli_config(db), must_exist=True)
    try:
        ok = store.rename_chat(chat_id, title)
    finally:
        store.close()
    if not ok:
        console.print(err_chat_not_found(chat_id))
        raise typer.Exit(1)
    console.print(f"  [green]✓[/] Renamed chat {chat_id}.")


@chats_app.command("delete")
def chats_delete_cmd(
    chat_id: Annotated[int, typer.Argument(help="Conversation id.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    db: _DbOption = None,
) -> None:
    """Delete a conversation and its messages."""
    if not yes and not typer.confirm(f"Delete chat {chat_id}?", default=False):
        console.print("[dim]Cancelled.[/]")
        raise typer.Exit(0)
    store = open_store(load_cli_config(db), must_exist=True)
    try:
        ok = store.delete_chat(chat_id)
    finally:
        store.close()
    if not ok:
        console.print(err_chat_not_found(chat_id))
        raise typer.Exit(1)
    console.print(f"  [green]✓[/] Deleted chat {chat_id}.")
