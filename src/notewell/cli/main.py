"""notewell CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from notewell.cli.ask import ask_cmd
from notewell.cli.chats import chats_app
from notewell.cli.clear import clear_cmd
from notewell.cli.embed import embed_cmd
from notewell.cli.index import index_cmd
from notewell.cli.pin import pin_app
from notewell.cli.search import search_cmd
from notewell.cli.status import status_cmd
from notewell.cli.watch import watch_cmd
from notewell.logging_config import setup_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("notewell")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"notewell {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="notewell",
    help=(
        "notewell: ask questions about your local notes.\n\n"
        "  notewell index   Index a notes folder (keyword + optional embeddings).\n"
        "  notewell watch   Keep the index current while you write.\n"
        "  notewell ask     Answer a question from your notes via RAG + LLM."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging to stderr."),
    ] = False,
) -> None:
    """notewell: ask questions about your local notes."""
    setup_logging(verbose=verbose)


app.command("index")(index_cmd)
app.command("watch")(watch_cmd)
app.command("embed")(embed_cmd)
app.command("search")(search_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("clear")(clear_cmd)
app.add_typer(pin_app, name="pin")
app.add_typer(chats_app, name="chats")


@app.command("version")
def version_cmd() -> None:
    """Show the installed notewell version."""
    typer.echo(f"notewell {_installed_version()}")


if __name__ == "__main__":
    app()
