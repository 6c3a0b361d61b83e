"""notewell embed — fill in embeddings for chunks that have none."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from notewell.cli.common import load_cli_config, open_store
from notewell.cli.index import run_embedding


def embed_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the notes database (default from config)."),
    ] = None,
) -> None:
    """Generate embeddings for every chunk still missing one."""
    cfg = load_cli_config(db)
    store = open_store(cfg, must_exist=True)
    try:
        run_embedding(store, cfg)
    finally:
        store.close()
