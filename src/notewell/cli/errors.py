"""notewell rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from notewell.cli.errors import err_no_db
    console.print(err_no_db(path))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str) -> str:
    """No notes database at *db_path* yet."""
    return (
        f"[red]Error:[/] No notes database found at '{db_path}'.\n"
        "  Run:  notewell index <notes-folder>"
    )


def err_store_unavailable(db_path: str, reason: str) -> str:
    """Database could not be opened or recreated."""
    return (
        f"[red]Error:[/] Could not open the notes database at '{db_path}': {reason}\n"
        "  Check the file permissions, or point --db / NOTEWELL_DB at a writable location."
    )


def err_config(reason: str) -> str:
    """Invalid notewell.yaml / global config."""
    return (
        f"[red]Error:[/] Invalid configuration.\n  {reason}\n"
        "  Fix notewell.yaml (or ~/.notewell/config.yaml) and retry."
    )


def err_not_a_directory(path: str) -> str:
    return (
        f"[red]Error:[/] '{path}' is not a directory.\n"
        "  Pass the folder that holds your notes, e.g.  notewell index ~/Notes"
    )


def err_no_api_key(provider: str, env_var: str | None = None) -> str:
    """No API key for a hosted *provider*."""
    env_var = env_var or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=...\n"
        "  Or use a local model:  export NOTEWELL_GENERATION_MODEL=ollama/llama3.2"
    )


def err_generation_failed(model: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Generation with '{model}' failed: {reason}\n"
        "  Check that the model is running (e.g.  ollama serve) and the name is correct."
    )


def err_chat_not_found(chat_id: int) -> str:
    return (
        f"[yellow]Chat not found:[/] no conversation with id {chat_id}.\n"
        "  Run:  notewell chats list"
    )


def err_note_not_found(path: str) -> str:
    return (
        f"[yellow]Note not found:[/] '{path}' does not exist.\n"
        "  Pin an existing file, e.g.  notewell pin add ~/Notes/goals.md"
    )


def warn_embeddings_disabled() -> str:
    """Semantic search switched off by configuration."""
    return (
        "[yellow]⚠[/] Embeddings are disabled (embedding.model is empty or 'none').\n"
        "  Search uses keywords only. Set embedding.model in notewell.yaml to enable it."
    )


def warn_embeddings_failed(failed: int) -> str:
    return (
        f"[yellow]⚠[/] {failed} chunk(s) could not be embedded.\n"
        "  Is the embedding model available? Retry later with:  notewell embed"
    )
