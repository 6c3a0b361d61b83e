"""notewell ask — answer a question from your notes via hybrid retrieval + LLM.

Usage:
  notewell ask "what did I decide about the garden last week?"
  notewell ask "and the week before?" --chat 3
  notewell ask "summarise 2024-03" --new-chat --no-stream

The question and answer are stored in a conversation (the active one unless
--chat or --new-chat says otherwise), and its recent turns are sent along as
context for follow-up questions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from notewell.cli.common import load_cli_config, open_store
from notewell.cli.errors import err_chat_not_found, err_generation_failed, err_no_api_key
from notewell.config import NotewellConfig
from notewell.db.models import Chat
from notewell.db.store import ContentStore
from notewell.rag.llm_client import complete, provider_of, validate_api_key
from notewell.rag.pipeline import (
    NOTHING_FOUND_ANSWER,
    PreparedAnswer,
    Source,
    prepare_answer,
    stream_answer,
)

console = Console()

_TITLE_CHARS = 60


def ask_cmd(
    query: Annotated[str, typer.Argument(help="Your question.")],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the notes database (default from config)."),
    ] = None,
    chat: Annotated[
        int | None,
        typer.Option("--chat", help="Continue the conversation with this id."),
    ] = None,
    new_chat: Annotated[
        bool,
        typer.Option("--new-chat", help="Start a new conversation."),
    ] = False,
    stream: Annotated[
        bool,
        typer.Option("--stream/--no-stream", help="Print the answer as it is generated."),
    ] = True,
    show_prompt: Annotated[
        bool,
        typer.Option("--show-prompt", help="Print the assembled prompt and exit (no LLM call)."),
    ] = False,
) -> None:
    """Ask a question about your notes."""
    cfg = load_cli_config(db)
    store = open_store(cfg, must_exist=True)
    try:
        conversation = _resolve_chat(store, query, chat, new_chat)
        history = [
            m.as_message()
            for m in store.get_chat_messages(conversation.id, limit=cfg.retrieval.history_turns)
        ]

        prepared = prepare_answer(query, store, cfg, history=history)

        if show_prompt:
            for message in prepared.messages:
                console.print(f"[bold]{message['role']}[/]")
                console.print(escape(message["content"]))
                console.print()
            return

        if prepared.empty:
            answer = NOTHING_FOUND_ANSWER
            console.print(answer)
        else:
            try:
                validate_api_key(cfg.generation.model)
            except EnvironmentError:
                console.print(err_no_api_key(provider_of(cfg.generation.model)))
                raise typer.Exit(1)
            answer = _generate(prepared, cfg, stream)

        store.add_chat_message(conversation.id, "user", query)
        store.add_chat_message(conversation.id, "assistant", answer)
        _print_sources(prepared.sources)
        console.print(f"[dim]Chat {conversation.id}: {escape(conversation.title)}[/]")
    finally:
        store.close()


def _resolve_chat(store: ContentStore, query: str, chat_id: int | None, new_chat: bool) -> Chat:
    if chat_id is not None:
        existing = store.get_chat(chat_id)
        if existing is None:
            console.print(err_chat_not_found(chat_id))
            raise typer.Exit(1)
        store.set_active_chat(chat_id)
        return existing
    if not new_chat:
        active = store.get_active_chat()
        if active is not None:
            return active
    return store.create_chat(query[:_TITLE_CHARS].strip() or "New chat")


def _generate(prepared: PreparedAnswer, cfg: NotewellConfig, stream: bool) -> str:
    gen = cfg.generation
    try:
        if stream:
            parts: list[str] = []
            for delta in stream_answer(prepared, cfg):
                parts.append(delta)
                console.print(delta, end="", markup=False, highlight=False, soft_wrap=True)
            console.print()
            return "".join(parts)
        answer = complete(
            gen.model, prepared.messages, max_tokens=gen.max_tokens, temperature=gen.temperature
        )
    except Exception as exc:
        console.print(err_generation_failed(gen.model, str(exc)))
        raise typer.Exit(1)
    console.print(answer, markup=False, highlight=False)
    return answer


def _print_sources(sources: list[Source]) -> None:
    if not sources:
        return
    console.print("\n[bold]Sources[/]")
    for source in sources:
        console.print(f"  • {escape(source.file_name)}  [dim]{escape(source.snippet[:80])}[/]")
