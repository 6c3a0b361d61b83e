"""Tests for notewell ask."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from notewell.cli.main import app
from notewell.db.store import ContentStore


def _messages(db_path: Path) -> list[tuple[str, str]]:
    with ContentStore(db_path) as store:
        chat = store.get_active_chat()
        return [(m.role, m.content) for m in store.get_chat_messages(chat.id)]


def test_ask_no_db_exits_1(runner, db_path: Path) -> None:
    result = runner.invoke(app, ["ask", "anything", "--db", str(db_path)])
    assert result.exit_code == 1
    assert "No notes database" in result.output


def test_ask_nothing_found_skips_llm(runner, indexed_db: Path) -> None:
    with patch("notewell.cli.ask.complete") as complete:
        result = runner.invoke(app, ["ask", "zebra giraffe", "--db", str(indexed_db), "--no-stream"])
    assert result.exit_code == 0, result.output
    assert "couldn't locate anything specific" in result.output
    complete.assert_not_called()


def test_ask_answers_and_records_chat(runner, indexed_db: Path) -> None:
    with patch("notewell.cli.ask.complete", return_value="You planted tomatoes.") as complete:
        result = runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db), "--no-stream"])

    assert result.exit_code == 0, result.output
    assert "You planted tomatoes." in result.output
    assert "Sources" in result.output
    assert "2024-03-15.md" in result.output
    assert complete.call_args.args[0] == "ollama/llama3.2"
    assert _messages(indexed_db) == [("user", "tomatoes"), ("assistant", "You planted tomatoes.")]


def test_ask_streams_answer(runner, indexed_db: Path) -> None:
    with patch("notewell.rag.pipeline.stream_complete", return_value=iter(["You ", "planted."])):
        result = runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db)])
    assert result.exit_code == 0, result.output
    assert "You planted." in result.output
    assert _messages(indexed_db)[-1] == ("assistant", "You planted.")


def test_ask_follow_up_sends_history(runner, indexed_db: Path) -> None:
    with patch("notewell.cli.ask.complete", return_value="Tomatoes.") as complete:
        runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db), "--no-stream"])
        runner.invoke(app, ["ask", "tomatoes again", "--db", str(indexed_db), "--no-stream"])

    roles = [m["role"] for m in complete.call_args.args[1]]
    assert roles == ["system", "user", "assistant", "user"]


def test_ask_new_chat(runner, indexed_db: Path) -> None:
    with patch("notewell.cli.ask.complete", return_value="ok"):
        runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db), "--no-stream"])
        runner.invoke(app, ["ask", "roadmap", "--db", str(indexed_db), "--no-stream", "--new-chat"])

    with ContentStore(indexed_db) as store:
        chats = store.list_chats()
    assert len(chats) == 2
    assert [c.title for c in chats if c.is_active] == ["roadmap"]


def test_ask_unknown_chat_exits_1(runner, indexed_db: Path) -> None:
    result = runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db), "--chat", "99"])
    assert result.exit_code == 1
    assert "Chat not found" in result.output


def test_ask_show_prompt_makes_no_call(runner, indexed_db: Path) -> None:
    with patch("notewell.cli.ask.complete") as complete:
        result = runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db), "--show-prompt"])
    assert result.exit_code == 0, result.output
    assert "Question: tomatoes" in result.output
    assert "2024-03-15.md" in result.output
    complete.assert_not_called()


def test_ask_missing_api_key_exits_1(runner, indexed_db: Path, monkeypatch) -> None:
    monkeypatch.setenv("NOTEWELL_GENERATION_MODEL", "openai/gpt-4o-mini")
    result = runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db), "--no-stream"])
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_ask_generation_failure_exits_1(runner, indexed_db: Path) -> None:
    with patch("notewell.cli.ask.complete", side_effect=ConnectionError("refused")):
        result = runner.invoke(app, ["ask", "tomatoes", "--db", str(indexed_db), "--no-stream"])
    assert result.exit_code == 1
    assert "Generation with" in result.output
