"""Context assembler: per-file cap, character budget, pinned notes, prompt.

Pipeline:
  1. Walk the fused ranking best-first, taking at most ``per_file_cap``
     passages from any one note.
  2. Stop at the first passage that would push the total past
     ``char_budget`` characters (a first passage larger than the whole
     budget is truncated instead, so something always fits).
  3. Load every pinned note's leading snippet; pinned notes are always
     included regardless of relevance.
  4. Build the chat messages: system persona, recent conversation turns,
     then one user message with pinned notes, the date range, the numbered
     passages and the question.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Sequence

from notewell.db.models import PinnedItem
from notewell.db.store import ContentStore
from notewell.rag.dates import DateRange
from notewell.rag.retriever import ScoredChunk

logger = logging.getLogger(__name__)


@dataclass
class AssemblerConfig:
    per_file_cap: int = 2
    char_budget: int = 2_400
    history_turns: int = 6
    pinned_snippet_chars: int = 300


@dataclass
class Passage:
    file_name: str
    file_path: str
    text: str
    score: float = 0.0
    chunk_id: int | None = None
    snippet: str = ""


@dataclass
class PinnedSnippet:
    name: str
    path: str
    text: str


@dataclass
class AssembledContext:
    passages: list[Passage] = field(default_factory=list)
    pinned: list[PinnedSnippet] = field(default_factory=list)
    total_chars: int = 0

    @property
    def empty(self) -> bool:
        return not self.passages and not self.pinned


def select_passages(
    scored: Sequence[ScoredChunk],
    per_file_cap: int = 2,
    char_budget: int = 2_400,
) -> tuple[list[Passage], int]:
    """Apply the per-file cap and the character budget. Returns (passages, chars used)."""
    selected: list[Passage] = []
    per_file: dict[str, int] = {}
    total = 0

    for sc in scored:
        hit = sc.hit
        if per_file.get(hit.file_path, 0) >= per_file_cap:
            continue
        text = hit.text
        if total + len(text) > char_budget:
            if selected:
                break
            text = text[:char_budget]
        selected.append(
            Passage(
                file_name=hit.file_name,
                file_path=hit.file_path,
                text=text,
                score=sc.score,
                chunk_id=hit.chunk_id,
                snippet=hit.snippet,
            )
        )
        per_file[hit.file_path] = per_file.get(hit.file_path, 0) + 1
        total += len(text)

    return selected, total


def load_pinned(store: ContentStore, snippet_chars: int = 300) -> list[PinnedSnippet]:
    """Leading snippet of each pinned note; stored content first, then disk.

    Pins that can be read neither way are skipped with a warning.
    """
    snippets: list[PinnedSnippet] = []
    for item in store.get_pinned_items():
        content = _pinned_content(store, item)
        if content is None:
            logger.warning("Pinned note %s is unavailable; skipping", item.path)
            continue
        text = content.strip()
        if len(text) > snippet_chars:
            text = text[:snippet_chars] + "..."
        snippets.append(PinnedSnippet(name=item.name, path=item.path, text=text))
    return snippets


def _pinned_content(store: ContentStore, item: PinnedItem) -> str | None:
    record = store.get_file(item.path)
    if record is not None:
        return record.content
    try:
        return Path(item.path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None


def assemble(
    scored: Sequence[ScoredChunk],
    store: ContentStore,
    config: AssemblerConfig,
) -> AssembledContext:
    passages, total = select_passages(scored, config.per_file_cap, config.char_budget)
    pinned = load_pinned(store, config.pinned_snippet_chars)
    return AssembledContext(passages=passages, pinned=pinned, total_chars=total)


# ------------------------------------------------------------------
# Prompt
# ------------------------------------------------------------------

_SYSTEM_PROMPT = (
    "You are a thoughtful assistant for the user's personal notes and journal. "
    "Answer using only the provided note excerpts and pinned notes. "
    "Cite notes by their number, e.g. (1). If the excerpts do not contain the "
    "answer, say so plainly instead of guessing. Today is {today}."
)


def build_messages(
    query: str,
    context: AssembledContext,
    date_range: DateRange | None = None,
    history: Sequence[dict[str, str]] = (),
    history_turns: int = 6,
    today: date | None = None,
) -> list[dict[str, str]]:
    """Build the OpenAI-style message list for the generator."""
    today = today or date.today()
    messages: list[dict[str, str]] = [
        {"role": "system", "content": _SYSTEM_PROMPT.format(today=today.isoformat())}
    ]
    turns = [m for m in history if m.get("role") in ("user", "assistant")]
    if history_turns > 0:
        messages.extend(
            {"role": m["role"], "content": m["content"]} for m in turns[-history_turns:]
        )

    parts: list[str] = []
    if context.pinned:
        pinned_lines = [f"📌 {p.name}:\n{p.text}" for p in context.pinned]
        parts.append("Pinned notes:\n" + "\n\n".join(pinned_lines))
    if date_range is not None:
        parts.append(f"Date range: {date_range.describe()}")
    if context.passages:
        numbered = [
            f"({i}) {p.file_name}: {p.text}" for i, p in enumerate(context.passages, start=1)
        ]
        parts.append("Relevant note excerpts:\n" + "\n\n".join(numbered))
    parts.append(f"Question: {query}")

    messages.append({"role": "user", "content": "\n\n".join(parts)})
    return messages
