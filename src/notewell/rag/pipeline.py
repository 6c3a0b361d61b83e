"""Query → answer: date extraction, hybrid retrieval, assembly, generation.

When nothing relevant is found and no note is pinned, the fixed
``NOTHING_FOUND_ANSWER`` is returned without calling the language model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterator, Sequence

from notewell.config import NotewellConfig
from notewell.db.store import ContentStore
from notewell.rag.assembler import AssembledContext, AssemblerConfig, assemble, build_messages
from notewell.rag.dates import DateRange, extract_date_range
from notewell.rag.llm_client import complete, stream_complete
from notewell.rag.retriever import RetrieverConfig, retrieve

logger = logging.getLogger(__name__)

NOTHING_FOUND_ANSWER = (
    "I couldn't locate anything specific in your journal for this. "
    "Try a broader phrasing or add a date hint (e.g., 'last 7 days', '2024-01')."
)

_PINNED_SNIPPET = "(Pinned)"


@dataclass
class Source:
    file_name: str
    file_path: str
    snippet: str


@dataclass
class PreparedAnswer:
    messages: list[dict[str, str]]
    context: AssembledContext
    sources: list[Source] = field(default_factory=list)
    date_range: DateRange | None = None

    @property
    def empty(self) -> bool:
        return self.context.empty


@dataclass
class RAGResponse:
    answer: str
    sources: list[Source] = field(default_factory=list)
    date_range: DateRange | None = None


def retriever_config(config: NotewellConfig) -> RetrieverConfig:
    r = config.retrieval
    return RetrieverConfig(
        embedding_model=config.embedding.model,
        candidate_limit=r.candidate_limit,
        lexical_weight=r.lexical_weight,
        vector_weight=r.vector_weight,
        global_embedding_limit=r.global_embedding_limit,
    )


def assembler_config(config: NotewellConfig) -> AssemblerConfig:
    r = config.retrieval
    return AssemblerConfig(
        per_file_cap=r.per_file_cap,
        char_budget=r.char_budget,
        history_turns=r.history_turns,
        pinned_snippet_chars=r.pinned_snippet_chars,
    )


def _sources(context: AssembledContext) -> list[Source]:
    sources = [Source(p.file_name, p.file_path, p.snippet or p.text[:200]) for p in context.passages]
    sources.extend(Source(f"📌 {p.name}", p.path, _PINNED_SNIPPET) for p in context.pinned)
    return sources


def prepare_answer(
    query: str,
    store: ContentStore,
    config: NotewellConfig,
    history: Sequence[dict[str, str]] = (),
    now: datetime | date | None = None,
    embed_fn: Callable[[str], list[float]] | None = None,
) -> PreparedAnswer:
    """Everything up to (not including) the generator call."""
    date_range = extract_date_range(query, now)
    scored = retrieve(query, store, retriever_config(config), date_range, embed_fn)
    context = assemble(scored, store, assembler_config(config))
    today = now.date() if isinstance(now, datetime) else now
    messages = build_messages(
        query,
        context,
        date_range,
        history,
        config.retrieval.history_turns,
        today,
    )
    logger.debug(
        "Prepared %d passages, %d pinned, %d chars for %r",
        len(context.passages), len(context.pinned), context.total_chars, query,
    )
    return PreparedAnswer(
        messages=messages,
        context=context,
        sources=_sources(context),
        date_range=date_range,
    )


def retrieve_and_answer(
    query: str,
    store: ContentStore,
    config: NotewellConfig,
    history: Sequence[dict[str, str]] = (),
    now: datetime | date | None = None,
    embed_fn: Callable[[str], list[float]] | None = None,
) -> RAGResponse:
    """Answer *query* from the notes in *store*.

    Raises:
        litellm.exceptions.APIError: If generation fails after retries.
    """
    prepared = prepare_answer(query, store, config, history, now, embed_fn)
    if prepared.empty:
        return RAGResponse(answer=NOTHING_FOUND_ANSWER, date_range=prepared.date_range)
    gen = config.generation
    answer = complete(
        gen.model, prepared.messages, max_tokens=gen.max_tokens, temperature=gen.temperature
    )
    return RAGResponse(answer=answer, sources=prepared.sources, date_range=prepared.date_range)


def stream_answer(prepared: PreparedAnswer, config: NotewellConfig) -> Iterator[str]:
    """Yield the answer for an already prepared query as text deltas."""
    if prepared.empty:
        yield NOTHING_FOUND_ANSWER
        return
    gen = config.generation
    yield from stream_complete(
        gen.model, prepared.messages, max_tokens=gen.max_tokens, temperature=gen.temperature
    )
