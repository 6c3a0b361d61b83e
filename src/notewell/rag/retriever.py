"""Hybrid retriever: BM25 (FTS5) + embedding cosine, fused by weighted sum.

  score(c) = lexical_weight * lexical(c) + vector_weight * max(0, cos(q, c))
           = 0.4 * lexical(c) + 0.6 * max(0, cos(q, c))      (defaults)

``lexical(c)`` is the candidate's BM25 score min-max normalized to [0, 1]
(best hit = 1). Candidates come from full-text search, falling back to
substring search if FTS fails, and to a plain listing of the asked-for days
when a date-only query finds no words. With no lexical candidates at all, a
capped set of embedded chunks is scored on similarity alone.

Embedding problems never fail a query: retrieval silently degrades to
lexical-only.
"""

from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass
from typing import Callable, Sequence

from notewell.db.models import SearchHit
from notewell.db.store import ContentStore
from notewell.rag.dates import DateRange, strip_date_phrase
from notewell.rag.llm_client import embed

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], list[float]]


@dataclass
class RetrieverConfig:
    """Configuration for the hybrid retriever.

    Attributes:
        embedding_model: LiteLLM embedding model; empty for lexical-only.
        candidate_limit: Lexical candidates fetched per query.
        lexical_weight: Weight of the normalized BM25 score.
        vector_weight: Weight of the (clamped) cosine similarity.
        global_embedding_limit: Cap on the vector-only candidate set.
    """

    embedding_model: str = ""
    candidate_limit: int = 20
    lexical_weight: float = 0.4
    vector_weight: float = 0.6
    global_embedding_limit: int = 200


@dataclass
class ScoredChunk:
    """A retrieved chunk with its fused score and per-channel inputs.

    Attributes:
        hit: The search hit (chunk text, file, snippet).
        score: Fused score (higher = more relevant).
        lexical: Normalized lexical score in [0, 1] (0 if not a lexical hit).
        similarity: Raw cosine similarity (None if no vector was available).
    """

    hit: SearchHit
    score: float
    lexical: float = 0.0
    similarity: float | None = None


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b* over their shared length.

    Returns 0.0 when either vector is empty or has zero norm.
    """
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    dot = norm_a = norm_b = 0.0
    for i in range(n):
        x, y = a[i], b[i]
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    value = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(-1.0, min(1.0, value))


def normalize_lexical(hits: Sequence[SearchHit]) -> dict[int, float]:
    """Min-max normalize ranks (lower rank = better) into [0, 1], best = 1.

    When every hit has the same rank they all get 1.0.
    """
    if not hits:
        return {}
    ranks = [h.rank for h in hits]
    best, worst = min(ranks), max(ranks)
    if worst == best:
        return {h.chunk_id: 1.0 for h in hits}
    span = worst - best
    return {h.chunk_id: (worst - h.rank) / span for h in hits}


def lexical_candidates(
    query: str,
    store: ContentStore,
    limit: int,
    date_range: DateRange | None = None,
) -> list[SearchHit]:
    """Full-text hits, substring hits if FTS errors, or the range's chunks for date-only queries."""
    text = strip_date_phrase(query, date_range)
    try:
        hits = store.search_fts(text, limit=limit, date_range=date_range)
    except sqlite3.Error as exc:
        logger.warning("Full-text search failed (%s); using substring search", exc)
        hits = store.search(text, limit=limit, date_range=date_range)
    if not hits and date_range is not None:
        hits = store.list_chunks_in_range(date_range, limit=limit)
    return hits


def retrieve(
    query: str,
    store: ContentStore,
    config: RetrieverConfig,
    date_range: DateRange | None = None,
    embed_fn: EmbedFn | None = None,
) -> list[ScoredChunk]:
    """Run hybrid retrieval and return fused chunks, best-first."""
    hits = lexical_candidates(query, store, config.candidate_limit, date_range)
    lexical = normalize_lexical(hits)
    by_id: dict[int, SearchHit] = {h.chunk_id: h for h in hits}

    similarities = _vector_scores(query, store, config, date_range, by_id, embed_fn)

    scored: list[ScoredChunk] = []
    for chunk_id, hit in by_id.items():
        sim = similarities.get(chunk_id)
        lex = lexical.get(chunk_id, 0.0)
        score = config.lexical_weight * lex + config.vector_weight * max(0.0, sim or 0.0)
        if chunk_id not in lexical and score <= 0.0:
            continue  # vector-only candidate with no similarity at all
        scored.append(ScoredChunk(hit=hit, score=score, lexical=lex, similarity=sim))

    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


# ------------------------------------------------------------------
# Embedding channel
# ------------------------------------------------------------------


def _vector_scores(
    query: str,
    store: ContentStore,
    config: RetrieverConfig,
    date_range: DateRange | None,
    by_id: dict[int, SearchHit],
    embed_fn: EmbedFn | None,
) -> dict[int, float]:
    """Cosine similarity per candidate; adds vector-only candidates to *by_id*.

    Returns an empty dict (lexical-only) if embeddings are disabled or fail.
    """
    if not config.embedding_model:
        return {}
    fn = embed_fn or (lambda text: embed(config.embedding_model, text))
    try:
        query_vector = fn(query)
        if by_id:
            vectors = store.get_embeddings_for_chunks(by_id, config.embedding_model)
        else:
            vectors = {}
            for hit, vector in store.get_embedding_candidates(
                config.embedding_model, config.global_embedding_limit, date_range
            ):
                by_id[hit.chunk_id] = hit
                vectors[hit.chunk_id] = vector
    except Exception as exc:
        # Non-fatal: no embedding capability → lexical-only
        logger.info("Embedding unavailable (%s); lexical results only", exc)
        return {}
    return {cid: cosine_similarity(query_vector, vec) for cid, vec in vectors.items()}
