"""Tests for the hybrid (BM25 + cosine) retriever."""

from __future__ import annotations

import math
import sqlite3
from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest

from notewell.db.models import SearchHit
from notewell.db.store import ContentStore
from notewell.rag.dates import DateRange
from notewell.rag.retriever import (
    RetrieverConfig,
    cosine_similarity,
    lexical_candidates,
    normalize_lexical,
    retrieve,
)

_MODEL = "test/embedder"


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _hit(chunk_id: int, rank: float) -> SearchHit:
    return SearchHit(
        chunk_id=chunk_id,
        file_id=1,
        file_path="/n/a.md",
        file_name="a.md",
        chunk_index=0,
        text="t",
        snippet="t",
        rank=rank,
    )


def _populate(store: ContentStore, notes: dict[str, tuple[str, list[float]]]) -> dict[str, int]:
    """Save one-chunk notes with the given vectors; return name → chunk id."""
    ids = {}
    for name, (text, vector) in notes.items():
        record = store.save_file(f"/notes/{name}", name, text, mtime=1.0)
        chunk = store.list_chunks(record.id)[0]
        store.upsert_embedding(chunk.id, vector, len(vector), _MODEL)
        ids[name] = chunk.id
    return ids


_NOTES = {
    "2024-03-15.md": ("Planted tomatoes in the garden", [1.0, 0.0, 0.0]),
    "2024-03-16.md": ("Watered the garden and the tomatoes again", [0.0, 1.0, 0.0]),
    "2024-04-02.md": ("Quarterly roadmap meeting at work", [0.0, 0.0, 1.0]),
}


# ------------------------------------------------------------------
# Cosine / normalization
# ------------------------------------------------------------------


def test_cosine_identical_and_opposite():
    assert cosine_similarity([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_cosine_degenerate_inputs():
    assert cosine_similarity([], [1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_uses_shared_prefix():
    assert cosine_similarity([1.0, 0.0, 5.0], [1.0, 0.0]) == pytest.approx(1.0)


@pytest.mark.parametrize("seed", range(5))
def test_cosine_is_bounded(seed):
    a = [math.sin(seed + i) for i in range(16)]
    b = [math.cos(seed * i) for i in range(16)]
    assert -1.0 <= cosine_similarity(a, b) <= 1.0


def test_normalize_lexical_best_is_one():
    scores = normalize_lexical([_hit(1, -5.0), _hit(2, -3.0), _hit(3, -1.0)])
    assert scores == {1: 1.0, 2: 0.5, 3: 0.0}


def test_normalize_lexical_ties_and_empty():
    assert normalize_lexical([_hit(1, -2.0), _hit(2, -2.0)]) == {1: 1.0, 2: 1.0}
    assert normalize_lexical([]) == {}


# ------------------------------------------------------------------
# Lexical candidates
# ------------------------------------------------------------------


def test_lexical_candidates_fts(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    hits = lexical_candidates("tomatoes", tmp_store, limit=10)
    assert {h.file_name for h in hits} == {"2024-03-15.md", "2024-03-16.md"}


def test_lexical_candidates_falls_back_to_substring(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    with patch.object(ContentStore, "search_fts", side_effect=sqlite3.OperationalError("fts5: syntax")):
        hits = lexical_candidates("roadmap", tmp_store, limit=10)
    assert [h.file_name for h in hits] == ["2024-04-02.md"]


def test_lexical_candidates_date_only_query(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    march = DateRange(date(2024, 3, 1), date(2024, 4, 1), "2024-03")
    hits = lexical_candidates("2024-03", tmp_store, limit=10, date_range=march)
    assert [h.file_name for h in hits] == ["2024-03-16.md", "2024-03-15.md"]


# ------------------------------------------------------------------
# retrieve
# ------------------------------------------------------------------


def test_retrieve_lexical_only_when_embeddings_disabled(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)

    def never(text):
        raise AssertionError("no embedding without a model")

    results = retrieve("tomatoes garden", tmp_store, RetrieverConfig(), embed_fn=never)
    assert {r.hit.file_name for r in results} == {"2024-03-15.md", "2024-03-16.md"}
    assert all(r.similarity is None for r in results)
    assert results[0].score == pytest.approx(0.4)  # best lexical hit, weight 0.4


def test_retrieve_fuses_scores(tmp_store: ContentStore) -> None:
    ids = _populate(tmp_store, _NOTES)
    config = RetrieverConfig(embedding_model=_MODEL)

    # Query vector points at the 03-16 note
    results = retrieve("tomatoes garden", tmp_store, config, embed_fn=lambda _t: [0.0, 1.0, 0.0])
    by_id = {r.hit.chunk_id: r for r in results}

    watered = by_id[ids["2024-03-16.md"]]
    planted = by_id[ids["2024-03-15.md"]]
    assert watered.similarity == pytest.approx(1.0)
    assert planted.similarity == pytest.approx(0.0)
    assert watered.score == pytest.approx(0.4 * watered.lexical + 0.6 * 1.0)
    assert planted.score == pytest.approx(0.4 * planted.lexical)
    assert results[0].hit.chunk_id == ids["2024-03-16.md"]
    assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)


def test_retrieve_negative_similarity_clamped(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    config = RetrieverConfig(embedding_model=_MODEL)
    results = retrieve("roadmap", tmp_store, config, embed_fn=lambda _t: [0.0, 0.0, -1.0])
    assert results[0].similarity == pytest.approx(-1.0)
    assert results[0].score == pytest.approx(0.4)


def test_retrieve_degrades_when_embedding_fails(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    config = RetrieverConfig(embedding_model=_MODEL)

    def down(_t):
        raise ConnectionError("ollama not running")

    results = retrieve("roadmap", tmp_store, config, embed_fn=down)
    assert [r.hit.file_name for r in results] == ["2024-04-02.md"]
    assert results[0].similarity is None


def test_retrieve_vector_only_when_no_lexical_match(tmp_store: ContentStore) -> None:
    ids = _populate(tmp_store, _NOTES)
    config = RetrieverConfig(embedding_model=_MODEL)

    results = retrieve(
        "vegetable patch", tmp_store, config, embed_fn=lambda _t: [0.9, 0.1, 0.0]
    )
    assert results[0].hit.chunk_id == ids["2024-03-15.md"]
    assert results[0].lexical == 0.0
    # The orthogonal note has no similarity at all and is dropped
    assert ids["2024-04-02.md"] not in {r.hit.chunk_id for r in results}


def test_retrieve_vector_only_respects_global_limit(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    config = RetrieverConfig(embedding_model=_MODEL, global_embedding_limit=1)
    results = retrieve("zzz", tmp_store, config, embed_fn=lambda _t: [1.0, 1.0, 1.0])
    assert len(results) == 1


def test_retrieve_nothing_found(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    assert retrieve("zebra", tmp_store, RetrieverConfig()) == []


def test_retrieve_with_date_range_filters(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    april = DateRange(date(2024, 4, 1), date(2024, 5, 1))
    results = retrieve("garden roadmap", tmp_store, RetrieverConfig(), date_range=april)
    assert [r.hit.file_name for r in results] == ["2024-04-02.md"]


def test_retrieve_custom_weights(tmp_store: ContentStore) -> None:
    _populate(tmp_store, _NOTES)
    config = RetrieverConfig(embedding_model=_MODEL, lexical_weight=1.0, vector_weight=0.0)
    results = retrieve("roadmap", tmp_store, config, embed_fn=lambda _t: [0.0, 0.0, 1.0])
    assert results[0].score == pytest.approx(1.0)
