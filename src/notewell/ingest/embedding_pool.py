"""Embedding worker pool — fills in vectors for chunks that lack them.

The pool pulls batches of chunks without an embedding for the configured
model, runs one embed call per chunk on a ``ThreadPoolExecutor`` and stores
each vector as soon as its future completes (completion order is arbitrary).

A failed call is reported through ``on_progress`` and skipped for the rest of
the pass; it never stalls the other chunks. Embedding calls run without the
store lock, so saving notes is never blocked by a slow model.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable

from notewell.db.store import ContentStore
from notewell.rag.llm_client import embed

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], list[float]]


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "ollama/nomic-embed-text"
    pool_size: int = 1
    batch_size: int = 100
    timeout: float = 60.0


@dataclass
class EmbeddingProgress:
    """One per processed chunk; ``status`` is ``"ok"`` or ``"error"``."""

    status: str
    chunk_id: int
    error: str | None = None


@dataclass
class DrainResult:
    embedded: int = 0
    failed: int = 0


class EmbeddingPool:
    """Background embedding generation for a ContentStore.

    Args:
        store: Initialized content store.
        config: Model, worker count and batch size. An empty model makes the
            pool a no-op (lexical-only retrieval).
        embed_fn: ``text -> vector``; defaults to LiteLLM via ``llm_client.embed``.
        on_progress: Called (from the draining thread) once per chunk.
    """

    def __init__(
        self,
        store: ContentStore,
        config: EmbeddingConfig | None = None,
        embed_fn: EmbedFn | None = None,
        on_progress: Callable[[EmbeddingProgress], None] | None = None,
    ) -> None:
        self._store = store
        self._config = config or EmbeddingConfig()
        if self._config.pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        self._embed_fn = embed_fn or self._default_embed
        self._on_progress = on_progress
        self._executor: ThreadPoolExecutor | None = None
        self._thread: threading.Thread | None = None
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._drain_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._config.model)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def drain(self) -> DrainResult:
        """Embed every pending chunk, batch by batch, until nothing is left.

        Stops early when a whole batch failed (the model is probably down) or
        when ``stop()`` was requested.
        """
        result = DrainResult()
        if not self.enabled:
            return result

        with self._drain_lock:
            failed_ids: set[int] = set()
            executor = self._executor or ThreadPoolExecutor(
                max_workers=self._config.pool_size, thread_name_prefix="notewell-embed"
            )
            owns_executor = self._executor is None
            try:
                while not self._stopping.is_set():
                    batch = self._store.list_chunks_needing_embeddings(
                        self._config.model, self._config.batch_size, exclude=failed_ids
                    )
                    if not batch:
                        break
                    ok, failed = self._run_batch(executor, batch, failed_ids)
                    result.embedded += ok
                    result.failed += failed
                    if ok == 0:
                        logger.warning(
                            "No embeddings succeeded in a batch of %d; pausing", len(batch)
                        )
                        break
            finally:
                if owns_executor:
                    executor.shutdown(wait=True)

        if result.embedded or result.failed:
            logger.info("Embedded %d chunks (%d failed)", result.embedded, result.failed)
        return result

    def _run_batch(
        self,
        executor: ThreadPoolExecutor,
        batch: list,
        failed_ids: set[int],
    ) -> tuple[int, int]:
        futures: dict[Future, int] = {
            executor.submit(self._embed_fn, chunk.text): chunk.id for chunk in batch
        }
        ok = failed = 0
        for future in as_completed(futures):
            chunk_id = futures[future]
            try:
                vector = future.result()
            except Exception as exc:
                failed += 1
                failed_ids.add(chunk_id)
                logger.debug("Embedding chunk %d failed: %s", chunk_id, exc)
                self._report(EmbeddingProgress(status="error", chunk_id=chunk_id, error=str(exc)))
                continue
            if self._store.upsert_embedding(chunk_id, vector, len(vector), self._config.model):
                ok += 1
                self._report(EmbeddingProgress(status="ok", chunk_id=chunk_id))
            else:
                # Chunk replaced meanwhile; its successor is picked up next batch.
                failed_ids.add(chunk_id)
        return ok, failed

    def _report(self, progress: EmbeddingProgress) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(progress)
        except Exception:
            logger.exception("Embedding progress callback failed")

    def _default_embed(self, text: str) -> list[float]:
        return embed(self._config.model, text, timeout=self._config.timeout)

    # ------------------------------------------------------------------
    # Background mode
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background drain thread (no-op when disabled or running)."""
        if not self.enabled or self.running:
            return
        self._stopping.clear()
        self._executor = ThreadPoolExecutor(
            max_workers=self._config.pool_size, thread_name_prefix="notewell-embed"
        )
        self._thread = threading.Thread(
            target=self._loop, name="notewell-embedding-pool", daemon=True
        )
        self._thread.start()
        self._wake.set()

    def notify(self) -> None:
        """Ask the background thread to look for new chunks."""
        self._wake.set()

    def stop(self, timeout: float | None = 10.0) -> None:
        """Stop the background thread and release the worker threads."""
        self._stopping.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None

    def _loop(self) -> None:
        while not self._stopping.is_set():
            self._wake.wait()
            self._wake.clear()
            if self._stopping.is_set():
                break
            try:
                self.drain()
            except Exception:
                logger.exception("Embedding pass failed")
