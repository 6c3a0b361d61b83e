"""notewell ingest pipeline — chunkers, note dates, embedding pool, file watcher."""

from __future__ import annotations

from pathlib import Path

from notewell.ingest.base import BaseChunker, normalize_whitespace
from notewell.ingest.markdown import MarkdownChunker
from notewell.ingest.plaintext import PlainTextChunker

_MARKDOWN_EXTS = {".md", ".markdown", ".mdx"}


def chunker_for(
    path: str | Path,
    chunk_size: int = 500,
    overlap: int = 100,
    min_length: int = 50,
    structured: bool = True,
) -> BaseChunker:
    """Pick the chunker for *path*: heading-aware for Markdown when *structured*."""
    if structured and Path(path).suffix.lower() in _MARKDOWN_EXTS:
        return MarkdownChunker(chunk_size=chunk_size, overlap=overlap, min_length=min_length)
    return PlainTextChunker(chunk_size=chunk_size, overlap=overlap, min_length=min_length)


__all__ = [
    "BaseChunker",
    "MarkdownChunker",
    "PlainTextChunker",
    "chunker_for",
    "normalize_whitespace",
]
