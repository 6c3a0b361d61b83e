"""Plain text chunker — sliding character window with overlap."""

from __future__ import annotations

from notewell.db.models import Chunk
from notewell.ingest.base import BaseChunker, normalize_whitespace


class PlainTextChunker(BaseChunker):
    """Split whitespace-normalized text into 500-char windows, 400-char step.

    Delegates entirely to ``BaseChunker._split_fixed_window()``.
    """

    def chunk(self, file_id: int | None, content: str, path: str = "") -> list[Chunk]:
        text = normalize_whitespace(content)
        if not text:
            return []
        return self._make_chunks(file_id, self._split_fixed_window(text))
