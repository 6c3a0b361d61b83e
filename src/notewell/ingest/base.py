"""Base chunker interface for note files."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from notewell.db.models import Chunk

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse every whitespace run to a single space and strip the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()`` and may use ``_split_fixed_window()``
    and ``_make_chunks()`` for the sliding-window path.

    Sizes are in characters. Windows advance by ``chunk_size - overlap``, so
    consecutive chunks share exactly ``overlap`` characters and chunk 0 plus
    ``chunk[overlap:]`` of every later chunk rebuilds the normalized text.
    """

    def __init__(self, chunk_size: int = 500, overlap: int = 100, min_length: int = 50) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be >= 0 and smaller than chunk_size")
        if min_length < 0:
            raise ValueError("min_length must be >= 0")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_length = min_length

    @abstractmethod
    def chunk(self, file_id: int | None, content: str, path: str = "") -> list[Chunk]:
        """Split *content* into Chunk objects for *file_id*.

        Args:
            file_id: Id of the parent file row (None before the file is saved).
            content: Full decoded text of the note.
            path: Original file path (used for logging only).

        Returns:
            Ordered list of Chunk objects with sequential ``chunk_index``.
        """

    @property
    def step(self) -> int:
        return self.chunk_size - self.overlap

    def _split_fixed_window(self, text: str) -> list[str]:
        """Split normalized *text* into overlapping windows.

        Windows are not stripped. A trailing window shorter than
        ``min_length`` is folded into the one before it instead of being
        dropped; a text that fits one window is returned whole.
        """
        if not text:
            return []

        length = len(text)
        if length <= self.chunk_size:
            return [text]

        segments: list[tuple[int, int]] = []
        pos = 0
        while pos < length:
            end = min(pos + self.chunk_size, length)
            segments.append((pos, end))
            if end >= length:
                break
            pos += self.step

        if len(segments) > 1:
            start, end = segments[-1]
            if end - start < self.min_length:
                segments.pop()
                prev_start, _ = segments.pop()
                segments.append((prev_start, end))

        return [text[s:e] for s, e in segments]

    def _make_chunks(
        self,
        file_id: int | None,
        texts: list[str],
        heading_paths: list[str | None] | None = None,
    ) -> list[Chunk]:
        """Convert a list of text strings into sequentially indexed Chunks."""
        headings = heading_paths or [None] * len(texts)
        return [
            Chunk(file_id=file_id, chunk_index=i, text=t, heading_path=h)
            for i, (t, h) in enumerate(zip(texts, headings))
        ]
