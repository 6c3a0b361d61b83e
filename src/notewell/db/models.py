"""Domain models for the notes database layer."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class FileRecord:
    path: str
    name: str
    content: str
    size: int = 0
    content_hash: str = ""
    note_date: str | None = None  # YYYY-MM-DD
    file_mtime: float | None = None
    created_at: str | None = None
    modified_at: str | None = None
    id: int | None = None  # set after insert


@dataclass
class Chunk:
    file_id: int | None
    chunk_index: int
    text: str
    heading_path: str | None = None
    created_at: str | None = None
    id: int | None = None  # set after insert; None for unsaved chunks


@dataclass
class SearchHit:
    """One lexical search result.

    ``rank`` is lower-is-better: bm25() for full-text hits, the result
    position for substring and date-listing hits.
    """

    chunk_id: int
    file_id: int
    file_path: str
    file_name: str
    chunk_index: int
    text: str
    snippet: str
    rank: float = 0.0
    note_date: str | None = None
    heading_path: str | None = None


@dataclass
class Stats:
    file_count: int = 0
    chunk_count: int = 0
    index_size: int = 0  # total characters of stored content
    embedding_count: int = 0


@dataclass
class Chat:
    id: int
    title: str
    is_active: bool = False
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class ChatMessage:
    chat_id: int
    role: str
    content: str
    created_at: str | None = None
    id: int | None = None

    def as_message(self) -> dict[str, str]:
        """OpenAI-style message dict."""
        return {"role": self.role, "content": self.content}


@dataclass
class PinnedItem:
    """A note the user always wants in the prompt context."""

    path: str
    name: str

    def as_dict(self) -> dict[str, str]:
        return {"path": self.path, "name": self.name}
