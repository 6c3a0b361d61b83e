"""ContentStore — the one object the rest of notewell talks to for persistence.

Owns a single SQLite connection and serialises every access to it through a
re-entrant lock: readers and the embedding pool share the connection, and
there is exactly one writer at a time. Multi-statement changes run inside one
transaction, so an interrupted save never leaves a file without its chunks.

Lifecycle::

    store = ContentStore(Path("~/.notewell/database/notewell.db").expanduser())
    store.initialize()          # idempotent, safe from several threads
    store.save_file("notes/2024-03-15.md", "2024-03-15.md", text)
    store.close()
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import os
import sqlite3
import threading
from datetime import date
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Protocol

from notewell.db.connection import Database
from notewell.db.models import (
    Chat,
    ChatMessage,
    Chunk,
    FileRecord,
    PinnedItem,
    SearchHit,
    Stats,
)
from notewell.db.paths import normalize_path
from notewell.db.repository import Repository, build_fts_query, like_terms
from notewell.db.schema import initialize as initialize_schema
from notewell.ingest import chunker_for
from notewell.ingest.note_date import derive_note_date

if TYPE_CHECKING:
    from notewell.ingest.base import BaseChunker

logger = logging.getLogger(__name__)

SETTING_SELECTED_DIRECTORY = "selected_directory"
SETTING_PINNED_ITEMS = "pinned_items"

_CHAT_ROLES = frozenset(["user", "assistant", "system"])

ChunkerFactory = Callable[[str], "BaseChunker"]


class DateBounds(Protocol):
    """Anything with a half-open [start, end) day range."""

    start: date
    end: date


class StoreError(RuntimeError):
    """A store operation failed and was rolled back."""


class StoreNotInitializedError(StoreError):
    """A data operation was attempted before initialize()."""


def _bounds(date_range: DateBounds | None) -> tuple[date | None, date | None]:
    if date_range is None:
        return None, None
    return date_range.start, date_range.end


class ContentStore:
    """Files, chunks, embeddings, settings and chats in one SQLite database."""

    def __init__(
        self,
        db: Database | Path | str,
        chunker_factory: ChunkerFactory | None = None,
    ) -> None:
        self._db = db if isinstance(db, Database) else Database(db)
        self._chunker_factory = chunker_factory or chunker_for
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._repo: Repository | None = None

    @property
    def db_path(self) -> Path:
        return self._db.db_path

    @property
    def is_ready(self) -> bool:
        return self._repo is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Open the database and bring the schema up to date.

        Idempotent. Concurrent callers block on the same lock, so only the
        first one does the work. If the file cannot be opened after bounded
        retries, or the schema cannot be applied, the store files are deleted
        and recreated once.
        """
        with self._lock:
            if self._repo is not None:
                return
            conn: sqlite3.Connection | None = None
            try:
                conn = self._db.connect_with_retry()
                initialize_schema(conn)
            except sqlite3.DatabaseError as exc:
                if conn is not None:
                    conn.close()
                logger.warning("Store at %s unusable (%s); recreating it", self.db_path, exc)
                self._recreate_locked()
                return
            self._attach(conn)

    def ensure_ready(self) -> ContentStore:
        """Readiness gate: initialize on first use, then return self."""
        if self._repo is None:
            self.initialize()
        return self

    def force_recreate(self) -> None:
        """Delete the store (and its -wal/-shm/-journal files) and start empty.

        Any failure here is re-raised; there is no further fallback.
        """
        with self._lock:
            self._recreate_locked()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
            self._conn = None
            self._repo = None

    def __enter__(self) -> ContentStore:
        self.initialize()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _recreate_locked(self) -> None:
        self.close()
        self._db.remove_files()
        conn = self._db.connect()
        try:
            initialize_schema(conn)
        except sqlite3.Error:
            conn.close()
            raise
        self._attach(conn)
        logger.warning("Recreated empty store at %s", self.db_path)

    def _attach(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._repo = Repository(conn)

    def _require(self) -> Repository:
        if self._repo is None:
            raise StoreNotInitializedError(
                "ContentStore is not initialized; call initialize() first."
            )
        return self._repo

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def save_file(
        self,
        path: Path | str,
        name: str | None,
        content: str,
        mtime: float | None = None,
    ) -> FileRecord:
        """Insert or replace a note and regenerate its chunks.

        The path is normalized first, so the same file always maps to one row
        and one stable id. Replacing chunks drops their embeddings. Saving the
        exact same content again only refreshes metadata: chunks and
        embeddings are kept.

        Args:
            path: Location of the note on disk.
            name: Display name; defaults to the file name.
            content: Full text of the note.
            mtime: Filesystem modification time; read from disk when omitted.
        """
        key = normalize_path(path)
        name = name or Path(key).name
        if mtime is None:
            try:
                mtime = os.stat(key).st_mtime
            except OSError:
                mtime = None

        content_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()
        chunks = self._chunker_factory(key).chunk(None, content, key)
        record = FileRecord(
            path=key,
            name=name,
            content=content,
            size=len(content),
            content_hash=content_hash,
            note_date=derive_note_date(name, content),
            file_mtime=mtime,
        )

        with self._lock:
            repo = self._require()
            existing = repo.get_file_by_path(key)
            unchanged = (
                existing is not None
                and existing.content_hash == content_hash
                and repo.count_chunks(existing.id) > 0
            )
            with self._conn:
                file_id = repo.upsert_file(record)
                if not unchanged:
                    repo.replace_chunks(file_id, chunks)
            logger.debug(
                "Saved %s (%d chunks%s)", key, len(chunks), ", unchanged" if unchanged else ""
            )
            return repo.get_file(file_id)

    def get_file(self, path: Path | str) -> FileRecord | None:
        with self._lock:
            return self._require().get_file_by_path(normalize_path(path))

    def get_file_content(self, file_id: int) -> str | None:
        with self._lock:
            return self._require().get_file_content(file_id)

    def list_files(self) -> list[FileRecord]:
        with self._lock:
            return self._require().list_files()

    def list_chunks(self, file_id: int) -> list[Chunk]:
        with self._lock:
            return self._require().list_chunks(file_id)

    def delete_file_by_path(self, path: Path | str) -> bool:
        """Remove a note with its chunks, index rows and embeddings. True if it existed."""
        key = normalize_path(path)
        with self._lock:
            repo = self._require()
            with self._conn:
                deleted = repo.delete_file_by_path(key)
        if deleted:
            logger.debug("Deleted %s", key)
        return deleted

    def clear_all_content(self) -> None:
        """Remove every file, chunk and embedding in one transaction.

        Settings and chats survive.

        Raises:
            StoreError: If anything fails; nothing is removed in that case.
        """
        with self._lock:
            repo = self._require()
            try:
                with self._conn:
                    repo.clear_content()
            except sqlite3.Error as exc:
                raise StoreError(f"Clearing content failed: {exc}") from exc
        logger.info("Cleared all indexed content")

    def needs_processing(self, path: Path | str, current_mtime: float | None = None) -> bool:
        """True if *path* is unknown or its mtime is strictly newer than the stored one."""
        key = normalize_path(path)
        if current_mtime is None:
            try:
                current_mtime = os.stat(key).st_mtime
            except OSError:
                return False
        with self._lock:
            known, stored = self._require().get_file_mtime(key)
        if not known or stored is None:
            return True
        return current_mtime > stored

    def get_stats(self) -> Stats:
        with self._lock:
            return self._require().get_stats()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        limit: int = 10,
        date_range: DateBounds | None = None,
    ) -> list[SearchHit]:
        """Substring fallback search.

        Uses at most three tokens longer than two characters, fetches
        ``ceil(limit / tokens)`` rows per token and de-duplicates by chunk.
        ``rank`` is the result position.
        """
        terms = like_terms(query)
        if not terms or limit < 1:
            return []
        per_term = math.ceil(limit / len(terms))
        start, end = _bounds(date_range)

        seen: set[int] = set()
        hits: list[SearchHit] = []
        with self._lock:
            repo = self._require()
            for term in terms:
                for hit in repo.search_like(term, per_term, start, end):
                    if hit.chunk_id in seen:
                        continue
                    seen.add(hit.chunk_id)
                    hits.append(hit)

        hits = hits[:limit]
        for position, hit in enumerate(hits):
            hit.rank = float(position)
        return hits

    def search_fts(
        self,
        query: str,
        limit: int = 10,
        date_range: DateBounds | None = None,
    ) -> list[SearchHit]:
        """BM25-ranked full-text search with ``<mark>`` snippets.

        Raises:
            sqlite3.OperationalError: On an FTS failure; callers fall back to search().
        """
        fts_query = build_fts_query(query)
        if not fts_query:
            return []
        start, end = _bounds(date_range)
        with self._lock:
            return self._require().search_fts(fts_query, limit, start, end)

    def list_chunks_in_range(self, date_range: DateBounds, limit: int = 20) -> list[SearchHit]:
        with self._lock:
            return self._require().list_chunks_in_range(date_range.start, date_range.end, limit)

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def list_chunks_needing_embeddings(
        self, model: str, limit: int = 100, exclude: Iterable[int] = ()
    ) -> list[Chunk]:
        with self._lock:
            return self._require().list_chunks_needing_embeddings(model, limit, exclude)

    def count_chunks_needing_embeddings(self, model: str) -> int:
        with self._lock:
            return self._require().count_chunks_needing_embeddings(model)

    def upsert_embedding(self, chunk_id: int, vector: list[float], dim: int, model: str) -> bool:
        """Store a chunk's vector. False if the chunk was replaced in the meantime."""
        if dim != len(vector):
            raise ValueError(f"dim={dim} does not match vector length {len(vector)}")
        with self._lock:
            repo = self._require()
            try:
                with self._conn:
                    repo.upsert_embedding(chunk_id, vector, model)
            except sqlite3.IntegrityError:
                logger.debug("Chunk %d vanished before its embedding was stored", chunk_id)
                return False
        return True

    def get_embeddings_for_chunks(
        self, chunk_ids: Iterable[int], model: str
    ) -> dict[int, list[float]]:
        with self._lock:
            return self._require().get_embeddings_for_chunks(chunk_ids, model)

    def get_embedding_candidates(
        self,
        model: str,
        limit: int,
        date_range: DateBounds | None = None,
    ) -> list[tuple[SearchHit, list[float]]]:
        """A capped set of embedded chunks for vector-only retrieval."""
        start, end = _bounds(date_range)
        with self._lock:
            return self._require().list_embedded_hits(model, limit, start, end)

    def count_embeddings(self, model: str | None = None) -> int:
        with self._lock:
            return self._require().count_embeddings(model)

    # ------------------------------------------------------------------
    # Settings + pinned notes
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        with self._lock:
            return self._require().get_setting(key)

    def set_setting(self, key: str, value: str) -> None:
        with self._lock:
            repo = self._require()
            with self._conn:
                repo.set_setting(key, value)

    def get_all_settings(self) -> dict[str, str]:
        with self._lock:
            return self._require().get_all_settings()

    def get_pinned_items(self) -> list[PinnedItem]:
        raw = self.get_setting(SETTING_PINNED_ITEMS)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable %s setting", SETTING_PINNED_ITEMS)
            return []
        items = []
        for entry in data if isinstance(data, list) else []:
            if isinstance(entry, dict) and entry.get("path"):
                path = str(entry["path"])
                items.append(PinnedItem(path=path, name=str(entry.get("name") or Path(path).name)))
        return items

    def pin_file(self, path: Path | str, name: str | None = None) -> PinnedItem:
        """Pin a note; pinning the same path twice keeps one entry."""
        key = normalize_path(path)
        item = PinnedItem(path=key, name=name or Path(key).name)
        with self._lock:
            items = [p for p in self.get_pinned_items() if p.path != key]
            items.append(item)
            self._save_pinned(items)
        return item

    def unpin_file(self, path: Path | str) -> bool:
        key = normalize_path(path)
        with self._lock:
            items = self.get_pinned_items()
            kept = [p for p in items if p.path != key]
            if len(kept) == len(items):
                return False
            self._save_pinned(kept)
        return True

    def _save_pinned(self, items: list[PinnedItem]) -> None:
        self.set_setting(SETTING_PINNED_ITEMS, json.dumps([p.as_dict() for p in items]))

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def create_chat(self, title: str = "New chat") -> Chat:
        """Create a chat; it becomes the only active one."""
        with self._lock:
            repo = self._require()
            with self._conn:
                chat_id = repo.create_chat(title)
            return repo.get_chat(chat_id)

    def get_chat(self, chat_id: int) -> Chat | None:
        with self._lock:
            return self._require().get_chat(chat_id)

    def list_chats(self) -> list[Chat]:
        with self._lock:
            return self._require().list_chats()

    def get_active_chat(self) -> Chat | None:
        with self._lock:
            return self._require().get_active_chat()

    def set_active_chat(self, chat_id: int) -> bool:
        with self._lock:
            repo = self._require()
            with self._conn:
                return repo.set_active_chat(chat_id)

    def rename_chat(self, chat_id: int, title: str) -> bool:
        with self._lock:
            repo = self._require()
            with self._conn:
                return repo.rename_chat(chat_id, title)

    def delete_chat(self, chat_id: int) -> bool:
        """Delete a chat and its messages."""
        with self._lock:
            repo = self._require()
            with self._conn:
                return repo.delete_chat(chat_id)

    def add_chat_message(self, chat_id: int, role: str, content: str) -> ChatMessage:
        """Append a message and bump the chat's updated_at, atomically.

        Raises:
            ValueError: If *role* is not user, assistant or system.
            StoreError: If the chat does not exist.
        """
        if role not in _CHAT_ROLES:
            raise ValueError(f"invalid chat role {role!r}")
        with self._lock:
            repo = self._require()
            try:
                with self._conn:
                    message_id = repo.add_chat_message(chat_id, role, content)
            except sqlite3.IntegrityError as exc:
                raise StoreError(f"Chat {chat_id} does not exist") from exc
        return ChatMessage(id=message_id, chat_id=chat_id, role=role, content=content)

    def get_chat_messages(self, chat_id: int, limit: int | None = None) -> list[ChatMessage]:
        """Chronological messages; with *limit*, the most recent *limit* of them."""
        with self._lock:
            return self._require().get_chat_messages(chat_id, limit)
