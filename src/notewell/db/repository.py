"""Repository pattern for all notes database operations.

Single interface for: files, chunks, FTS5 and substring search, embeddings,
settings and chat conversations.

Write methods never commit. Callers group them into one transaction with
``with conn:`` (see ``ContentStore``), so a multi-statement change is applied
entirely or not at all.
"""

from __future__ import annotations

import re
import sqlite3
from datetime import date
from typing import Iterable

from notewell.db.models import Chat, ChatMessage, Chunk, FileRecord, SearchHit, Stats
from notewell.db.vectors import decode_vector, encode_vector

# Day a note "belongs to": its derived note date, else its mtime in local time.
_NOTE_DAY = "COALESCE(f.note_date, date(f.file_mtime, 'unixepoch', 'localtime'))"

_HIT_COLUMNS = """
    c.id AS chunk_id, c.file_id, c.chunk_index, c.chunk_text, c.heading_path,
    f.path AS file_path, f.name AS file_name, f.note_date
"""

_FILE_COLUMNS = """
    id, path, name, content, size, content_hash, note_date, file_mtime,
    created_at, modified_at
"""

# Dropped from full-text queries; they match nearly every note.
_STOPWORDS: frozenset[str] = frozenset(
    """
    a an and are as at be by did do does for from had has have how i in is it
    me my of on or so that the this to was were what when where which who why
    with you your about any
    """.split()
)

_MAX_FTS_TERMS = 12


def fts_terms(query: str) -> list[str]:
    """Lower-cased word tokens of *query*, stopwords and 1-char tokens removed."""
    seen: list[str] = []
    for token in re.findall(r"\w+", query.lower()):
        if len(token) < 2 or token in _STOPWORDS or token in seen:
            continue
        seen.append(token)
    return seen[:_MAX_FTS_TERMS]


def build_fts_query(query: str) -> str:
    """Turn free text into a safe FTS5 MATCH expression (OR of quoted terms).

    Returns an empty string when nothing searchable is left.
    """
    return " OR ".join(f'"{term}"' for term in fts_terms(query))


def like_terms(query: str, max_terms: int = 3) -> list[str]:
    """Substring-search tokens: punctuation stripped, longer than 2 chars, first *max_terms*."""
    cleaned = re.sub(r"[^\w\s]", " ", query.lower())
    return [w for w in cleaned.split() if len(w) > 2][:max_terms]


def _date_clause(start: date | None, end: date | None) -> tuple[str, list[str]]:
    if start is None or end is None:
        return "", []
    return (
        f" AND {_NOTE_DAY} >= ? AND {_NOTE_DAY} < ?",
        [start.isoformat(), end.isoformat()],
    )


class Repository:
    """Data access layer for all notes database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with schema initialised
                (see notewell.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def upsert_file(self, record: FileRecord) -> int:
        """Insert or update a file keyed by path. Returns the (stable) file id."""
        self._conn.execute(
            """
            INSERT INTO files (path, name, content, size, content_hash, note_date, file_mtime)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                name = excluded.name,
                content = excluded.content,
                size = excluded.size,
                content_hash = excluded.content_hash,
                note_date = excluded.note_date,
                file_mtime = excluded.file_mtime,
                modified_at = datetime('now')
            """,
            (
                record.path,
                record.name,
                record.content,
                record.size,
                record.content_hash,
                record.note_date,
                record.file_mtime,
            ),
        )
        return self._conn.execute(
            "SELECT id FROM files WHERE path = ?", (record.path,)
        ).fetchone()[0]

    def get_file_by_path(self, path: str) -> FileRecord | None:
        row = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE path = ?", (path,)
        ).fetchone()
        return _row_to_file(row) if row else None

    def get_file(self, file_id: int) -> FileRecord | None:
        row = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files WHERE id = ?", (file_id,)
        ).fetchone()
        return _row_to_file(row) if row else None

    def get_file_content(self, file_id: int) -> str | None:
        row = self._conn.execute(
            "SELECT content FROM files WHERE id = ?", (file_id,)
        ).fetchone()
        return row["content"] if row else None

    def get_file_mtime(self, path: str) -> tuple[bool, float | None]:
        """Return (known, stored mtime) for *path*."""
        row = self._conn.execute(
            "SELECT file_mtime FROM files WHERE path = ?", (path,)
        ).fetchone()
        if row is None:
            return False, None
        return True, row["file_mtime"]

    def list_files(self) -> list[FileRecord]:
        rows = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files ORDER BY path"
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def delete_file_by_path(self, path: str) -> bool:
        """Delete a file row; chunks, FTS rows and embeddings follow via cascade/triggers."""
        cur = self._conn.execute("DELETE FROM files WHERE path = ?", (path,))
        return cur.rowcount > 0

    def clear_content(self) -> None:
        """Delete every embedding, chunk and file. Settings and chats are untouched."""
        self._conn.execute("DELETE FROM embeddings")
        self._conn.execute("DELETE FROM chunks")
        self._conn.execute("DELETE FROM files")

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def replace_chunks(self, file_id: int, chunks: Iterable[Chunk]) -> list[int]:
        """Delete all chunks of *file_id* and insert *chunks*. Returns new chunk ids.

        Deleting a chunk cascades to its embeddings; the FTS triggers keep the
        full-text index in step.
        """
        self._conn.execute("DELETE FROM chunks WHERE file_id = ?", (file_id,))
        ids: list[int] = []
        for chunk in chunks:
            cur = self._conn.execute(
                """
                INSERT INTO chunks (file_id, chunk_index, chunk_text, heading_path)
                VALUES (?, ?, ?, ?)
                """,
                (file_id, chunk.chunk_index, chunk.text, chunk.heading_path),
            )
            chunk.id = cur.lastrowid
            chunk.file_id = file_id
            ids.append(cur.lastrowid)
        return ids

    def list_chunks(self, file_id: int) -> list[Chunk]:
        rows = self._conn.execute(
            """
            SELECT id, file_id, chunk_index, chunk_text, heading_path, created_at
            FROM chunks WHERE file_id = ? ORDER BY chunk_index
            """,
            (file_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, file_id: int) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE file_id = ?", (file_id,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # FTS5 / BM25 and substring search
    # ------------------------------------------------------------------

    def search_fts(
        self,
        fts_query: str,
        limit: int = 10,
        start: date | None = None,
        end: date | None = None,
    ) -> list[SearchHit]:
        """BM25 full-text search. Returns hits best-first.

        bm25() returns negative values; lower (more negative) = better match.
        The raw score is kept in ``SearchHit.rank``.
        """
        if not fts_query:
            return []
        clause, params = _date_clause(start, end)
        rows = self._conn.execute(
            f"""
            SELECT {_HIT_COLUMNS},
                   bm25(chunks_fts) AS bm25_score,
                   snippet(chunks_fts, 0, '<mark>', '</mark>', '...', 32) AS snippet
            FROM chunks_fts
            JOIN chunks c ON c.id = chunks_fts.rowid
            JOIN files f ON f.id = c.file_id
            WHERE chunks_fts MATCH ?{clause}
            ORDER BY bm25_score
            LIMIT ?
            """,
            [fts_query, *params, limit],
        ).fetchall()
        return [_row_to_hit(r, r["bm25_score"], r["snippet"]) for r in rows]

    def search_like(
        self,
        term: str,
        limit: int,
        start: date | None = None,
        end: date | None = None,
    ) -> list[SearchHit]:
        """Case-insensitive substring match on chunk text, newest files first."""
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        clause, params = _date_clause(start, end)
        rows = self._conn.execute(
            f"""
            SELECT {_HIT_COLUMNS}, substr(c.chunk_text, 1, 200) AS snippet
            FROM chunks c
            JOIN files f ON f.id = c.file_id
            WHERE c.chunk_text LIKE ? ESCAPE '\\'{clause}
            ORDER BY f.modified_at DESC, c.chunk_index
            LIMIT ?
            """,
            [f"%{escaped}%", *params, limit],
        ).fetchall()
        return [_row_to_hit(r, 0.0, r["snippet"]) for r in rows]

    def list_chunks_in_range(self, start: date, end: date, limit: int) -> list[SearchHit]:
        """Chunks of notes dated in [start, end), newest day first."""
        clause, params = _date_clause(start, end)
        rows = self._conn.execute(
            f"""
            SELECT {_HIT_COLUMNS}, substr(c.chunk_text, 1, 200) AS snippet
            FROM chunks c
            JOIN files f ON f.id = c.file_id
            WHERE 1 = 1{clause}
            ORDER BY {_NOTE_DAY} DESC, f.path, c.chunk_index
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()
        return [_row_to_hit(r, float(i), r["snippet"]) for i, r in enumerate(rows)]

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def list_chunks_needing_embeddings(
        self, model: str, limit: int = 100, exclude: Iterable[int] = ()
    ) -> list[Chunk]:
        """Chunks with no vector for *model*, oldest first, skipping *exclude* ids."""
        excluded = list(exclude)
        sql = """
            SELECT c.id, c.file_id, c.chunk_index, c.chunk_text, c.heading_path, c.created_at
            FROM chunks c
            LEFT JOIN embeddings e ON e.chunk_id = c.id AND e.model = ?
            WHERE e.chunk_id IS NULL
        """
        params: list[object] = [model]
        if excluded:
            sql += f" AND c.id NOT IN ({','.join('?' * len(excluded))})"
            params.extend(excluded)
        sql += " ORDER BY c.id LIMIT ?"
        params.append(limit)
        return [_row_to_chunk(r) for r in self._conn.execute(sql, params).fetchall()]

    def count_chunks_needing_embeddings(self, model: str) -> int:
        return self._conn.execute(
            """
            SELECT COUNT(*) FROM chunks c
            LEFT JOIN embeddings e ON e.chunk_id = c.id AND e.model = ?
            WHERE e.chunk_id IS NULL
            """,
            (model,),
        ).fetchone()[0]

    def upsert_embedding(self, chunk_id: int, vector: list[float], model: str) -> None:
        """Store *vector* for (chunk_id, model), replacing any previous one.

        Raises:
            sqlite3.IntegrityError: If the chunk no longer exists.
        """
        self._conn.execute(
            """
            INSERT INTO embeddings (chunk_id, model, dim, vector)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(chunk_id, model) DO UPDATE SET
                dim = excluded.dim,
                vector = excluded.vector,
                created_at = datetime('now')
            """,
            (chunk_id, model, len(vector), encode_vector(vector)),
        )

    def get_embeddings_for_chunks(
        self, chunk_ids: Iterable[int], model: str
    ) -> dict[int, list[float]]:
        ids = list(chunk_ids)
        if not ids:
            return {}
        rows = self._conn.execute(
            f"""
            SELECT chunk_id, dim, vector FROM embeddings
            WHERE model = ? AND chunk_id IN ({','.join('?' * len(ids))})
            """,
            [model, *ids],
        ).fetchall()
        return {r["chunk_id"]: decode_vector(r["vector"], r["dim"]) for r in rows}

    def list_embedded_hits(
        self,
        model: str,
        limit: int,
        start: date | None = None,
        end: date | None = None,
    ) -> list[tuple[SearchHit, list[float]]]:
        """Up to *limit* embedded chunks (newest files first) with their vectors."""
        clause, params = _date_clause(start, end)
        rows = self._conn.execute(
            f"""
            SELECT {_HIT_COLUMNS}, substr(c.chunk_text, 1, 200) AS snippet,
                   e.dim, e.vector
            FROM embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            JOIN files f ON f.id = c.file_id
            WHERE e.model = ?{clause}
            ORDER BY f.modified_at DESC, c.id
            LIMIT ?
            """,
            [model, *params, limit],
        ).fetchall()
        return [
            (_row_to_hit(r, 0.0, r["snippet"]), decode_vector(r["vector"], r["dim"]))
            for r in rows
        ]

    def count_embeddings(self, model: str | None = None) -> int:
        if model is None:
            return self._conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM embeddings WHERE model = ?", (model,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> Stats:
        files = self._conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(size), 0) FROM files"
        ).fetchone()
        return Stats(
            file_count=files[0],
            chunk_count=self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0],
            index_size=files[1],
            embedding_count=self.count_embeddings(),
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = datetime('now')
            """,
            (key, value),
        )

    def get_all_settings(self) -> dict[str, str]:
        rows = self._conn.execute("SELECT key, value FROM settings ORDER BY key").fetchall()
        return {r["key"]: r["value"] for r in rows}

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def create_chat(self, title: str) -> int:
        """Insert a chat and make it the only active one. Returns its id."""
        self._conn.execute("UPDATE chats SET is_active = 0 WHERE is_active = 1")
        cur = self._conn.execute(
            "INSERT INTO chats (title, is_active) VALUES (?, 1)", (title,)
        )
        return cur.lastrowid

    def get_chat(self, chat_id: int) -> Chat | None:
        row = self._conn.execute(
            "SELECT id, title, is_active, created_at, updated_at FROM chats WHERE id = ?",
            (chat_id,),
        ).fetchone()
        return _row_to_chat(row) if row else None

    def list_chats(self) -> list[Chat]:
        """All chats, most recently updated first."""
        rows = self._conn.execute(
            """
            SELECT id, title, is_active, created_at, updated_at FROM chats
            ORDER BY updated_at DESC, id DESC
            """
        ).fetchall()
        return [_row_to_chat(r) for r in rows]

    def get_active_chat(self) -> Chat | None:
        row = self._conn.execute(
            """
            SELECT id, title, is_active, created_at, updated_at FROM chats
            WHERE is_active = 1 ORDER BY id DESC LIMIT 1
            """
        ).fetchone()
        return _row_to_chat(row) if row else None

    def set_active_chat(self, chat_id: int) -> bool:
        if self.get_chat(chat_id) is None:
            return False
        self._conn.execute(
            "UPDATE chats SET is_active = CASE WHEN id = ? THEN 1 ELSE 0 END",
            (chat_id,),
        )
        return True

    def rename_chat(self, chat_id: int, title: str) -> bool:
        cur = self._conn.execute(
            "UPDATE chats SET title = ?, updated_at = datetime('now') WHERE id = ?",
            (title, chat_id),
        )
        return cur.rowcount > 0

    def delete_chat(self, chat_id: int) -> bool:
        cur = self._conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
        return cur.rowcount > 0

    def add_chat_message(self, chat_id: int, role: str, content: str) -> int:
        """Append a message and bump the chat's updated_at. Returns the message id."""
        cur = self._conn.execute(
            "INSERT INTO chat_messages (chat_id, role, content) VALUES (?, ?, ?)",
            (chat_id, role, content),
        )
        self._conn.execute(
            "UPDATE chats SET updated_at = datetime('now') WHERE id = ?", (chat_id,)
        )
        return cur.lastrowid

    def get_chat_messages(self, chat_id: int, limit: int | None = None) -> list[ChatMessage]:
        """Messages oldest first; with *limit*, only the most recent *limit* of them."""
        if limit is None:
            rows = self._conn.execute(
                """
                SELECT id, chat_id, role, content, created_at FROM chat_messages
                WHERE chat_id = ? ORDER BY id
                """,
                (chat_id,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                """
                SELECT * FROM (
                    SELECT id, chat_id, role, content, created_at FROM chat_messages
                    WHERE chat_id = ? ORDER BY id DESC LIMIT ?
                ) ORDER BY id
                """,
                (chat_id, limit),
            ).fetchall()
        return [_row_to_message(r) for r in rows]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_file(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        path=row["path"],
        name=row["name"],
        content=row["content"],
        size=row["size"],
        content_hash=row["content_hash"],
        note_date=row["note_date"],
        file_mtime=row["file_mtime"],
        created_at=row["created_at"],
        modified_at=row["modified_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        file_id=row["file_id"],
        chunk_index=row["chunk_index"],
        text=row["chunk_text"],
        heading_path=row["heading_path"],
        created_at=row["created_at"],
    )


def _row_to_hit(row: sqlite3.Row, rank: float, snippet: str) -> SearchHit:
    return SearchHit(
        chunk_id=row["chunk_id"],
        file_id=row["file_id"],
        file_path=row["file_path"],
        file_name=row["file_name"],
        chunk_index=row["chunk_index"],
        text=row["chunk_text"],
        snippet=snippet,
        rank=rank,
        note_date=row["note_date"],
        heading_path=row["heading_path"],
    )


def _row_to_chat(row: sqlite3.Row) -> Chat:
    return Chat(
        id=row["id"],
        title=row["title"],
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(row: sqlite3.Row) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        chat_id=row["chat_id"],
        role=row["role"],
        content=row["content"],
        created_at=row["created_at"],
    )
