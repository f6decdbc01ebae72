"""SQLite persistence for classes, lectures, chunks, viewer prefs and chat turns.

Everything above this module deals in dataclasses from ``app.models``.  In
particular, vectors are stored as JSON text in ``chunks.vector_json`` and
this module is the only place that encodes or decodes them: an empty string
or unparsable JSON comes back as ``vector=None``.
"""

import json
import logging
import math
import uuid

import aiosqlite

from app.models import ChatMessage, Chunk, ClassRecord, Lecture

logger = logging.getLogger(__name__)

# Lecture columns a caller may change through ``update_lecture``.
_LECTURE_UPDATABLE = {
    "original_name",
    "descriptor",
    "kind",
    "status",
    "sync_key",
    "include_in_memory",
    "transcript",
    "text_content",
    "summary",
    "key_terms",
    "duration_sec",
    "segments",
}


# ---------------------------------------------------------------------------
# Vector encoding
# ---------------------------------------------------------------------------


def encode_vector(vector: list[float]) -> str:
    return json.dumps([float(x) for x in vector])


def decode_vector(raw: str | None) -> list[float] | None:
    """Decode a stored vector. Missing or malformed data is treated as absent."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
        if not isinstance(data, list) or not data:
            return None
        vector = [float(x) for x in data]
    except (ValueError, TypeError):
        logger.debug("Discarding unparsable vector payload (%d bytes)", len(raw))
        return None
    # json.loads lets NaN and Infinity through; they are not valid JSON.
    if not all(math.isfinite(x) for x in vector):
        logger.debug("Discarding vector with non-finite components")
        return None
    return vector


def _new_id() -> str:
    return uuid.uuid4().hex


def _json_list(values) -> str:
    return json.dumps(list(values))


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _class_from_row(row) -> ClassRecord:
    return ClassRecord(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        sync_key=row["sync_key"],
        sync_enabled=bool(row["sync_enabled"]),
        created_at=row["created_at"],
    )


def _lecture_from_row(row) -> Lecture:
    return Lecture(
        id=row["id"],
        class_id=row["class_id"],
        user_id=row["user_id"],
        original_name=row["original_name"],
        descriptor=row["descriptor"],
        kind=row["kind"],
        mime=row["mime"],
        status=row["status"],
        sync_key=row["sync_key"],
        include_in_memory=bool(row["include_in_memory"]),
        transcript=row["transcript"],
        text_content=row["text_content"],
        summary=row["summary"],
        key_terms=json.loads(row["key_terms_json"] or "[]"),
        duration_sec=row["duration_sec"],
        created_at=row["created_at"],
    )


def _chunk_from_row(row) -> Chunk:
    return Chunk(
        id=row["id"],
        class_id=row["class_id"],
        lecture_id=row["lecture_id"],
        source=row["source"],
        start_sec=row["start_sec"],
        end_sec=row["end_sec"],
        text=row["text"],
        vector=decode_vector(row["vector_json"]),
        created_at=row["created_at"],
    )


def _message_from_row(row) -> ChatMessage:
    try:
        citations = json.loads(row["citations_json"] or "[]")
    except ValueError:
        citations = []
    return ChatMessage(
        id=row["id"],
        class_id=row["class_id"],
        user_id=row["user_id"],
        role=row["role"],
        content=row["content"],
        citations=citations,
        created_at=row["created_at"],
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ClassNotesStore:
    """Thin data-access layer over one ``aiosqlite`` connection.

    ``IN (...)`` filters are expressed through ``json_each`` so that long id
    lists never hit SQLite's bound-parameter limit.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = aiosqlite.Row

    async def _fetchone(self, sql: str, params: tuple = ()):
        cursor = await self.conn.execute(sql, params)
        return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list:
        cursor = await self.conn.execute(sql, params)
        return list(await cursor.fetchall())

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    async def create_class(
        self,
        user_id: str,
        name: str,
        sync_key: str | None = None,
        sync_enabled: bool = False,
    ) -> ClassRecord:
        class_id = _new_id()
        await self.conn.execute(
            "INSERT INTO classes (id, user_id, name, sync_key, sync_enabled) "
            "VALUES (?, ?, ?, ?, ?)",
            (class_id, user_id, name, sync_key, int(sync_enabled)),
        )
        await self.conn.commit()
        return await self.get_class(class_id)

    async def get_class(self, class_id: str) -> ClassRecord | None:
        row = await self._fetchone("SELECT * FROM classes WHERE id = ?", (class_id,))
        return _class_from_row(row) if row else None

    async def get_owned_class(self, class_id: str, user_id: str) -> ClassRecord | None:
        row = await self._fetchone(
            "SELECT * FROM classes WHERE id = ? AND user_id = ?", (class_id, user_id)
        )
        return _class_from_row(row) if row else None

    async def list_classes(self, user_id: str) -> list[ClassRecord]:
        rows = await self._fetchall(
            "SELECT * FROM classes WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,),
        )
        return [_class_from_row(r) for r in rows]

    async def set_class_sync(self, class_id: str, sync_key: str) -> ClassRecord:
        """Enable sync on a class and stamp *sync_key* on all of its lectures."""
        try:
            await self.conn.execute(
                "UPDATE classes SET sync_key = ?, sync_enabled = 1 WHERE id = ?",
                (sync_key, class_id),
            )
            await self.conn.execute(
                "UPDATE lectures SET sync_key = ? WHERE class_id = ?",
                (sync_key, class_id),
            )
            await self.conn.commit()
        except Exception:
            await self.conn.rollback()
            raise
        return await self.get_class(class_id)

    # ------------------------------------------------------------------
    # Lectures
    # ------------------------------------------------------------------

    async def create_lecture(
        self,
        class_id: str,
        user_id: str,
        *,
        original_name: str | None = None,
        descriptor: str | None = None,
        kind: str = "LECTURE",
        mime: str | None = None,
        status: str = "PROCESSING",
        sync_key: str | None = None,
        include_in_memory: bool = True,
        transcript: str | None = None,
        text_content: str | None = None,
        duration_sec: int | None = None,
        segments: list[dict] | None = None,
    ) -> Lecture:
        lecture_id = _new_id()
        await self.conn.execute(
            "INSERT INTO lectures (id, class_id, user_id, original_name, descriptor, "
            "kind, mime, status, sync_key, include_in_memory, transcript, text_content, "
            "duration_sec, segments_json) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                lecture_id,
                class_id,
                user_id,
                original_name,
                descriptor,
                kind,
                mime,
                status,
                sync_key,
                int(include_in_memory),
                transcript,
                text_content,
                duration_sec,
                json.dumps(segments or []),
            ),
        )
        await self.conn.commit()
        return await self.get_lecture(lecture_id)

    async def get_lecture(self, lecture_id: str) -> Lecture | None:
        row = await self._fetchone("SELECT * FROM lectures WHERE id = ?", (lecture_id,))
        return _lecture_from_row(row) if row else None

    async def get_owned_lecture(self, lecture_id: str, user_id: str) -> Lecture | None:
        """Return the lecture if it sits in a class owned by *user_id*."""
        row = await self._fetchone(
            "SELECT l.* FROM lectures l JOIN classes c ON c.id = l.class_id "
            "WHERE l.id = ? AND c.user_id = ?",
            (lecture_id, user_id),
        )
        return _lecture_from_row(row) if row else None

    async def list_lectures(self, class_id: str) -> list[Lecture]:
        rows = await self._fetchall(
            "SELECT * FROM lectures WHERE class_id = ? ORDER BY created_at DESC, rowid DESC",
            (class_id,),
        )
        return [_lecture_from_row(r) for r in rows]

    async def update_lecture(self, lecture_id: str, **fields) -> Lecture:
        unknown = set(fields) - _LECTURE_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update lecture fields: {sorted(unknown)}")
        if not fields:
            return await self.get_lecture(lecture_id)

        columns: list[str] = []
        values: list = []
        for key, value in fields.items():
            if key == "key_terms":
                key, value = "key_terms_json", json.dumps(value or [])
            elif key == "segments":
                key, value = "segments_json", json.dumps(value or [])
            elif key == "include_in_memory":
                value = int(bool(value))
            columns.append(f"{key} = ?")
            values.append(value)

        await self.conn.execute(
            f"UPDATE lectures SET {', '.join(columns)} WHERE id = ?",
            (*values, lecture_id),
        )
        await self.conn.commit()
        return await self.get_lecture(lecture_id)

    async def delete_lecture(self, lecture_id: str) -> None:
        """Delete a lecture together with its chunks and viewer prefs."""
        try:
            await self.conn.execute("DELETE FROM chunks WHERE lecture_id = ?", (lecture_id,))
            await self.conn.execute(
                "DELETE FROM lecture_user_prefs WHERE lecture_id = ?", (lecture_id,)
            )
            await self.conn.execute("DELETE FROM lectures WHERE id = ?", (lecture_id,))
            await self.conn.commit()
        except Exception:
            await self.conn.rollback()
            raise

    async def find_visible_lectures(
        self, class_ids: list[str], sync_keys: list[str]
    ) -> list[Lecture]:
        """Lectures in any of *class_ids* or carrying any of *sync_keys*."""
        if not class_ids and not sync_keys:
            return []
        rows = await self._fetchall(
            "SELECT * FROM lectures "
            "WHERE class_id IN (SELECT value FROM json_each(?)) "
            "OR (sync_key IS NOT NULL AND sync_key IN (SELECT value FROM json_each(?))) "
            "ORDER BY created_at DESC, rowid DESC",
            (_json_list(class_ids), _json_list(sync_keys)),
        )
        return [_lecture_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Viewer preferences
    # ------------------------------------------------------------------

    async def get_pref(self, lecture_id: str, user_id: str) -> bool | None:
        row = await self._fetchone(
            "SELECT include_in_ai_summary FROM lecture_user_prefs "
            "WHERE lecture_id = ? AND user_id = ?",
            (lecture_id, user_id),
        )
        return bool(row["include_in_ai_summary"]) if row else None

    async def get_prefs(self, user_id: str, lecture_ids: list[str]) -> dict[str, bool]:
        """Map lecture id -> include flag for the prefs *user_id* has set."""
        if not lecture_ids:
            return {}
        rows = await self._fetchall(
            "SELECT lecture_id, include_in_ai_summary FROM lecture_user_prefs "
            "WHERE user_id = ? AND lecture_id IN (SELECT value FROM json_each(?))",
            (user_id, _json_list(lecture_ids)),
        )
        return {r["lecture_id"]: bool(r["include_in_ai_summary"]) for r in rows}

    async def upsert_pref(self, lecture_id: str, user_id: str, include: bool) -> bool:
        await self.conn.execute(
            "INSERT INTO lecture_user_prefs (lecture_id, user_id, include_in_ai_summary) "
            "VALUES (?, ?, ?) "
            "ON CONFLICT(lecture_id, user_id) DO UPDATE SET "
            "include_in_ai_summary = excluded.include_in_ai_summary, "
            "updated_at = CURRENT_TIMESTAMP",
            (lecture_id, user_id, int(include)),
        )
        await self.conn.commit()
        return include

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def create_chunks(
        self,
        class_id: str,
        lecture_id: str,
        source: str,
        chunks: list[dict],
    ) -> list[str]:
        """Persist vector-less chunks in order and return their new ids."""
        ids = [_new_id() for _ in chunks]
        await self.conn.executemany(
            "INSERT INTO chunks (id, class_id, lecture_id, source, start_sec, end_sec, "
            "text, vector_json) VALUES (?, ?, ?, ?, ?, ?, ?, '')",
            [
                (cid, class_id, lecture_id, source, c.get("start"), c.get("end"), c["text"])
                for cid, c in zip(ids, chunks)
            ],
        )
        await self.conn.commit()
        return ids

    async def attach_vectors(self, pairs: list[tuple[str, list[float]]]) -> None:
        """Attach (or replace) vectors, given as (chunk_id, vector) pairs."""
        if not pairs:
            return
        await self.conn.executemany(
            "UPDATE chunks SET vector_json = ? WHERE id = ?",
            [(encode_vector(vec), chunk_id) for chunk_id, vec in pairs],
        )
        await self.conn.commit()

    async def list_chunks(self, lecture_id: str) -> list[Chunk]:
        rows = await self._fetchall(
            "SELECT * FROM chunks WHERE lecture_id = ? ORDER BY rowid", (lecture_id,)
        )
        return [_chunk_from_row(r) for r in rows]

    async def find_chunks_for_lectures(
        self, lecture_ids: list[str], limit: int
    ) -> list[Chunk]:
        """Embedded-or-not chunks of the given lectures, newest first."""
        if not lecture_ids:
            return []
        rows = await self._fetchall(
            "SELECT * FROM chunks WHERE lecture_id IN (SELECT value FROM json_each(?)) "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (_json_list(lecture_ids), limit),
        )
        return [_chunk_from_row(r) for r in rows]

    async def find_unembedded_chunks(self, class_id: str, limit: int) -> list[Chunk]:
        rows = await self._fetchall(
            "SELECT * FROM chunks WHERE class_id = ? AND vector_json = '' "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (class_id, limit),
        )
        return [_chunk_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Chat log
    # ------------------------------------------------------------------

    async def add_message(
        self,
        class_id: str,
        user_id: str,
        role: str,
        content: str,
        citations: list[dict] | None = None,
    ) -> ChatMessage:
        cursor = await self.conn.execute(
            "INSERT INTO chat_messages (class_id, user_id, role, content, citations_json) "
            "VALUES (?, ?, ?, ?, ?)",
            (class_id, user_id, role, content, json.dumps(citations or [])),
        )
        await self.conn.commit()
        row = await self._fetchone(
            "SELECT * FROM chat_messages WHERE id = ?", (cursor.lastrowid,)
        )
        return _message_from_row(row)

    async def list_messages(
        self, class_id: str, user_id: str, limit: int
    ) -> list[ChatMessage]:
        """The last *limit* turns of a viewer's chat in a class, oldest first."""
        rows = await self._fetchall(
            "SELECT * FROM chat_messages WHERE class_id = ? AND user_id = ? "
            "ORDER BY id DESC LIMIT ?",
            (class_id, user_id, limit),
        )
        return [_message_from_row(r) for r in reversed(rows)]
