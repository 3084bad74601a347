"""Record store: generic list/create/update/delete over messages and bookmarks."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Protocol

ENTITY_COLUMNS: dict[str, tuple[str, ...]] = {
    "messages": (
        "id", "chat_session_id", "user_id", "role", "content", "model", "created_at",
    ),
    "bookmarks": (
        "id", "chat_session_id", "user_id", "title", "description", "category",
        "keywords", "message_ids", "created_at",
    ),
}


class RecordStore(Protocol):
    """What the bookmarking core needs from persistence.

    ``where`` is exact equality per field; ``list`` returns every match.
    """

    async def list(self, entity: str, where: dict[str, Any] | None = None,
                   order_by: str | None = None, limit: int | None = None) -> list[dict[str, Any]]: ...

    async def create(self, entity: str, record: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, entity: str, record_id: str, fields: dict[str, Any]) -> None: ...

    async def delete(self, entity: str, record_id: str) -> None: ...


def _columns(entity: str) -> tuple[str, ...]:
    try:
        return ENTITY_COLUMNS[entity]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity}") from None


def _check_fields(entity: str, fields: dict[str, Any] | list[str]):
    allowed = _columns(entity)
    unknown = [f for f in fields if f not in allowed]
    if unknown:
        raise ValueError(f"Unknown field(s) for {entity}: {', '.join(unknown)}")


class SQLiteRecordStore:
    """SQLite-backed record store with FTS5 search over bookmark titles.

    The async methods only satisfy ``RecordStore``; the sqlite3 calls inside them block.
    """

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        # INSERT OR REPLACE must fire the delete trigger to keep bookmarks_fts in sync
        self.conn.execute("PRAGMA recursive_triggers=ON")
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                chat_session_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                model TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_session
                ON messages(chat_session_id, created_at);

            CREATE TABLE IF NOT EXISTS bookmarks (
                id TEXT PRIMARY KEY,
                chat_session_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                category TEXT,
                keywords TEXT,
                message_ids TEXT,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_bookmarks_session
                ON bookmarks(chat_session_id, user_id);

            CREATE VIRTUAL TABLE IF NOT EXISTS bookmarks_fts USING fts5(
                title,
                description,
                content='bookmarks',
                content_rowid='rowid',
                tokenize='porter unicode61'
            );

            CREATE TRIGGER IF NOT EXISTS bookmarks_ai
                AFTER INSERT ON bookmarks BEGIN
                    INSERT INTO bookmarks_fts(rowid, title, description)
                    VALUES (new.rowid, new.title, new.description);
                END;

            CREATE TRIGGER IF NOT EXISTS bookmarks_ad
                AFTER DELETE ON bookmarks BEGIN
                    INSERT INTO bookmarks_fts(bookmarks_fts, rowid, title, description)
                    VALUES ('delete', old.rowid, old.title, old.description);
                END;

            CREATE TRIGGER IF NOT EXISTS bookmarks_au
                AFTER UPDATE ON bookmarks BEGIN
                    INSERT INTO bookmarks_fts(bookmarks_fts, rowid, title, description)
                    VALUES ('delete', old.rowid, old.title, old.description);
                    INSERT INTO bookmarks_fts(rowid, title, description)
                    VALUES (new.rowid, new.title, new.description);
                END;
        """)
        self.conn.commit()

    async def list(self, entity: str, where: dict[str, Any] | None = None,
                   order_by: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        where = where or {}
        _check_fields(entity, where)
        sql = f"SELECT * FROM {entity}"
        params: list[Any] = []
        if where:
            sql += " WHERE " + " AND ".join(f"{field} = ?" for field in where)
            params.extend(where.values())

        if order_by:
            field, _, direction = order_by.partition(" ")
            _check_fields(entity, [field])
            direction = "DESC" if direction.strip().upper() == "DESC" else "ASC"
            sql += f" ORDER BY {field} {direction}"
        else:
            sql += " ORDER BY rowid"

        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        rows = self.conn.execute(sql, params).fetchall()
        return [dict(r) for r in rows]

    async def create(self, entity: str, record: dict[str, Any]) -> dict[str, Any]:
        _check_fields(entity, record)
        columns = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        self.conn.execute(
            f"INSERT OR REPLACE INTO {entity} ({columns}) VALUES ({placeholders})",
            list(record.values()),
        )
        self.conn.commit()
        return dict(record)

    async def update(self, entity: str, record_id: str, fields: dict[str, Any]) -> None:
        if not fields:
            return
        _check_fields(entity, fields)
        assignments = ", ".join(f"{field} = ?" for field in fields)
        self.conn.execute(
            f"UPDATE {entity} SET {assignments} WHERE id = ?",
            [*fields.values(), record_id],
        )
        self.conn.commit()

    async def delete(self, entity: str, record_id: str) -> None:
        _columns(entity)
        self.conn.execute(f"DELETE FROM {entity} WHERE id = ?", (record_id,))
        self.conn.commit()

    def search_bookmarks(self, query: str, user_id: str | None = None, limit: int = 20) -> list[dict]:
        """Full-text search over bookmark titles and descriptions using FTS5 MATCH."""
        sql = """SELECT b.*,
                        snippet(bookmarks_fts, 1, '>>>', '<<<', '...', 20) as snippet,
                        rank
                 FROM bookmarks_fts fts
                 JOIN bookmarks b ON b.rowid = fts.rowid
                 WHERE bookmarks_fts MATCH ?"""
        params: list[Any] = [query]
        if user_id:
            sql += " AND b.user_id = ?"
            params.append(user_id)
        sql += " ORDER BY rank LIMIT ?"
        params.append(limit)
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    def get_stats(self) -> dict:
        """Get overall database statistics."""
        msg_count = self.conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
        session_count = self.conn.execute(
            "SELECT COUNT(DISTINCT chat_session_id) FROM messages"
        ).fetchone()[0]
        bookmark_count = self.conn.execute("SELECT COUNT(*) FROM bookmarks").fetchone()[0]

        categories = self.conn.execute(
            """SELECT category, COUNT(*) as cnt FROM bookmarks
               WHERE category IS NOT NULL
               GROUP BY category ORDER BY cnt DESC LIMIT 10"""
        ).fetchall()

        return {
            "total_sessions": session_count,
            "total_messages": msg_count,
            "total_bookmarks": bookmark_count,
            "top_categories": [{"category": r[0], "count": r[1]} for r in categories],
            "avg_bookmarks_per_session": round(bookmark_count / session_count, 1) if session_count else 0,
        }

    def close(self):
        self.conn.close()
