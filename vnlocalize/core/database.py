"""
Database CRUD Operations Module

This module handles all database CRUD operations for:
- Files (imported source snapshots)
- Dialogs (extracted items and their translations)
- Translation memory
- App Config

For schema management and migrations, see core/schema.py
"""

import json
import sqlite3
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from vnlocalize.script.models import (
    DialogItem,
    FileRecord,
    TranslationMemoryEntry,
    now_ms,
)

DB_FILE = Path(__file__).parent.parent.parent / "vnlocalize.db"

# SQLite's default host parameter limit is 999 on older builds
_IN_CHUNK = 500


def _row_to_file(row: sqlite3.Row) -> FileRecord:
    return FileRecord(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        source_text=row["source_text"],
        eol=row["eol"],
        format=row["format"],
        mode=row["mode"],
        dialog_count=row["dialog_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_dialog(row: sqlite3.Row) -> DialogItem:
    return DialogItem(
        id=row["id"],
        file_id=row["file_id"],
        index=row["idx"],
        line_index=row["line_index"],
        content_start=row["content_start"],
        content_end=row["content_end"],
        quote_char=row["quote_char"],
        is_triple=bool(row["is_triple"]),
        quote=row["quote"],
        masked_quote=row["masked_quote"],
        placeholder_map=json.loads(row["placeholder_map"] or "{}"),
        cache_key=row["cache_key"],
        translated=row["translated"],
        updated_at=row["updated_at"],
    )


def _row_to_tm(row: sqlite3.Row) -> TranslationMemoryEntry:
    return TranslationMemoryEntry(
        key=row["key"],
        target_lang=row["target_lang"],
        source_key=row["source_key"],
        source_text=row["source_text"],
        translated_text=row["translated_text"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        use_count=row["use_count"],
    )


def _chunks(values: Sequence[str], size: int = _IN_CHUNK) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


_TM_UPSERT_SQL = """
    INSERT INTO translation_memory
        (key, target_lang, source_key, source_text, translated_text,
         created_at, updated_at, use_count)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(key) DO UPDATE SET
        target_lang = excluded.target_lang,
        source_key = excluded.source_key,
        source_text = excluded.source_text,
        translated_text = excluded.translated_text,
        updated_at = excluded.updated_at
"""


def _tm_params(entry: TranslationMemoryEntry) -> tuple:
    return (
        entry.key, entry.target_lang, entry.source_key, entry.source_text,
        entry.translated_text, entry.created_at, entry.updated_at, entry.use_count,
    )


class Database:
    """SQLite store for one workspace. Every call opens its own connection."""

    def __init__(self, path: Union[str, Path] = DB_FILE):
        self.path = Path(path)

    def get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def exists(self) -> bool:
        return self.path.exists()

    # ============================================================
    # File CRUD Operations
    # ============================================================

    def create_file(self, record: FileRecord, items: List[DialogItem]):
        """Insert a file snapshot together with its extracted dialogs."""
        with closing(self.get_connection()) as conn, conn:
            conn.execute("""
                INSERT INTO files (id, name, path, source_text, eol, format, mode,
                                   dialog_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (record.id, record.name, record.path, record.source_text, record.eol,
                  record.format, record.mode, record.dialog_count,
                  record.created_at, record.updated_at))
            conn.executemany("""
                INSERT INTO dialogs (id, file_id, idx, line_index, content_start, content_end,
                                     quote_char, is_triple, quote, masked_quote,
                                     placeholder_map, cache_key, translated, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (d.id, d.file_id, d.index, d.line_index, d.content_start, d.content_end,
                 d.quote_char, 1 if d.is_triple else 0, d.quote, d.masked_quote,
                 json.dumps(d.placeholder_map, ensure_ascii=False), d.cache_key,
                 d.translated, d.updated_at)
                for d in items
            ])

    def get_all_files(self) -> List[FileRecord]:
        """Get all files, oldest first."""
        with closing(self.get_connection()) as conn:
            rows = conn.execute("SELECT * FROM files ORDER BY created_at, name").fetchall()
            return [_row_to_file(row) for row in rows]

    def get_file_by_id(self, file_id: str) -> Optional[FileRecord]:
        with closing(self.get_connection()) as conn:
            row = conn.execute("SELECT * FROM files WHERE id = ?", (file_id,)).fetchone()
            return _row_to_file(row) if row else None

    def delete_file(self, file_id: str) -> bool:
        """Delete a file and all its dialogs."""
        with closing(self.get_connection()) as conn, conn:
            # Delete dialogs first (foreign key constraint)
            conn.execute("DELETE FROM dialogs WHERE file_id = ?", (file_id,))
            cursor = conn.execute("DELETE FROM files WHERE id = ?", (file_id,))
            return cursor.rowcount > 0

    def delete_all_files(self) -> int:
        """Delete every file and dialog. The TM and settings are kept."""
        with closing(self.get_connection()) as conn, conn:
            conn.execute("DELETE FROM dialogs")
            cursor = conn.execute("DELETE FROM files")
            return cursor.rowcount

    # ============================================================
    # Dialog CRUD Operations
    # ============================================================

    def get_dialogs_for_file(self, file_id: str) -> List[DialogItem]:
        with closing(self.get_connection()) as conn:
            rows = conn.execute(
                "SELECT * FROM dialogs WHERE file_id = ? ORDER BY idx", (file_id,)
            ).fetchall()
            return [_row_to_dialog(row) for row in rows]

    def get_dialog_by_id(self, dialog_id: str) -> Optional[DialogItem]:
        with closing(self.get_connection()) as conn:
            row = conn.execute("SELECT * FROM dialogs WHERE id = ?", (dialog_id,)).fetchone()
            return _row_to_dialog(row) if row else None

    def count_translated(self, file_id: str) -> int:
        with closing(self.get_connection()) as conn:
            row = conn.execute("""
                SELECT COUNT(*) FROM dialogs
                WHERE file_id = ? AND translated IS NOT NULL AND TRIM(translated) != ''
            """, (file_id,)).fetchone()
            return row[0]

    def commit_batch(
        self,
        translations: List[Tuple[str, Optional[str]]],
        tm_entries: Optional[List[TranslationMemoryEntry]] = None,
        used_tm_keys: Optional[List[str]] = None,
    ) -> int:
        """
        Write dialog translations and TM changes in one transaction.

        Args:
            translations: (dialog_id, translated) pairs
            tm_entries: Entries to upsert into the translation memory
            used_tm_keys: TM keys whose use_count is bumped

        Returns:
            Number of dialog rows updated
        """
        stamp = now_ms()
        with closing(self.get_connection()) as conn, conn:
            cursor = conn.executemany(
                "UPDATE dialogs SET translated = ?, updated_at = ? WHERE id = ?",
                [(text, stamp, dialog_id) for dialog_id, text in translations],
            )
            updated = cursor.rowcount
            if tm_entries:
                conn.executemany(_TM_UPSERT_SQL, [_tm_params(e) for e in tm_entries])
            if used_tm_keys:
                conn.executemany(
                    "UPDATE translation_memory SET use_count = use_count + 1 WHERE key = ?",
                    [(key,) for key in used_tm_keys],
                )
            return updated

    # ============================================================
    # Translation Memory CRUD Operations
    # ============================================================

    def get_tm_entries(self, keys: Iterable[str]) -> Dict[str, TranslationMemoryEntry]:
        """Bulk lookup by key. Missing keys are absent from the result."""
        unique = list(dict.fromkeys(keys))
        found: Dict[str, TranslationMemoryEntry] = {}
        with closing(self.get_connection()) as conn:
            for chunk in _chunks(unique):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT * FROM translation_memory WHERE key IN ({placeholders})", list(chunk)
                ).fetchall()
                for row in rows:
                    found[row["key"]] = _row_to_tm(row)
        return found

    def upsert_tm_entries(self, entries: List[TranslationMemoryEntry]) -> int:
        if not entries:
            return 0
        with closing(self.get_connection()) as conn, conn:
            conn.executemany(_TM_UPSERT_SQL, [_tm_params(e) for e in entries])
        return len(entries)

    def get_all_tm_entries(self, target_lang: Optional[str] = None,
                           search: Optional[str] = None,
                           limit: Optional[int] = None,
                           offset: int = 0) -> List[TranslationMemoryEntry]:
        """List TM entries, most recently updated first."""
        query = "SELECT * FROM translation_memory"
        conditions = []
        params: List[Any] = []

        if target_lang:
            conditions.append("target_lang = ?")
            params.append(target_lang.strip().lower())
        if search:
            conditions.append("(LOWER(source_text) LIKE ? OR LOWER(translated_text) LIKE ?)")
            like = f"%{search.lower()}%"
            params.extend([like, like])

        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY updated_at DESC, key"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])

        with closing(self.get_connection()) as conn:
            return [_row_to_tm(row) for row in conn.execute(query, params).fetchall()]

    def count_tm_entries(self) -> int:
        with closing(self.get_connection()) as conn:
            return conn.execute("SELECT COUNT(*) FROM translation_memory").fetchone()[0]

    def delete_tm_entry(self, key: str) -> bool:
        with closing(self.get_connection()) as conn, conn:
            cursor = conn.execute("DELETE FROM translation_memory WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def clear_tm(self) -> int:
        with closing(self.get_connection()) as conn, conn:
            cursor = conn.execute("DELETE FROM translation_memory")
            return cursor.rowcount

    # ============================================================
    # App Config CRUD Operations
    # ============================================================

    def get_app_config(self, key: str) -> Optional[str]:
        """Get a configuration value by key."""
        with closing(self.get_connection()) as conn:
            row = conn.execute("SELECT value FROM app_config WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

    def set_app_config(self, key: str, value: str):
        """Set a configuration value."""
        with closing(self.get_connection()) as conn, conn:
            conn.execute("""
                INSERT OR REPLACE INTO app_config (key, value, updated_at)
                VALUES (?, ?, ?)
            """, (key, value, datetime.now().isoformat()))
