"""
Database Schema Management Module

This module handles database initialization, schema validation, and migrations.
For CRUD operations, see core/database.py
"""

import sqlite3
from contextlib import closing

from vnlocalize.core.database import Database
from vnlocalize.logger import get_logger

logger = get_logger(__name__)

DB_VERSION = 1  # Increment when schema changes

_TABLES = {
    "files": """
        CREATE TABLE IF NOT EXISTS files (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            path TEXT NOT NULL,
            source_text TEXT NOT NULL,
            eol TEXT NOT NULL,
            format TEXT NOT NULL DEFAULT 'script',
            mode TEXT NOT NULL DEFAULT 'safe',
            dialog_count INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
    """,
    "dialogs": """
        CREATE TABLE IF NOT EXISTS dialogs (
            id TEXT PRIMARY KEY,
            file_id TEXT NOT NULL,
            idx INTEGER NOT NULL,
            line_index INTEGER NOT NULL,
            content_start INTEGER NOT NULL,
            content_end INTEGER NOT NULL,
            quote_char TEXT NOT NULL,
            is_triple INTEGER NOT NULL DEFAULT 0,
            quote TEXT NOT NULL,
            masked_quote TEXT NOT NULL,
            placeholder_map TEXT NOT NULL DEFAULT '{}',
            cache_key TEXT NOT NULL DEFAULT '',
            translated TEXT,
            updated_at INTEGER NOT NULL,
            FOREIGN KEY (file_id) REFERENCES files(id) ON DELETE CASCADE
        )
    """,
    "translation_memory": """
        CREATE TABLE IF NOT EXISTS translation_memory (
            key TEXT PRIMARY KEY,
            target_lang TEXT NOT NULL,
            source_key TEXT NOT NULL,
            source_text TEXT NOT NULL,
            translated_text TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            use_count INTEGER NOT NULL DEFAULT 0
        )
    """,
    "app_config": """
        CREATE TABLE IF NOT EXISTS app_config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}


def get_db_version(database: Database) -> int:
    """Get current database version."""
    try:
        with closing(database.get_connection()) as conn:
            row = conn.execute("SELECT version FROM db_version LIMIT 1").fetchone()
            return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0


def set_db_version(database: Database, version: int):
    """Set database version."""
    with closing(database.get_connection()) as conn, conn:
        conn.execute("CREATE TABLE IF NOT EXISTS db_version (version INTEGER)")
        conn.execute("DELETE FROM db_version")
        conn.execute("INSERT INTO db_version (version) VALUES (?)", (version,))


def ensure_database_indexes(database: Database):
    """Create indexes for the common lookups if they don't exist."""
    with closing(database.get_connection()) as conn, conn:
        # Ordered dialog listing per file
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_dialogs_file_idx
            ON dialogs(file_id, idx)
        """)
        # TM listing filtered by language
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_tm_target_lang
            ON translation_memory(target_lang, updated_at)
        """)


def ensure_all_schemas(database: Database):
    """Ensure all tables and indexes exist."""
    with closing(database.get_connection()) as conn, conn:
        for sql in _TABLES.values():
            conn.execute(sql)
    ensure_database_indexes(database)


def initialize_database(database: Database):
    """Initializes the database and creates the tables."""
    current_version = get_db_version(database)

    if current_version and current_version < DB_VERSION:
        migrate_database(database, current_version, DB_VERSION)
        return

    ensure_all_schemas(database)
    if current_version != DB_VERSION:
        set_db_version(database, DB_VERSION)
        logger.info(f"Database initialized at {database.path} (version {DB_VERSION})")


# ============================================================
# Database Migration
# ============================================================

def migrate_database(database: Database, from_version: int, to_version: int):
    """
    Migrate database from one version to another.

    Only schema integrity is ensured for now. Future migrations should be
    added here when needed.
    """
    logger.info(f"Migrating database from version {from_version} to {to_version}")
    ensure_all_schemas(database)
    set_db_version(database, to_version)
    logger.info(f"Database migration completed: now at version {to_version}")
