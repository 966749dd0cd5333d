"""
Core module - Database utilities

This module provides:
- database: Storage for files, dialogue items, TM entries and app config
- schema: Database initialization and migrations
"""

from vnlocalize.core.database import DB_FILE, Database

from vnlocalize.core.schema import (
    DB_VERSION,
    get_db_version,
    set_db_version,
    initialize_database,
    ensure_all_schemas,
    migrate_database,
)
