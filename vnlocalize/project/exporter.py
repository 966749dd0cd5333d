"""
Translated file export.

This module handles producing output from stored translations:
- Merged single file (<stem>_translated<ext>)
- Zip archive of every merged file at its relative path
- Atomic write of a merged file to disk
"""

import io
import os
import posixpath
import tempfile
import zipfile
from pathlib import Path
from typing import Iterable, List, Set, Tuple

from vnlocalize.core.database import Database
from vnlocalize.engines.exceptions import NotFoundError
from vnlocalize.logger import get_logger
from vnlocalize.script.merger import apply_translations
from vnlocalize.script.models import FileRecord

logger = get_logger(__name__)

ZIP_NAME = "translated.zip"


def translated_name(name: str) -> str:
    """
    Examples:
        >>> translated_name('script.rpy')
        'script_translated.rpy'
        >>> translated_name('data.json')
        'data_translated.json'
    """
    stem, ext = os.path.splitext(name)
    return f"{stem}_translated{ext}"


def merge_file(database: Database, record: FileRecord) -> str:
    """Merged text of one file from its stored translations."""
    items = database.get_dialogs_for_file(record.id)
    return apply_translations(record.source_text, record.eol, items, record.format)


def export_file(database: Database, file_id: str) -> Tuple[str, str]:
    """
    Returns:
        (download_name, merged_text)
    """
    record = database.get_file_by_id(file_id)
    if record is None:
        raise NotFoundError("File", file_id)
    merged = merge_file(database, record)
    logger.info(f"Exported {record.name}")
    return translated_name(record.name), merged


def _unique_name(arcname: str, used: Set[str]) -> str:
    stem, ext = posixpath.splitext(arcname)
    candidate = arcname
    counter = 2
    while candidate in used:
        candidate = f"{stem} ({counter}){ext}"
        counter += 1
    used.add(candidate)
    return candidate


def build_zip(files: Iterable[Tuple[str, str]]) -> bytes:
    """
    Zip (path, content) pairs with DEFLATE; leading slashes are stripped from paths.

    A path seen before gets a " (2)", " (3)" ... suffix before its extension.
    """
    buffer = io.BytesIO()
    used: Set[str] = set()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=6) as archive:
        for path, content in files:
            arcname = _unique_name(str(path or "").lstrip("/") or "file.rpy", used)
            archive.writestr(arcname, content.encode("utf-8"))
    return buffer.getvalue()


def export_zip(database: Database) -> bytes:
    """Zip archive of all merged files at their original relative paths."""
    entries: List[Tuple[str, str]] = []
    for record in database.get_all_files():
        entries.append((record.path, merge_file(database, record)))
    logger.info(f"Exported zip archive with {len(entries)} files")
    return build_zip(entries)


def write_text_atomic(file_path: Path, content: str):
    """
    Write content to file_path through a temp file and rename, so the file is
    never left partially written.
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    temp_fd, temp_path = tempfile.mkstemp(
        dir=file_path.parent,
        prefix=f".{file_path.stem}_",
        suffix=f"{file_path.suffix}.tmp",
    )
    temp_path = Path(temp_path)
    try:
        # newline='' keeps the file's own line endings
        with os.fdopen(temp_fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        temp_path.replace(file_path)
        logger.debug(f"Atomic write successful: {file_path}")
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise
