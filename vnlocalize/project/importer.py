"""
Source file import.

This module handles the file import workflow:
1. Detect format and line ending
2. Extract dialogue items
3. Fill items the translation memory already knows (when enabled)
4. Store the immutable source snapshot together with its items
"""

import uuid
from pathlib import Path
from typing import List, Optional, Tuple, Union

from vnlocalize.core.database import Database
from vnlocalize.engines.exceptions import ExtractionError
from vnlocalize.logger import get_logger
from vnlocalize.script.extractor import detect_format, extract_dialogs
from vnlocalize.script.models import DialogItem, FileRecord, detect_eol, now_ms
from vnlocalize.translation.memory import TranslationMemory, restore

logger = get_logger(__name__)


def new_file_id() -> str:
    return f"file_{uuid.uuid4().hex[:16]}"


def decode_source(data: Union[bytes, str], name: str) -> str:
    """Decode uploaded bytes as UTF-8, keeping a leading BOM in the text."""
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ExtractionError(f"{name} is not valid UTF-8 text: {e}", file_format="unknown")


def clean_relative_path(path: Optional[str], name: str) -> str:
    """Relative archive path for a file: forward slashes, no leading slash or '..' parts."""
    raw = (path or name or "").replace("\\", "/").lstrip("/")
    parts = [p for p in raw.split("/") if p not in ("", ".", "..")]
    return "/".join(parts) or Path(name).name or "file.rpy"


def build_file(name: str, text: str, mode: str = "safe",
               path: Optional[str] = None) -> Tuple[FileRecord, List[DialogItem]]:
    """
    Extract a source text into a FileRecord and its DialogItems without storing them.

    Raises:
        ExtractionError: For unsupported extensions or malformed JSON
    """
    file_format = detect_format(name)
    spans = extract_dialogs(text, file_format, mode)
    file_id = new_file_id()
    stamp = now_ms()

    record = FileRecord(
        id=file_id,
        name=Path(name).name,
        path=clean_relative_path(path, name),
        source_text=text,
        eol=detect_eol(text),
        format=file_format,
        mode=mode,
        dialog_count=len(spans),
        created_at=stamp,
        updated_at=stamp,
    )
    items = [DialogItem.from_span(file_id, index, span) for index, span in enumerate(spans)]
    return record, items


def import_file(database: Database, name: str, data: Union[bytes, str], mode: str = "safe",
                path: Optional[str] = None, target_lang: Optional[str] = None) -> FileRecord:
    """
    Import one source file into the workspace.

    Args:
        database: Workspace database
        name: File name; its extension selects the format
        data: File content (bytes are decoded as UTF-8)
        mode: Script extraction mode
        path: Relative path used inside export archives (defaults to name)
        target_lang: When set, items are pre-filled from the translation memory

    Returns:
        The stored FileRecord
    """
    text = decode_source(data, name)
    record, items = build_file(name, text, mode, path)
    filled = fill_from_memory(database, items, target_lang) if target_lang else 0
    database.create_file(record, items)
    logger.info(f"Imported {record.path}: {record.dialog_count} items, {filled} from TM "
                f"({record.format}, mode={mode})")
    return record


def fill_from_memory(database: Database, items: List[DialogItem], target_lang: str) -> int:
    """Set translated on items with a TM hit, before they are stored."""
    hits = TranslationMemory(database).lookup_items(target_lang, items)
    for item in items:
        entry = hits.get(item.id)
        if entry is not None:
            item.translated, _ = restore(item, entry)
    return len(hits)
