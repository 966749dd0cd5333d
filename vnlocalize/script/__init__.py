"""
Script module - Source parsing and rewriting

This module provides:
- models: File, dialogue item and TM entry records
- masking: Tag and variable masking with opaque tokens
- extractor: Dialogue extraction from .rpy scripts and JSON files
- merger: Offset-based splicing of translations into the source
"""

from vnlocalize.script.models import (
    DialogItem,
    ExtractedSpan,
    FileRecord,
    TranslationMemoryEntry,
)

from vnlocalize.script.masking import (
    mask,
    unmask,
    count_tokens,
    find_leaked_placeholders,
)

from vnlocalize.script.extractor import (
    detect_format,
    extract_dialogs,
    extract_script,
    extract_json,
)

from vnlocalize.script.merger import apply_translations
