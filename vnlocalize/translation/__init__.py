"""
Translation module - Run support

This module provides:
- TranslationProgress: Progress tracking dataclass
- TranslationMemory: Persistent translation cache
- Placeholder checks for provider output
- Response parsing and batching utilities

The batch orchestrator is in vnlocalize.translation.orchestrator.
"""

from vnlocalize.translation.progress import TranslationProgress
from vnlocalize.translation.memory import TranslationMemory, make_entry
from vnlocalize.translation.validator import check_placeholders
from vnlocalize.translation.utils import (
    chunk_items,
    parse_translations_response,
    safe_parse_json_array,
    safe_parse_json_object,
)
