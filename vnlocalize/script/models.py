"""
Data classes for extracted dialogue, imported files and translation memory.
"""

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

EOL_LF = "\n"
EOL_CRLF = "\r\n"

FORMAT_SCRIPT = "script"
FORMAT_JSON = "json"


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def detect_eol(text: str) -> str:
    return EOL_CRLF if EOL_CRLF in text else EOL_LF


def normalize_cache_key(text: str) -> str:
    """Collapse whitespace runs so spacing variants share one TM entry."""
    return " ".join((text or "").split())


def make_dialog_id(file_id: str, index: int) -> str:
    return f"{file_id}:{index}"


@dataclass
class ExtractedSpan:
    """One quoted payload found by the extractor, before it is bound to a file."""
    line_index: int          # 1-based line of the opening delimiter
    content_start: int
    content_end: int
    quote_char: str
    is_triple: bool
    quote: str
    masked_quote: str
    placeholder_map: Dict[str, str]
    cache_key: str


@dataclass
class DialogItem:
    """A translatable quoted span with its source offsets and translation state."""
    id: str
    file_id: str
    index: int
    line_index: int
    content_start: int
    content_end: int
    quote_char: str
    is_triple: bool
    quote: str
    masked_quote: str
    placeholder_map: Dict[str, str] = field(default_factory=dict)
    cache_key: str = ""
    translated: Optional[str] = None
    updated_at: int = field(default_factory=now_ms)

    @classmethod
    def from_span(cls, file_id: str, index: int, span: ExtractedSpan) -> "DialogItem":
        return cls(
            id=make_dialog_id(file_id, index),
            file_id=file_id,
            index=index,
            line_index=span.line_index,
            content_start=span.content_start,
            content_end=span.content_end,
            quote_char=span.quote_char,
            is_triple=span.is_triple,
            quote=span.quote,
            masked_quote=span.masked_quote,
            placeholder_map=dict(span.placeholder_map),
            cache_key=span.cache_key,
        )

    @property
    def source_key(self) -> str:
        """TM lookup key for this item (cache key, falling back to masked/raw text)."""
        return (self.cache_key or self.masked_quote or self.quote or "").strip()

    @property
    def has_translation(self) -> bool:
        return bool(self.translated and self.translated.strip())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FileRecord:
    """Immutable snapshot of an imported source file."""
    id: str
    name: str
    path: str
    source_text: str
    eol: str = EOL_LF
    format: str = FORMAT_SCRIPT
    mode: str = "safe"
    dialog_count: int = 0
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)

    def to_dict(self, include_source: bool = False) -> Dict[str, Any]:
        payload = asdict(self)
        if not include_source:
            payload.pop("source_text", None)
        return payload


@dataclass
class TranslationMemoryEntry:
    """Cached translation keyed by (target language, normalized source key)."""
    key: str
    target_lang: str
    source_key: str
    source_text: str
    translated_text: str
    created_at: int = field(default_factory=now_ms)
    updated_at: int = field(default_factory=now_ms)
    use_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def tm_key(target_lang: str, source_key: str) -> str:
    """Persisted TM key: '<lowercased target>::<normalized source key>'."""
    return f"{(target_lang or '').strip().lower()}::{(source_key or '').strip()}"


def sort_by_index(items: List[DialogItem]) -> List[DialogItem]:
    return sorted(items, key=lambda d: d.index)
