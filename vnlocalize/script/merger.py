"""
Merge translated text back into the original source.

Items are spliced into their payload ranges from the end of the file towards
the start, so earlier offsets stay valid while later text changes length.
Everything outside the payloads is left exactly as it was.
"""

import json
from typing import Iterable, List

from vnlocalize.engines.exceptions import ExtractionError
from vnlocalize.script.models import EOL_LF, FORMAT_JSON, FORMAT_SCRIPT, DialogItem


def escape_single_line(text: str, quote_char: str) -> str:
    """
    Escape text for a single-line script literal.

    Unescaped delimiters get a backslash, existing backslash pairs are kept,
    newlines become \\n and a trailing lone backslash is doubled.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "\\n")
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            if i + 1 < n:
                out.append(text[i:i + 2])
                i += 2
                continue
            out.append("\\\\")
        elif ch == quote_char:
            out.append("\\" + quote_char)
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def escape_triple(text: str, quote_char: str, eol: str = EOL_LF) -> str:
    """
    Escape text for a triple-quoted script literal.

    Newlines follow the file EOL. A delimiter is escaped only when it would
    start a run of three or when it is the last payload character.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", eol)
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            if i + 1 < n:
                out.append(text[i:i + 2])
                i += 2
                continue
            out.append("\\\\")
        elif ch == quote_char and (i == n - 1 or text.startswith(quote_char * 2, i + 1)):
            out.append("\\" + quote_char)
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def escape_json(text: str) -> str:
    """Standard JSON string escaping, non-ASCII kept as is."""
    return json.dumps(text, ensure_ascii=False)[1:-1]


def escape_for(item: DialogItem, text: str, file_format: str, eol: str = EOL_LF) -> str:
    if file_format == FORMAT_JSON:
        return escape_json(text)
    if item.is_triple:
        return escape_triple(text, item.quote_char, eol)
    return escape_single_line(text, item.quote_char)


def apply_translations(source_text: str, eol: str, items: Iterable[DialogItem],
                       file_format: str = FORMAT_SCRIPT) -> str:
    """
    Compose the final file text from the source and translated items.

    Args:
        source_text: Original file text
        eol: File line ending, used for multi-line payloads
        items: Dialogue items of this file
        file_format: "script" or "json"

    Returns:
        Source text with each changed payload replaced in place
    """
    if file_format not in (FORMAT_SCRIPT, FORMAT_JSON):
        raise ExtractionError(f"Unsupported format: {file_format}", file_format=str(file_format))

    changed = [
        item for item in items
        if item.has_translation and item.translated != item.quote
    ]
    changed.sort(key=lambda d: d.content_start, reverse=True)

    result = source_text
    for item in changed:
        replacement = escape_for(item, item.translated, file_format, eol)
        result = result[:item.content_start] + replacement + result[item.content_end:]
    return result
