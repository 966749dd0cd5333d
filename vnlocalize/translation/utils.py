"""
Translation utility functions for batching and lenient JSON extraction from
LLM responses.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def chunk_items(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Split items into consecutive fixed-size batches.

    Example:
        >>> chunk_items([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    size = max(1, int(size))
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _match_balanced(text: str, open_char: str, close_char: str) -> Optional[str]:
    """First balanced open_char...close_char span, ignoring brackets inside JSON strings."""
    if not text:
        return None

    depth = 0
    start = -1
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue

        if char == '\\':
            escape_next = True
            continue

        if char == '"':
            if depth:
                in_string = not in_string
            continue

        if in_string:
            continue

        if char == open_char:
            if depth == 0:
                start = i
            depth += 1
        elif char == close_char and depth:
            depth -= 1
            if depth == 0 and start >= 0:
                return text[start:i + 1]

    return None


def match_json_array(text: str) -> Optional[str]:
    """
    Extract JSON array from mixed text using bracket matching.

    Args:
        text: Text potentially containing JSON array

    Returns:
        Extracted JSON array string, or None if not found
    """
    return _match_balanced(text, '[', ']')


def match_json_object(text: str) -> Optional[str]:
    """Extract JSON object from mixed text using brace matching."""
    return _match_balanced(text, '{', '}')


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ```)."""
    clean_text = text.strip()
    if not clean_text.startswith('```'):
        return clean_text
    lines = clean_text.split('\n')
    # Remove first line (```json or ```)
    lines = lines[1:]
    # Remove last line if it's closing ```
    if lines and lines[-1].strip() == '```':
        lines = lines[:-1]
    return '\n'.join(lines).strip()


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None


def safe_parse_json_array(text: str) -> Optional[List[Any]]:
    """
    Safely parse JSON array from potentially malformed text.

    Tries multiple strategies:
    1. Direct parse
    2. Remove markdown code blocks and parse
    3. Extract the first balanced array and parse

    Returns:
        Parsed list or None on failure
    """
    if not text:
        return None

    for candidate in (text.strip(), strip_code_fence(text), match_json_array(text)):
        if candidate:
            result = _loads(candidate)
            if isinstance(result, list):
                return result

    return None


def safe_parse_json_object(text: str) -> Optional[Dict]:
    """Safely parse JSON object from potentially malformed text."""
    if not text:
        return None

    for candidate in (text.strip(), strip_code_fence(text), match_json_object(text)):
        if candidate:
            result = _loads(candidate)
            if isinstance(result, dict):
                return result

    return None


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return str(value.get('text', ''))
    return '' if value is None else str(value)


def parse_translations_response(text: str) -> Optional[List[str]]:
    """
    Parse translation response with multiple fallback strategies.
    Handles both array format and object with translations key.

    Args:
        text: Response text from the model

    Returns:
        List of translated strings or None on failure. Length is not checked.
    """
    if not text:
        return None

    # Object wrapper first, so an array nested in it isn't mistaken for the payload
    stripped = strip_code_fence(text)
    if not stripped.startswith('['):
        obj = safe_parse_json_object(text)
        if obj is not None and isinstance(obj.get('translations'), list):
            return [_as_text(t) for t in obj['translations']]

    result = safe_parse_json_array(text)
    if result is not None:
        return [_as_text(t) for t in result]

    return None
