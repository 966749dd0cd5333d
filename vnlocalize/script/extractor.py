"""
Dialogue extraction for Ren'Py scripts and JSON data files.

Scripts are scanned once, left to right, for quoted literals. Each literal is
then classified by the statement text around it on its line, according to the
extraction mode:

- safe: say statements only
- balanced: safe plus menu choices, screen text displayables and explicit
  translation markers such as _("...") and renpy.notify("...")
- aggressive: any literal containing letters

JSON files are parsed with offsets kept and every leaf string value that
contains letters becomes an item.
"""

import os
import re
from dataclasses import dataclass
from typing import List, Optional, Set

from vnlocalize.engines.exceptions import ExtractionError
from vnlocalize.logger import get_logger
from vnlocalize.script import jsonscan
from vnlocalize.script.masking import TOKEN_RE, mask
from vnlocalize.script.models import (
    FORMAT_JSON,
    FORMAT_SCRIPT,
    ExtractedSpan,
    normalize_cache_key,
)

logger = get_logger(__name__)

MODE_SAFE = "safe"
MODE_BALANCED = "balanced"
MODE_AGGRESSIVE = "aggressive"
EXTRACT_MODES = (MODE_SAFE, MODE_BALANCED, MODE_AGGRESSIVE)

FORMAT_EXTENSIONS = {
    ".rpy": FORMAT_SCRIPT,
    ".json": FORMAT_JSON,
}

# Statement keywords that can never start a say statement
RENPY_KEYWORDS = frozenset({
    "add", "at", "as", "behind", "call", "camera", "default", "define",
    "elif", "else", "for", "frame", "hbox", "hide", "if", "image",
    "imagebutton", "init", "jump", "key", "label", "layeredimage", "menu",
    "new", "nvl", "old", "onlayer", "pass", "pause", "play", "python",
    "queue", "return", "scene", "screen", "show", "stop", "style", "text",
    "textbutton", "tooltip", "transform", "translate", "use", "vbox",
    "voice", "while", "window", "with", "zorder",
})

STRING_PREFIXES = frozenset({"r", "b", "f", "rb", "br", "fr", "rf"})

_LETTER_RE = re.compile(r"[^\W\d_]")
_PYTHON_BLOCK_RE = re.compile(r"^(?:init\s+(?:[-+]?\d+\s+)?)?python\b[^:#]*:\s*(?:#.*)?$")
_SAY_PREFIX_RE = re.compile(r"^(?:[A-Za-z_]\w*(?:\.\w+)*(?:\s+[A-Za-z_@][\w-]*)*)?$")
# A speaker given as a string literal: "Eileen" "Hello there"
_QUOTED_SPEAKER_RE = re.compile(r"^(?:'(?:[^'\\\n]|\\.)*'|\"(?:[^\"\\\n]|\\.)*\")(?:\s+[A-Za-z_@][\w-]*)*$")
_SAY_SUFFIX_RE = re.compile(r"^(?:(?:with|id)\s+\S.*|nointeract\b.*|\(.*)$")
_MENU_CHOICE_SUFFIX_RE = re.compile(r"^(?:if\s+.+?)?:\s*(?:#.*)?$")
_DISPLAYABLE_PREFIX_RE = re.compile(r"(?:^|:\s*)(?:text|textbutton|label|tooltip)$")
_MARKER_PREFIX_RE = re.compile(
    r"(?:(?<![\w.])__?\(|renpy\.(?:notify|input)\(|renpy\.say\([^()]*,)\s*$"
)


@dataclass
class Literal:
    """A quoted literal found by the scanner. Offsets index the source text."""
    start: int           # opening delimiter
    content_start: int
    content_end: int
    end: int             # just past the closing delimiter
    quote_char: str
    is_triple: bool
    line: int            # 1-based line of the opening delimiter
    end_line: int


def detect_format(filename: str) -> str:
    """Map a file name to its extraction format by extension."""
    ext = os.path.splitext(filename or "")[1].lower()
    file_format = FORMAT_EXTENSIONS.get(ext)
    if file_format is None:
        raise ExtractionError(f"Unsupported file type: {filename}", file_format=ext or "unknown")
    return file_format


def has_letters(text: str) -> bool:
    """True when text contains an alphabetic character once tokens are removed."""
    return bool(_LETTER_RE.search(TOKEN_RE.sub("", text or "")))


def scan_literals(text: str) -> List[Literal]:
    """
    Find every quoted literal in script text.

    Handles '...', "...", '''...''' and \"\"\"...\"\"\", skips backslash-escaped
    characters and '#' comments. An unterminated single-line literal is
    treated as stray punctuation.
    """
    literals: List[Literal] = []
    n = len(text)
    i = 0
    line = 1

    while i < n:
        ch = text[i]

        if ch == "\n":
            line += 1
            i += 1
            continue

        if ch == "#":
            nl = text.find("\n", i)
            i = n if nl == -1 else nl
            continue

        if ch not in "\"'":
            i += 1
            continue

        is_triple = text.startswith(ch * 3, i)
        delim_len = 3 if is_triple else 1
        content_start = i + delim_len
        j = content_start
        newlines = 0
        closed = False

        while j < n:
            c = text[j]
            if c == "\\":
                if j + 1 < n and text[j + 1] == "\n":
                    newlines += 1
                j += 2
                continue
            if c == "\n":
                if not is_triple:
                    break
                newlines += 1
            elif c == ch and (not is_triple or text.startswith(ch * 3, j)):
                closed = True
                break
            j += 1

        if not closed:
            i += 1
            continue

        literals.append(Literal(
            start=i,
            content_start=content_start,
            content_end=j,
            end=j + delim_len,
            quote_char=ch,
            is_triple=is_triple,
            line=line,
            end_line=line + newlines,
        ))
        line += newlines
        i = j + delim_len

    return literals


def unescape_quote(raw: str, quote_char: str, is_triple: bool) -> str:
    """
    Quote text as shown to translators.

    Only escaped delimiters are unescaped; other backslash pairs (\\n, {{, ...)
    stay as written so that re-escaping reproduces the source exactly.
    Triple-quoted payloads are kept raw.
    """
    if is_triple:
        return raw

    def _unescape(match: "re.Match") -> str:
        return quote_char if match.group(1) == quote_char else match.group(0)

    return re.sub(r"\\(.)", _unescape, raw, flags=re.DOTALL)


def _python_block_lines(text: str, string_lines: Set[int]) -> Set[int]:
    """1-based line numbers that sit inside a python: block."""
    inside: Set[int] = set()
    block_indent: Optional[int] = None

    # Only "\n" ends a line, matching how scan_literals counts lines
    for number, line in enumerate(text.split("\n"), start=1):
        if number in string_lines:
            if block_indent is not None:
                inside.add(number)
            continue
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            if block_indent is not None:
                inside.add(number)
            continue
        indent = len(line) - len(line.lstrip())
        if block_indent is not None and indent > block_indent:
            inside.add(number)
            continue
        block_indent = indent if _PYTHON_BLOCK_RE.match(stripped) else None

    return inside


def _is_say(before: str, after: str) -> bool:
    if before.startswith("$"):
        return False
    if not (_SAY_PREFIX_RE.match(before) or _QUOTED_SPEAKER_RE.match(before)):
        return False
    if before and before.split()[0] in RENPY_KEYWORDS:
        return False
    if not after or after.startswith("#"):
        return True
    return bool(_SAY_SUFFIX_RE.match(after)) and not after.rstrip().endswith(":")


def _is_balanced_extra(before: str, after: str) -> bool:
    if _MARKER_PREFIX_RE.search(before):
        return True
    if not before and _MENU_CHOICE_SUFFIX_RE.match(after):
        return True
    return bool(_DISPLAYABLE_PREFIX_RE.search(before))


def _classify(mode: str, before: str, after: str, in_python: bool) -> bool:
    if mode == MODE_AGGRESSIVE:
        return True
    if mode == MODE_BALANCED and _MARKER_PREFIX_RE.search(before):
        # explicit translation markers count even inside python code
        return True
    if in_python:
        return False
    if _is_say(before, after):
        return True
    return mode == MODE_BALANCED and _is_balanced_extra(before, after)


def _make_span(quote: str, literal_line: int, content_start: int, content_end: int,
               quote_char: str, is_triple: bool) -> ExtractedSpan:
    masked, placeholder_map = mask(quote)
    return ExtractedSpan(
        line_index=literal_line,
        content_start=content_start,
        content_end=content_end,
        quote_char=quote_char,
        is_triple=is_triple,
        quote=quote,
        masked_quote=masked,
        placeholder_map=placeholder_map,
        cache_key=normalize_cache_key(masked),
    )


def extract_script(text: str, mode: str = MODE_SAFE) -> List[ExtractedSpan]:
    """Extract dialogue spans from Ren'Py script text."""
    if mode not in EXTRACT_MODES:
        mode = MODE_SAFE

    literals = scan_literals(text)
    string_lines: Set[int] = set()
    for lit in literals:
        string_lines.update(range(lit.line + 1, lit.end_line + 1))
    python_lines = _python_block_lines(text, string_lines)

    spans: List[ExtractedSpan] = []
    for lit in literals:
        raw = text[lit.content_start:lit.content_end]
        prefix_word = re.search(r"(\w+)$", text[max(0, lit.start - 2):lit.start])
        if prefix_word and prefix_word.group(1).lower() in STRING_PREFIXES:
            continue

        line_start = text.rfind("\n", 0, lit.start) + 1
        line_end = text.find("\n", lit.end)
        if line_end == -1:
            line_end = len(text)
        before = text[line_start:lit.start].strip()
        after = text[lit.end:line_end].strip()

        if not _classify(mode, before, after, lit.line in python_lines):
            continue

        quote = unescape_quote(raw, lit.quote_char, lit.is_triple)
        span = _make_span(quote, lit.line, lit.content_start, lit.content_end,
                          lit.quote_char, lit.is_triple)
        if not has_letters(span.masked_quote):
            continue
        spans.append(span)

    return spans


def extract_json(text: str) -> List[ExtractedSpan]:
    """Extract every leaf string value containing letters from JSON text."""
    try:
        root = jsonscan.parse(text)
    except ValueError as e:
        raise ExtractionError(f"Invalid JSON: {e}", file_format=FORMAT_JSON)

    spans: List[ExtractedSpan] = []
    for node in jsonscan.iter_strings(root):
        span = _make_span(node.value, text.count("\n", 0, node.start) + 1,
                          node.start, node.end, '"', False)
        if has_letters(span.masked_quote):
            spans.append(span)
    return spans


def extract_dialogs(text: str, file_format: str = FORMAT_SCRIPT,
                    mode: str = MODE_SAFE) -> List[ExtractedSpan]:
    """
    Extract translatable spans in source order.

    Args:
        text: Whole file text
        file_format: "script" or "json"
        mode: Extraction mode for scripts (ignored for JSON)

    Returns:
        Ordered list of ExtractedSpan with non-overlapping, increasing offsets

    Raises:
        ExtractionError: For an unsupported format or malformed JSON
    """
    if file_format == FORMAT_SCRIPT:
        spans = extract_script(text, mode)
    elif file_format == FORMAT_JSON:
        spans = extract_json(text)
    else:
        raise ExtractionError(f"Unsupported format: {file_format}", file_format=str(file_format))

    logger.debug(f"Extracted {len(spans)} items ({file_format}, mode={mode})")
    return spans
