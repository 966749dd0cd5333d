"""
Tag masking for dialogue text.

Inline control syntax is swapped for placeholder tokens before text goes to
a translation provider, and swapped back afterwards:

- Bracketed references: [player_name], [mc.name], [items[0]]
- Brace tags: {w=0.5}, {i}, {/i}, {color=#fff}
- Percent interpolations: %(name)s, %s, %d, %i, %f

Tokens look like ⟦T0⟧. The mathematical white square brackets do not occur
in natural text and translators leave them alone, unlike __VAR_0__ style
markers which get re-cased or split.
"""

import re
from typing import Dict, List, Tuple

TOKEN_OPEN = "\u27e6"   # ⟦
TOKEN_CLOSE = "\u27e7"  # ⟧

# Ren'Py escapes a literal bracket/brace by doubling it; those are text, not tags
_PAT_ESCAPED = r"\[\[|\{\{"
_PAT_TAG = r"\{[^{}\n]+\}"
_PAT_VAR = r"\[[^\[\]\n]*(?:\[[^\[\]\n]*\][^\[\]\n]*)*\]"
_PAT_FMT = r"%\([^)\n]+\)[-#0 +]*\d*(?:\.\d+)?[sdifrx]|%[sdifr]"

# Tolerates whitespace a provider may insert inside a token
_PAT_TOKEN = f"{TOKEN_OPEN}\\s*T\\s*(\\d+)\\s*{TOKEN_CLOSE}"
TOKEN_RE = re.compile(_PAT_TOKEN)

# Legacy token syntax written by older versions: ⟦RENPH{0}⟧
_PAT_LEGACY = f"{TOKEN_OPEN}\\s*RENPH\\s*\\{{\\s*\\d+\\s*\\}}\\s*{TOKEN_CLOSE}"
LEGACY_TOKEN_RE = re.compile(_PAT_LEGACY)

# Token-shaped text already in the source is masked like a tag, so it
# cannot collide with the tokens mask() generates
TAG_RE = re.compile(
    f"(?P<escaped>{_PAT_ESCAPED})"
    f"|(?P<tag>{TOKEN_OPEN}\\s*T\\s*\\d+\\s*{TOKEN_CLOSE}|{_PAT_LEGACY}|{_PAT_TAG}|{_PAT_VAR}|{_PAT_FMT})"
)


def make_token(index: int) -> str:
    return f"{TOKEN_OPEN}T{index}{TOKEN_CLOSE}"


def find_tags(text: str) -> List[str]:
    """Return every control sequence in text, left to right."""
    return [m.group("tag") for m in TAG_RE.finditer(text or "") if m.group("tag")]


def mask(text: str) -> Tuple[str, Dict[str, str]]:
    """
    Replace control sequences in text with placeholder tokens.

    Args:
        text: Dialogue text possibly containing tags

    Returns:
        Tuple of (masked_text, placeholder_map)
        where placeholder_map is {"⟦T0⟧": "[player_name]", ...}
    """
    if not text:
        return text or "", {}

    placeholder_map: Dict[str, str] = {}
    parts: List[str] = []
    last = 0

    for match in TAG_RE.finditer(text):
        tag = match.group("tag")
        if not tag:
            continue
        token = make_token(len(placeholder_map))
        placeholder_map[token] = tag
        parts.append(text[last:match.start()])
        parts.append(token)
        last = match.end()

    if not placeholder_map:
        return text, {}

    parts.append(text[last:])
    return "".join(parts), placeholder_map


def unmask(masked_text: str, placeholder_map: Dict[str, str]) -> str:
    """
    Restore original tags from tokens.

    Substitution is keyed by token, so a provider reordering tokens is harmless.
    Tokens not present in the map are left as they are.
    """
    if not masked_text or not placeholder_map:
        return masked_text or ""

    def _restore(match: "re.Match") -> str:
        token = make_token(int(match.group(1)))
        return placeholder_map.get(token, match.group(0))

    return TOKEN_RE.sub(_restore, masked_text)


def _token_index(token: str) -> int:
    match = TOKEN_RE.fullmatch(token)
    return int(match.group(1)) if match else 0


def remask(text: str, placeholder_map: Dict[str, str]) -> str:
    """
    Put an item's tokens back into text written with its real tags.

    Used for manual translations, which are typed against the unmasked
    quote. A tag occurring several times takes its tokens in order; tags
    the map does not know are left as they are.
    """
    if not text or not placeholder_map:
        return text or ""

    pending: Dict[str, List[str]] = {}
    for token, tag in sorted(placeholder_map.items(), key=lambda kv: _token_index(kv[0])):
        pending.setdefault(tag, []).append(token)

    def _replace(match: "re.Match") -> str:
        tokens = pending.get(match.group("tag") or "")
        if not tokens:
            return match.group(0)
        return tokens.pop(0) if len(tokens) > 1 else tokens[0]

    return TAG_RE.sub(_replace, text)


def count_tokens(masked_text: str) -> Dict[str, int]:
    """Count each (normalized) token occurring in masked_text."""
    counts: Dict[str, int] = {}
    for match in TOKEN_RE.finditer(masked_text or ""):
        token = make_token(int(match.group(1)))
        counts[token] = counts.get(token, 0) + 1
    return counts


def find_leaked_placeholders(text: str) -> List[str]:
    """Placeholder tokens, current or legacy syntax, still present in text."""
    text = text or ""
    leaked = [m.group(0) for m in TOKEN_RE.finditer(text)]
    leaked.extend(m.group(0) for m in LEGACY_TOKEN_RE.finditer(text))
    return leaked


def has_placeholders(text: str) -> bool:
    return bool(TOKEN_RE.search(text or "") or LEGACY_TOKEN_RE.search(text or ""))
