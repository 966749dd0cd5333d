"""
Offset-preserving JSON reader.

json.loads() throws away where each value lives in the source text, which the
merger needs to splice translations back in place. This module parses JSON
into an explicit tagged tree (string | sequence | mapping | scalar) whose
string nodes carry the payload offsets, then walks it without type probing.
"""

import json
from dataclasses import dataclass, field
from typing import Iterator, List, Tuple, Union

_WHITESPACE = " \t\n\r"


@dataclass
class JsonString:
    value: str
    start: int   # first payload char, after the opening quote
    end: int     # closing quote position


@dataclass
class JsonScalar:
    raw: str


@dataclass
class JsonArray:
    items: List["JsonNode"] = field(default_factory=list)


@dataclass
class JsonObject:
    members: List[Tuple[JsonString, "JsonNode"]] = field(default_factory=list)


JsonNode = Union[JsonString, JsonScalar, JsonArray, JsonObject]


class _Reader:
    """Recursive-descent reader over text already known to be valid JSON."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def skip_ws(self):
        text = self.text
        while self.pos < len(text) and text[self.pos] in _WHITESPACE:
            self.pos += 1

    def read_value(self) -> JsonNode:
        self.skip_ws()
        ch = self.text[self.pos]
        if ch == '"':
            return self.read_string()
        if ch == '[':
            return self.read_array()
        if ch == '{':
            return self.read_object()
        return self.read_scalar()

    def read_string(self) -> JsonString:
        text = self.text
        open_pos = self.pos
        i = open_pos + 1
        while text[i] != '"':
            i += 2 if text[i] == '\\' else 1
        value = json.loads(text[open_pos:i + 1])
        self.pos = i + 1
        return JsonString(value=value, start=open_pos + 1, end=i)

    def read_array(self) -> JsonArray:
        node = JsonArray()
        self.pos += 1
        self.skip_ws()
        if self.text[self.pos] == ']':
            self.pos += 1
            return node
        while True:
            node.items.append(self.read_value())
            self.skip_ws()
            ch = self.text[self.pos]
            self.pos += 1
            if ch == ']':
                return node

    def read_object(self) -> JsonObject:
        node = JsonObject()
        self.pos += 1
        self.skip_ws()
        if self.text[self.pos] == '}':
            self.pos += 1
            return node
        while True:
            self.skip_ws()
            key = self.read_string()
            self.skip_ws()
            self.pos += 1  # ':'
            node.members.append((key, self.read_value()))
            self.skip_ws()
            ch = self.text[self.pos]
            self.pos += 1
            if ch == '}':
                return node

    def read_scalar(self) -> JsonScalar:
        text = self.text
        start = self.pos
        while self.pos < len(text) and text[self.pos] not in _WHITESPACE + ",]}":
            self.pos += 1
        return JsonScalar(raw=text[start:self.pos])


def parse(text: str) -> JsonNode:
    """
    Parse JSON text into a tagged tree with string offsets.

    Raises:
        ValueError: If the text is not valid JSON
    """
    offset = 1 if text.startswith("\ufeff") else 0
    json.loads(text[offset:])  # validates; raises json.JSONDecodeError (a ValueError)
    reader = _Reader(text)
    reader.pos = offset
    return reader.read_value()


def iter_strings(node: JsonNode) -> Iterator[JsonString]:
    """Yield leaf string values in document order. Mapping keys are not leaves."""
    if isinstance(node, JsonString):
        yield node
    elif isinstance(node, JsonArray):
        for item in node.items:
            yield from iter_strings(item)
    elif isinstance(node, JsonObject):
        for _key, value in node.members:
            yield from iter_strings(value)
