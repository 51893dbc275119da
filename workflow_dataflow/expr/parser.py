"""
Parsing utilities for ``{{...}}`` template spans embedded in configuration
strings and for the dotted/bracketed variable paths inside them.

Nothing in this module raises on user input: an unparseable path is reported
as ``None`` and left for the caller to treat as a miss.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Iterator, List, Optional, Sequence, Tuple

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
QUALIFIED_PATTERN = re.compile(r"^\$\(\s*'([^']+)'\s*\)\.item\.json\.(.+)$", re.DOTALL)

_TOKEN_PATTERN = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
_QUOTED_TAIL = re.compile(r"((?:\[\d+\])*)\s*")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")
_NEEDS_QUOTES = re.compile(r'[.\[\]"{}]|^\s|\s$')


@dataclass(frozen=True)
class PathSegment:
    """A key lookup followed by zero or more list indices: ``items[0][2]``."""

    key: str
    indices: Tuple[int, ...] = ()


@dataclass(frozen=True)
class TemplateLiteral:
    text: str


@dataclass(frozen=True)
class TemplateReference:
    """
    One ``{{...}}`` span.

    ``node_name`` is only set for the qualified form
    ``{{ $('Node').item.json.path }}``; ``path`` is then relative to that
    node's output. For the direct form ``path`` is the whole inner text.
    """

    placeholder: str
    path: str
    node_name: Optional[str] = None

    @property
    def qualified(self) -> bool:
        return self.node_name is not None

    @property
    def display_path(self) -> str:
        if self.node_name is None:
            return self.path
        return build_variable_path(quote_segment(self.node_name), self.path)


TemplateToken = TemplateLiteral | TemplateReference


def _parse_indices(text: str) -> Tuple[int, ...]:
    return tuple(int(index) for index in _INDEX_PATTERN.findall(text))


def _read_quoted(text: str, start: int) -> Optional[Tuple[str, int]]:
    """Read the ``"..."`` key opening at ``start``; returns the key and the index past the closing quote."""

    buffer: List[str] = []
    escaped = False
    for position in range(start + 1, len(text)):
        char = text[position]
        if escaped:
            buffer.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            return "".join(buffer), position + 1
        else:
            buffer.append(char)
    return None


def _read_segment(text: str, position: int) -> Tuple[Optional[PathSegment], int]:
    while position < len(text) and text[position].isspace():
        position += 1

    if text.startswith('"', position):
        quoted = _read_quoted(text, position)
        if quoted is None or not quoted[0]:
            return None, position
        key, position = quoted
        tail = _QUOTED_TAIL.match(text, position)
        return PathSegment(key, _parse_indices(tail.group(1))), tail.end()

    end = text.find(".", position)
    if end == -1:
        end = len(text)
    token = text[position:end].strip()
    match = _TOKEN_PATTERN.match(token)
    if not token or match is None:
        return None, end
    key, index_part = match.groups()
    return PathSegment(key, _parse_indices(index_part)), end


def parse_path(path: str) -> Optional[Tuple[PathSegment, ...]]:
    """
    Split ``a.b[0].c`` into segments. Any segment may be written as a
    ``"quoted key"`` (``\\"`` and ``\\\\`` escapes) so keys containing dots,
    brackets or surrounding spaces stay addressable.

    Returns ``None`` for empty or malformed paths.
    """

    if not isinstance(path, str):
        return None
    text = path.strip()
    if not text:
        return None

    segments: List[PathSegment] = []
    position = 0
    while True:
        segment, position = _read_segment(text, position)
        if segment is None:
            return None
        segments.append(segment)
        if position == len(text):
            return tuple(segments)
        if text[position] != ".":
            return None
        position += 1


def quote_segment(key: str, *, force: bool = False) -> str:
    """Quote a path segment when it could not be read back bare."""

    value = str(key)
    if not force and not _NEEDS_QUOTES.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_variable_path(prefix: str, key: str) -> str:
    if not prefix:
        return key
    return f"{prefix}.{key}"


def build_array_path(prefix: str, index: int) -> str:
    return f"{prefix}[{index}]"


def _span_end(text: str, start: int) -> Optional[int]:
    # Braces inside a quoted key do not close the span. A quote only opens a
    # key at the start of a path segment.
    position = start + 2
    in_quotes = escaped = False
    previous = "{"
    while position < len(text):
        char = text[position]
        if in_quotes:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_quotes = False
        elif char == '"' and previous in "{.":
            in_quotes = True
        elif char == "}":
            if position > start + 2 and text.startswith("}}", position):
                return position + 2
            return None
        if not char.isspace():
            previous = char
        position += 1
    return None


def _match_span(text: str, start: int) -> Optional[Tuple[int, str]]:
    end = _span_end(text, start)
    if end is not None:
        return end, text[start:end]
    # Unbalanced quotes: read the span the plain way.
    match = TEMPLATE_PATTERN.match(text, start)
    if match is None:
        return None
    return match.end(), match.group(0)


def _reference(placeholder: str) -> TemplateReference:
    inner = placeholder[2:-2].strip()
    qualified = QUALIFIED_PATTERN.match(inner)
    if qualified:
        return TemplateReference(
            placeholder=placeholder,
            path=qualified.group(2).strip(),
            node_name=qualified.group(1).strip(),
        )
    return TemplateReference(placeholder=placeholder, path=inner)


def parse_template(text: str) -> List[TemplateToken]:
    tokens: List[TemplateToken] = []
    cursor = 0
    start = text.find("{{")
    while start != -1:
        span = _match_span(text, start)
        if span is None:
            start = text.find("{{", start + 1)
            continue
        end, placeholder = span
        if start > cursor:
            tokens.append(TemplateLiteral(text[cursor:start]))
        tokens.append(_reference(placeholder))
        cursor = end
        start = text.find("{{", end)
    if cursor < len(text):
        tokens.append(TemplateLiteral(text[cursor:]))
    if not tokens:
        tokens.append(TemplateLiteral(text))
    return tokens


def iterate_template_references(value: Any) -> Iterator[TemplateReference]:
    if isinstance(value, str):
        for token in parse_template(value):
            if isinstance(token, TemplateReference):
                yield token
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            yield from iterate_template_references(item)
        return
    if isinstance(value, dict):
        for item in value.values():
            yield from iterate_template_references(item)


def leading_name(reference: TemplateReference) -> Optional[str]:
    """The node name a span points at: explicit for the qualified form, the first key otherwise."""

    if reference.node_name is not None:
        return reference.node_name
    segments = parse_path(reference.path)
    if not segments:
        return None
    return segments[0].key or None


def format_segments(segments: Sequence[PathSegment]) -> str:
    return ".".join(
        quote_segment(segment.key) + "".join(f"[{i}]" for i in segment.indices)
        for segment in segments
    )
