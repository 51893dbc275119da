"""
Evaluation helpers for ``{{...}}`` spans embedded in node configuration.

Resolution is best effort: a span whose path does not resolve is left in the
output verbatim, and nothing here raises for malformed input.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
import json
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Mapping, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from shared.config import config
from shared.logger import get_logger
from workflow_dataflow.expr import parser
from workflow_dataflow.expr.parser import PathSegment, TemplateLiteral, TemplateReference
from workflow_dataflow.schema.models import RenderMode

if TYPE_CHECKING:
    from workflow_dataflow.runtime.state import UpstreamData

logger = get_logger(__name__)

NOW_KEYWORD = "now"

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class ResolvedValue:
    exists: bool
    value: Any = None


MISSING = ResolvedValue(exists=False)


@dataclass(frozen=True)
class TemplateSpanStatus:
    """Per-span outcome reported by :func:`inspect_template`."""

    placeholder: str
    path: str
    node_name: Optional[str]
    exists: bool
    builtin: bool
    rendered: str


def _zone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone '%s' for {{now}}, using UTC", name)
        return dt_timezone.utc


def format_now(
    clock: Optional[Clock] = None,
    *,
    timezone: Optional[str] = None,
    fmt: Optional[str] = None,
) -> str:
    """Current local date-time as text, e.g. ``18/10/2026 14:05:09``."""

    zone = _zone(timezone or config.now_timezone)
    moment = clock() if clock is not None else datetime.now(zone)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=zone)
    else:
        moment = moment.astimezone(zone)
    return moment.strftime(fmt or config.now_format)


def traverse(root: Any, segments: Sequence[PathSegment]) -> ResolvedValue:
    """Walk ``segments`` into ``root``: key lookups on mappings, indices on lists."""

    if not segments:
        return MISSING
    current = root
    for segment in segments:
        if segment.key:
            if not isinstance(current, Mapping) or segment.key not in current:
                return MISSING
            current = current[segment.key]
        for index in segment.indices:
            if not isinstance(current, (list, tuple)) or index >= len(current):
                return MISSING
            current = current[index]
    return ResolvedValue(exists=True, value=current)


def resolve_path(path: str, root: Any, *, clock: Optional[Clock] = None) -> ResolvedValue:
    if isinstance(path, str) and path.strip() == NOW_KEYWORD:
        return ResolvedValue(exists=True, value=format_now(clock))
    segments = parser.parse_path(path)
    if not segments:
        return MISSING
    return traverse(root, segments)


def _positional_index(key: str) -> Optional[int]:
    prefix = config.positional_input_prefix
    if not key.startswith(prefix):
        return None
    suffix = key[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def _rest_of(segments: Tuple[PathSegment, ...]) -> Tuple[PathSegment, ...]:
    # Keep any indices attached to the leading key.
    head = segments[0]
    return (PathSegment("", head.indices),) + segments[1:]


def resolve_direct(path: str, upstream: "UpstreamData", *, clock: Optional[Clock] = None) -> ResolvedValue:
    """
    Resolve a direct-form path against upstream data.

    Order: the ``now`` built-in, then a named upstream node, then a positional
    ``input-<n>`` prefix, then the first direct-parent output that has the
    full path.
    """

    if path.strip() == NOW_KEYWORD:
        return ResolvedValue(exists=True, value=format_now(clock))
    segments = parser.parse_path(path)
    if not segments:
        return MISSING

    head = segments[0]
    if head.key in upstream.named:
        return traverse(upstream.named[head.key], _rest_of(segments))

    position = _positional_index(head.key)
    if position is not None and position < len(upstream.ordered):
        return traverse(upstream.ordered[position], _rest_of(segments))

    for output in upstream.ordered:
        hit = traverse(output, segments)
        if hit.exists:
            return hit
    return MISSING


def resolve_reference(
    reference: TemplateReference,
    upstream: "UpstreamData",
    *,
    clock: Optional[Clock] = None,
) -> ResolvedValue:
    if reference.node_name is None:
        return resolve_direct(reference.path, upstream, clock=clock)
    if reference.node_name not in upstream.named:
        return MISSING
    segments = parser.parse_path(reference.path)
    if not segments:
        return MISSING
    return traverse(upstream.named[reference.node_name], segments)


def _json_text(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def stringify(value: Any) -> str:
    """Text form of a resolved value as substituted into a string field."""

    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (Mapping, list, tuple)):
        return _json_text(value)
    return str(value)


def _render_text(text: str, upstream: "UpstreamData", clock: Optional[Clock], encode: Callable[[Any], str]) -> str:
    pieces: List[str] = []
    for token in parser.parse_template(text):
        if isinstance(token, TemplateLiteral):
            pieces.append(token.text)
            continue
        resolved = resolve_reference(token, upstream, clock=clock)
        logger.debug(
            "Template span %s -> %s",
            token.placeholder,
            "found" if resolved.exists else "missing",
        )
        pieces.append(encode(resolved.value) if resolved.exists else token.placeholder)
    return "".join(pieces)


def _render_json_strings(value: Any, upstream: "UpstreamData", clock: Optional[Clock]) -> Any:
    if isinstance(value, str):
        return _render_text(value, upstream, clock, stringify)
    if isinstance(value, list):
        return [_render_json_strings(item, upstream, clock) for item in value]
    if isinstance(value, dict):
        return {key: _render_json_strings(item, upstream, clock) for key, item in value.items()}
    return value


def render_template(
    text: str,
    upstream: "UpstreamData",
    mode: RenderMode = RenderMode.text,
    *,
    clock: Optional[Clock] = None,
) -> str:
    """
    Substitute every ``{{...}}`` span in ``text``.

    ``json`` mode decodes the text, renders the strings inside it and encodes
    the result again, falling back to text mode for non-JSON input. ``code``
    mode substitutes JSON literals so values can be embedded in code bodies.
    """

    if not isinstance(text, str) or "{{" not in text:
        return text
    mode = RenderMode(mode)
    if mode is RenderMode.json:
        try:
            decoded = json.loads(text)
        except ValueError:
            logger.debug("Body is not valid JSON, rendering as text")
            return _render_text(text, upstream, clock, stringify)
        return _json_text(_render_json_strings(decoded, upstream, clock))
    if mode is RenderMode.code:
        return _render_text(text, upstream, clock, _json_text)
    return _render_text(text, upstream, clock, stringify)


def render_payload(
    value: Any,
    upstream: "UpstreamData",
    mode: RenderMode = RenderMode.text,
    *,
    clock: Optional[Clock] = None,
) -> Any:
    if isinstance(value, str):
        return render_template(value, upstream, mode, clock=clock)
    if isinstance(value, (list, tuple)):
        return [render_payload(item, upstream, mode, clock=clock) for item in value]
    if isinstance(value, dict):
        return {key: render_payload(item, upstream, mode, clock=clock) for key, item in value.items()}
    return value


def inspect_template(
    text: str,
    upstream: "UpstreamData",
    *,
    clock: Optional[Clock] = None,
) -> List[TemplateSpanStatus]:
    statuses: List[TemplateSpanStatus] = []
    if not isinstance(text, str):
        return statuses
    for token in parser.parse_template(text):
        if not isinstance(token, TemplateReference):
            continue
        resolved = resolve_reference(token, upstream, clock=clock)
        statuses.append(
            TemplateSpanStatus(
                placeholder=token.placeholder,
                path=token.path,
                node_name=token.node_name,
                exists=resolved.exists,
                builtin=token.node_name is None and token.path == NOW_KEYWORD,
                rendered=stringify(resolved.value) if resolved.exists else token.placeholder,
            )
        )
    return statuses


def iter_variable_paths(
    named: Mapping[str, Any],
    *,
    max_depth: int = 6,
) -> Iterator[Tuple[str, Any]]:
    """
    Yield ``(path, value)`` for every leaf reachable in the named outputs.
    Keys are quoted where a bare key would not read back, and a node named
    ``now`` is always quoted so it is not taken for the built-in. Empty
    containers count as leaves; empty keys cannot be addressed and are
    skipped.
    """

    def walk(prefix: str, value: Any, depth: int) -> Iterator[Tuple[str, Any]]:
        if depth >= max_depth:
            yield prefix, value
            return
        if isinstance(value, Mapping) and value:
            for key, item in value.items():
                if str(key) == "":
                    continue
                yield from walk(parser.build_variable_path(prefix, parser.quote_segment(key)), item, depth + 1)
            return
        if isinstance(value, (list, tuple)) and value:
            for index, item in enumerate(value):
                yield from walk(parser.build_array_path(prefix, index), item, depth + 1)
            return
        yield prefix, value

    for name, output in named.items():
        if name == "":
            continue
        yield from walk(parser.quote_segment(name, force=name == NOW_KEYWORD), output, 0)
