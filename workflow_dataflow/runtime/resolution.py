"""
Resolve the templated fields of a node configuration against upstream data.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

from shared.logger import get_logger
from workflow_dataflow.expr import evaluator
from workflow_dataflow.expr.evaluator import Clock
from workflow_dataflow.runtime.state import UpstreamData
from workflow_dataflow.schema.models import NodeBase, NodeConfig

logger = get_logger(__name__)

_FIELD_TOKEN = re.compile(r"\[\]|\{\}|[^.\[\]{}]+")


@dataclass(frozen=True)
class ReferenceIssue:
    """A template span in a configuration field that does not resolve."""

    field: str
    placeholder: str


def _tokens(field_path: str) -> Tuple[str, ...]:
    return tuple(_FIELD_TOKEN.findall(field_path))


def _rewrite(value: Any, tokens: Sequence[str], render: Callable[[str], str]) -> Any:
    if not tokens:
        return render(value) if isinstance(value, str) else value
    token, rest = tokens[0], tokens[1:]
    if token == "[]":
        if not isinstance(value, list):
            return value
        return [_rewrite(item, rest, render) for item in value]
    if token == "{}":
        if not isinstance(value, dict):
            return value
        return {key: _rewrite(item, rest, render) for key, item in value.items()}
    if not isinstance(value, dict) or token not in value:
        return value
    updated = dict(value)
    updated[token] = _rewrite(value[token], rest, render)
    return updated


def _walk(value: Any, tokens: Sequence[str], location: str) -> Iterator[Tuple[str, str]]:
    if not tokens:
        if isinstance(value, str):
            yield location, value
        return
    token, rest = tokens[0], tokens[1:]
    if token == "[]":
        if isinstance(value, list):
            for index, item in enumerate(value):
                yield from _walk(item, rest, f"{location}[{index}]")
        return
    if token == "{}":
        if isinstance(value, dict):
            for key, item in value.items():
                yield from _walk(item, rest, f"{location}.{key}")
        return
    if isinstance(value, dict) and token in value:
        yield from _walk(value[token], rest, f"{location}.{token}" if location else token)


def iter_templated_strings(config: NodeConfig) -> Iterator[Tuple[str, str]]:
    """Yield ``(location, text)`` for every templatable string in ``config``."""

    data = config.model_dump()
    for field_path in config.TEMPLATABLE_FIELDS:
        yield from _walk(data, _tokens(field_path), "")


def resolve_config(
    config: NodeConfig,
    upstream: UpstreamData,
    *,
    clock: Optional[Clock] = None,
) -> NodeConfig:
    """
    Return a new configuration of the same type with every templatable field
    rendered. Other fields are copied untouched.
    """

    data = config.model_dump()
    for field_path in config.TEMPLATABLE_FIELDS:
        mode = config.render_mode_for(field_path)

        def render(text: str, mode=mode) -> str:
            return evaluator.render_template(text, upstream, mode, clock=clock)

        data = _rewrite(data, _tokens(field_path), render)
    return type(config).model_validate(data)


def resolve_node_config(
    node: NodeBase,
    upstream: UpstreamData,
    *,
    clock: Optional[Clock] = None,
) -> NodeConfig:
    resolved = resolve_config(node.config, upstream, clock=clock)
    logger.debug(
        "Resolved config of node '%s' (%s) with %d named upstream outputs",
        node.id,
        node.type,
        len(upstream.named),
    )
    return resolved


def check_config_references(
    node: NodeBase,
    upstream: UpstreamData,
    *,
    clock: Optional[Clock] = None,
) -> List[ReferenceIssue]:
    """Every span in the node's templatable fields that would stay unresolved."""

    issues: List[ReferenceIssue] = []
    for location, text in iter_templated_strings(node.config):
        for status in evaluator.inspect_template(text, upstream, clock=clock):
            if not status.exists:
                issues.append(ReferenceIssue(field=location, placeholder=status.placeholder))
    return issues
