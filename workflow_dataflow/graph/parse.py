"""
Parse canvas JSON into a validated :class:`WorkflowGraph`.

The canvas sends ReactFlow-style nodes (``{id, type, position, data: {label,
customName, config}}``); flat nodes (``{id, type, displayName, config}``) are
accepted as well.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any, Dict, List, Mapping

from pydantic import ValidationError

from workflow_dataflow.errors import GraphValidationError
from workflow_dataflow.graph.model import WorkflowGraph
from workflow_dataflow.schema.models import WorkflowGraphSpec


@dataclass(frozen=True)
class CanvasSnapshot:
    graph: WorkflowGraph
    outputs: Dict[str, Any] = field(default_factory=dict)
    pinned: Dict[str, Any] = field(default_factory=dict)


def _load(payload: Any) -> Mapping[str, Any]:
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise GraphValidationError(f"Invalid canvas JSON payload: {exc}") from exc
    elif isinstance(payload, Mapping):
        data = payload
    else:
        raise GraphValidationError(
            f"Unsupported payload type {type(payload).__name__}; expected str or Mapping"
        )
    if not isinstance(data, Mapping):
        raise GraphValidationError("Canvas payload must be a JSON object")
    return data


def _normalize_node(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, Mapping):
        raise GraphValidationError(f"Node entries must be objects, got {type(raw).__name__}")
    node_type = str(raw.get("type") or "").lower()
    data = raw.get("data")
    if isinstance(data, Mapping):
        display_name = data.get("customName") or data.get("label") or node_type
        config = data.get("config") or {}
    else:
        display_name = raw.get("displayName") or node_type
        config = raw.get("config") or {}
    position = raw.get("position") or {}
    return {
        "id": raw.get("id"),
        "type": node_type,
        "displayName": display_name,
        "config": config,
        "position": {"x": position.get("x", 0), "y": position.get("y", 0)},
    }


def _normalize_edge(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, Mapping):
        raise GraphValidationError(f"Edge entries must be objects, got {type(raw).__name__}")
    return {
        "id": raw.get("id") or f"{raw.get('source')}->{raw.get('target')}",
        "source": raw.get("source"),
        "target": raw.get("target"),
        "sourceHandle": raw.get("sourceHandle"),
    }


def parse_canvas_payload(payload: Any) -> WorkflowGraph:
    """
    Accepts a JSON string or a mapping with ``nodes`` and ``edges`` and returns
    the validated graph. Colliding display names are renamed with a numeric
    suffix.
    """

    data = _load(payload)
    nodes: List[Any] = data.get("nodes") or []
    edges: List[Any] = data.get("edges") or []
    normalized = {
        "nodes": [_normalize_node(node) for node in nodes],
        "edges": [_normalize_edge(edge) for edge in edges],
    }
    try:
        spec = WorkflowGraphSpec.model_validate(normalized)
    except ValidationError as exc:
        raise GraphValidationError(f"Canvas validation failed: {exc}") from exc
    return WorkflowGraph.from_spec(spec)


def parse_snapshot(payload: Any) -> CanvasSnapshot:
    """Canvas plus ``nodeOutputs`` and ``pinnedOutputs`` keyed by node id."""

    data = _load(payload)
    graph = parse_canvas_payload(data)
    outputs = data.get("nodeOutputs") or {}
    pinned = data.get("pinnedOutputs") or {}
    if not isinstance(outputs, Mapping) or not isinstance(pinned, Mapping):
        raise GraphValidationError("nodeOutputs and pinnedOutputs must be objects keyed by node id")
    snapshot = CanvasSnapshot(graph=graph, outputs=dict(outputs), pinned=dict(pinned))
    for node_id in [*snapshot.outputs, *snapshot.pinned]:
        if node_id not in graph:
            raise GraphValidationError(f"Output recorded for unknown node '{node_id}'")
    return snapshot
