"""Builders for canvas payloads used across the engine tests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from workflow_dataflow.graph.model import WorkflowGraph
from workflow_dataflow.graph.parse import parse_canvas_payload
from workflow_dataflow.runtime.output_store import NodeOutputStore


def fixed_clock() -> datetime:
    return datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def node(node_id: str, kind: str = "code", name: Optional[str] = None, config: Optional[dict] = None) -> Dict[str, Any]:
    """A ReactFlow-style canvas node."""
    data: Dict[str, Any] = {"label": name or kind, "config": config or {}}
    return {"id": node_id, "type": kind, "position": {"x": 0, "y": 0}, "data": data}


def edge(source: str, target: str, handle: Optional[str] = None, edge_id: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": edge_id or f"{source}-{handle or 'out'}-{target}",
        "source": source,
        "target": target,
    }
    if handle is not None:
        payload["sourceHandle"] = handle
    return payload


def canvas(
    nodes: Iterable[dict],
    edges: Iterable[dict] = (),
    outputs: Optional[dict] = None,
    pinned: Optional[dict] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"nodes": list(nodes), "edges": list(edges)}
    if outputs is not None:
        payload["nodeOutputs"] = outputs
    if pinned is not None:
        payload["pinnedOutputs"] = pinned
    return payload


def make_graph(nodes: Iterable[dict], edges: Iterable[dict] = ()) -> WorkflowGraph:
    return parse_canvas_payload(canvas(nodes, edges))


def make_store(outputs: Optional[dict] = None, pinned: Optional[dict] = None) -> NodeOutputStore:
    store = NodeOutputStore()
    store.load(outputs or {}, pinned=pinned)
    return store
