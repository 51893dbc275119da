"""
Branch selection for conditional nodes.

An ``if`` node routes through its ``"true"`` or ``"false"`` handle, a
``switch`` node through ``"output<i>"`` or ``"fallback"``. Every other node
has a single output: all of its outgoing edges are active once it has an
output.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from workflow_dataflow.graph.model import WorkflowGraph
from workflow_dataflow.runtime.output_store import NodeOutputStore
from workflow_dataflow.schema.models import Edge, NodeBase, NodeKind

TRUE_HANDLE = "true"
FALSE_HANDLE = "false"
FALLBACK_HANDLE = "fallback"


def switch_output_handle(index: int) -> str:
    return f"output{index}"


def active_handle(node: NodeBase, output: Any) -> Optional[str]:
    """Handle selected by a conditional node's output, or ``None`` when undetermined."""

    if not isinstance(output, Mapping):
        return None
    if node.kind is NodeKind.IF:
        result = output.get("result")
        if isinstance(result, bool):
            return TRUE_HANDLE if result else FALSE_HANDLE
        return None
    if node.kind is NodeKind.SWITCH:
        matched = output.get("matchedOutput")
        if isinstance(matched, bool) or not isinstance(matched, int):
            return None
        return switch_output_handle(matched) if matched >= 0 else FALLBACK_HANDLE
    return None


def is_edge_active(graph: WorkflowGraph, store: NodeOutputStore, edge: Edge) -> bool:
    if not store.has_output(edge.source):
        return False
    source = graph.node_by_id(edge.source)
    if not source.is_conditional:
        return True
    handle = active_handle(source, store.output(edge.source))
    return handle is not None and edge.source_handle == handle


def active_edges(graph: WorkflowGraph, store: NodeOutputStore) -> List[Edge]:
    return [edge for edge in graph.edges if is_edge_active(graph, store, edge)]
