"""
Read-only adjacency view over a validated workflow graph.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from workflow_dataflow.errors import GraphValidationError, NodeNotFoundError
from workflow_dataflow.schema.models import Edge, NodeBase, WorkflowGraphSpec


class WorkflowGraph:
    """Nodes and edges of one canvas; edge lists keep declaration order."""

    def __init__(self, nodes: Sequence[NodeBase], edges: Sequence[Edge]) -> None:
        self._nodes: Dict[str, NodeBase] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise GraphValidationError(f"Duplicate node id '{node.id}'")
            self._nodes[node.id] = node

        self._edges: List[Edge] = []
        self._parents: Dict[str, List[Edge]] = defaultdict(list)
        self._children: Dict[str, List[Edge]] = defaultdict(list)
        edge_ids = set()
        for edge in edges:
            if edge.id in edge_ids:
                raise GraphValidationError(f"Duplicate edge id '{edge.id}'")
            for endpoint in (edge.source, edge.target):
                if endpoint not in self._nodes:
                    raise GraphValidationError(
                        f"Edge '{edge.id}' references unknown node '{endpoint}'"
                    )
            edge_ids.add(edge.id)
            self._edges.append(edge)
            self._parents[edge.target].append(edge)
            self._children[edge.source].append(edge)

        self._by_name: Dict[str, NodeBase] = {node.display_name: node for node in self._nodes.values()}

    @classmethod
    def from_spec(cls, spec: WorkflowGraphSpec) -> "WorkflowGraph":
        return cls(spec.nodes, spec.edges)

    @property
    def nodes(self) -> List[NodeBase]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[Edge]:
        return list(self._edges)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node_by_id(self, node_id: str) -> NodeBase:
        try:
            return self._nodes[node_id]
        except KeyError as exc:
            raise NodeNotFoundError(node_id) from exc

    def maybe_node(self, node_id: str) -> Optional[NodeBase]:
        return self._nodes.get(node_id)

    def node_by_display_name(self, display_name: str) -> Optional[NodeBase]:
        return self._by_name.get(display_name)

    def parents_of(self, node_id: str) -> List[Edge]:
        """Edges whose target is ``node_id``."""
        return list(self._parents.get(node_id, ()))

    def children_of(self, node_id: str) -> List[Edge]:
        """Edges whose source is ``node_id``."""
        return list(self._children.get(node_id, ()))

    def to_payload(self) -> Dict[str, list]:
        """Wire form of nodes and edges, as sent to the executor back-end."""
        return {
            "nodes": [node.model_dump(mode="json", by_alias=True) for node in self._nodes.values()],
            "edges": [edge.model_dump(mode="json", by_alias=True) for edge in self._edges],
        }
