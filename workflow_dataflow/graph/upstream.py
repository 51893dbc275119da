"""
Backward breadth-first collection of the data visible to a node.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set

from shared.config import config
from shared.logger import get_logger
from workflow_dataflow.graph.branches import active_handle
from workflow_dataflow.graph.model import WorkflowGraph
from workflow_dataflow.runtime.output_store import NodeOutputStore
from workflow_dataflow.runtime.state import UpstreamData
from workflow_dataflow.schema.models import Edge

logger = get_logger(__name__)


class UpstreamCollector:
    """
    Collects ``ordered`` (outputs of direct parents, in edge order) and
    ``named`` (outputs of every ancestor, by display name) for a target node.

    Each ancestor is processed once, so diamonds and cycles terminate.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        store: NodeOutputStore,
        *,
        follow_active_branches: Optional[bool] = None,
    ) -> None:
        self.graph = graph
        self.store = store
        if follow_active_branches is None:
            follow_active_branches = config.follow_active_branches
        self.follow_active_branches = follow_active_branches

    def _follows(self, edge: Edge) -> bool:
        if not self.follow_active_branches:
            return True
        source = self.graph.maybe_node(edge.source)
        if source is None or not source.is_conditional:
            return True
        # An untested or undecided conditional hides nothing.
        if not self.store.has_output(edge.source):
            return True
        handle = active_handle(source, self.store.output(edge.source))
        return handle is None or edge.source_handle == handle

    def collect(self, target_node_id: str) -> UpstreamData:
        self.graph.node_by_id(target_node_id)

        ordered: List[Any] = []
        named: Dict[str, Any] = {}
        visited: Set[str] = set()
        queue: Deque[str] = deque([target_node_id])

        while queue:
            current = queue.popleft()
            for edge in self.graph.parents_of(current):
                if edge.source in visited or not self._follows(edge):
                    continue
                visited.add(edge.source)
                queue.append(edge.source)

                if not self.store.has_output(edge.source):
                    continue
                output = self.store.output(edge.source)
                if edge.target == target_node_id:
                    ordered.append(output)
                ancestor = self.graph.node_by_id(edge.source)
                named[ancestor.display_name] = output

        logger.debug(
            "Collected upstream of '%s': %d direct, %d named (%s)",
            target_node_id,
            len(ordered),
            len(named),
            ", ".join(named) or "none",
        )
        return UpstreamData(ordered=tuple(ordered), named=named)


def collect_upstream(
    graph: WorkflowGraph,
    store: NodeOutputStore,
    target_node_id: str,
    *,
    follow_active_branches: Optional[bool] = None,
) -> UpstreamData:
    collector = UpstreamCollector(graph, store, follow_active_branches=follow_active_branches)
    return collector.collect(target_node_id)
