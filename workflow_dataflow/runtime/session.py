"""
Editing session: one canvas, its node outputs and its running tests.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from shared.config import config
from shared.logger import get_logger
from workflow_dataflow.errors import WorkflowDataflowError
from workflow_dataflow.expr import evaluator
from workflow_dataflow.expr.evaluator import Clock, TemplateSpanStatus
from workflow_dataflow.graph import branches
from workflow_dataflow.graph.model import WorkflowGraph
from workflow_dataflow.graph.parse import parse_snapshot
from workflow_dataflow.graph.upstream import UpstreamCollector
from workflow_dataflow.runtime.executor import (
    CredentialProvider,
    HttpCredentialProvider,
    HttpNodeExecutor,
    NodeExecutor,
)
from workflow_dataflow.runtime.output_store import NodeOutputStore
from workflow_dataflow.runtime.resolution import ReferenceIssue, check_config_references, resolve_node_config
from workflow_dataflow.runtime.state import UpstreamData
from workflow_dataflow.runtime.test_session import TestSessionManager
from workflow_dataflow.schema.models import Edge, NodeConfig, RenderMode

logger = get_logger(__name__)


class EditingSession:
    """
    Ties the graph, the output store and the test manager together.

    All lookups are synchronous; only :meth:`test_node` suspends.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        *,
        store: Optional[NodeOutputStore] = None,
        executor: Optional[NodeExecutor] = None,
        credentials: Optional[CredentialProvider] = None,
        follow_active_branches: Optional[bool] = None,
        clear_output_on_test_error: Optional[bool] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.graph = graph
        self.store = store if store is not None else NodeOutputStore()
        self.clock = clock
        self.collector = UpstreamCollector(graph, self.store, follow_active_branches=follow_active_branches)
        self.tests: Optional[TestSessionManager] = None
        if executor is not None:
            self.tests = TestSessionManager(
                graph,
                self.store,
                executor,
                credentials=credentials,
                follow_active_branches=follow_active_branches,
                clear_output_on_test_error=clear_output_on_test_error,
                clock=clock,
            )

    # Data flow -------------------------------------------------------------

    def upstream(self, node_id: str) -> UpstreamData:
        return self.collector.collect(node_id)

    def resolve(self, node_id: str, text: str, mode: RenderMode = RenderMode.text) -> str:
        return evaluator.render_template(text, self.upstream(node_id), mode, clock=self.clock)

    def inspect(self, node_id: str, text: str) -> List[TemplateSpanStatus]:
        return evaluator.inspect_template(text, self.upstream(node_id), clock=self.clock)

    def resolve_config(self, node_id: str) -> NodeConfig:
        node = self.graph.node_by_id(node_id)
        return resolve_node_config(node, self.upstream(node_id), clock=self.clock)

    def check_references(self, node_id: str) -> List[ReferenceIssue]:
        node = self.graph.node_by_id(node_id)
        return check_config_references(node, self.upstream(node_id), clock=self.clock)

    def variables(self, node_id: str) -> List[Tuple[str, Any]]:
        """Addressable leaf paths of everything upstream of ``node_id``."""
        return list(evaluator.iter_variable_paths(self.upstream(node_id).named))

    # Branches --------------------------------------------------------------

    def active_handle(self, node_id: str) -> Optional[str]:
        node = self.graph.node_by_id(node_id)
        if not self.store.has_output(node_id):
            return None
        return branches.active_handle(node, self.store.output(node_id))

    def active_edges(self) -> List[Edge]:
        return branches.active_edges(self.graph, self.store)

    def edge_states(self) -> List[Tuple[Edge, bool]]:
        """Every edge with its active flag, in declaration order."""
        return [(edge, branches.is_edge_active(self.graph, self.store, edge)) for edge in self.graph.edges]

    # Tests -----------------------------------------------------------------

    def _require_tests(self) -> TestSessionManager:
        if self.tests is None:
            raise WorkflowDataflowError("No node executor configured for this session")
        return self.tests

    async def test_node(self, node_id: str, resolved_config: Optional[NodeConfig] = None) -> Any:
        return await self._require_tests().start(node_id, resolved_config)

    def cancel_test(self, node_id: str) -> bool:
        return self.tests.cancel(node_id) if self.tests is not None else False

    def is_testing(self, node_id: str) -> bool:
        return self.tests.is_running(node_id) if self.tests is not None else False

    def running_tests(self) -> List[str]:
        return self.tests.running_node_ids() if self.tests is not None else []

    def cancel_all_tests(self) -> List[str]:
        return self.tests.cancel_all() if self.tests is not None else []


def build_session(
    payload: Any,
    *,
    executor: Optional[NodeExecutor] = None,
    credentials: Optional[CredentialProvider] = None,
    **options: Any,
) -> EditingSession:
    """
    Build an editing session from a snapshot (canvas JSON plus optional
    ``nodeOutputs``/``pinnedOutputs``).

    When no executor is passed and ``EXECUTOR_BASE_URL`` is set, the HTTP
    executor and credential provider are used.
    """

    snapshot = parse_snapshot(payload)
    store = NodeOutputStore()
    store.load(snapshot.outputs, pinned=snapshot.pinned)

    if executor is None and config.is_executor_configured:
        executor = HttpNodeExecutor()
        if credentials is None:
            credentials = HttpCredentialProvider()

    logger.debug(
        "Built session with %d nodes, %d edges, %d outputs",
        len(snapshot.graph),
        len(snapshot.graph.edges),
        len(snapshot.outputs) + len(snapshot.pinned),
    )
    return EditingSession(snapshot.graph, store=store, executor=executor, credentials=credentials, **options)

