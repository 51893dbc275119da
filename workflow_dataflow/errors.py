"""
Shared exception hierarchy for the data-flow engine.

Path lookups never raise: a miss is a ``ResolvedValue(exists=False)``. The
exceptions below cover graph construction, lookups by id and the per-node
test lifecycle.
"""


class WorkflowDataflowError(Exception):
    """Base class for all engine related errors."""


class GraphValidationError(WorkflowDataflowError):
    """Raised when a canvas payload or graph structure fails structural checks."""


class NodeNotFoundError(WorkflowDataflowError, KeyError):
    """Raised when a node id cannot be resolved in the graph."""


class CredentialNotFoundError(WorkflowDataflowError, KeyError):
    """Raised when the credential collaborator has no bundle for an id."""


class TestExecutionError(WorkflowDataflowError):
    """Raised when the executor call for a node test fails or returns an error payload."""

    __test__ = False

    def __init__(self, node_id: str, message: str) -> None:
        super().__init__(f"Test of node '{node_id}' failed: {message}")
        self.node_id = node_id
        self.message = message


class ConcurrentTestConflict(WorkflowDataflowError):
    """Raised when a test is requested while one is already running for that node."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"A test is already in progress for node '{node_id}'")
        self.node_id = node_id


class TestCancelledError(WorkflowDataflowError):
    """Raised to the awaiting caller of a test that was cancelled before it settled."""

    __test__ = False

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Test of node '{node_id}' was cancelled")
        self.node_id = node_id
