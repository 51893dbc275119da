"""
Public entrypoint for building editing sessions over workflow canvases.
"""

from __future__ import annotations

from workflow_dataflow.errors import (
    ConcurrentTestConflict,
    CredentialNotFoundError,
    GraphValidationError,
    NodeNotFoundError,
    TestCancelledError,
    TestExecutionError,
    WorkflowDataflowError,
)
from workflow_dataflow.graph.model import WorkflowGraph
from workflow_dataflow.graph.parse import parse_canvas_payload
from workflow_dataflow.graph.upstream import collect_upstream
from workflow_dataflow.runtime.session import EditingSession, build_session

__all__ = [
    "ConcurrentTestConflict",
    "CredentialNotFoundError",
    "EditingSession",
    "GraphValidationError",
    "NodeNotFoundError",
    "TestCancelledError",
    "TestExecutionError",
    "WorkflowDataflowError",
    "WorkflowGraph",
    "build_session",
    "collect_upstream",
    "parse_canvas_payload",
]
