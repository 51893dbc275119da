"""
Per-node outputs and test errors for one editing session.

Outputs live here rather than on the nodes so the graph stays read-only. A
pinned output stands in for whatever the last test produced until it is
unpinned.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Mapping, Optional

from shared.logger import get_logger
from workflow_dataflow.runtime.state import NodeState

logger = get_logger(__name__)


class NodeOutputStore:
    def __init__(self) -> None:
        self._tested: Dict[str, Any] = {}
        self._pinned: Dict[str, Any] = {}
        self._errors: Dict[str, str] = {}

    def set_output(self, node_id: str, value: Any) -> None:
        self._tested[node_id] = value
        self._errors.pop(node_id, None)

    def record_error(self, node_id: str, message: str, *, clear_output: bool = False) -> None:
        self._errors[node_id] = message
        if clear_output:
            self._tested.pop(node_id, None)

    def clear(self, node_id: Optional[str] = None) -> None:
        if node_id is None:
            self._tested.clear()
            self._pinned.clear()
            self._errors.clear()
            return
        self._tested.pop(node_id, None)
        self._pinned.pop(node_id, None)
        self._errors.pop(node_id, None)

    def pin_output(self, node_id: str, value: Any) -> None:
        self._pinned[node_id] = value

    def unpin_output(self, node_id: str) -> None:
        self._pinned.pop(node_id, None)

    def is_pinned(self, node_id: str) -> bool:
        return node_id in self._pinned

    def has_output(self, node_id: str) -> bool:
        return node_id in self._pinned or node_id in self._tested

    def output(self, node_id: str, default: Any = None) -> Any:
        """Effective output: the pinned value if any, else the last successful test."""
        if node_id in self._pinned:
            return self._pinned[node_id]
        return self._tested.get(node_id, default)

    def last_error(self, node_id: str) -> Optional[str]:
        return self._errors.get(node_id)

    def is_stale(self, node_id: str) -> bool:
        """True when an output is in use although the latest test of the node failed."""
        return self.state(node_id).is_stale

    def state(self, node_id: str) -> NodeState:
        return NodeState(
            output=self.output(node_id),
            has_output=self.has_output(node_id),
            last_test_error=self._errors.get(node_id),
            pinned=node_id in self._pinned,
        )

    def snapshot(self) -> Dict[str, Any]:
        outputs = {node_id: value for node_id, value in self._tested.items()}
        outputs.update(self._pinned)
        return copy.deepcopy(outputs)

    def load(self, outputs: Mapping[str, Any], *, pinned: Optional[Mapping[str, Any]] = None) -> None:
        for node_id, value in outputs.items():
            self.set_output(node_id, value)
        for node_id, value in (pinned or {}).items():
            self.pin_output(node_id, value)
        logger.debug("Loaded %d outputs and %d pinned outputs", len(outputs), len(pinned or {}))
