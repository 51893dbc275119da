from workflow_dataflow.runtime.output_store import NodeOutputStore
from workflow_dataflow.runtime.state import NodeState, UpstreamData

__all__ = [
    "NodeOutputStore",
    "NodeState",
    "UpstreamData",
]
