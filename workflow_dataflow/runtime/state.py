"""
Typed state objects shared by the collector, resolver and test sessions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class UpstreamData:
    """
    Data visible to a node.

    ``ordered`` holds the outputs of direct parents in edge order; ``named``
    maps the display name of every upstream ancestor with an output to it.
    """

    ordered: Tuple[Any, ...] = ()
    named: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ordered", tuple(self.ordered))
        object.__setattr__(self, "named", MappingProxyType(dict(self.named)))

    @classmethod
    def empty(cls) -> "UpstreamData":
        return cls()

    def input_data(self) -> list:
        """Ordered outputs followed by named outputs, the layout the executor back-end reads."""
        return [*self.ordered, *self.named.values()]

    def to_dict(self) -> Dict[str, Any]:
        return {"ordered": list(self.ordered), "named": dict(self.named)}


@dataclass
class NodeState:
    output: Any = None
    has_output: bool = False
    last_test_error: Optional[str] = None
    pinned: bool = False

    @property
    def is_stale(self) -> bool:
        return self.has_output and not self.pinned and self.last_test_error is not None
