from __future__ import annotations

import pytest

from shared.config import config
from workflow_dataflow.errors import NodeNotFoundError
from workflow_dataflow.graph.upstream import UpstreamCollector, collect_upstream
from workflow_dataflow.tests.helpers import edge, make_graph, make_store, node


def test_chain_named_closure_and_direct_parents() -> None:
    graph = make_graph(
        [node("a", "webhook", "A"), node("b", "code", "B"), node("c", "code", "C")],
        [edge("a", "b"), edge("b", "c")],
    )
    store = make_store({"a": {"x": 1}})

    at_c = collect_upstream(graph, store, "c")
    assert at_c.ordered == ()
    assert dict(at_c.named) == {"A": {"x": 1}}

    at_b = collect_upstream(graph, store, "b")
    assert at_b.ordered == ({"x": 1},)
    assert dict(at_b.named) == {"A": {"x": 1}}


def test_diamond_visits_each_ancestor_once_in_edge_order() -> None:
    graph = make_graph(
        [node("a", "webhook", "A"), node("b", name="B"), node("c", name="C"), node("d", name="D")],
        [edge("a", "b"), edge("a", "c"), edge("b", "d"), edge("c", "d")],
    )
    store = make_store({"a": {"v": "a"}, "b": {"v": "b"}, "c": {"v": "c"}})

    data = collect_upstream(graph, store, "d")
    assert data.ordered == ({"v": "b"}, {"v": "c"})
    assert list(data.named) == ["B", "C", "A"]


def test_ordered_counts_direct_parents_with_output() -> None:
    graph = make_graph(
        [node("p1", name="P1"), node("p2", name="P2"), node("p3", name="P3"), node("t", name="T")],
        [edge("p1", "t"), edge("p2", "t"), edge("p3", "t")],
    )
    store = make_store({"p1": 1, "p3": 3})
    assert collect_upstream(graph, store, "t").ordered == (1, 3)


def test_ancestors_without_output_are_still_traversed() -> None:
    graph = make_graph(
        [node("a", "webhook", "A"), node("b", name="B"), node("c", name="C")],
        [edge("a", "b"), edge("b", "c")],
    )
    data = collect_upstream(graph, make_store({"a": {"x": 1}}), "c")
    assert data.ordered == ()
    assert dict(data.named) == {"A": {"x": 1}}


def test_cycles_terminate() -> None:
    graph = make_graph(
        [node("a", name="A"), node("b", name="B"), node("c", name="C")],
        [edge("a", "b"), edge("b", "a"), edge("b", "c")],
    )
    data = collect_upstream(graph, make_store({"a": "A-out", "b": "B-out"}), "c")
    assert data.ordered == ("B-out",)
    assert dict(data.named) == {"B": "B-out", "A": "A-out"}


def test_target_on_a_cycle_may_see_its_own_output() -> None:
    graph = make_graph([node("a", name="A"), node("b", name="B")], [edge("a", "b"), edge("b", "a")])
    data = collect_upstream(graph, make_store({"a": "A-out", "b": "B-out"}), "a")
    assert data.ordered == ("B-out",)
    assert dict(data.named) == {"B": "B-out", "A": "A-out"}


def test_pinned_output_wins() -> None:
    graph = make_graph([node("a", "webhook", "A"), node("b", name="B")], [edge("a", "b")])
    store = make_store({"a": {"v": "tested"}}, pinned={"a": {"v": "pinned"}})
    data = collect_upstream(graph, store, "b")
    assert data.ordered == ({"v": "pinned"},)
    assert data.named["A"] == {"v": "pinned"}


def test_unknown_target_raises() -> None:
    graph = make_graph([node("a")])
    with pytest.raises(NodeNotFoundError):
        collect_upstream(graph, make_store(), "ghost")


def test_upstream_data_is_read_only() -> None:
    graph = make_graph([node("a", name="A"), node("b", name="B")], [edge("a", "b")])
    data = collect_upstream(graph, make_store({"a": 1}), "b")
    with pytest.raises(TypeError):
        data.named["X"] = 2
    assert data.input_data() == [1, 1]


def _if_graph():
    return make_graph(
        [
            node("hook", "webhook", "Webhook"),
            node("check", "if", "Check"),
            node("yes", name="Yes"),
            node("no", name="No"),
        ],
        [
            edge("hook", "check"),
            edge("check", "yes", handle="true"),
            edge("check", "no", handle="false"),
        ],
    )


def test_branch_aware_collection_skips_inactive_branch() -> None:
    graph = _if_graph()
    store = make_store({"hook": {"id": 1}, "check": {"result": True}})

    inactive = collect_upstream(graph, store, "no", follow_active_branches=True)
    assert inactive.ordered == ()
    assert dict(inactive.named) == {}

    active = collect_upstream(graph, store, "yes", follow_active_branches=True)
    assert active.ordered == ({"result": True},)
    assert list(active.named) == ["Check", "Webhook"]


def test_branch_agnostic_collection_follows_every_edge() -> None:
    graph = _if_graph()
    store = make_store({"hook": {"id": 1}, "check": {"result": True}})
    data = collect_upstream(graph, store, "no", follow_active_branches=False)
    assert list(data.named) == ["Check", "Webhook"]


def test_branch_aware_collection_for_switch() -> None:
    graph = make_graph(
        [node("sw", "switch", "Route"), node("a", name="A"), node("b", name="B"), node("f", name="F")],
        [
            edge("sw", "a", handle="output0"),
            edge("sw", "b", handle="output1"),
            edge("sw", "f", handle="fallback"),
        ],
    )
    store = make_store({"sw": {"matchedOutput": 1}})
    assert "Route" in collect_upstream(graph, store, "b", follow_active_branches=True).named
    assert "Route" not in collect_upstream(graph, store, "a", follow_active_branches=True).named
    assert "Route" not in collect_upstream(graph, store, "f", follow_active_branches=True).named


def test_branch_mode_follows_undecided_conditionals() -> None:
    graph = _if_graph()
    untested = collect_upstream(graph, make_store({"hook": {"id": 1}}), "no", follow_active_branches=True)
    assert dict(untested.named) == {"Webhook": {"id": 1}}

    undecided = make_store({"hook": {"id": 1}, "check": {"status": "skipped"}})
    data = collect_upstream(graph, undecided, "no", follow_active_branches=True)
    assert list(data.named) == ["Check", "Webhook"]


def test_branch_mode_defaults_to_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    graph = _if_graph()
    assert UpstreamCollector(graph, make_store()).follow_active_branches is config.follow_active_branches
    monkeypatch.setattr(config, "follow_active_branches", True)
    assert UpstreamCollector(graph, make_store()).follow_active_branches is True
