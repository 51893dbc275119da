from __future__ import annotations

from workflow_dataflow.runtime.output_store import NodeOutputStore


def test_set_output_clears_previous_error() -> None:
    store = NodeOutputStore()
    store.record_error("a", "boom")
    store.set_output("a", {"v": 1})
    state = store.state("a")
    assert state.has_output
    assert state.output == {"v": 1}
    assert state.last_test_error is None


def test_failed_test_keeps_last_good_output_and_marks_it_stale() -> None:
    store = NodeOutputStore()
    store.set_output("a", {"v": 1})
    store.record_error("a", "boom")
    assert store.output("a") == {"v": 1}
    assert store.last_error("a") == "boom"
    assert store.is_stale("a")


def test_record_error_can_clear_output() -> None:
    store = NodeOutputStore()
    store.set_output("a", {"v": 1})
    store.record_error("a", "boom", clear_output=True)
    assert not store.has_output("a")
    assert not store.is_stale("a")


def test_pinned_output_is_effective_until_unpinned() -> None:
    store = NodeOutputStore()
    store.set_output("a", "tested")
    store.pin_output("a", "pinned")
    store.set_output("a", "retested")
    assert store.output("a") == "pinned"
    assert store.state("a").pinned
    store.record_error("a", "boom")
    assert not store.is_stale("a")
    store.unpin_output("a")
    assert store.output("a") == "retested"
    assert store.is_stale("a")


def test_explicit_none_output_counts_as_output() -> None:
    store = NodeOutputStore()
    store.set_output("a", None)
    assert store.has_output("a")
    assert store.output("a", "default") is None
    assert store.output("b", "default") == "default"


def test_snapshot_is_a_copy_with_pins_applied() -> None:
    store = NodeOutputStore()
    store.load({"a": {"v": [1]}, "b": 2}, pinned={"b": 3})
    snapshot = store.snapshot()
    assert snapshot == {"a": {"v": [1]}, "b": 3}
    snapshot["a"]["v"].append(2)
    assert store.output("a") == {"v": [1]}


def test_clear_single_node_and_everything() -> None:
    store = NodeOutputStore()
    store.load({"a": 1, "b": 2}, pinned={"a": 0})
    store.record_error("b", "boom")
    store.clear("a")
    assert not store.has_output("a")
    assert store.has_output("b")
    store.clear()
    assert store.snapshot() == {}
    assert store.last_error("b") is None
