from __future__ import annotations

import asyncio
from typing import Any, List, Optional

import pytest

from workflow_dataflow import build_session
from workflow_dataflow.errors import (
    ConcurrentTestConflict,
    CredentialNotFoundError,
    NodeNotFoundError,
    TestCancelledError,
    TestExecutionError,
    WorkflowDataflowError,
)
from workflow_dataflow.runtime.executor import ExecutionContext
from workflow_dataflow.runtime.test_session import TestSessionManager, error_payload_message
from workflow_dataflow.schema.models import CodeConfig, NodeKind
from workflow_dataflow.tests.helpers import canvas, edge, make_graph, make_store, node

HOOK_OUTPUT = {"body": {"email": "a@b.c"}}


class RecordingExecutor:
    def __init__(self, result: Any = None, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.calls: List[tuple] = []

    async def test_node(self, kind, resolved_config, context: ExecutionContext):
        self.calls.append((kind, resolved_config, context))
        if self.error is not None:
            raise self.error
        return self.result


class BlockingExecutor:
    def __init__(self, swallow_cancel: bool = False) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.swallow_cancel = swallow_cancel
        self.saw_abort = False

    async def test_node(self, kind, resolved_config, context: ExecutionContext):
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.saw_abort = context.cancelled
            if self.swallow_cancel:
                return {"late": True}
            raise
        return {"done": True}


class FakeCredentials:
    def __init__(self, bundles: dict) -> None:
        self.bundles = bundles

    async def get_credential(self, credential_id):
        if credential_id not in self.bundles:
            raise CredentialNotFoundError(credential_id)
        return self.bundles[credential_id]


def _graph():
    return make_graph(
        [
            node("hook", "webhook", "Webhook"),
            node("code", "code", "Code", {"code": "return {{Webhook.body.email}};"}),
            node("ai", "openai", "OpenAI", {"credentialId": 7, "messages": [{"content": "{{Webhook.body.email}}"}]}),
        ],
        [edge("hook", "code"), edge("hook", "ai")],
    )


def _manager(executor, **kwargs) -> TestSessionManager:
    return TestSessionManager(_graph(), make_store({"hook": HOOK_OUTPUT}), executor, **kwargs)


@pytest.mark.asyncio
async def test_successful_test_caches_output_and_clears_error() -> None:
    executor = RecordingExecutor(result={"value": 42})
    manager = _manager(executor)
    manager.store.record_error("code", "old failure")

    output = await manager.start("code")

    assert output == {"value": 42}
    assert manager.store.output("code") == {"value": 42}
    assert manager.store.last_error("code") is None
    assert not manager.is_running("code")

    kind, resolved_config, context = executor.calls[0]
    assert kind is NodeKind.CODE
    assert resolved_config.code == 'return "a@b.c";'
    assert context.node_id == "code"
    assert context.ordered == (HOOK_OUTPUT,)
    assert dict(context.named) == {"Webhook": HOOK_OUTPUT}
    assert context.node_outputs == {"hook": HOOK_OUTPUT}
    assert [n["id"] for n in context.nodes] == ["hook", "code", "ai"]
    assert context.credential is None
    assert not context.cancelled


@pytest.mark.asyncio
async def test_explicit_resolved_config_is_passed_through() -> None:
    executor = RecordingExecutor(result=1)
    manager = _manager(executor)
    config = CodeConfig(code="return 1;")
    await manager.start("code", config)
    assert executor.calls[0][1] is config


@pytest.mark.asyncio
async def test_second_start_while_running_conflicts() -> None:
    executor = BlockingExecutor()
    manager = _manager(executor)

    first = asyncio.create_task(manager.start("code"))
    await executor.started.wait()
    assert manager.is_running("code")
    assert manager.running_node_ids() == ["code"]

    with pytest.raises(ConcurrentTestConflict):
        await manager.start("code")
    assert not manager.store.has_output("code")

    executor.release.set()
    assert await first == {"done": True}
    assert manager.store.output("code") == {"done": True}


@pytest.mark.asyncio
async def test_executor_exception_is_wrapped_and_previous_output_kept() -> None:
    manager = _manager(RecordingExecutor(error=RuntimeError("boom")))
    manager.store.set_output("code", {"previous": True})

    with pytest.raises(TestExecutionError) as excinfo:
        await manager.start("code")

    assert excinfo.value.node_id == "code"
    assert excinfo.value.message == "boom"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert manager.store.output("code") == {"previous": True}
    assert manager.store.last_error("code") == "boom"
    assert manager.store.is_stale("code")
    assert not manager.is_running("code")


@pytest.mark.asyncio
async def test_error_payload_is_a_failure() -> None:
    manager = _manager(RecordingExecutor(result={"error": "Bad request", "message": "url missing"}))

    with pytest.raises(TestExecutionError) as excinfo:
        await manager.start("code")

    assert excinfo.value.message == "Bad request: url missing"
    assert not manager.store.has_output("code")
    assert manager.store.last_error("code") == "Bad request: url missing"


def test_error_payload_message() -> None:
    assert error_payload_message({"error": "Nope"}) == "Nope"
    assert error_payload_message({"error": "Nope", "message": ""}) == "Nope"
    assert error_payload_message({"result": "error"}) is None
    assert error_payload_message(["error"]) is None


@pytest.mark.asyncio
async def test_clear_output_on_test_error() -> None:
    manager = _manager(RecordingExecutor(error=ValueError("bad")), clear_output_on_test_error=True)
    manager.store.set_output("code", {"previous": True})
    with pytest.raises(TestExecutionError):
        await manager.start("code")
    assert not manager.store.has_output("code")


@pytest.mark.asyncio
async def test_cancel_aborts_and_discards_result() -> None:
    executor = BlockingExecutor()
    manager = _manager(executor)

    first = asyncio.create_task(manager.start("code"))
    await executor.started.wait()

    assert manager.cancel("code") is True
    assert not manager.is_running("code")

    with pytest.raises(TestCancelledError):
        await first
    assert executor.saw_abort
    assert not manager.store.has_output("code")
    assert manager.store.last_error("code") is None


@pytest.mark.asyncio
async def test_late_settle_after_cancel_is_ignored() -> None:
    executor = BlockingExecutor(swallow_cancel=True)
    manager = _manager(executor)

    first = asyncio.create_task(manager.start("code"))
    await executor.started.wait()
    manager.cancel("code")

    with pytest.raises(TestCancelledError):
        await first
    assert not manager.store.has_output("code")


@pytest.mark.asyncio
async def test_new_test_can_start_right_after_cancel() -> None:
    executor = BlockingExecutor()
    manager = _manager(executor)

    first = asyncio.create_task(manager.start("code"))
    await executor.started.wait()
    manager.cancel("code")

    executor.release.set()
    assert await manager.start("code") == {"done": True}
    with pytest.raises(TestCancelledError):
        await first
    assert manager.store.output("code") == {"done": True}
    assert not manager.is_running("code")


@pytest.mark.asyncio
async def test_cancel_all_and_cancel_idle_node() -> None:
    executor = BlockingExecutor()
    manager = _manager(executor, credentials=FakeCredentials({7: {"type": "openai"}}))
    assert manager.cancel("code") is False

    tasks = [asyncio.create_task(manager.start(node_id)) for node_id in ("code", "ai")]
    while len(manager.running_node_ids()) < 2:
        await asyncio.sleep(0)

    assert sorted(manager.cancel_all()) == ["ai", "code"]
    assert manager.running_node_ids() == []
    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(result, TestCancelledError) for result in results)


@pytest.mark.asyncio
async def test_credential_bundle_is_fetched_for_nodes_with_credentials() -> None:
    executor = RecordingExecutor(result={"text": "hi"})
    bundle = {"type": "openai", "data": {"api_key": "sk-test"}}
    manager = _manager(executor, credentials=FakeCredentials({7: bundle}))

    await manager.start("ai")

    _, resolved_config, context = executor.calls[0]
    assert resolved_config.messages[0].content == "a@b.c"
    assert context.credential == bundle


@pytest.mark.asyncio
async def test_missing_credential_fails_the_test() -> None:
    executor = RecordingExecutor(result={"text": "hi"})
    manager = _manager(executor, credentials=FakeCredentials({}))

    with pytest.raises(TestExecutionError) as excinfo:
        await manager.start("ai")

    assert "Credential '7' unavailable" in excinfo.value.message
    assert isinstance(excinfo.value.__cause__, CredentialNotFoundError)
    assert executor.calls == []
    assert manager.store.last_error("ai") == excinfo.value.message


@pytest.mark.asyncio
async def test_unknown_node_is_rejected_without_a_session() -> None:
    manager = _manager(RecordingExecutor())
    with pytest.raises(NodeNotFoundError):
        await manager.start("ghost")
    assert manager.running_node_ids() == []


@pytest.mark.asyncio
async def test_editing_session_runs_tests_through_its_manager() -> None:
    executor = RecordingExecutor(result={"ok": True})
    session = build_session(
        canvas(
            [node("hook", "webhook", "Webhook"), node("code", "code", "Code")],
            [edge("hook", "code")],
            outputs={"hook": HOOK_OUTPUT},
        ),
        executor=executor,
    )
    assert await session.test_node("code") == {"ok": True}
    assert session.store.output("code") == {"ok": True}
    assert session.resolve("code", "{{Webhook.body.email}}") == "a@b.c"
    assert not session.is_testing("code")


@pytest.mark.asyncio
async def test_editing_session_without_executor_cannot_test(monkeypatch: pytest.MonkeyPatch) -> None:
    from shared.config import config

    monkeypatch.setattr(config, "executor_base_url", None)
    session = build_session(canvas([node("code")]))
    with pytest.raises(WorkflowDataflowError):
        await session.test_node("code")
    assert session.cancel_test("code") is False
    assert session.running_tests() == []
