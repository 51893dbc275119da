"""
Executor and credential collaborators used by node tests.

The session only depends on the two protocols; the HTTP implementations talk
to the workflow back-end (``POST /workflows/test-node`` and
``GET /credentials/{id}``).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

import httpx

from shared.config import config
from shared.logger import get_logger
from workflow_dataflow.errors import CredentialNotFoundError, TestExecutionError, WorkflowDataflowError
from workflow_dataflow.runtime.state import UpstreamData
from workflow_dataflow.schema.models import NodeConfig, NodeKind

logger = get_logger(__name__)

CredentialId = Union[int, str]

TEST_NODE_PATH = "/workflows/test-node"
CREDENTIALS_PATH = "/credentials"


@dataclass(frozen=True)
class ExecutionContext:
    node_id: str
    kind: NodeKind
    upstream: UpstreamData
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)
    node_outputs: Dict[str, Any] = field(default_factory=dict)
    credential: Optional[Mapping[str, Any]] = None
    abort: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def ordered(self):
        return self.upstream.ordered

    @property
    def named(self):
        return self.upstream.named

    @property
    def cancelled(self) -> bool:
        return self.abort.is_set()


class NodeExecutor(Protocol):
    async def test_node(self, kind: NodeKind, resolved_config: NodeConfig, context: ExecutionContext) -> Any:
        ...


class CredentialProvider(Protocol):
    async def get_credential(self, credential_id: CredentialId) -> Mapping[str, Any]:
        ...


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, Mapping):
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    text = response.text[:200] if response.content else ""
    return f"HTTP {response.status_code}" + (f" {text}" if text else "")


class _BackendClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        base_url = base_url or config.executor_base_url
        if not base_url:
            raise WorkflowDataflowError("No executor back-end configured (set EXECUTOR_BASE_URL)")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else config.executor_timeout
        self.headers: Dict[str, str] = dict(config.executor_headers)
        if api_token:
            self.headers["Authorization"] = f"Bearer {api_token}"
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self.headers,
            transport=self._transport,
        )


class HttpNodeExecutor(_BackendClient):
    """Runs a node test on the workflow back-end."""

    async def test_node(self, kind: NodeKind, resolved_config: NodeConfig, context: ExecutionContext) -> Any:
        payload = {
            "nodeType": NodeKind(kind).value,
            "config": resolved_config.model_dump(mode="json", by_alias=True),
            "inputData": context.upstream.input_data(),
            "nodes": context.nodes,
            "edges": context.edges,
            "nodeOutputs": context.node_outputs,
            "nodeId": context.node_id,
        }
        try:
            async with self._client() as client:
                response = await client.post(TEST_NODE_PATH, json=payload)
        except httpx.HTTPError as exc:
            raise TestExecutionError(context.node_id, f"Executor request failed: {exc}") from exc

        if response.status_code >= 400:
            raise TestExecutionError(context.node_id, _error_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TestExecutionError(context.node_id, "Executor returned a non-JSON response") from exc


class HttpCredentialProvider(_BackendClient):
    """Fetches credential bundles from the workflow back-end."""

    async def get_credential(self, credential_id: CredentialId) -> Mapping[str, Any]:
        async with self._client() as client:
            response = await client.get(f"{CREDENTIALS_PATH}/{credential_id}")
        if response.status_code == 404:
            raise CredentialNotFoundError(credential_id)
        if response.status_code >= 400:
            raise WorkflowDataflowError(
                f"Credential lookup for '{credential_id}' failed: {_error_message(response)}"
            )
        bundle = response.json()
        if not isinstance(bundle, Mapping):
            raise WorkflowDataflowError(f"Credential '{credential_id}' response is not an object")
        logger.debug("Fetched credential '%s' (%s)", credential_id, bundle.get("type"))
        return bundle
