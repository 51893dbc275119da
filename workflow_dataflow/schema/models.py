"""
Pydantic models describing the nodes and edges of a workflow canvas.

Each node kind carries its own typed configuration. Configuration models
declare which of their string fields may contain ``{{...}}`` template spans
(``TEMPLATABLE_FIELDS``); the resolver only ever touches those fields.

Wire names follow the canvas payload (camelCase), Python attributes are
snake_case. Unknown configuration keys sent by the editor are preserved so a
resolved configuration round-trips to the executor untouched.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Literal, Optional, Set, Tuple, Union, Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from shared.logger import get_logger

logger = get_logger(__name__)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        extra="forbid",
        populate_by_name=True,
        validate_assignment=True,
    )


class NodeKind(str, Enum):
    """Node types known to the editor (wire names from the canvas)."""

    WEBHOOK = "webhook"
    SCHEDULE = "schedule"
    HTTP = "http"
    CODE = "code"
    IF = "if"
    SWITCH = "switch"
    OPENAI = "openai"
    CLAUDE = "claude"
    GEMINI = "gemini"
    PERPLEXITY = "perplexity"
    KLING = "kling"
    ESCAPE = "escape"
    CONVERT = "convert"
    GOOGLE_DOCS = "googledocs"
    GOOGLE_SHEETS = "googlesheets"
    GOOGLE_DRIVE_FOLDER = "googledrivefolder"


CONDITIONAL_KINDS = frozenset({NodeKind.IF, NodeKind.SWITCH})


class RenderMode(str, Enum):
    """How resolved values are written back into a templated string."""

    text = "text"
    json = "json"
    code = "code"


# -----------------------------
# Node configuration
# -----------------------------
class NodeConfig(WireModel):
    """
    Base class for per-kind configuration.

    ``TEMPLATABLE_FIELDS`` uses attribute names joined by dots; ``[]`` walks
    every list element and ``{}`` every mapping value, e.g.
    ``"headers[].value"`` or ``"column_values{}"``.
    """

    model_config = ConfigDict(extra="allow")

    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = ()

    def render_mode_for(self, field_path: str) -> RenderMode:
        return RenderMode.text


class ConfigItem(WireModel):
    """Nested configuration entry; unknown editor keys are kept."""

    model_config = ConfigDict(extra="allow")


class NameValue(ConfigItem):
    name: str = ""
    value: str = ""


class WebhookConfig(NodeConfig):
    method: str = "POST"
    path: str = ""
    auth: str = "none"
    respond: str = "immediately"


class ScheduleConfig(NodeConfig):
    trigger_type: Literal["interval", "cron"] = "interval"
    interval: str = "hours"
    interval_value: int = 1
    cron_expression: str = "0 * * * *"
    timezone: str = "Asia/Ho_Chi_Minh"


class HttpRequestConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "url",
        "query_params[].name",
        "query_params[].value",
        "headers[].name",
        "headers[].value",
        "credential",
        "body_content",
    )

    method: str = "GET"
    url: str = ""
    query_params: List[NameValue] = Field(default_factory=list)
    headers: List[NameValue] = Field(default_factory=list)
    auth: str = "none"
    credential: str = ""
    body_type: str = "json"
    body_content: str = ""

    def render_mode_for(self, field_path: str) -> RenderMode:
        if field_path == "body_content" and self.body_type == "json":
            return RenderMode.json
        return RenderMode.text


class CodeConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("code",)

    language: str = "javascript"
    code: str = ""

    def render_mode_for(self, field_path: str) -> RenderMode:
        return RenderMode.code if field_path == "code" else RenderMode.text


class IfCondition(ConfigItem):
    data_type: str = "string"
    value1: str = ""
    operator: str = "equal"
    value2: str = ""


class IfConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "conditions[].value1",
        "conditions[].value2",
    )

    conditions: List[IfCondition] = Field(default_factory=lambda: [IfCondition()])
    combine_operation: Literal["AND", "OR"] = "AND"


class SwitchRule(ConfigItem):
    value: str = ""
    operator: str = "equal"
    value2: str = ""
    output_name: str = "Output 1"


class SwitchConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "rules[].value",
        "rules[].value2",
    )

    mode: str = "rules"
    rules: List[SwitchRule] = Field(default_factory=lambda: [SwitchRule()])
    fallback_output: str = "No Match"


class ChatMessage(ConfigItem):
    role: str = "user"
    content: str = ""


class ChatModelConfig(NodeConfig):
    """Shared shape of the LLM provider nodes."""

    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "system_message",
        "messages[].content",
    )

    model: str = ""
    system_message_enabled: bool = False
    system_message: str = ""
    messages: List[ChatMessage] = Field(default_factory=lambda: [ChatMessage()])
    credential_id: Optional[Union[int, str]] = None
    advanced_options: Dict[str, Any] = Field(default_factory=dict)


class OpenAIConfig(ChatModelConfig):
    model: str = "gpt-4o"
    temperature: float = 0.7
    max_tokens: int = Field(default=512, alias="max_tokens")
    top_p: float = Field(default=1, alias="top_p")


class ClaudeConfig(ChatModelConfig):
    model: str = "claude-3-5-sonnet-20241022"


class GeminiConfig(ChatModelConfig):
    model: str = "gemini-2.0-flash"
    timeout: int = 60
    temperature: float = 0.7


class PerplexityConfig(ChatModelConfig):
    model: str = "sonar"


class KlingConfig(NodeConfig):
    model_config = ConfigDict(protected_namespaces=())

    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "prompt",
        "negative_prompt",
        "image",
        "images[]",
        "tail_image",
        "video_url",
        "audio",
    )

    operation: str = "textToVideo"
    prompt: str = ""
    negative_prompt: str = ""
    model_name: str = "kling-v1"
    cfg_scale: float = 0.5
    mode: str = "std"
    duration: str = "5"
    aspect_ratio: str = "16:9"
    image: str = ""
    images: List[str] = Field(default_factory=list)
    tail_image: str = ""
    video_url: str = ""
    audio: str = ""
    credential_id: Optional[Union[int, str]] = None


class EscapeConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("fields[].value",)

    fields: List[NameValue] = Field(default_factory=lambda: [NameValue()])


class ConvertConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = ("source", "base64_data", "filename")

    operation: Literal["toBase64", "fromBase64"] = "toBase64"
    source: str = ""
    base64_data: str = ""
    filename: str = ""
    mime_type: str = "image/jpeg"
    expiration_value: int = 1
    expiration_unit: str = "days"


class GoogleDocsConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "folder_id",
        "title",
        "document_id",
        "actions[].text",
    )

    credential_id: Optional[Union[int, str]] = None
    resource: str = "document"
    operation: Literal["create", "update"] = "create"
    folder_id: str = ""
    title: str = ""
    document_id: str = ""
    actions: List[Dict[str, Any]] = Field(default_factory=list)


class GoogleSheetsConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "document_url",
        "sheet_url",
        "column_values{}",
        "filters[].value",
    )

    credential_id: Optional[Union[int, str]] = None
    resource: str = "sheet"
    operation: Literal["get", "append", "update"] = "get"
    document_url: str = ""
    sheet_url: str = ""
    filters: List[Dict[str, Any]] = Field(default_factory=list)
    combine_filters: Literal["AND", "OR"] = "AND"
    mapping_mode: str = "manual"
    column_values: Dict[str, Any] = Field(default_factory=dict)
    column_to_match: str = "row_number"


class GoogleDriveFolderConfig(NodeConfig):
    TEMPLATABLE_FIELDS: ClassVar[Tuple[str, ...]] = (
        "folder_name",
        "parent_folder_id",
        "file_url",
        "file_name",
        "folder_id",
        "list_folder_id",
        "delete_folder_id",
        "get_folder_id",
        "search_query",
        "search_folder_id",
    )

    credential_id: Optional[Union[int, str]] = None
    operation: str = "createFolder"
    folder_name: str = ""
    parent_folder_id: str = ""
    file_url: str = ""
    file_name: str = ""
    folder_id: str = ""
    list_folder_id: str = ""
    delete_folder_id: str = ""
    get_folder_id: str = ""
    search_query: str = ""
    search_folder_id: str = ""


# -----------------------------
# Nodes
# -----------------------------
class NodeBase(WireModel):
    id: str = Field(min_length=1)
    type: str
    display_name: str = Field(min_length=1)
    config: NodeConfig
    position: Dict[str, float] = Field(default_factory=lambda: {"x": 0.0, "y": 0.0})

    @property
    def kind(self) -> NodeKind:
        return NodeKind(self.type)

    @property
    def is_conditional(self) -> bool:
        return self.kind in CONDITIONAL_KINDS


class WebhookNode(NodeBase):
    type: Literal["webhook"] = "webhook"
    config: WebhookConfig = Field(default_factory=WebhookConfig)


class ScheduleNode(NodeBase):
    type: Literal["schedule"] = "schedule"
    config: ScheduleConfig = Field(default_factory=ScheduleConfig)


class HttpRequestNode(NodeBase):
    type: Literal["http"] = "http"
    config: HttpRequestConfig = Field(default_factory=HttpRequestConfig)


class CodeNode(NodeBase):
    type: Literal["code"] = "code"
    config: CodeConfig = Field(default_factory=CodeConfig)


class IfNode(NodeBase):
    type: Literal["if"] = "if"
    config: IfConfig = Field(default_factory=IfConfig)


class SwitchNode(NodeBase):
    type: Literal["switch"] = "switch"
    config: SwitchConfig = Field(default_factory=SwitchConfig)


class OpenAINode(NodeBase):
    type: Literal["openai"] = "openai"
    config: OpenAIConfig = Field(default_factory=OpenAIConfig)


class ClaudeNode(NodeBase):
    type: Literal["claude"] = "claude"
    config: ClaudeConfig = Field(default_factory=ClaudeConfig)


class GeminiNode(NodeBase):
    type: Literal["gemini"] = "gemini"
    config: GeminiConfig = Field(default_factory=GeminiConfig)


class PerplexityNode(NodeBase):
    type: Literal["perplexity"] = "perplexity"
    config: PerplexityConfig = Field(default_factory=PerplexityConfig)


class KlingNode(NodeBase):
    type: Literal["kling"] = "kling"
    config: KlingConfig = Field(default_factory=KlingConfig)


class EscapeNode(NodeBase):
    type: Literal["escape"] = "escape"
    config: EscapeConfig = Field(default_factory=EscapeConfig)


class ConvertNode(NodeBase):
    type: Literal["convert"] = "convert"
    config: ConvertConfig = Field(default_factory=ConvertConfig)


class GoogleDocsNode(NodeBase):
    type: Literal["googledocs"] = "googledocs"
    config: GoogleDocsConfig = Field(default_factory=GoogleDocsConfig)


class GoogleSheetsNode(NodeBase):
    type: Literal["googlesheets"] = "googlesheets"
    config: GoogleSheetsConfig = Field(default_factory=GoogleSheetsConfig)


class GoogleDriveFolderNode(NodeBase):
    type: Literal["googledrivefolder"] = "googledrivefolder"
    config: GoogleDriveFolderConfig = Field(default_factory=GoogleDriveFolderConfig)


Node = Annotated[
    Union[
        WebhookNode,
        ScheduleNode,
        HttpRequestNode,
        CodeNode,
        IfNode,
        SwitchNode,
        OpenAINode,
        ClaudeNode,
        GeminiNode,
        PerplexityNode,
        KlingNode,
        EscapeNode,
        ConvertNode,
        GoogleDocsNode,
        GoogleSheetsNode,
        GoogleDriveFolderNode,
    ],
    Field(discriminator="type"),
]


class Edge(WireModel):
    id: str = Field(min_length=1)
    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    source_handle: Optional[str] = None


# -----------------------------
# Graph
# -----------------------------
def unique_display_name(base: str, taken: Iterable[str]) -> str:
    """
    Return ``base`` if unused, otherwise ``base`` followed by the first free
    numeric suffix (``HTTP Request1``, ``HTTP Request2``, ...).
    """

    used: Set[str] = set(taken)
    if base not in used:
        return base
    suffix = 1
    while f"{base}{suffix}" in used:
        suffix += 1
    return f"{base}{suffix}"


class WorkflowGraphSpec(WireModel):
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_structure(self) -> "WorkflowGraphSpec":
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("Node IDs must be unique")

        edge_ids = [edge.id for edge in self.edges]
        if len(edge_ids) != len(set(edge_ids)):
            raise ValueError("Edge IDs must be unique")

        known = set(node_ids)
        for edge in self.edges:
            if edge.source not in known:
                raise ValueError(f"Edge '{edge.id}' source '{edge.source}' does not exist in nodes")
            if edge.target not in known:
                raise ValueError(f"Edge '{edge.id}' target '{edge.target}' does not exist in nodes")

        names: Set[str] = set()
        for node in self.nodes:
            if node.display_name in names:
                renamed = unique_display_name(node.display_name, names)
                logger.warning(
                    "Display name '%s' of node '%s' collides; renamed to '%s'",
                    node.display_name,
                    node.id,
                    renamed,
                )
                node.display_name = renamed
            names.add(node.display_name)
        return self
