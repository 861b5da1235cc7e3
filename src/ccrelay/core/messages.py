"""
Typed message timeline.

Each message represents a single content block of the assistant stream.
Messages form a tagged union discriminated by ``kind``, enabling type-safe
pattern matching and automatic type narrowing:

    match message:
        case ToolCallMessage(tool=tool):
            print(tool.name, tool.state)
        case AgentTextMessage(content=text):
            print(text)
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Platform(str, Enum):
    """Closed set of chat platforms a conversation can be relayed to."""

    WHATSAPP = "whatsapp"
    FEISHU = "feishu"


ToolState = Literal["running", "completed", "error"]
PermissionStatus = Literal["pending", "approved", "denied", "canceled"]
PermissionDecision = Literal["approved", "approved_for_session", "denied", "abort"]
EventType = Literal["ready", "mode_switch", "context_reset", "compaction", "error"]

EVENT_TYPES: tuple[str, ...] = (
    "ready",
    "mode_switch",
    "context_reset",
    "compaction",
    "error",
)


class BaseMessage(BaseModel):
    """Fields shared by every message kind."""

    model_config = ConfigDict(validate_assignment=False)

    id: str
    timestamp: int
    platform: Platform = Platform.WHATSAPP
    conversation_id: str = ""


class UserTextMessage(BaseMessage):
    kind: Literal["user-text"] = "user-text"
    content: str
    display_text: str | None = None
    local_id: str | None = None  # Client-side id used for dedup


class AgentTextMetadata(BaseModel):
    model: str | None = None
    tokens_used: int | None = None
    finish_reason: str | None = None


class AgentTextMessage(BaseMessage):
    kind: Literal["agent-text"] = "agent-text"
    content: str
    is_streaming: bool = False
    metadata: AgentTextMetadata | None = None


class ToolInfo(BaseModel):
    """Tool invocation payload carried by a tool-call message."""

    name: str
    state: ToolState = "running"
    input: dict[str, Any] = Field(default_factory=dict)
    description: str = ""
    created_at: int
    started_at: int | None = None
    completed_at: int | None = None
    result: Any = None


class ToolPermission(BaseModel):
    """Permission sub-object attached to a tool call."""

    id: str
    status: PermissionStatus = "pending"
    reason: str | None = None
    decision: PermissionDecision | None = None


class ToolCallMessage(BaseMessage):
    kind: Literal["tool-call"] = "tool-call"
    tool: ToolInfo
    permission: ToolPermission | None = None
    summary: str | None = None


class ToolResultMessage(BaseMessage):
    kind: Literal["tool-result"] = "tool-result"
    tool_use_id: str
    tool_name: str
    result: Any = None
    is_error: bool = False
    summary: str | None = None
    full_output: str | None = None


class PermissionRequest(BaseModel):
    """Permission payload carried by a permission message."""

    id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    status: PermissionStatus = "pending"
    reason: str | None = None


class PermissionAction(BaseModel):
    label: str
    command: str


class PermissionMessage(BaseMessage):
    kind: Literal["permission"] = "permission"
    permission: PermissionRequest
    actions: list[PermissionAction] = Field(default_factory=list)


class EventInfo(BaseModel):
    type: EventType = "ready"
    data: dict[str, Any] | None = None
    message: str | None = None


class EventMessage(BaseMessage):
    kind: Literal["event"] = "event"
    event: EventInfo


class ErrorInfo(BaseModel):
    code: str | None = None
    message: str
    details: dict[str, Any] | None = None


class ErrorMessage(BaseMessage):
    kind: Literal["error"] = "error"
    error: ErrorInfo
    recoverable: bool | None = None


# Union type for all messages
Message = Annotated[
    Union[
        UserTextMessage,
        AgentTextMessage,
        ToolCallMessage,
        ToolResultMessage,
        PermissionMessage,
        EventMessage,
        ErrorMessage,
    ],
    Field(discriminator="kind"),
]

MessageAdapter: TypeAdapter[Message] = TypeAdapter(Message)


def parse_message(data: dict[str, Any]) -> Message:
    """Validate a plain dict into the matching message model."""
    return MessageAdapter.validate_python(data)


# --- Inbound chat traffic ---


class BotMessage(BaseModel):
    """Message received from a chat platform."""

    platform: Platform
    user_id: str
    chat_id: str
    content: str
    timestamp: int = Field(default_factory=now_ms)


class BotNotification(BaseModel):
    """Structured notification rendered per platform by the adapters."""

    type: Literal["info", "success", "warning", "error"] = "info"
    title: str
    message: str
    actions: list[PermissionAction] = Field(default_factory=list)
