"""
Mobile WebSocket protocol.

JSON frames of the form {"type": ..., ...}; payload keys are camelCase on
the wire and snake_case in Python.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from ccrelay.core.exceptions import ParseError
from ccrelay.core.messages import now_ms

logger = logging.getLogger(__name__)

ConnectionStatus = Literal[
    "disconnected", "connecting", "authenticating", "connected", "error"
]
ClaudeStatus = Literal["idle", "thinking", "error"]
PermissionChoice = Literal["yes", "yesAlways", "no", "noAlways", "exit"]
ConversationStatus = Literal["not_started", "initializing", "ready"]


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ConnectionConfig(BaseModel):
    url: str
    password: str | None = None


class ChatMessage(WireModel):
    id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: int


class Conversation(WireModel):
    id: str
    title: str
    status: ConversationStatus = "not_started"
    last_message: str | None = None
    updated_at: int = 0
    is_selected: bool | None = None


class PermissionRequestData(WireModel):
    id: str
    type: str
    tool_type: str
    title: str
    description: str = ""
    resource_path: str | None = None
    command: str | None = None
    details: list[str] | None = None
    created_at: int = 0
    status: Literal["pending", "approved", "denied", "cancelled"] = "pending"
    source: Literal["desktop", "mobile"] = "desktop"


class StatusData(WireModel):
    status: ClaudeStatus


class ConversationsData(WireModel):
    conversations: list[Conversation]


# --- Inbound frames (server -> mobile) ---


class AuthResponseFrame(WireModel):
    type: Literal["auth"] = "auth"
    success: bool = False


class HistoryFrame(WireModel):
    type: Literal["history"] = "history"
    data: list[ChatMessage]


class MessageFrame(WireModel):
    type: Literal["message"] = "message"
    data: ChatMessage


class ResponseFrame(WireModel):
    type: Literal["response"] = "response"
    data: ChatMessage


class StatusFrame(WireModel):
    type: Literal["status"] = "status"
    data: StatusData


class PermissionRequestFrame(WireModel):
    type: Literal["permission_request"] = "permission_request"
    data: PermissionRequestData


class ConversationListFrame(WireModel):
    type: Literal["conversation_list"] = "conversation_list"
    data: ConversationsData


class ConversationUpdateFrame(WireModel):
    type: Literal["conversation_update"] = "conversation_update"
    data: ConversationsData


InboundFrame = Annotated[
    Union[
        AuthResponseFrame,
        HistoryFrame,
        MessageFrame,
        ResponseFrame,
        StatusFrame,
        PermissionRequestFrame,
        ConversationListFrame,
        ConversationUpdateFrame,
    ],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)

INBOUND_TYPES = frozenset(
    {
        "auth",
        "history",
        "message",
        "response",
        "status",
        "permission_request",
        "conversation_list",
        "conversation_update",
    }
)


def parse_frame(raw: str | bytes) -> InboundFrame | None:
    """
    Decode one inbound frame.

    Returns:
        The typed frame, or None for a well-formed frame of an unknown type

    Raises:
        ParseError: Invalid JSON or a known frame type with a bad payload
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid JSON frame: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")

    frame_type = data.get("type")
    if frame_type not in INBOUND_TYPES:
        logger.debug(f"Ignoring unknown frame type: {frame_type}")
        return None

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise ParseError(f"Invalid '{frame_type}' frame: {e}") from e


# --- Outbound frames (mobile -> server) ---


class PermissionResponseData(WireModel):
    request_id: str
    choice: PermissionChoice
    timestamp: int = Field(default_factory=now_ms)
    source: Literal["desktop", "mobile"] = "mobile"


class SelectConversationData(WireModel):
    conversation_id: str


def auth_frame(password: str) -> dict[str, Any]:
    return {"type": "auth", "password": password}


def message_frame(content: str) -> dict[str, Any]:
    return {"type": "message", "data": {"content": content}}


def permission_response_frame(
    request_id: str, choice: PermissionChoice, timestamp: int | None = None
) -> dict[str, Any]:
    data = PermissionResponseData(
        request_id=request_id,
        choice=choice,
        timestamp=timestamp if timestamp is not None else now_ms(),
    )
    return {"type": "permission_response", "data": data.model_dump(by_alias=True)}


def select_conversation_frame(conversation_id: str) -> dict[str, Any]:
    data = SelectConversationData(conversation_id=conversation_id)
    return {"type": "select_conversation", "data": data.model_dump(by_alias=True)}
