"""
Core types, state and protocols.

Components:
    messages: Message tagged union, Platform, BotMessage, BotNotification
    state: ReducerState, RawMessage, AgentState, ReducerResult
    protocols: PlatformAdapter, ChatClient, AssistantTransport, PermissionPolicy
    exceptions: Relay error taxonomy
"""

from .exceptions import (
    AdapterConnectionError,
    AdapterNotConnectedError,
    ConfigError,
    HandlerError,
    NoActiveConversationError,
    ParseError,
    PermissionExpiredOrMissingError,
    ReconnectExhaustedError,
    RelayConnectionError,
    RelayError,
    UnknownCommandError,
)
from .messages import (
    AgentTextMessage,
    BotMessage,
    BotNotification,
    ErrorMessage,
    EventMessage,
    Message,
    PermissionAction,
    PermissionMessage,
    Platform,
    ToolCallMessage,
    ToolInfo,
    ToolResultMessage,
    UserTextMessage,
    now_ms,
    parse_message,
)
from .protocols import (
    AssistantTransport,
    ChatClient,
    MessageCallback,
    PermissionPolicy,
    PlatformAdapter,
)
from .state import (
    AgentState,
    PermissionData,
    RawMessage,
    ReducerResult,
    ReducerState,
    create_reducer_state,
)

__all__ = [
    # Messages
    "Message",
    "UserTextMessage",
    "AgentTextMessage",
    "ToolCallMessage",
    "ToolInfo",
    "ToolResultMessage",
    "PermissionMessage",
    "PermissionAction",
    "EventMessage",
    "ErrorMessage",
    "BotMessage",
    "BotNotification",
    "Platform",
    "now_ms",
    "parse_message",
    # State
    "AgentState",
    "PermissionData",
    "RawMessage",
    "ReducerResult",
    "ReducerState",
    "create_reducer_state",
    # Protocols
    "AssistantTransport",
    "ChatClient",
    "MessageCallback",
    "PermissionPolicy",
    "PlatformAdapter",
    # Exceptions
    "RelayError",
    "RelayConnectionError",
    "AdapterConnectionError",
    "ReconnectExhaustedError",
    "AdapterNotConnectedError",
    "PermissionExpiredOrMissingError",
    "ParseError",
    "HandlerError",
    "UnknownCommandError",
    "NoActiveConversationError",
    "ConfigError",
]
