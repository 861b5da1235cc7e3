"""Mobile companion client and wire protocol."""

from .client import (
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_INTERVAL,
    Connector,
    MobileClient,
)
from .protocol import (
    ChatMessage,
    ConnectionConfig,
    Conversation,
    PermissionRequestData,
    parse_frame,
)

__all__ = [
    "MAX_RECONNECT_ATTEMPTS",
    "RECONNECT_INTERVAL",
    "ChatMessage",
    "ConnectionConfig",
    "Connector",
    "Conversation",
    "MobileClient",
    "PermissionRequestData",
    "parse_frame",
]
