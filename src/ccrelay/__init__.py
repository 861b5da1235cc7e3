"""
ccrelay - Relay an AI coding assistant to chat platforms and a mobile app.

Core Layer:
    Message: Typed timeline entries (user-text, agent-text, tool-call, ...)
    reduce: Deduplicating raw event reducer
    PermissionManager: Permission lifecycle with expiry

Platform Layer:
    AdapterManager: Connects WhatsApp / Feishu adapters and routes traffic
    WhatsAppAdapter, FeishuAdapter: Platform variants over an injected ChatClient

Service Layer:
    ClaudeIntegration: Per-platform reducer owner and assistant bridge
    BotMessageService: Commands, assistant traffic and stream relaying
    MobileClient: Mobile companion WebSocket client

Example:
    from ccrelay import AdapterManager, BotMessageService, Platform
    from ccrelay.config import load_relay_config

    manager = AdapterManager(clients={Platform.WHATSAPP: my_whatsapp_client})
    service = BotMessageService(my_transport, manager=manager)
    await service.initialize(load_relay_config())
    await service.consume(assistant_events())
    await service.shutdown()
"""

# Core layer
from .core import (
    AgentTextMessage,
    BotMessage,
    BotNotification,
    ErrorMessage,
    EventMessage,
    Message,
    PermissionMessage,
    Platform,
    RelayError,
    ToolCallMessage,
    ToolResultMessage,
    UserTextMessage,
    create_reducer_state,
)
from .reducer import reduce
from .runtime import PendingPermission, PermissionManager

# Platform layer
from .adapters import AdapterManager, FeishuAdapter, WhatsAppAdapter

# Service layer
from .assistant import ClaudeIntegration
from .commands import CommandParser, CommandRegistry, CommandRouter
from .formatters import FormatOptions, format_message_for_chat, format_messages_for_chat
from .mobile import MobileClient
from .service import AssistantEvent, BotMessageService, ConversationState

__all__ = [
    # Core
    "Message",
    "UserTextMessage",
    "AgentTextMessage",
    "ToolCallMessage",
    "ToolResultMessage",
    "PermissionMessage",
    "EventMessage",
    "ErrorMessage",
    "BotMessage",
    "BotNotification",
    "Platform",
    "RelayError",
    "create_reducer_state",
    "reduce",
    "PendingPermission",
    "PermissionManager",
    # Platform
    "AdapterManager",
    "FeishuAdapter",
    "WhatsAppAdapter",
    # Service
    "ClaudeIntegration",
    "CommandParser",
    "CommandRegistry",
    "CommandRouter",
    "FormatOptions",
    "format_message_for_chat",
    "format_messages_for_chat",
    "MobileClient",
    "AssistantEvent",
    "BotMessageService",
    "ConversationState",
]

__version__ = "0.1.0"
