"""Core protocols for the relay pipeline."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from .messages import BotMessage, BotNotification, Platform

MessageCallback = Callable[[BotMessage], Awaitable[None]]


@runtime_checkable
class PlatformAdapter(Protocol):
    """
    Capability interface every chat backend must satisfy.

    All async operations may fail; failures surface as exceptions.
    Implementations: WhatsAppAdapter, FeishuAdapter.
    """

    platform: Platform

    async def connect(self, config: dict[str, Any]) -> None:
        """Connect to the platform."""
        ...

    async def disconnect(self) -> None:
        """Disconnect and release platform resources."""
        ...

    async def send_message(self, chat_id: str, content: str) -> None:
        """Send plain text to a chat."""
        ...

    async def send_notification(
        self, chat_id: str, notification: BotNotification
    ) -> None:
        """Send a structured notification to a chat."""
        ...

    def verify_user(self, user_id: str) -> bool:
        """Check whether a user may talk to the bot."""
        ...

    def is_connected(self) -> bool:
        """Whether the adapter is currently connected."""
        ...

    def on_message(self, callback: MessageCallback) -> None:
        """Register a callback for inbound messages."""
        ...


@runtime_checkable
class ChatClient(Protocol):
    """
    Platform SDK wrapper used by an adapter.

    The SDK's own wire protocol and authentication live behind this
    interface. The client delivers inbound traffic by calling
    adapter.handle_incoming().
    """

    async def start(self, config: dict[str, Any]) -> None: ...

    async def stop(self) -> None: ...

    async def send_text(self, chat_id: str, text: str) -> None: ...


@runtime_checkable
class AssistantTransport(Protocol):
    """
    Boundary to the assistant process.

    Implementations: whatever IPC bridge hosts the assistant;
    FakeAssistantTransport for tests.
    """

    async def send(
        self, conversation_id: str, project_path: str, message: str
    ) -> dict[str, Any]:
        """Send user text into a conversation. Returns {"message_id": ...}."""
        ...

    async def respond_permission(
        self, conversation_id: str, choice: str
    ) -> dict[str, Any]:
        """Forward a yes/no permission choice. Returns {"success": bool}."""
        ...

    async def switch_model(self, model_id: str) -> dict[str, Any]:
        """Switch the assistant model. Returns {"success": bool}."""
        ...

    async def trust_folder(self, path: str) -> dict[str, Any]:
        """Mark a project folder as trusted. Returns {"success": bool}."""
        ...


# Decides whether a tool call must pass the permission gate.
# Receives (tool_name, tool_input); True means "ask the user first".
PermissionPolicy = Callable[[str, dict[str, Any]], bool]
