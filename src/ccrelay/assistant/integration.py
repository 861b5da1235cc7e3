"""
ClaudeIntegration - per-platform bridge between chat and the assistant.

Owns one reducer state and one permission manager. Outbound user text goes
to the assistant transport; the raw event stream comes back through
process_stream() and is reduced into typed messages.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

from ccrelay.core.exceptions import NoActiveConversationError, RelayError
from ccrelay.core.messages import (
    Message,
    PermissionMessage,
    Platform,
    ToolCallMessage,
    now_ms,
)
from ccrelay.core.protocols import AssistantTransport, PermissionPolicy
from ccrelay.core.state import AgentState, RawMessage, create_reducer_state
from ccrelay.reducer import reduce
from ccrelay.runtime.permissions import (
    DEFAULT_CLEANUP_INTERVAL_MS,
    DEFAULT_PERMISSION_TIMEOUT_MS,
    Decision,
    PendingPermission,
    PermissionManager,
)

logger = logging.getLogger(__name__)

PermissionCallback = Callable[[PermissionMessage, str], Awaitable[None]]


def format_permission_notification(permission: PermissionMessage) -> str:
    """Short permission prompt pushed to chat as soon as a request appears."""
    perm = permission.permission
    text = "🔔 权限请求\n\n"
    text += f"工具: {perm.tool_name}\n"

    details = json.dumps(
        perm.input, ensure_ascii=False, separators=(",", ":"), default=str
    )
    if len(details) > 100:
        details = details[:100] + "..."
    text += f"详情: {details}\n\n"

    text += "回复 /approve 批准\n"
    text += "回复 /deny 拒绝"
    return text


class ClaudeIntegration:
    """
    Bridges one chat platform with the assistant.

    Example:
        integration = ClaudeIntegration(Platform.WHATSAPP, transport)
        integration.set_conversation("conv-1", "/work/project")
        integration.on_permission = notify_chat

        await integration.start()
        await integration.send_message("run the tests")
        new_messages = await integration.process_stream(raw_event)
        await integration.dispose()
    """

    def __init__(
        self,
        platform: Platform,
        transport: AssistantTransport,
        *,
        permission_timeout_ms: int = DEFAULT_PERMISSION_TIMEOUT_MS,
        cleanup_interval_ms: int = DEFAULT_CLEANUP_INTERVAL_MS,
        policy: PermissionPolicy | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize the integration.

        Args:
            platform: Chat platform this integration serves
            transport: Assistant transport
            permission_timeout_ms: Lifetime of a pending permission
            cleanup_interval_ms: Period of the expired-permission sweep
            policy: Optional tool-level permission policy for the reducer
            clock: Epoch-ms clock (injectable for tests)
        """
        self.platform = platform
        self.transport = transport
        self.policy = policy
        self.state = create_reducer_state()
        self.permissions = PermissionManager(
            transport,
            timeout_ms=permission_timeout_ms,
            cleanup_interval_ms=cleanup_interval_ms,
            clock=clock,
        )

        self._conversation_id: str | None = None
        self._project_path: str | None = None

        # Called with (permission message, notification text)
        self.on_permission: PermissionCallback | None = None

    # --- Conversation ---

    def set_conversation(self, conversation_id: str, project_path: str) -> None:
        self._conversation_id = conversation_id
        self._project_path = project_path
        self.state.current_conversation = conversation_id
        logger.info(
            f"{self.platform.value}: conversation set to {conversation_id} "
            f"({project_path})"
        )

    def get_current_conversation(self) -> dict[str, str] | None:
        if self._conversation_id is None:
            return None
        return {
            "conversation_id": self._conversation_id,
            "project_path": self._project_path or "",
        }

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def project_path(self) -> str | None:
        return self._project_path

    # --- Assistant traffic ---

    async def send_message(self, message: str) -> str:
        """
        Send user text to the active conversation.

        Returns:
            Message id assigned by the assistant

        Raises:
            NoActiveConversationError: No conversation selected
            RelayError: The transport did not return a message id
        """
        if not self._conversation_id:
            raise NoActiveConversationError()

        result = await self.transport.send(
            self._conversation_id, self._project_path or "", message
        )
        message_id = (result or {}).get("message_id")
        if not message_id:
            raise RelayError("Failed to send message")

        logger.debug(f"{self.platform.value}: sent message {message_id}")
        return message_id

    async def process_stream(
        self,
        raw: RawMessage | dict[str, Any] | list[RawMessage | dict[str, Any]],
        agent_state: AgentState | dict[str, Any] | None = None,
    ) -> list[Message]:
        """
        Reduce raw stream records and surface new permission requests.

        Returns:
            Messages created or updated by this batch
        """
        raws = raw if isinstance(raw, list) else [raw]
        result = reduce(
            self.state,
            raws,
            agent_state,
            self.policy,
            platform=self.platform,
            conversation_id=self._conversation_id,
        )

        for permission in result.permissions:
            self.permissions.track(
                permission.permission.id,
                permission.conversation_id,
                permission.permission.tool_name,
                permission.permission.input,
                created_at=permission.timestamp,
            )
            await self._notify_permission(permission)

        return result.new_messages

    async def _notify_permission(self, permission: PermissionMessage) -> None:
        if not self.on_permission:
            return
        try:
            await self.on_permission(
                permission, format_permission_notification(permission)
            )
        except Exception as e:
            logger.error(
                f"{self.platform.value}: permission notification failed: {e}",
                exc_info=True,
            )

    # --- Permissions ---

    async def respond_to_permission(
        self, permission_id: str, decision: Decision
    ) -> PendingPermission | None:
        """
        Approve or deny a pending permission.

        Returns:
            The resolved permission, or None when it is unknown or expired
        """
        resolved = await self.permissions.respond(permission_id, decision)
        if resolved is None:
            return None

        data = self.state.pending_permissions.get(permission_id)
        if data is not None:
            data.status = resolved.status
            data.decision = resolved.decision
            data.completed_at = resolved.completed_at

        message_id = self.state.tool_id_to_message_id.get(permission_id)
        message = self.state.messages.get(message_id) if message_id else None
        match message:
            case PermissionMessage():
                message.permission.status = resolved.status
            case ToolCallMessage(permission=perm) if perm is not None:
                perm.status = resolved.status
                perm.decision = resolved.decision

        return resolved

    def get_pending_permissions(self) -> list[PendingPermission]:
        """Pending, non-expired permissions, oldest first."""
        return self.permissions.list()

    def get_latest_pending_permission(self) -> PendingPermission | None:
        pending = self.permissions.list()
        return pending[-1] if pending else None

    # --- Timeline ---

    def get_messages(self, limit: int | None = None) -> list[Message]:
        """Messages ordered by timestamp; the last `limit` when given."""
        ordered = sorted(self.state.messages.values(), key=lambda m: m.timestamp)
        if limit:
            return ordered[-limit:]
        return ordered

    def get_message(self, message_id: str) -> Message | None:
        return self.state.messages.get(message_id)

    def clear(self) -> None:
        """Reset the reducer state and drop pending permissions."""
        self.state = create_reducer_state()
        self.state.current_conversation = self._conversation_id
        self.permissions.clear()
        logger.info(f"{self.platform.value}: conversation state cleared")

    # --- Lifecycle ---

    async def start(self) -> None:
        await self.permissions.start()

    async def dispose(self) -> None:
        await self.permissions.stop()
