"""
MobileClient - WebSocket client for the mobile companion protocol.

State machine:

    disconnected -> connecting -> authenticating -> connected
                                        |
                                        +-> error (auth rejected)

Any socket close moves to disconnected and schedules a reconnect until
max_reconnect_attempts is reached.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from ccrelay.config.settings import MobileSettings
from ccrelay.core.exceptions import (
    ParseError,
    ReconnectExhaustedError,
    RelayConnectionError,
)
from ccrelay.core.messages import now_ms

from .protocol import (
    AuthResponseFrame,
    ChatMessage,
    ClaudeStatus,
    ConnectionConfig,
    ConnectionStatus,
    Conversation,
    ConversationListFrame,
    ConversationUpdateFrame,
    HistoryFrame,
    MessageFrame,
    PermissionChoice,
    PermissionRequestData,
    PermissionRequestFrame,
    ResponseFrame,
    StatusFrame,
    auth_frame,
    message_frame,
    parse_frame,
    permission_response_frame,
    select_conversation_frame,
)

logger = logging.getLogger(__name__)

RECONNECT_INTERVAL = 3.0
MAX_RECONNECT_ATTEMPTS = 10

AUTH_FAILED = "认证失败，请检查密码"
RECONNECT_EXHAUSTED = "连接失败，请手动重连"

# Opens a socket for a URL. The result must support send(), close() and
# async iteration over incoming text frames.
Connector = Callable[[str], Awaitable[Any]]


class MobileClient:
    """
    Client side of the mobile protocol.

    Outgoing chat text is queued while not connected and flushed, in order,
    once authentication succeeds. Incoming chat messages are deduplicated by id.

    Example:
        client = MobileClient()
        client.on_messages_changed = render

        await client.connect(ConnectionConfig(url="ws://desk:8080", password="pw"))
        await client.send_message("hello")
        ...
        await client.disconnect()
    """

    def __init__(
        self,
        connector: Connector | None = None,
        reconnect_interval: float = RECONNECT_INTERVAL,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ):
        self._connector: Connector = connector or websockets.connect
        self.reconnect_interval = reconnect_interval
        self.max_reconnect_attempts = max_reconnect_attempts

        # Observable state
        self.status: ConnectionStatus = "disconnected"
        self.claude_status: ClaudeStatus = "idle"
        self.messages: list[ChatMessage] = []
        self.conversations: list[Conversation] = []
        self.selected_conversation_id: str | None = None
        self.permission_request: PermissionRequestData | None = None
        self.error: str | None = None
        self.last_error: Exception | None = None

        self._config: ConnectionConfig | None = None
        self._ws: Any = None
        self._receive_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._reconnect_attempts = 0
        self._queue: list[str] = []
        self._seen_ids: set[str] = set()

        # Callbacks
        self.on_status_change: Callable[[ConnectionStatus], Awaitable[None]] | None = None
        self.on_messages_changed: Callable[[list[ChatMessage]], Awaitable[None]] | None = None
        self.on_permission_request: (
            Callable[[PermissionRequestData], Awaitable[None]] | None
        ) = None
        self.on_conversations_changed: (
            Callable[[list[Conversation]], Awaitable[None]] | None
        ) = None
        self.on_error: Callable[[Exception], Awaitable[None]] | None = None

    @classmethod
    def from_settings(
        cls, settings: MobileSettings, connector: Connector | None = None
    ) -> MobileClient:
        return cls(
            connector=connector,
            reconnect_interval=settings.reconnect_interval,
            max_reconnect_attempts=settings.max_reconnect_attempts,
        )

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def queued_messages(self) -> list[str]:
        return self._queue.copy()

    @property
    def is_connected(self) -> bool:
        return self.status == "connected" and self._ws is not None

    # --- Connection lifecycle ---

    async def connect(self, config: ConnectionConfig) -> None:
        """Close any existing socket and open a new one with this config."""
        await self._cancel_reconnect()
        await self._close_socket()
        self._config = config
        await self._open()

    async def disconnect(self) -> None:
        """Cancel any pending reconnect, then close the socket."""
        await self._cancel_reconnect()
        await self._close_socket()
        await self._set_status("disconnected")
        logger.info("Mobile client disconnected")

    async def _open(self) -> None:
        if self._config is None:
            logger.error("No config available for connection")
            return

        await self._set_status("connecting")
        self.error = None

        try:
            ws = await self._connector(self._config.url)
        except Exception as e:
            logger.warning(f"Failed to open {self._config.url}: {e}")
            self.last_error = RelayConnectionError(str(e))
            await self._handle_close()
            return

        self._ws = ws
        logger.info(f"Mobile socket open: {self._config.url}")
        await self._on_open(ws)
        self._receive_task = asyncio.create_task(
            self._receive_loop(ws), name="mobile-receive"
        )

    async def _on_open(self, ws: Any) -> None:
        self._reconnect_attempts = 0
        # A new connection gets a fresh history, so forget what we have seen
        self._seen_ids.clear()

        if self._config and self._config.password:
            await self._send_json(ws, auth_frame(self._config.password))

        # Even without a password the server confirms with an auth frame
        await self._set_status("authenticating")

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                await self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.info(f"Mobile socket closed: {e}")
        except Exception as e:
            logger.error(f"Mobile receive loop failed: {e}", exc_info=True)
            try:
                await ws.close()
            except Exception as close_error:
                logger.debug(f"Error closing mobile socket: {close_error}")

        if self._ws is ws:
            self._ws = None
            self._receive_task = None
            await self._handle_close()

    async def _handle_close(self) -> None:
        await self._set_status("disconnected")

        if self._config is None:
            return

        if self._reconnect_attempts < self.max_reconnect_attempts:
            self._reconnect_attempts += 1
            logger.info(f"Reconnecting... attempt {self._reconnect_attempts}")
            self._reconnect_task = asyncio.create_task(
                self._reconnect_after_delay(), name="mobile-reconnect"
            )
        else:
            error = ReconnectExhaustedError(self._reconnect_attempts)
            self.error = RECONNECT_EXHAUSTED
            self.last_error = error
            logger.error(str(error))
            await self._emit(self.on_error, error)

    async def _reconnect_after_delay(self) -> None:
        await asyncio.sleep(self.reconnect_interval)
        self._reconnect_task = None
        await self._open()

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _close_socket(self) -> None:
        ws, self._ws = self._ws, None
        task, self._receive_task = self._receive_task, None

        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing mobile socket: {e}")

    # --- Inbound frames ---

    async def _handle_frame(self, raw: str | bytes) -> None:
        logger.debug(f"Mobile frame: {raw!r}")
        try:
            frame = parse_frame(raw)
        except ParseError as e:
            logger.warning(f"Dropping malformed frame: {e}")
            return

        match frame:
            case None:
                return
            case AuthResponseFrame(success=True):
                await self._set_status("connected")
                await self._flush_queue()
            case AuthResponseFrame():
                await self._set_status("error")
                self.error = AUTH_FAILED
                self.last_error = RelayConnectionError(AUTH_FAILED)
                await self._emit(self.on_error, self.last_error)
            case HistoryFrame(data=history):
                self.messages = [m for m in history if self._remember(m.id)]
                logger.debug(f"Received history: {len(self.messages)} messages")
                await self._emit(self.on_messages_changed, self.messages)
            case MessageFrame(data=message):
                await self._append(message)
            case ResponseFrame(data=message):
                await self._append(message)
                self.claude_status = "idle"
            case StatusFrame(data=data):
                self.claude_status = data.status
            case PermissionRequestFrame(data=request):
                self.permission_request = request
                await self._emit(self.on_permission_request, request)
            case ConversationListFrame(data=data) | ConversationUpdateFrame(data=data):
                self.conversations = data.conversations
                await self._emit(self.on_conversations_changed, self.conversations)

    def _remember(self, message_id: str) -> bool:
        """Record an id. Returns False if it was already seen."""
        if message_id in self._seen_ids:
            return False
        self._seen_ids.add(message_id)
        return True

    async def _append(self, message: ChatMessage) -> None:
        if not self._remember(message.id):
            logger.debug(f"Skipped duplicate message: {message.id}")
            return
        self.messages.append(message)
        await self._emit(self.on_messages_changed, self.messages)

    # --- Outbound ---

    async def send_message(self, content: str) -> bool:
        """
        Send chat text, or queue it while not connected.

        Returns:
            True if sent now, False if queued
        """
        if not self.is_connected:
            self._queue.append(content)
            self.error = "未连接，消息已加入队列"
            logger.debug(f"Queued message ({len(self._queue)} pending)")
            return False

        timestamp = now_ms()
        self.messages.append(
            ChatMessage(id=str(timestamp), role="user", content=content, timestamp=timestamp)
        )
        self.claude_status = "thinking"
        await self._send_json(self._ws, message_frame(content))
        await self._emit(self.on_messages_changed, self.messages)
        return True

    async def _flush_queue(self) -> None:
        if not self._queue:
            return
        logger.info(f"Sending {len(self._queue)} queued message(s)")
        for content in self._queue:
            await self._send_json(self._ws, message_frame(content))
        self._queue.clear()

    async def respond_permission(self, choice: PermissionChoice) -> bool:
        """Answer the current permission request. Returns False if there is none."""
        if self.permission_request is None or self._ws is None:
            return False

        await self._send_json(
            self._ws, permission_response_frame(self.permission_request.id, choice)
        )
        self.permission_request = None
        return True

    async def close_permission_request(self) -> bool:
        """Dismissing the prompt answers no."""
        return await self.respond_permission("no")

    async def select_conversation(self, conversation_id: str) -> bool:
        """Switch conversations; the server answers with the new history."""
        if self._ws is None:
            self.error = "未连接，无法选择对话"
            return False

        await self._send_json(self._ws, select_conversation_frame(conversation_id))
        self.selected_conversation_id = conversation_id
        self.messages = []
        self._seen_ids.clear()
        await self._emit(self.on_messages_changed, self.messages)
        return True

    # --- Helpers ---

    async def _send_json(self, ws: Any, payload: dict[str, Any]) -> None:
        await ws.send(json.dumps(payload, ensure_ascii=False))

    async def _set_status(self, status: ConnectionStatus) -> None:
        if status == self.status:
            return
        logger.debug(f"Mobile status: {self.status} -> {status}")
        self.status = status
        await self._emit(self.on_status_change, status)

    async def _emit(self, callback: Callable[..., Awaitable[None]] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            await callback(*args)
        except Exception as e:
            logger.warning(f"Mobile client callback error: {e}", exc_info=True)
