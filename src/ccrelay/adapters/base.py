"""Base class for chat platform adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from ccrelay.core.exceptions import AdapterConnectionError, AdapterNotConnectedError
from ccrelay.core.messages import BotMessage, BotNotification, Platform
from ccrelay.core.protocols import ChatClient, MessageCallback
from ccrelay.formatters.chat import format_notification

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """
    Shared adapter behavior: connection flag, callback list, send guards.

    The platform SDK lives behind an injected ChatClient. The client (or a
    webhook handler) delivers inbound traffic through handle_incoming(),
    which applies the platform's authorization rules before any callback
    sees the message.

    Subclasses set `platform` and implement configure() and verify_user().
    """

    platform: Platform

    def __init__(self, client: ChatClient | None = None):
        self.client = client
        self.config: dict[str, Any] = {}
        self._connected = False
        self._callbacks: list[MessageCallback] = []

    @abstractmethod
    def configure(self, config: dict[str, Any]) -> None:
        """Apply platform config before the client starts. Raise to abort."""
        ...

    @abstractmethod
    def verify_user(self, user_id: str) -> bool: ...

    def is_authorized(self, user_id: str, chat_id: str) -> bool:
        """Authorization check for inbound traffic."""
        return self.verify_user(user_id)

    async def connect(self, config: dict[str, Any]) -> None:
        """
        Configure and start the chat client.

        Raises:
            AdapterConnectionError: No client, invalid config, or client start failed
        """
        if self.client is None:
            raise AdapterConnectionError(self.platform.value, "no chat client configured")

        self.config = dict(config)
        self.configure(self.config)

        try:
            await self.client.start(self.config)
        except Exception as e:
            raise AdapterConnectionError(self.platform.value, str(e)) from e

        self._connected = True
        logger.info(f"{self.platform.value} adapter connected")

    async def disconnect(self) -> None:
        if self.client is not None and self._connected:
            await self.client.stop()
        self._connected = False
        logger.info(f"{self.platform.value} adapter disconnected")

    async def send_message(self, chat_id: str, content: str) -> None:
        if self.client is None or not self._connected:
            raise AdapterNotConnectedError(self.platform.value)
        await self.client.send_text(chat_id, content)
        logger.debug(f"{self.platform.value}: sent {len(content)} chars to {chat_id}")

    async def send_notification(
        self, chat_id: str, notification: BotNotification
    ) -> None:
        await self.send_message(chat_id, format_notification(notification, self.platform))

    def is_connected(self) -> bool:
        return self._connected

    def on_message(self, callback: MessageCallback) -> None:
        self._callbacks.append(callback)

    async def handle_incoming(self, user_id: str, chat_id: str, content: str) -> bool:
        """
        Entry point for inbound platform traffic.

        Returns:
            True if the message was delivered, False if the sender was rejected
        """
        if not self.is_authorized(user_id, chat_id):
            logger.warning(
                f"{self.platform.value}: dropping message from unauthorized user {user_id}"
            )
            return False

        message = BotMessage(
            platform=self.platform,
            user_id=user_id,
            chat_id=chat_id,
            content=content,
        )
        for callback in list(self._callbacks):
            try:
                await callback(message)
            except Exception as e:
                logger.error(
                    f"{self.platform.value}: message callback failed: {e}",
                    exc_info=True,
                )
        return True
