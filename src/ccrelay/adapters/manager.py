"""
AdapterManager - owns the platform adapters.

Fan-in: every adapter's inbound messages reach every registered handler.
Fan-out: sends are routed to the adapter of the requested platform.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping

from ccrelay.core.exceptions import AdapterNotConnectedError, HandlerError
from ccrelay.core.messages import BotMessage, BotNotification, Platform, now_ms
from ccrelay.core.protocols import ChatClient, MessageCallback, PlatformAdapter

from .feishu import FeishuAdapter
from .whatsapp import WhatsAppAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[Platform], PlatformAdapter]

ADAPTER_CLASSES: dict[Platform, type] = {
    Platform.WHATSAPP: WhatsAppAdapter,
    Platform.FEISHU: FeishuAdapter,
}


def default_adapter_factory(
    clients: Mapping[Platform, ChatClient] | None = None,
) -> AdapterFactory:
    """Build adapters from ADAPTER_CLASSES, wiring the matching chat client."""
    clients = clients or {}

    def factory(platform: Platform) -> PlatformAdapter:
        return ADAPTER_CLASSES[platform](clients.get(platform))

    return factory


@dataclass
class BotMetrics:
    connected: dict[str, bool] = field(default_factory=dict)
    messages_received: int = 0
    messages_sent: int = 0
    error_count: int = 0
    last_error_time: int = 0


class AdapterManager:
    """
    Connects enabled platforms and routes traffic between them and handlers.

    Example:
        manager = AdapterManager(clients={Platform.WHATSAPP: whatsapp_client})
        manager.on_message(handle)
        await manager.initialize({"whatsapp": {"enabled": True}})
        await manager.send_message(Platform.WHATSAPP, chat_id, "hello")
        await manager.shutdown()
    """

    def __init__(
        self,
        factory: AdapterFactory | None = None,
        clients: Mapping[Platform, ChatClient] | None = None,
    ):
        self._factory = factory or default_adapter_factory(clients)
        self._adapters: dict[Platform, PlatformAdapter] = {}
        self._handlers: list[MessageCallback] = []
        self._metrics = BotMetrics()

    async def initialize(self, config: Mapping[str, Mapping[str, Any]]) -> None:
        """
        Connect every enabled platform, in Platform order.

        All-or-nothing: if any adapter fails to connect, the adapters
        connected during this call are disconnected and the error re-raised.

        Args:
            config: Per-platform blocks keyed by platform value; a block is
                used when its "enabled" key is truthy
        """
        connected_now: list[Platform] = []

        try:
            for platform in Platform:
                block = config.get(platform.value)
                if not block or not block.get("enabled"):
                    continue

                adapter = self._factory(platform)
                await adapter.connect(dict(block))
                self._setup_adapter(platform, adapter)
                connected_now.append(platform)
        except Exception as e:
            self._record_error()
            logger.error(f"Adapter initialization failed: {e}")
            await self._rollback(connected_now)
            raise

        logger.info(
            f"AdapterManager initialized: {[p.value for p in connected_now]}"
        )

    async def _rollback(self, platforms: list[Platform]) -> None:
        for platform in platforms:
            adapter = self._adapters.pop(platform, None)
            if adapter is None:
                continue
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.warning(f"Rollback disconnect of {platform.value} failed: {e}")

    def _setup_adapter(self, platform: Platform, adapter: PlatformAdapter) -> None:
        adapter.on_message(self._dispatch)
        self._adapters[platform] = adapter

    async def _dispatch(self, message: BotMessage) -> None:
        self._metrics.messages_received += 1

        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception as e:
                self._record_error()
                error = HandlerError(getattr(handler, "__qualname__", repr(handler)), e)
                logger.error(str(error), exc_info=True)

    def _record_error(self) -> None:
        self._metrics.error_count += 1
        self._metrics.last_error_time = now_ms()

    def _connected_adapter(self, platform: Platform | str) -> PlatformAdapter:
        adapter = self._adapters.get(Platform(platform))
        if adapter is None or not adapter.is_connected():
            self._record_error()
            raise AdapterNotConnectedError(Platform(platform).value)
        return adapter

    # --- Handlers ---

    def on_message(self, handler: MessageCallback) -> None:
        self._handlers.append(handler)

    def remove_message_handler(self, handler: MessageCallback) -> bool:
        try:
            self._handlers.remove(handler)
        except ValueError:
            return False
        return True

    # --- Outbound ---

    async def send_message(
        self, platform: Platform | str, chat_id: str, content: str
    ) -> None:
        """
        Send text through a platform's adapter.

        Raises:
            AdapterNotConnectedError: No connected adapter for the platform
        """
        adapter = self._connected_adapter(platform)
        try:
            await adapter.send_message(chat_id, content)
        except Exception:
            self._record_error()
            raise
        self._metrics.messages_sent += 1

    async def send_notification(
        self, platform: Platform | str, chat_id: str, notification: BotNotification
    ) -> None:
        adapter = self._connected_adapter(platform)
        try:
            await adapter.send_notification(chat_id, notification)
        except Exception:
            self._record_error()
            raise
        self._metrics.messages_sent += 1

    # --- Introspection ---

    def get_adapter(self, platform: Platform | str) -> PlatformAdapter | None:
        return self._adapters.get(Platform(platform))

    def get_connected_platforms(self) -> list[Platform]:
        return [p for p, a in self._adapters.items() if a.is_connected()]

    def get_metrics(self) -> BotMetrics:
        """Snapshot of the metrics (copy)."""
        return replace(
            self._metrics,
            connected={p.value: a.is_connected() for p, a in self._adapters.items()},
        )

    # --- Lifecycle ---

    async def shutdown(self) -> None:
        """Disconnect every adapter concurrently, tolerating failures."""
        platforms = list(self._adapters)
        results = await asyncio.gather(
            *(self._adapters[p].disconnect() for p in platforms),
            return_exceptions=True,
        )
        for platform, result in zip(platforms, results):
            if isinstance(result, BaseException):
                self._record_error()
                logger.warning(f"Failed to disconnect {platform.value}: {result}")

        self._adapters.clear()
        self._handlers.clear()
        logger.info("AdapterManager shut down")
