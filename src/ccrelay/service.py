"""
BotMessageService - wires adapters, commands and the assistant together.

Flow:
    chat -> AdapterManager -> handle_incoming -> CommandRouter | ClaudeIntegration.send_message
    assistant stream -> consume / relay_stream -> reducer -> formatter -> AdapterManager -> chat
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, Callable

from pydantic import BaseModel, Field

from ccrelay.adapters.manager import AdapterManager
from ccrelay.assistant.integration import ClaudeIntegration
from ccrelay.commands import (
    CommandParser,
    CommandRegistry,
    CommandRouter,
    create_default_registry,
)
from ccrelay.config.settings import RelayConfig
from ccrelay.core.exceptions import RelayError
from ccrelay.core.messages import (
    BotMessage,
    Message,
    PermissionMessage,
    Platform,
    now_ms,
)
from ccrelay.core.protocols import AssistantTransport, PermissionPolicy
from ccrelay.formatters.chat import FormatOptions, format_messages_for_chat

logger = logging.getLogger(__name__)


@dataclass
class ConversationState:
    """Link between a platform chat and an assistant conversation."""

    id: str
    project_path: str
    platform: Platform
    chat_id: str
    is_active: bool = True


class AssistantEvent(BaseModel):
    """One item of the assistant's raw event stream."""

    conversation_id: str
    raw: Any
    agent_state: dict[str, Any] | None = Field(default=None)


class BotMessageService:
    """
    Coordinates chat platforms with the assistant.

    Example:
        service = BotMessageService(transport, manager=AdapterManager(clients=clients))
        await service.initialize(load_relay_config())
        await service.consume(assistant_events())
        await service.shutdown()
    """

    def __init__(
        self,
        transport: AssistantTransport,
        *,
        manager: AdapterManager | None = None,
        registry: CommandRegistry | None = None,
        policy: PermissionPolicy | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.transport = transport
        self.manager = manager or AdapterManager()
        self.registry = registry or create_default_registry()
        self.policy = policy
        self.parser = CommandParser()
        self._clock = clock

        self.integrations: dict[Platform, ClaudeIntegration] = {}
        self.router = CommandRouter(self.registry, self.manager, self.integrations, self)

        self._conversations: dict[tuple[Platform, str], ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._registered = False

    # --- Lifecycle ---

    async def initialize(self, config: RelayConfig | None = None) -> None:
        """
        Connect enabled platforms and set up their conversations.

        Raises:
            Whatever AdapterManager.initialize raises; nothing is started then
        """
        config = config or RelayConfig()
        self.parser = CommandParser(config.command_prefix)

        await self.manager.initialize(config.platform_blocks())

        for platform in config.enabled_platforms():
            settings = config.platform(platform)

            integration = ClaudeIntegration(
                platform,
                self.transport,
                permission_timeout_ms=config.permission_timeout_ms,
                cleanup_interval_ms=config.permission_cleanup_interval_ms,
                policy=self.policy,
                clock=self._clock,
            )
            integration.on_permission = self._permission_notifier(platform)
            self.integrations[platform] = integration

            if settings.conversation_id:
                self._activate(
                    platform,
                    settings.conversation_id,
                    settings.project_path,
                    settings.chat_id,
                )
                integration.set_conversation(settings.conversation_id, settings.project_path)

            await integration.start()

        if not self._registered:
            self.manager.on_message(self.handle_incoming)
            self._registered = True

        logger.info(
            f"BotMessageService initialized: {[p.value for p in self.integrations]}"
        )

    async def shutdown(self) -> None:
        if self._registered:
            self.manager.remove_message_handler(self.handle_incoming)
            self._registered = False

        await asyncio.gather(*(i.dispose() for i in self.integrations.values()))
        await self.manager.shutdown()
        logger.info("BotMessageService shut down")

    # --- Inbound chat traffic ---

    async def handle_incoming(self, message: BotMessage) -> None:
        """Route a chat message to a command or to the assistant."""
        logger.debug(f"[{message.platform.value}] Received from {message.user_id}")

        try:
            parsed = self.parser.parse(message)
            if parsed.is_command:
                await self.router.route(message, parsed)
                return

            integration = self.get_integration(message.platform)
            conversation = self.get_active_conversation(message.platform)
            if conversation is not None:
                # Stream output follows the chat that spoke last
                conversation.chat_id = message.chat_id

            await integration.send_message(message.content)
            logger.debug(f"[{message.platform.value}] Sent to assistant")
        except Exception as e:
            logger.error(f"Error handling message: {e}", exc_info=True)
            await self._send_error(message.platform, message.chat_id, f"处理消息时出错: {e}")

    async def _send_error(self, platform: Platform, chat_id: str, text: str) -> None:
        try:
            await self.manager.send_message(platform, chat_id, f"❌ {text}")
        except Exception as e:
            logger.error(f"Failed to send error message: {e}")

    def _permission_notifier(self, platform: Platform):
        async def notify(permission: PermissionMessage, text: str) -> None:
            conversation = self.get_active_conversation(platform)
            chat_id = conversation.chat_id if conversation else "default"
            await self.manager.send_message(platform, chat_id, text)

        return notify

    # --- Assistant stream ---

    async def relay_stream(
        self,
        conversation_id: str,
        raw: Any,
        agent_state: dict[str, Any] | None = None,
    ) -> list[Message]:
        """
        Reduce raw events for a conversation and forward them to its chats.

        Reduction is serialized per conversation id. Permission requests are
        delivered by the permission notifier, not in the batched output.

        Returns:
            Messages changed by this batch, across all platforms
        """
        targets = [
            c
            for c in self._conversations.values()
            if c.is_active and c.id == conversation_id and c.platform in self.integrations
        ]
        if not targets:
            logger.debug(f"No active conversation {conversation_id}; dropping events")
            return []

        changed: list[Message] = []
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())

        async with lock:
            for conversation in targets:
                integration = self.integrations[conversation.platform]
                new_messages = await integration.process_stream(raw, agent_state)
                changed.extend(new_messages)

                outgoing = [m for m in new_messages if not isinstance(m, PermissionMessage)]
                batches = format_messages_for_chat(
                    outgoing, FormatOptions(platform=conversation.platform)
                )
                for batch in batches:
                    try:
                        await self.manager.send_message(
                            conversation.platform, conversation.chat_id, batch
                        )
                    except Exception as e:
                        logger.error(
                            f"Failed to relay to {conversation.platform.value}:"
                            f"{conversation.chat_id}: {e}"
                        )

        return changed

    async def consume(self, events: AsyncIterable[AssistantEvent | dict[str, Any]]) -> int:
        """
        Drain an assistant event stream until it ends.

        A failing event is logged and skipped.

        Returns:
            Number of events relayed
        """
        count = 0
        async for item in events:
            try:
                event = (
                    item
                    if isinstance(item, AssistantEvent)
                    else AssistantEvent.model_validate(item)
                )
                await self.relay_stream(event.conversation_id, event.raw, event.agent_state)
                count += 1
            except Exception as e:
                logger.error(f"Failed to relay assistant event: {e}", exc_info=True)
        return count

    # --- Conversations ---

    def _activate(
        self, platform: Platform, conversation_id: str, project_path: str, chat_id: str
    ) -> ConversationState:
        for state in self._conversations.values():
            if state.platform == platform:
                state.is_active = False

        key = (platform, conversation_id)
        state = self._conversations.get(key)
        if state is None:
            state = ConversationState(
                id=conversation_id,
                project_path=project_path,
                platform=platform,
                chat_id=chat_id,
            )
            self._conversations[key] = state
        else:
            state.project_path = project_path
            state.chat_id = chat_id
        state.is_active = True
        return state

    async def switch_conversation(
        self,
        platform: Platform,
        conversation_id: str,
        project_path: str | None = None,
        *,
        chat_id: str | None = None,
    ) -> ConversationState:
        """
        Point a platform at another assistant conversation.

        The previous conversation stays listed but inactive. The platform's
        timeline is cleared.
        """
        integration = self.get_integration(platform)
        current = self.get_active_conversation(platform)

        state = self._activate(
            platform,
            conversation_id,
            project_path or (current.project_path if current else ""),
            chat_id or (current.chat_id if current else "default"),
        )
        integration.set_conversation(state.id, state.project_path)
        integration.clear()

        logger.info(f"{platform.value}: switched to conversation {conversation_id}")
        return state

    def clear(self, platform: Platform) -> None:
        self.get_integration(platform).clear()

    def get_integration(self, platform: Platform) -> ClaudeIntegration:
        integration = self.integrations.get(Platform(platform))
        if integration is None:
            raise RelayError(f"Platform {Platform(platform).value} is not enabled")
        return integration

    def get_conversations(self) -> list[ConversationState]:
        return list(self._conversations.values())

    def get_active_conversation(self, platform: Platform) -> ConversationState | None:
        for state in self._conversations.values():
            if state.platform == platform and state.is_active:
                return state
        return None
