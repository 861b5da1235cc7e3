"""
CommandRouter - resolves parsed commands and replies to the originating chat.

Resolution order:
    1. registered handler
    2. service commands: approve, deny, full
    3. unknown -> pointer to /help

The router never raises. Handler failures become error replies and reply
delivery failures are logged.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Mapping

from ccrelay.core.exceptions import UnknownCommandError
from ccrelay.core.messages import BotMessage, Platform, ToolCallMessage, ToolResultMessage
from ccrelay.formatters.chat import split_for_platform

from .parser import ParsedCommand
from .registry import CommandContext, CommandRegistry, CommandResult

if TYPE_CHECKING:
    from ccrelay.adapters.manager import AdapterManager
    from ccrelay.assistant.integration import ClaudeIntegration
    from ccrelay.service import BotMessageService

logger = logging.getLogger(__name__)

NO_PENDING_PERMISSION = "没有待处理的权限请求"


class CommandRouter:
    def __init__(
        self,
        registry: CommandRegistry,
        manager: AdapterManager,
        integrations: Mapping[Platform, ClaudeIntegration],
        service: BotMessageService | None = None,
    ):
        self.registry = registry
        self.manager = manager
        self.integrations = integrations
        self.service = service

    async def route(self, message: BotMessage, parsed: ParsedCommand) -> CommandResult:
        """Execute a command and send the reply. Returns the reply result."""
        try:
            result = await self._resolve(message, parsed)
        except Exception as e:
            logger.error(f"Command /{parsed.command} failed: {e}", exc_info=True)
            result = CommandResult(success=False, message=f"❌ 处理消息时出错: {e}")

        await self._reply(message, result)
        return result

    async def _resolve(self, message: BotMessage, parsed: ParsedCommand) -> CommandResult:
        command = parsed.command or ""
        integration = self.integrations.get(message.platform)

        handler = self.registry.get(command)
        if handler is not None:
            ctx = CommandContext(
                message=message,
                platform=message.platform,
                args=parsed.args,
                integration=integration,
                service=self.service,
            )
            return await handler.execute(ctx)

        match command:
            case "approve":
                return await self._respond_permission(integration, approved=True)
            case "deny":
                return await self._respond_permission(integration, approved=False)
            case "full":
                return self._full_output(integration, parsed.args[0] if parsed.args else "")

        logger.info(str(UnknownCommandError(command)))
        return CommandResult(
            success=False, message=f"未知命令: /{command}\n输入 /help 查看可用命令"
        )

    async def _respond_permission(
        self, integration: ClaudeIntegration | None, approved: bool
    ) -> CommandResult:
        latest = integration.get_latest_pending_permission() if integration else None
        if latest is None:
            return CommandResult(success=False, message=NO_PENDING_PERMISSION)

        resolved = await integration.respond_to_permission(
            latest.id, "approve" if approved else "deny"
        )
        if resolved is None:
            return CommandResult(success=False, message=NO_PENDING_PERMISSION)

        return CommandResult(
            success=True,
            message="✅ 权限已批准" if approved else "❌ 权限已拒绝",
            data=resolved,
        )

    def _full_output(
        self, integration: ClaudeIntegration | None, message_id: str
    ) -> CommandResult:
        if not message_id:
            return CommandResult(success=False, message="用法: /full <消息ID>")

        target = integration.get_message(message_id) if integration else None
        if target is None:
            return CommandResult(success=False, message=f"消息 {message_id} 不存在")

        match target:
            case ToolCallMessage(tool=tool) if tool.result:
                output = f"📊 {tool.name} 完整输出\n\n"
                output += json.dumps(tool.result, ensure_ascii=False, indent=2, default=str)
            case ToolResultMessage(full_output=full) if full:
                output = full
            case _:
                return CommandResult(success=False, message=f"消息 {message_id} 没有完整输出")

        return CommandResult(success=True, message=output)

    async def _reply(self, message: BotMessage, result: CommandResult) -> None:
        text = result.message or ("命令执行成功" if result.success else "命令执行失败")
        # Long replies such as /full output go out as several messages in order
        for chunk in split_for_platform(text, message.platform):
            try:
                await self.manager.send_message(message.platform, message.chat_id, chunk)
            except Exception as e:
                logger.error(f"Failed to send command reply to {message.chat_id}: {e}")
                return
