"""
Built-in chat commands.

Each command is a plain async function taking a CommandContext. The
integration in the context belongs to the platform the command came from.
"""

from __future__ import annotations

import logging
from datetime import datetime

from .registry import CommandContext, CommandHandler, CommandRegistry, CommandResult

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 5
MAX_HISTORY = 20

HISTORY_ICONS = {
    "user-text": "👤",
    "agent-text": "🤖",
    "tool-call": "🔧",
    "permission": "🔔",
}


def _unavailable() -> CommandResult:
    return CommandResult(success=False, message="Claude 集成不可用")


async def status_command(ctx: CommandContext) -> CommandResult:
    status = "📊 系统状态\n\n"
    status += f"平台: {ctx.platform.value}\n"

    if ctx.integration is not None:
        messages = ctx.integration.get_messages()
        if ctx.integration.conversation_id:
            status += f"对话: {ctx.integration.conversation_id}\n"
        status += f"消息数: {len(messages)}\n"

        if messages:
            last = messages[-1]
            status += f"\n最近消息: {last.kind}\n"
            status += (
                f"时间: {datetime.fromtimestamp(last.timestamp / 1000):%Y-%m-%d %H:%M:%S}\n"
            )

        pending = ctx.integration.get_pending_permissions()
        if pending:
            status += f"待处理权限: {len(pending)}\n"

    if ctx.service is not None:
        metrics = ctx.service.manager.get_metrics()
        status += f"\n接收: {metrics.messages_received} | 发送: {metrics.messages_sent}"
        if metrics.error_count > 0:
            status += f" | 错误: {metrics.error_count}"

    return CommandResult(success=True, message=status)


async def history_command(ctx: CommandContext) -> CommandResult:
    if ctx.integration is None:
        return _unavailable()

    limit = DEFAULT_HISTORY
    if ctx.args:
        try:
            limit = int(ctx.args[0])
        except ValueError:
            return CommandResult(success=False, message="用法: /history [数量]")
    limit = max(1, min(limit, MAX_HISTORY))

    messages = ctx.integration.get_messages(limit)
    if not messages:
        return CommandResult(success=True, message="暂无消息历史")

    output = f"📜 最近 {len(messages)} 条消息:\n\n"
    for i, msg in enumerate(messages, start=1):
        prefix = HISTORY_ICONS.get(msg.kind, "📋")
        time = datetime.fromtimestamp(msg.timestamp / 1000).strftime("%H:%M:%S")
        output += f"{i}. {prefix} [{time}] {msg.kind} ({msg.id})\n"

    return CommandResult(success=True, message=output, data=[m.id for m in messages])


async def switch_command(ctx: CommandContext) -> CommandResult:
    if not ctx.args:
        return CommandResult(success=False, message="请提供对话ID")
    if ctx.service is None:
        return _unavailable()

    conversation_id = ctx.args[0]
    project_path = ctx.args[1] if len(ctx.args) > 1 else None
    conversation = await ctx.service.switch_conversation(
        ctx.platform, conversation_id, project_path, chat_id=ctx.message.chat_id
    )
    return CommandResult(
        success=True,
        message=f"✅ 已切换到对话: {conversation.id}",
        data=conversation,
    )


async def clear_command(ctx: CommandContext) -> CommandResult:
    if ctx.integration is None:
        return _unavailable()
    ctx.integration.clear()
    return CommandResult(success=True, message="🧹 对话上下文已清除")


async def model_command(ctx: CommandContext) -> CommandResult:
    if not ctx.args:
        return CommandResult(success=False, message="请提供模型ID (如 claude-opus-4-5)")
    if ctx.integration is None:
        return _unavailable()

    model_id = ctx.args[0]
    result = await ctx.integration.transport.switch_model(model_id)
    if (result or {}).get("success"):
        return CommandResult(success=True, message=f"✅ 已切换到模型: {model_id}")
    return CommandResult(success=False, message="切换模型失败")


async def trust_command(ctx: CommandContext) -> CommandResult:
    if ctx.integration is None:
        return _unavailable()

    path = ctx.args[0] if ctx.args else ctx.integration.project_path
    if not path:
        return CommandResult(success=False, message="没有可信任的项目路径")

    result = await ctx.integration.transport.trust_folder(path)
    if (result or {}).get("success"):
        return CommandResult(success=True, message=f"✅ 已信任文件夹: {path}")
    return CommandResult(success=False, message="信任文件夹失败")


def create_default_registry() -> CommandRegistry:
    """Registry with every built-in command registered."""
    registry = CommandRegistry()
    registry.register(CommandHandler("status", "查看当前系统状态", "/status", status_command))
    registry.register(
        CommandHandler("history", "查看最近的消息历史", "/history [数量]", history_command)
    )
    registry.register(CommandHandler("switch", "切换对话", "/switch <对话ID>", switch_command))
    registry.register(CommandHandler("clear", "清除对话上下文", "/clear", clear_command))
    registry.register(CommandHandler("model", "切换 Claude 模型", "/model <模型ID>", model_command))
    registry.register(CommandHandler("trust", "信任文件夹", "/trust [路径]", trust_command))

    @registry.command("help", "显示帮助信息", "/help")
    async def help_command(ctx: CommandContext) -> CommandResult:
        return CommandResult(success=True, message=registry.help_text())

    return registry
