"""
Chat message formatter.

Renders typed messages into chat text for the supported platforms. Output is
plain text with light markup; WhatsApp gets the short size tier and Feishu
the long one.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from ccrelay.core.messages import (
    AgentTextMessage,
    BotNotification,
    ErrorMessage,
    EventMessage,
    Message,
    PermissionMessage,
    Platform,
    ToolCallMessage,
    ToolInfo,
    ToolResultMessage,
    UserTextMessage,
)
from ccrelay.tools.registry import (
    format_duration,
    format_tool_for_chat,
    format_tool_state_change,
)

if TYPE_CHECKING:
    from ccrelay.commands.registry import CommandHandler

logger = logging.getLogger(__name__)

WHATSAPP_LIMIT = 4096
FEISHU_LIMIT = 10000

BATCH_SEPARATOR = "\n\n"

# Commands the router handles itself; listed in help but not registrable
SERVICE_COMMAND_HELP = (
    "",
    "🔧 权限控制:",
    "/approve - 批准待处理的权限请求",
    "/deny - 拒绝待处理的权限请求",
    "",
    "📊 消息查看:",
    "/full <id> - 查看工具调用的完整输出",
)

RULE = "━━━━━━━━━━━━━━"

NOTIFICATION_ICONS = {
    "info": "ℹ️",
    "success": "✅",
    "warning": "⚠️",
    "error": "❌",
}


@dataclass
class FormatOptions:
    """Per-call formatting options."""

    platform: Platform = Platform.WHATSAPP
    compact: bool = False
    include_timestamp: bool = False
    max_output_length: int | None = None


def platform_limit(platform: Platform) -> int:
    """Single-message size limit of a platform."""
    match platform:
        case Platform.WHATSAPP:
            return WHATSAPP_LIMIT
        case Platform.FEISHU:
            return FEISHU_LIMIT
    raise ValueError(f"Unknown platform: {platform}")


def _is_short_tier(platform: Platform) -> bool:
    return platform == Platform.WHATSAPP


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def truncate_if_needed(text: str, options: FormatOptions) -> str:
    """Cut text to the effective limit, keeping room for an ellipsis."""
    limit = options.max_output_length or platform_limit(options.platform)
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def split_for_platform(text: str, platform: Platform) -> list[str]:
    """
    Split text into chunks that each fit one platform message.

    Chunks break after the last newline inside the window when there is one,
    otherwise at the limit. Joining the chunks gives back the original text.
    """
    limit = platform_limit(platform)
    chunks: list[str] = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit) + 1
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:]
    if text or not chunks:
        chunks.append(text)
    return chunks


def format_message_for_chat(message: Message, options: FormatOptions) -> str:
    """Format one message for chat display."""
    match message:
        case UserTextMessage():
            return _format_user(message, options)
        case AgentTextMessage():
            return _format_agent(message, options)
        case ToolCallMessage():
            return _format_tool_call(message, options)
        case ToolResultMessage():
            return _format_tool_result(message, options)
        case PermissionMessage():
            return _format_permission(message, options)
        case EventMessage():
            return _format_event(message)
        case ErrorMessage():
            return _format_error(message, options)
    logger.warning(f"Unknown message kind: {getattr(message, 'kind', None)}")
    return f"❓ 未知消息类型: {getattr(message, 'kind', None)}"


def _format_user(message: UserTextMessage, options: FormatOptions) -> str:
    text = message.display_text or message.content
    if options.compact and len(text) > 100:
        return f"👤 {text[:100]}..."
    return f"👤 {text}"


def _format_agent(message: AgentTextMessage, options: FormatOptions) -> str:
    output = ""
    if message.is_streaming:
        output += "🤖 [AI 思考中...]\n\n"

    output += message.content

    if not options.compact and message.metadata:
        output += f"\n\n{RULE}"
        if message.metadata.model:
            output += f"\n📊 模型: {message.metadata.model}"
        if message.metadata.tokens_used:
            output += f" | 用量: {message.metadata.tokens_used} tokens"
    elif not message.is_streaming and not options.compact:
        output += "\n\n✅ 回复完成"

    return truncate_if_needed(output, options)


def _format_tool_call(message: ToolCallMessage, options: FormatOptions) -> str:
    tool = message.tool
    output = message.summary or format_tool_for_chat(tool)

    if tool.state == "running":
        duration = f"[{format_duration(tool.started_at)}]" if tool.started_at else ""
        output += f"\n⏳ 运行中... {duration}".rstrip()
    else:
        output += f"\n{format_tool_state_change(tool)}"

    if message.permission and message.permission.status == "pending":
        output += "\n\n⏳ 等待批准..."
        output += "\n回复 /approve 批准"
        output += "\n回复 /deny 拒绝"

    return truncate_if_needed(output, options)


def _format_tool_result(message: ToolResultMessage, options: FormatOptions) -> str:
    if message.is_error:
        output = "❌ 工具执行错误\n"
    else:
        output = "✅ 工具执行完成\n"
    output += f"工具: {message.tool_name}\n"

    if message.summary:
        output += f"\n{message.summary}"

    if message.full_output:
        length = len(message.full_output)
        threshold = 500 if _is_short_tier(options.platform) else 2000
        if length > threshold:
            output += "\n\n┌────────────────────┐"
            output += f"\n│ 输出过长 ({length} 字符)  │"
            output += "\n│ 回复 /full 查看完整输出 │"
            output += "\n└────────────────────┘"

    return truncate_if_needed(output, options)


def _format_permission(message: PermissionMessage, options: FormatOptions) -> str:
    perm = message.permission
    text = "🔔 权限请求\n\n"
    text += f"工具: {perm.tool_name}\n"

    preview = _to_json(perm.input)
    max_length = 200 if _is_short_tier(options.platform) else 500
    if len(preview) > max_length:
        preview = preview[:max_length] + "\n..."
    text += f"\n详情:\n{preview}\n"

    if message.actions:
        text += "\n可用操作:\n"
        for action in message.actions:
            text += f"• {action.label}: {action.command}\n"

    return truncate_if_needed(text, options)


def _format_event(message: EventMessage) -> str:
    event = message.event
    data = event.data or {}

    match event.type:
        case "ready":
            return "✅ Claude Code 已就绪"
        case "mode_switch":
            return f"🔄 模式切换: {data.get('mode') or event.message or ''}"
        case "context_reset":
            return "🔄 上下文已重置"
        case "compaction":
            return "📦 对话已压缩"
        case "error":
            return f"❌ 错误: {event.message or event.data or ''}"

    if event.message:
        return f"ℹ️ {event.message}"
    return f"ℹ️ 事件: {event.type}"


def _format_error(message: ErrorMessage, options: FormatOptions) -> str:
    output = "❌ 错误\n"
    output += f"{message.error.message}\n"

    if message.error.details:
        output += f"\n详情: {_to_json(message.error.details)}"

    if message.recoverable:
        output += "\n💡 此错误可以恢复"

    return truncate_if_needed(output, options)


def format_messages_for_chat(
    messages: list[Message], options: FormatOptions
) -> list[str]:
    """
    Format messages and pack them into as few chat messages as possible.

    Batches are filled greedily in order and joined with a blank line. A
    message that would push the current batch over the platform limit starts
    a new batch. The separator counts towards the limit, so as long as every
    formatted message fits, no batch exceeds the platform limit.
    """
    limit = platform_limit(options.platform)
    batches: list[str] = []
    current = ""

    for message in messages:
        formatted = format_message_for_chat(message, options)
        if not formatted:
            continue

        if not current:
            current = formatted
        elif len(current) + len(BATCH_SEPARATOR) + len(formatted) > limit:
            batches.append(current)
            current = formatted
        else:
            current += BATCH_SEPARATOR + formatted

    if current:
        batches.append(current)

    return batches


def format_permission_request(permission: PermissionMessage, platform: Platform) -> str:
    """Standalone permission prompt with status-dependent footer."""
    perm = permission.permission
    text = "🔔 *权限请求*\n\n"
    text += f"**工具:** `{perm.tool_name}`\n"

    preview = _to_json(perm.input)
    max_length = 150 if _is_short_tier(platform) else 300
    if len(preview) > max_length:
        preview = preview[:max_length] + "..."
    text += f"**详情:** \n```\n{preview}\n```\n"

    match perm.status:
        case "pending":
            text += "\n回复 _/approve_ 批准"
            text += "\n回复 _/deny_ 拒绝"
        case "approved":
            text += "\n✅ 已批准"
        case "denied":
            text += "\n❌ 已拒绝"

    return text


def _result_summary(result: Any, max_length: int) -> str | None:
    if isinstance(result, str):
        return result[:max_length] + "..." if len(result) > max_length else result

    if isinstance(result, dict):
        if result.get("stdout"):
            return _result_summary(result["stdout"], max_length)
        if result.get("error"):
            return f"错误: {result['error']}"

    if result:
        text = _to_json(result)
        return text[:max_length] + "..." if len(text) > max_length else text

    return None


def format_tool_execution_result(
    tool: ToolInfo, platform: Platform, result: Any = None
) -> str:
    """One-line tool outcome with duration, plus an optional result preview."""
    match tool.state:
        case "completed":
            output = f"✅ *{tool.name}* 完成"
        case "error":
            output = f"❌ *{tool.name}* 错误"
        case _:
            output = f"⏳ *{tool.name}* 运行中..."

    if tool.started_at and tool.completed_at:
        output += f" [{format_duration(tool.started_at, tool.completed_at)}]"

    if result:
        summary = _result_summary(result, 200)
        if summary:
            output += f"\n\n{summary}"

    return output


def format_notification(notification: BotNotification, platform: Platform) -> str:
    """Render a structured notification in the platform's markup."""
    icon = NOTIFICATION_ICONS.get(notification.type, NOTIFICATION_ICONS["info"])

    match platform:
        case Platform.FEISHU:
            text = f"{icon} **{notification.title}**\n\n{notification.message}"
            if notification.actions:
                text += "\n\n**可用操作:**\n"
                for action in notification.actions:
                    text += f"• {action.label}: `{action.command}`\n"
        case _:
            text = f"{icon} {notification.title}\n\n{notification.message}"
            if notification.actions:
                text += "\n\n可用操作:\n"
                for action in notification.actions:
                    text += f"• {action.label}: {action.command}\n"

    return text


def get_command_help_text(handlers: Iterable[CommandHandler]) -> str:
    """Help for the given command handlers followed by the service commands."""
    lines = ["📖 可用命令:\n"]
    for handler in handlers:
        lines.append(f"**/{handler.name}** - {handler.description}")
        lines.append(f"  用法: {handler.usage}")
        lines.append("")
    return "\n".join(lines) + "\n".join(SERVICE_COMMAND_HELP)
