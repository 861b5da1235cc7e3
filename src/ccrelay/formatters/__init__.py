"""Chat formatting for relayed messages."""

from .chat import (
    FEISHU_LIMIT,
    SERVICE_COMMAND_HELP,
    WHATSAPP_LIMIT,
    FormatOptions,
    format_message_for_chat,
    format_messages_for_chat,
    format_notification,
    format_permission_request,
    format_tool_execution_result,
    get_command_help_text,
    platform_limit,
    split_for_platform,
    truncate_if_needed,
)

__all__ = [
    "FEISHU_LIMIT",
    "SERVICE_COMMAND_HELP",
    "WHATSAPP_LIMIT",
    "FormatOptions",
    "format_message_for_chat",
    "format_messages_for_chat",
    "format_notification",
    "format_permission_request",
    "format_tool_execution_result",
    "get_command_help_text",
    "platform_limit",
    "split_for_platform",
    "truncate_if_needed",
]
