"""Tool view formatters for chat display."""

from .registry import (
    DEFAULT_TOOL_FORMATTER,
    PLUGIN_TOOL_FORMATTER,
    TOOL_VIEW_REGISTRY,
    ToolViewFormatter,
    extract_tool_key_info,
    format_duration,
    format_tool_detail,
    format_tool_for_chat,
    format_tool_state_change,
    get_tool_formatter,
    is_plugin_tool,
    needs_desktop_handling,
    should_truncate_output,
)

__all__ = [
    "DEFAULT_TOOL_FORMATTER",
    "PLUGIN_TOOL_FORMATTER",
    "TOOL_VIEW_REGISTRY",
    "ToolViewFormatter",
    "extract_tool_key_info",
    "format_duration",
    "format_tool_detail",
    "format_tool_for_chat",
    "format_tool_state_change",
    "get_tool_formatter",
    "is_plugin_tool",
    "needs_desktop_handling",
    "should_truncate_output",
]
