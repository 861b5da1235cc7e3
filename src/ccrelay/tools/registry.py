"""
Tool view formatter registry.

Each tool has a dedicated formatter producing chat text. Lookup is a
three-tier chain shared by every tool-aware operation:

    1. exact tool name            (TOOL_VIEW_REGISTRY)
    2. plugin-style tool name     (is_plugin_tool -> PluginToolFormatter)
    3. anything else              (DefaultToolFormatter)
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from ccrelay.core.messages import ToolInfo, now_ms

PLUGIN_SEPARATOR = "/"
PLUGIN_PREFIX = "mcp__"


def is_plugin_tool(tool_name: str) -> bool:
    """Plugin (MCP) tools are namespaced: ``server/tool`` or ``mcp__server__tool``."""
    return PLUGIN_SEPARATOR in tool_name or tool_name.startswith(PLUGIN_PREFIX)


def format_duration(start: int | None, end: int | None = None) -> str:
    """Compact elapsed time between two epoch-ms stamps (end defaults to now)."""
    if not start:
        return ""
    diff = (end if end is not None else now_ms()) - start

    if diff < 1000:
        return f"{diff}ms"
    if diff < 60000:
        return f"{diff // 1000}s"
    return f"{diff // 60000}m"


def _shorten(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _shorten_left(text: str, limit: int) -> str:
    return "..." + text[-limit:] if len(text) > limit else text


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


def _local_time(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _result_field(tool: ToolInfo, key: str) -> Any:
    if isinstance(tool.result, dict):
        return tool.result.get(key)
    return None


class ToolViewFormatter:
    """
    Base formatter. Subclasses override what they need.

    The optional hooks (needs_desktop_handling, should_truncate,
    extract_key_info) default to "no opinion".
    """

    def format_summary(self, tool: ToolInfo) -> str:
        raise NotImplementedError

    def format_state_change(self, tool: ToolInfo) -> str:
        raise NotImplementedError

    def format_detail(self, tool: ToolInfo) -> str:
        raise NotImplementedError

    def needs_desktop_handling(self, tool: ToolInfo) -> bool:
        return False

    def should_truncate(self, tool: ToolInfo, output_length: int) -> bool:
        return False

    def extract_key_info(self, tool: ToolInfo) -> dict[str, Any] | None:
        return None


class BashFormatter(ToolViewFormatter):
    def _command(self, tool: ToolInfo) -> str:
        return str(tool.input.get("command") or tool.input.get("cmd") or "")

    def format_summary(self, tool: ToolInfo) -> str:
        return f"🔧 Bash: {_shorten(self._command(tool), 40)}"

    def format_state_change(self, tool: ToolInfo) -> str:
        match tool.state:
            case "running":
                return f"⏳ Bash 运行中... [{format_duration(tool.started_at)}]"
            case "completed":
                elapsed = (
                    f"[{format_duration(tool.created_at, tool.completed_at)}]"
                    if tool.completed_at
                    else ""
                )
                return f"✅ Bash 完成 {elapsed}".rstrip()
            case "error":
                return f"❌ Bash 错误: {_result_field(tool, 'error') or '执行失败'}"
        return f"🔧 Bash: {self._command(tool)}"

    def format_detail(self, tool: ToolInfo) -> str:
        output = "🔧 Bash 命令执行\n"
        output += f"命令: {self._command(tool)}\n\n"

        if tool.state == "running":
            output += "状态: 运行中...\n"
            output += f"开始时间: {_local_time(tool.started_at or tool.created_at)}\n"
        elif tool.state == "completed":
            output += "状态: ✅ 完成\n"
            if tool.completed_at:
                output += f"完成时间: {_local_time(tool.completed_at)}\n"
            exit_code = _result_field(tool, "exit_code")
            if exit_code is not None:
                output += f"退出码: {exit_code}\n"
            stdout = _result_field(tool, "stdout")
            if stdout:
                output += f"\n标准输出:\n{stdout}\n"
            stderr = _result_field(tool, "stderr")
            if stderr:
                output += f"\n标准错误:\n{stderr}\n"
            if isinstance(tool.result, str) and tool.result:
                output += f"\n输出:\n{tool.result}\n"
        elif tool.state == "error":
            output += "状态: ❌ 错误\n"
            output += f"错误: {_result_field(tool, 'error') or tool.result or '未知错误'}\n"

        return output

    def should_truncate(self, tool: ToolInfo, output_length: int) -> bool:
        return output_length > 2000


class EditFormatter(ToolViewFormatter):
    def _path(self, tool: ToolInfo) -> str:
        return str(tool.input.get("path") or tool.input.get("file_path") or "")

    def format_summary(self, tool: ToolInfo) -> str:
        op = tool.input.get("command") or "edit"
        return f"📝 {op}: {_shorten_left(self._path(tool), 30)}"

    def format_state_change(self, tool: ToolInfo) -> str:
        path = self._path(tool)
        match tool.state:
            case "running":
                return f"⏳ 编辑 {path}..."
            case "completed":
                return f"✅ 编辑完成: {path}"
            case "error":
                return f"❌ 编辑失败: {path}"
        return f"📝 {tool.input.get('command', '')}: {path}"

    def format_detail(self, tool: ToolInfo) -> str:
        output = "📝 文件编辑操作\n"
        output += f"操作: {tool.input.get('command', '')}\n"
        output += f"文件: {self._path(tool)}\n\n"

        old = tool.input.get("old_str") or tool.input.get("old_string")
        new = tool.input.get("new_str") or tool.input.get("new_string")
        if old and new:
            output += "替换内容:\n"
            output += f"- 移除: {_shorten(str(old), 100)}\n"
            output += f"+ 添加: {_shorten(str(new), 100)}\n"

        if tool.state == "completed" and tool.result:
            output += f"\n结果: {tool.result}\n"

        return output


class WriteFormatter(ToolViewFormatter):
    def _path(self, tool: ToolInfo) -> str:
        return str(tool.input.get("path") or tool.input.get("file_path") or "")

    def format_summary(self, tool: ToolInfo) -> str:
        return f"📄 写入: {_shorten_left(self._path(tool), 30)}"

    def format_state_change(self, tool: ToolInfo) -> str:
        match tool.state:
            case "running":
                return "⏳ 写入文件..."
            case "completed":
                return "✅ 文件已写入"
            case "error":
                return "❌ 写入失败"
        return f"📄 写入: {self._path(tool)}"

    def format_detail(self, tool: ToolInfo) -> str:
        output = "📄 文件写入\n"
        output += f"文件: {self._path(tool)}\n"

        content = tool.input.get("content")
        if content:
            output += f"\n内容预览:\n{_shorten(str(content), 200)}\n"

        return output


class TodoFormatter(ToolViewFormatter):
    STATUS_ICONS = {"completed": "✅", "in_progress": "🔄"}
    PRIORITY_ICONS = {"high": "🔴", "medium": "🟡"}

    def _todos(self, tool: ToolInfo) -> list[dict[str, Any]]:
        todos = tool.input.get("todos") or []
        return [t for t in todos if isinstance(t, dict)]

    def format_summary(self, tool: ToolInfo) -> str:
        return f"📋 任务列表: {len(self._todos(tool))} 项"

    def format_state_change(self, tool: ToolInfo) -> str:
        if tool.state == "completed":
            return "✅ 任务列表已更新"
        return "📋 任务列表更新中..."

    def format_detail(self, tool: ToolInfo) -> str:
        todos = self._todos(tool)
        output = "📋 TodoWrite\n"
        output += f"任务数: {len(todos)}\n\n"

        for idx, todo in enumerate(todos, start=1):
            status = self.STATUS_ICONS.get(todo.get("status", ""), "⬜")
            priority = self.PRIORITY_ICONS.get(todo.get("priority", ""), "🟢")
            output += f"{idx}. {status} {priority} {todo.get('content', '')}\n"

        return output

    def extract_key_info(self, tool: ToolInfo) -> dict[str, Any]:
        todos = self._todos(tool)
        return {
            "todo_count": len(todos),
            "completed": sum(1 for t in todos if t.get("status") == "completed"),
        }


class TaskFormatter(ToolViewFormatter):
    """Subagent tool. Spawns a sidechain."""

    def format_summary(self, tool: ToolInfo) -> str:
        return "🎯 子任务启动"

    def format_state_change(self, tool: ToolInfo) -> str:
        if tool.state == "running":
            return "🎯 子任务运行中..."
        return "🎯 子任务"

    def format_detail(self, tool: ToolInfo) -> str:
        goal = (
            tool.input.get("goal")
            or tool.input.get("description")
            or tool.description
            or ""
        )
        output = "🎯 Task 子任务\n"
        output += f"目标: {goal}\n\n"
        output += "⚠️ 复杂任务，建议在桌面端查看完整对话\n"
        return output

    def needs_desktop_handling(self, tool: ToolInfo) -> bool:
        return True


class PluginToolFormatter(ToolViewFormatter):
    """Generic handler for plugin-style (MCP) tools."""

    def _split(self, name: str) -> tuple[str, str]:
        if name.startswith(PLUGIN_PREFIX):
            parts = name[len(PLUGIN_PREFIX) :].split("__", 1)
        else:
            parts = name.split(PLUGIN_SEPARATOR, 1)
        server = parts[0] or "mcp"
        tool_name = parts[1] if len(parts) > 1 and parts[1] else name
        return server, tool_name

    def format_summary(self, tool: ToolInfo) -> str:
        server, tool_name = self._split(tool.name)
        return f"🔌 MCP: {server}.{tool_name}"

    def format_state_change(self, tool: ToolInfo) -> str:
        return f"{self.format_summary(tool)}: {tool.state}"

    def format_detail(self, tool: ToolInfo) -> str:
        output = "🔌 MCP 工具调用\n"
        output += f"工具: {tool.name}\n"
        output += f"输入: {_to_json(tool.input)}\n"

        if tool.result:
            output += f"\n结果:\n{_to_json(tool.result)}\n"

        return output


class DefaultToolFormatter(ToolViewFormatter):
    STATE_ICONS = {"running": "⏳", "completed": "✅", "error": "❌"}

    def format_summary(self, tool: ToolInfo) -> str:
        return f"🔧 {tool.name}"

    def format_state_change(self, tool: ToolInfo) -> str:
        return f"{self.STATE_ICONS.get(tool.state, '🔧')} {tool.name}"

    def format_detail(self, tool: ToolInfo) -> str:
        output = f"🔧 {tool.name}\n"
        output += f"状态: {tool.state}\n"
        output += f"输入: {_to_json(tool.input)}\n"

        if tool.result:
            output += f"\n结果:\n{_to_json(tool.result)}\n"

        return output


_bash = BashFormatter()
_edit = EditFormatter()
_write = WriteFormatter()

TOOL_VIEW_REGISTRY: dict[str, ToolViewFormatter] = {
    "bash:execute": _bash,
    "Bash": _bash,
    "str_replace_editor": _edit,
    "edit": _edit,
    "Edit": _edit,
    "MultiEdit": _edit,
    "write": _write,
    "Write": _write,
    "TodoWrite": TodoFormatter(),
    "Task": TaskFormatter(),
}

PLUGIN_TOOL_FORMATTER: ToolViewFormatter = PluginToolFormatter()
DEFAULT_TOOL_FORMATTER: ToolViewFormatter = DefaultToolFormatter()


def get_tool_formatter(tool_name: str) -> ToolViewFormatter:
    """Resolve a formatter: exact name, then plugin tools, then default."""
    formatter = TOOL_VIEW_REGISTRY.get(tool_name)
    if formatter is not None:
        return formatter

    if is_plugin_tool(tool_name):
        return PLUGIN_TOOL_FORMATTER

    return DEFAULT_TOOL_FORMATTER


def format_tool_for_chat(tool: ToolInfo) -> str:
    """Brief one-line summary for chat display."""
    return get_tool_formatter(tool.name).format_summary(tool)


def format_tool_state_change(tool: ToolInfo) -> str:
    """State change notification line."""
    return get_tool_formatter(tool.name).format_state_change(tool)


def format_tool_detail(tool: ToolInfo) -> str:
    """Detailed output (for /full or the desktop)."""
    return get_tool_formatter(tool.name).format_detail(tool)


def needs_desktop_handling(tool: ToolInfo) -> bool:
    return get_tool_formatter(tool.name).needs_desktop_handling(tool)


def should_truncate_output(tool: ToolInfo, output_length: int) -> bool:
    return get_tool_formatter(tool.name).should_truncate(tool, output_length)


def extract_tool_key_info(tool: ToolInfo) -> dict[str, Any] | None:
    return get_tool_formatter(tool.name).extract_key_info(tool)
