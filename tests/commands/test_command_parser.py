"""Tests for CommandParser and CommandRegistry."""

import pytest

from ccrelay.commands import (
    CommandHandler,
    CommandParser,
    CommandRegistry,
    CommandResult,
    ParsedCommand,
)
from ccrelay.core.messages import BotMessage, Platform


class TestCommandParser:
    def test_parses_command_and_args(self):
        assert CommandParser().parse("/history 3") == ParsedCommand(
            is_command=True,
            command="history",
            args=["3"],
            original_message="/history 3",
        )

    def test_plain_text_is_not_a_command(self):
        parsed = CommandParser().parse("  run the tests  ")

        assert parsed == ParsedCommand(is_command=False, original_message="run the tests")

    def test_command_is_case_folded_args_are_not(self):
        parsed = CommandParser().parse("/SWITCH Conv-A /Work/App")

        assert parsed.command == "switch"
        assert parsed.args == ["Conv-A", "/Work/App"]

    @pytest.mark.parametrize("text", ["  /status", "/status  ", "/  status", "/status\n"])
    def test_surrounding_whitespace(self, text):
        parsed = CommandParser().parse(text)

        assert parsed.command == "status"
        assert parsed.args == []

    def test_args_split_on_any_whitespace(self):
        assert CommandParser().parse("/switch a\t b\n c").args == ["a", "b", "c"]

    def test_accepts_bot_message(self):
        message = BotMessage(
            platform=Platform.FEISHU, user_id="ou_1", chat_id="oc_1", content="/help"
        )

        assert CommandParser().parse(message).command == "help"

    def test_custom_prefix(self):
        parser = CommandParser(prefix="!")

        assert parser.parse("!status").command == "status"
        assert not parser.parse("/status").is_command


async def _ok(ctx):
    return CommandResult(success=True, message="ok")


class TestCommandRegistry:
    def test_register_and_lookup(self):
        registry = CommandRegistry()
        handler = CommandHandler("ping", "Ping", "/ping", _ok)

        registry.register(handler)

        assert registry.has("ping")
        assert registry.get("ping") is handler
        assert registry.get("pong") is None

    def test_decorator_registers(self):
        registry = CommandRegistry()

        @registry.command("ping", "Ping", "/ping")
        async def ping(ctx):
            return CommandResult(success=True, message="pong")

        assert registry.get("ping").execute is ping

    def test_unregister(self):
        registry = CommandRegistry()
        registry.register(CommandHandler("ping", "Ping", "/ping", _ok))

        assert registry.unregister("ping")
        assert not registry.unregister("ping")
        assert registry.list() == []

    def test_list_keeps_registration_order(self):
        registry = CommandRegistry()
        for name in ("b", "a", "c"):
            registry.register(CommandHandler(name, name, f"/{name}", _ok))

        assert [h.name for h in registry.list()] == ["b", "a", "c"]

    def test_help_text_lists_commands_and_service_commands(self):
        registry = CommandRegistry()
        registry.register(CommandHandler("ping", "检查连接", "/ping", _ok))

        text = registry.help_text()

        assert text.startswith("📖 可用命令:\n")
        assert "**/ping** - 检查连接\n  用法: /ping" in text
        assert "/approve - 批准待处理的权限请求" in text
        assert text.endswith("/full <id> - 查看工具调用的完整输出")
