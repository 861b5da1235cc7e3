"""Tests for ClaudeIntegration."""

from unittest.mock import AsyncMock

import pytest

from ccrelay.assistant import ClaudeIntegration, format_permission_notification
from ccrelay.core.exceptions import NoActiveConversationError, RelayError
from ccrelay.core.messages import (
    PermissionMessage,
    Platform,
    ToolCallMessage,
    UserTextMessage,
)

from tests.conftest import (
    T0,
    make_agent_state,
    make_assistant_text_raw,
    make_tool_use_raw,
    make_user_raw,
)


@pytest.fixture
def integration(transport, clock):
    integration = ClaudeIntegration(Platform.WHATSAPP, transport, clock=clock)
    integration.set_conversation("conv-1", "/work/app")
    return integration


class TestConversation:
    def test_no_conversation_initially(self, transport):
        integration = ClaudeIntegration(Platform.FEISHU, transport)

        assert integration.get_current_conversation() is None
        assert integration.conversation_id is None

    def test_set_conversation(self, integration):
        assert integration.get_current_conversation() == {
            "conversation_id": "conv-1",
            "project_path": "/work/app",
        }
        assert integration.state.current_conversation == "conv-1"


class TestSendMessage:
    async def test_forwards_to_transport(self, integration, transport):
        message_id = await integration.send_message("run tests")

        assert message_id == "msg-1"
        assert transport.sent == [
            {"conversation_id": "conv-1", "project_path": "/work/app", "message": "run tests"}
        ]

    async def test_requires_conversation(self, transport):
        integration = ClaudeIntegration(Platform.WHATSAPP, transport)

        with pytest.raises(NoActiveConversationError):
            await integration.send_message("hi")

        assert transport.sent == []

    async def test_missing_message_id_raises(self, integration, transport):
        transport.send_result = {"error": "busy"}

        with pytest.raises(RelayError, match="Failed to send message"):
            await integration.send_message("hi")


class TestProcessStream:
    async def test_returns_new_messages_stamped_with_conversation(self, integration):
        messages = await integration.process_stream(make_user_raw("u1", "hi"))

        assert len(messages) == 1
        assert isinstance(messages[0], UserTextMessage)
        assert messages[0].conversation_id == "conv-1"
        assert messages[0].platform == Platform.WHATSAPP

    async def test_accepts_a_batch(self, integration):
        messages = await integration.process_stream(
            [make_user_raw("u1", "hi"), make_assistant_text_raw("a1", "hello")]
        )

        assert [m.content for m in messages] == ["hi", "hello"]

    async def test_permission_is_tracked_and_notified(self, integration):
        integration.on_permission = AsyncMock()

        await integration.process_stream(
            [], make_agent_state(toolu_1=("Bash", {"command": "ls"}))
        )

        pending = integration.get_pending_permissions()
        assert [p.id for p in pending] == ["toolu_1"]
        assert pending[0].conversation_id == "conv-1"
        assert pending[0].created_at == T0

        integration.on_permission.assert_awaited_once()
        permission, text = integration.on_permission.await_args.args
        assert isinstance(permission, PermissionMessage)
        assert text.startswith("🔔 权限请求\n\n工具: Bash")

    async def test_notification_failure_is_contained(self, integration):
        integration.on_permission = AsyncMock(side_effect=RuntimeError("chat down"))

        messages = await integration.process_stream(
            [], make_agent_state(toolu_1=("Bash", {}))
        )

        assert len(messages) == 1
        assert integration.get_latest_pending_permission().id == "toolu_1"


class TestRespondToPermission:
    async def test_approve_updates_reducer_state(self, integration, transport):
        await integration.process_stream([], make_agent_state(toolu_1=("Bash", {})))

        resolved = await integration.respond_to_permission("toolu_1", "approve")

        assert resolved.status == "approved"
        assert transport.permission_responses == [("conv-1", "yes")]
        assert integration.state.pending_permissions["toolu_1"].status == "approved"
        message_id = integration.state.tool_id_to_message_id["toolu_1"]
        assert integration.get_message(message_id).permission.status == "approved"
        assert integration.get_pending_permissions() == []

    async def test_deny_updates_converted_tool_call(self, integration):
        await integration.process_stream([], make_agent_state(toolu_1=("Bash", {})))
        await integration.process_stream(make_tool_use_raw("a1", "toolu_1", "Bash", {}))

        await integration.respond_to_permission("toolu_1", "deny")

        message = integration.get_message(integration.state.tool_id_to_message_id["toolu_1"])
        assert isinstance(message, ToolCallMessage)
        assert message.permission.status == "denied"
        assert message.permission.decision == "denied"

    async def test_expired_permission_returns_none(self, integration, transport, clock):
        await integration.process_stream([], make_agent_state(toolu_1=("Bash", {})))
        clock.advance(integration.permissions.timeout_ms + 1)

        assert await integration.respond_to_permission("toolu_1", "approve") is None
        assert transport.permission_responses == []
        assert integration.state.pending_permissions["toolu_1"].status == "pending"

    async def test_latest_pending_is_newest(self, integration):
        await integration.process_stream(
            [], make_agent_state(created_at=T0, toolu_old=("Bash", {}))
        )
        await integration.process_stream(
            [], make_agent_state(created_at=T0 + 10, toolu_new=("Write", {}))
        )

        assert integration.get_latest_pending_permission().id == "toolu_new"


class TestTimeline:
    async def test_messages_ordered_by_timestamp(self, integration):
        await integration.process_stream(
            [
                make_user_raw("u2", "second", timestamp=T0 + 10),
                make_user_raw("u1", "first", timestamp=T0),
            ]
        )

        assert [m.content for m in integration.get_messages()] == ["first", "second"]
        assert [m.content for m in integration.get_messages(1)] == ["second"]

    async def test_clear_keeps_conversation(self, integration):
        await integration.process_stream(make_user_raw("u1", "hi"))
        await integration.process_stream([], make_agent_state(toolu_1=("Bash", {})))

        integration.clear()

        assert integration.get_messages() == []
        assert integration.get_pending_permissions() == []
        assert integration.state.current_conversation == "conv-1"

    async def test_start_and_dispose_manage_cleanup(self, integration):
        await integration.start()
        assert integration.permissions.is_running

        await integration.dispose()
        assert not integration.permissions.is_running


def test_permission_notification_truncates_details():
    permission = PermissionMessage.model_validate(
        {
            "id": "p1",
            "timestamp": T0,
            "permission": {"id": "toolu_1", "tool_name": "Write", "input": {"content": "x" * 300}},
        }
    )

    text = format_permission_notification(permission)

    details = text.split("详情: ", 1)[1].split("\n", 1)[0]
    assert details.endswith("...")
    assert len(details) == 103
    assert text.endswith("回复 /approve 批准\n回复 /deny 拒绝")
