"""Tests for MobileClient."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ccrelay.config import MobileSettings
from ccrelay.core.exceptions import ReconnectExhaustedError
from ccrelay.mobile import ConnectionConfig, MobileClient
from ccrelay.mobile.client import AUTH_FAILED, RECONNECT_EXHAUSTED
from ccrelay.testing import FakeConnector, FakeWebSocket

URL = "ws://desk:8080"


async def settle(predicate, timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


def chat_message(message_id: str, content: str = "x", role: str = "assistant") -> dict:
    return {"id": message_id, "role": role, "content": content, "timestamp": 1}


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
async def client(connector):
    client = MobileClient(connector=connector, reconnect_interval=0.001)
    yield client
    await client.disconnect()


async def connect_and_auth(client, connector, password: str | None = "pw") -> FakeWebSocket:
    await client.connect(ConnectionConfig(url=URL, password=password))
    ws = connector.last
    ws.feed({"type": "auth", "success": True})
    await settle(lambda: client.status == "connected")
    return ws


class TestConnect:
    async def test_sends_auth_and_waits_for_confirmation(self, client, connector):
        await client.connect(ConnectionConfig(url=URL, password="pw"))

        assert connector.urls == [URL]
        assert connector.last.sent_json() == [{"type": "auth", "password": "pw"}]
        assert client.status == "authenticating"
        assert not client.is_connected

        connector.last.feed({"type": "auth", "success": True})
        await settle(lambda: client.status == "connected")

        assert client.is_connected

    async def test_without_password_sends_nothing(self, client, connector):
        await client.connect(ConnectionConfig(url=URL))

        assert connector.last.sent == []
        assert client.status == "authenticating"

    async def test_auth_rejected(self, client, connector):
        on_error = AsyncMock()
        client.on_error = on_error
        await client.connect(ConnectionConfig(url=URL, password="wrong"))

        connector.last.feed({"type": "auth", "success": False})
        await settle(lambda: client.status == "error")

        assert client.error == AUTH_FAILED
        on_error.assert_awaited_once()

    async def test_status_callback_sees_transitions(self, client, connector):
        statuses = []

        async def record(status):
            statuses.append(status)

        client.on_status_change = record

        await connect_and_auth(client, connector)

        assert statuses == ["connecting", "authenticating", "connected"]

    async def test_from_settings(self, connector):
        settings = MobileSettings(reconnect_interval=0.5, max_reconnect_attempts=3)

        client = MobileClient.from_settings(settings, connector=connector)

        assert client.reconnect_interval == 0.5
        assert client.max_reconnect_attempts == 3


class TestSending:
    async def test_queues_until_authenticated(self, client, connector):
        assert await client.send_message("first") is False
        assert await client.send_message("second") is False
        assert client.queued_messages == ["first", "second"]

        ws = await connect_and_auth(client, connector)

        assert ws.sent_json()[1:] == [
            {"type": "message", "data": {"content": "first"}},
            {"type": "message", "data": {"content": "second"}},
        ]
        assert client.queued_messages == []

    async def test_send_while_connected(self, client, connector):
        ws = await connect_and_auth(client, connector)

        assert await client.send_message("hello") is True

        assert ws.sent_json()[-1] == {"type": "message", "data": {"content": "hello"}}
        assert client.messages[-1].role == "user"
        assert client.messages[-1].content == "hello"
        assert client.claude_status == "thinking"

    async def test_queue_before_auth_confirmed(self, client, connector):
        await client.connect(ConnectionConfig(url=URL, password="pw"))

        assert await client.send_message("early") is False
        assert client.queued_messages == ["early"]


class TestInbound:
    async def test_history_replaces_messages_and_dedups(self, client, connector):
        ws = await connect_and_auth(client, connector)

        ws.feed({"type": "history", "data": [chat_message("m1"), chat_message("m1"), chat_message("m2")]})
        await settle(lambda: len(client.messages) == 2)

        assert [m.id for m in client.messages] == ["m1", "m2"]

    async def test_duplicate_message_is_skipped(self, client, connector):
        changed = AsyncMock()
        client.on_messages_changed = changed
        ws = await connect_and_auth(client, connector)

        ws.feed({"type": "message", "data": chat_message("m1")})
        ws.feed({"type": "message", "data": chat_message("m1")})
        ws.feed({"type": "message", "data": chat_message("m2")})
        await settle(lambda: len(client.messages) == 2)

        assert [m.id for m in client.messages] == ["m1", "m2"]
        assert changed.await_count == 2

    async def test_response_sets_idle(self, client, connector):
        ws = await connect_and_auth(client, connector)
        await client.send_message("hi")

        ws.feed({"type": "response", "data": chat_message("r1", "done")})
        await settle(lambda: client.claude_status == "idle")

        assert client.messages[-1].content == "done"

    async def test_status_frame(self, client, connector):
        ws = await connect_and_auth(client, connector)

        ws.feed({"type": "status", "data": {"status": "thinking"}})
        await settle(lambda: client.claude_status == "thinking")

    async def test_conversation_list_uses_camel_case(self, client, connector):
        ws = await connect_and_auth(client, connector)

        ws.feed(
            {
                "type": "conversation_list",
                "data": {
                    "conversations": [
                        {
                            "id": "c1",
                            "title": "Refactor",
                            "status": "ready",
                            "lastMessage": "ok",
                            "updatedAt": 42,
                            "isSelected": True,
                        }
                    ]
                },
            }
        )
        await settle(lambda: client.conversations != [])

        conversation = client.conversations[0]
        assert conversation.last_message == "ok"
        assert conversation.updated_at == 42
        assert conversation.is_selected is True

    async def test_malformed_and_unknown_frames_are_ignored(self, client, connector):
        ws = await connect_and_auth(client, connector)

        ws.feed("{not json")
        ws.feed({"type": "message", "data": {"id": "m1"}})
        ws.feed({"type": "typing"})
        ws.feed({"type": "message", "data": chat_message("m2")})
        await settle(lambda: len(client.messages) == 1)

        assert client.messages[0].id == "m2"
        assert client.status == "connected"

    async def test_callback_errors_are_contained(self, client, connector):
        client.on_messages_changed = AsyncMock(side_effect=RuntimeError("ui gone"))
        ws = await connect_and_auth(client, connector)

        ws.feed({"type": "message", "data": chat_message("m1")})
        ws.feed({"type": "message", "data": chat_message("m2")})
        await settle(lambda: len(client.messages) == 2)


class TestPermissions:
    PERMISSION = {
        "id": "perm-1",
        "type": "tool",
        "toolType": "bash",
        "title": "Run command",
        "command": "rm -rf build",
        "createdAt": 5,
    }

    async def test_request_and_response(self, client, connector):
        on_request = AsyncMock()
        client.on_permission_request = on_request
        ws = await connect_and_auth(client, connector)

        ws.feed({"type": "permission_request", "data": self.PERMISSION})
        await settle(lambda: client.permission_request is not None)

        assert client.permission_request.tool_type == "bash"
        on_request.assert_awaited_once()

        assert await client.respond_permission("yesAlways") is True

        frame = ws.sent_json()[-1]
        assert frame["type"] == "permission_response"
        assert frame["data"]["requestId"] == "perm-1"
        assert frame["data"]["choice"] == "yesAlways"
        assert frame["data"]["source"] == "mobile"
        assert client.permission_request is None

    async def test_close_answers_no(self, client, connector):
        ws = await connect_and_auth(client, connector)
        ws.feed({"type": "permission_request", "data": self.PERMISSION})
        await settle(lambda: client.permission_request is not None)

        assert await client.close_permission_request() is True

        assert ws.sent_json()[-1]["data"]["choice"] == "no"

    async def test_respond_without_request(self, client, connector):
        await connect_and_auth(client, connector)

        assert await client.respond_permission("yes") is False


class TestSelectConversation:
    async def test_requires_connection(self, client):
        assert await client.select_conversation("c2") is False
        assert client.error == "未连接，无法选择对话"

    async def test_allowed_while_authenticating(self, client, connector):
        await client.connect(ConnectionConfig(url=URL, password="pw"))
        assert client.status == "authenticating"

        assert await client.select_conversation("c2") is True

        assert connector.last.sent_json()[-1] == {
            "type": "select_conversation",
            "data": {"conversationId": "c2"},
        }
        assert client.selected_conversation_id == "c2"

    async def test_select_clears_messages_and_dedup(self, client, connector):
        ws = await connect_and_auth(client, connector)
        ws.feed({"type": "message", "data": chat_message("m1")})
        await settle(lambda: len(client.messages) == 1)

        assert await client.select_conversation("c2") is True

        assert ws.sent_json()[-1] == {
            "type": "select_conversation",
            "data": {"conversationId": "c2"},
        }
        assert client.selected_conversation_id == "c2"
        assert client.messages == []

        ws.feed({"type": "history", "data": [chat_message("m1")]})
        await settle(lambda: len(client.messages) == 1)


class TestReconnect:
    async def test_reconnects_after_server_close(self, client, connector):
        first = await connect_and_auth(client, connector)

        first.close_from_server()
        await settle(lambda: len(connector.sockets) == 2)

        second = connector.last
        assert second is not first
        assert second.sent_json() == [{"type": "auth", "password": "pw"}]
        assert client.reconnect_attempts == 0

    async def test_receive_failure_closes_and_reconnects(self, client, connector):
        await client.send_message("queued")
        await client.connect(ConnectionConfig(url=URL))
        first = connector.last
        first.send = AsyncMock(side_effect=RuntimeError("broken pipe"))

        first.feed({"type": "auth", "success": True})
        await settle(lambda: len(connector.sockets) == 2 and client.status == "authenticating")

        assert first.closed
        second = connector.last
        second.feed({"type": "auth", "success": True})
        await settle(lambda: client.status == "connected")

        assert second.sent_json() == [{"type": "message", "data": {"content": "queued"}}]
        assert client.queued_messages == []

    async def test_gives_up_after_max_attempts(self):
        connector = FakeConnector([OSError("refused")] * 5)
        client = MobileClient(connector=connector, reconnect_interval=0.001, max_reconnect_attempts=2)
        on_error = AsyncMock()
        client.on_error = on_error

        await client.connect(ConnectionConfig(url=URL))
        await settle(lambda: client.error == RECONNECT_EXHAUSTED)

        assert len(connector.urls) == 3
        assert client.status == "disconnected"
        assert isinstance(client.last_error, ReconnectExhaustedError)
        on_error.assert_awaited_once()
        await client.disconnect()

    async def test_disconnect_cancels_pending_reconnect(self):
        connector = FakeConnector([OSError("refused")])
        client = MobileClient(connector=connector, reconnect_interval=10)

        await client.connect(ConnectionConfig(url=URL))
        assert client.reconnect_attempts == 1

        await client.disconnect()
        await asyncio.sleep(0.01)

        assert len(connector.urls) == 1
        assert client.status == "disconnected"

    async def test_client_disconnect_does_not_reconnect(self, client, connector):
        await connect_and_auth(client, connector)

        await client.disconnect()
        await asyncio.sleep(0.01)

        assert len(connector.urls) == 1
        assert connector.last.closed

    async def test_connect_replaces_existing_socket(self, client, connector):
        first = await connect_and_auth(client, connector)

        await client.connect(ConnectionConfig(url="ws://other:9000", password="pw"))

        assert first.closed
        assert connector.urls == [URL, "ws://other:9000"]
        await asyncio.sleep(0.01)
        assert len(connector.urls) == 2
