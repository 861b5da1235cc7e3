"""
Pytest fixtures for ccrelay tests.

Raw stream records are built with the make_* helpers so tests read like
the assistant stream they simulate:

    from tests.conftest import make_user_raw, make_tool_use_raw

    reduce(state, [make_user_raw("u1", "hi")])
"""

from __future__ import annotations

from typing import Any

import pytest

from ccrelay.adapters import AdapterManager
from ccrelay.config import RelayConfig
from ccrelay.core.messages import BotMessage, Platform
from ccrelay.service import BotMessageService
from ccrelay.testing import FakeAssistantTransport, FakeChatClient

T0 = 1_700_000_000_000


class ManualClock:
    """Epoch-ms clock advanced explicitly by tests."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# --- Raw stream record factories ---


def make_user_raw(
    raw_id: str,
    text: str,
    *,
    local_id: str | None = None,
    timestamp: int = T0,
) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "id": raw_id,
        "role": "user",
        "timestamp": timestamp,
        "content": [{"type": "text", "text": text}],
    }
    if local_id:
        raw["local_id"] = local_id
    return raw


def make_assistant_text_raw(
    raw_id: str, *texts: str, timestamp: int = T0
) -> dict[str, Any]:
    return {
        "id": raw_id,
        "role": "assistant",
        "timestamp": timestamp,
        "content": [{"type": "text", "text": t} for t in texts],
    }


def make_tool_use_raw(
    raw_id: str,
    tool_id: str,
    name: str,
    tool_input: dict[str, Any] | None = None,
    *,
    timestamp: int = T0,
    block_type: str = "tool_use",
) -> dict[str, Any]:
    return {
        "id": raw_id,
        "role": "assistant",
        "timestamp": timestamp,
        "content": [
            {
                "type": block_type,
                "id": tool_id,
                "name": name,
                "input": tool_input or {},
            }
        ],
    }


def make_tool_result_raw(
    raw_id: str,
    tool_id: str,
    content: Any = "ok",
    *,
    is_error: bool = False,
    timestamp: int = T0,
    role: str = "user",
) -> dict[str, Any]:
    return {
        "id": raw_id,
        "role": role,
        "timestamp": timestamp,
        "content": [
            {
                "type": "tool_result",
                "tool_use_id": tool_id,
                "content": content,
                "is_error": is_error,
            }
        ],
    }


def make_event_raw(
    raw_id: str, event_type: str, *, timestamp: int = T0, **data: Any
) -> dict[str, Any]:
    return {
        "id": raw_id,
        "role": "system",
        "timestamp": timestamp,
        "content": [{"type": event_type, **data}],
    }


def make_agent_state(
    created_at: int = T0, **requests: tuple[str, dict[str, Any]]
) -> dict[str, Any]:
    """Agent state keyed by tool-use id: make_agent_state(toolu_1=("Bash", {...}))."""
    return {
        "requests": {
            tool_id: {"tool": tool, "arguments": arguments, "createdAt": created_at}
            for tool_id, (tool, arguments) in requests.items()
        }
    }


def make_bot_message(
    content: str,
    platform: Platform = Platform.WHATSAPP,
    chat_id: str = "chat-1",
    user_id: str = "111@c.us",
) -> BotMessage:
    return BotMessage(
        platform=platform, user_id=user_id, chat_id=chat_id, content=content
    )


async def chat(service: BotMessageService, content: str, **kwargs: Any) -> bool:
    """Deliver text through the platform adapter, as the chat SDK would."""
    message = make_bot_message(content, **kwargs)
    adapter = service.manager.get_adapter(message.platform)
    return await adapter.handle_incoming(message.user_id, message.chat_id, content)


# --- Fixtures ---


@pytest.fixture
def clock():
    """Manual clock starting at T0."""
    return ManualClock()


@pytest.fixture
def transport():
    """Fake assistant transport recording every call."""
    return FakeAssistantTransport()


@pytest.fixture
def whatsapp_client():
    return FakeChatClient()


@pytest.fixture
def feishu_client():
    return FakeChatClient()


@pytest.fixture
def chat_clients(whatsapp_client, feishu_client):
    """Fake chat clients keyed by platform, for AdapterManager(clients=...)."""
    return {Platform.WHATSAPP: whatsapp_client, Platform.FEISHU: feishu_client}


@pytest.fixture
def relay_settings():
    """Platform blocks with both platforms enabled."""
    return {
        "whatsapp": {
            "enabled": True,
            "conversation_id": "conv-wa",
            "project_path": "/work/app",
            "authorized_numbers": [],
        },
        "feishu": {
            "enabled": True,
            "conversation_id": "conv-fs",
            "project_path": "/work/app",
            "app_id": "cli_123",
            "app_secret": "secret",
        },
    }


@pytest.fixture
async def service(transport, chat_clients, relay_settings, clock):
    """Initialized BotMessageService over fake chat clients, both platforms enabled."""
    service = BotMessageService(
        transport, manager=AdapterManager(clients=chat_clients), clock=clock
    )
    await service.initialize(RelayConfig(**relay_settings))
    yield service
    await service.shutdown()
