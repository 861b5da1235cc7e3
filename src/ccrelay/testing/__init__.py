"""Testing utilities for ccrelay."""

from .fakes import FakeAssistantTransport, FakeChatClient, FakeConnector, FakeWebSocket

__all__ = [
    "FakeAssistantTransport",
    "FakeChatClient",
    "FakeConnector",
    "FakeWebSocket",
]
