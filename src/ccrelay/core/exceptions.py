"""Relay error taxonomy."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all ccrelay errors."""


class RelayConnectionError(RelayError):
    """Transport open or authentication failure."""


class AdapterConnectionError(RelayConnectionError):
    """A platform adapter failed to connect."""

    def __init__(self, platform: str, reason: str):
        self.platform = platform
        self.reason = reason
        super().__init__(f"Failed to connect {platform} adapter: {reason}")


class ReconnectExhaustedError(RelayConnectionError):
    """Reconnection attempts ran out; a manual reconnect is required."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"连接失败，请手动重连 (after {attempts} attempts)")


class AdapterNotConnectedError(RelayError):
    """Send attempted on an absent or disconnected platform."""

    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f"No connected adapter for platform '{platform}'")


class PermissionExpiredOrMissingError(RelayError):
    """Response to a permission id that is unknown or past its expiry."""

    def __init__(self, permission_id: str):
        self.permission_id = permission_id
        super().__init__(f"Permission {permission_id} not found or expired")


class ParseError(RelayError):
    """Malformed inbound frame or raw record."""


class HandlerError(RelayError):
    """Exception raised inside a registered message handler."""

    def __init__(self, handler_name: str, original: BaseException):
        self.handler_name = handler_name
        self.original = original
        super().__init__(f"Handler {handler_name} failed: {original}")


class UnknownCommandError(RelayError):
    """Command name not found in the registry nor among service commands."""

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown command: /{command}")


class NoActiveConversationError(RelayError):
    """Operation requires a conversation but none is selected."""

    def __init__(self) -> None:
        super().__init__("No active conversation")


class ConfigError(RelayError):
    """Invalid or incomplete configuration."""
