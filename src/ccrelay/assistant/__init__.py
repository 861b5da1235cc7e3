"""Assistant-side integration."""

from .integration import ClaudeIntegration, format_permission_notification

__all__ = ["ClaudeIntegration", "format_permission_notification"]
