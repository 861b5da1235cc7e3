"""
Relay configuration utilities.

Usage:
    from ccrelay.config import load_relay_config

    config = load_relay_config()
    print(config.enabled_platforms())
"""

from ccrelay.config.loader import get_config_path, load_relay_config
from ccrelay.config.settings import (
    FeishuSettings,
    MobileSettings,
    PlatformSettings,
    RelayConfig,
    WhatsAppSettings,
)

__all__ = [
    "FeishuSettings",
    "MobileSettings",
    "PlatformSettings",
    "RelayConfig",
    "WhatsAppSettings",
    "get_config_path",
    "load_relay_config",
]
