"""
Chat platform adapters.

Components:
    BaseAdapter: shared connection, authorization and callback handling
    WhatsAppAdapter, FeishuAdapter: platform variants
    AdapterManager: initializes enabled platforms and routes traffic
"""

from .base import BaseAdapter
from .feishu import FeishuAdapter
from .manager import (
    ADAPTER_CLASSES,
    AdapterFactory,
    AdapterManager,
    BotMetrics,
    default_adapter_factory,
)
from .whatsapp import WhatsAppAdapter, phone_number_from_jid

__all__ = [
    "ADAPTER_CLASSES",
    "AdapterFactory",
    "AdapterManager",
    "BaseAdapter",
    "BotMetrics",
    "FeishuAdapter",
    "WhatsAppAdapter",
    "default_adapter_factory",
    "phone_number_from_jid",
]
