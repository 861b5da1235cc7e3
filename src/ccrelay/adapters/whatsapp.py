"""WhatsApp adapter."""

from __future__ import annotations

from typing import Any

from ccrelay.core.messages import Platform

from .base import BaseAdapter

JID_SUFFIXES = ("@c.us", "@s.whatsapp.net")


def phone_number_from_jid(user_id: str) -> str:
    """Strip the WhatsApp JID suffix from a sender id."""
    for suffix in JID_SUFFIXES:
        user_id = user_id.replace(suffix, "")
    return user_id


class WhatsAppAdapter(BaseAdapter):
    """
    WhatsApp adapter. Authorizes senders by phone number.

    An empty allow-list authorizes everyone.
    """

    platform = Platform.WHATSAPP

    def __init__(self, client=None):
        super().__init__(client)
        self._authorized_numbers: set[str] = set()

    def configure(self, config: dict[str, Any]) -> None:
        self._authorized_numbers = set(config.get("authorized_numbers") or [])
        config.setdefault("session_path", "./.wwebjs_auth")

    def verify_user(self, user_id: str) -> bool:
        if not self._authorized_numbers:
            return True
        return phone_number_from_jid(user_id) in self._authorized_numbers

    def add_authorized_number(self, phone_number: str) -> None:
        self._authorized_numbers.add(phone_number)

    def remove_authorized_number(self, phone_number: str) -> None:
        self._authorized_numbers.discard(phone_number)

    def get_authorized_numbers(self) -> list[str]:
        return sorted(self._authorized_numbers)
