"""Feishu (Lark) adapter."""

from __future__ import annotations

from typing import Any

from ccrelay.core.exceptions import AdapterConnectionError
from ccrelay.core.messages import Platform

from .base import BaseAdapter


class FeishuAdapter(BaseAdapter):
    """
    Feishu adapter. Authorizes by user id, with an additional group allow-list.

    When both allow-lists are empty everyone is authorized. A message from an
    allowed group is accepted even if the sender is not on the user list.
    """

    platform = Platform.FEISHU

    def __init__(self, client=None):
        super().__init__(client)
        self._authorized_users: set[str] = set()
        self._authorized_groups: set[str] = set()

    def configure(self, config: dict[str, Any]) -> None:
        if not config.get("app_id") or not config.get("app_secret"):
            raise AdapterConnectionError(
                self.platform.value, "app_id and app_secret are required"
            )
        self._authorized_users = set(config.get("authorized_users") or [])
        self._authorized_groups = set(config.get("authorized_groups") or [])

    def verify_user(self, user_id: str) -> bool:
        if not self._authorized_users and not self._authorized_groups:
            return True
        return user_id in self._authorized_users

    def verify_group(self, group_id: str) -> bool:
        if not self._authorized_groups:
            return True
        return group_id in self._authorized_groups

    def is_authorized(self, user_id: str, chat_id: str) -> bool:
        if self.verify_user(user_id):
            return True
        return bool(self._authorized_groups) and chat_id in self._authorized_groups

    def add_authorized_user(self, user_id: str) -> None:
        self._authorized_users.add(user_id)

    def remove_authorized_user(self, user_id: str) -> None:
        self._authorized_users.discard(user_id)

    def get_authorized_users(self) -> list[str]:
        return sorted(self._authorized_users)

    def add_authorized_group(self, group_id: str) -> None:
        self._authorized_groups.add(group_id)

    def remove_authorized_group(self, group_id: str) -> None:
        self._authorized_groups.discard(group_id)

    def get_authorized_groups(self) -> list[str]:
        return sorted(self._authorized_groups)
