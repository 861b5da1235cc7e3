"""Relay settings model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ccrelay.core.messages import Platform
from ccrelay.runtime.permissions import (
    DEFAULT_CLEANUP_INTERVAL_MS,
    DEFAULT_PERMISSION_TIMEOUT_MS,
)


class PlatformSettings(BaseModel):
    """Settings shared by every chat platform block."""

    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    conversation_id: str = ""
    project_path: str = ""
    chat_id: str = "default"


class WhatsAppSettings(PlatformSettings):
    session_path: str = "./.wwebjs_auth"
    authorized_numbers: list[str] = Field(default_factory=list)


class FeishuSettings(PlatformSettings):
    app_id: str = ""
    app_secret: str = ""
    encrypt_key: str | None = None
    verification_token: str | None = None
    authorized_users: list[str] = Field(default_factory=list)
    authorized_groups: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_credentials(self) -> FeishuSettings:
        if self.enabled and (not self.app_id or not self.app_secret):
            raise ValueError("feishu.app_id and feishu.app_secret are required when enabled")
        return self


class MobileSettings(BaseModel):
    url: str = "ws://localhost:8080"
    password: str = ""
    reconnect_interval: float = 3.0
    max_reconnect_attempts: int = 10


class RelayConfig(BaseSettings):
    """
    Relay configuration.

    Values come from keyword arguments (the YAML file when loaded through
    load_relay_config) and CCRELAY_* environment variables, e.g.
    CCRELAY_FEISHU__APP_SECRET or CCRELAY_PERMISSION_TIMEOUT_MS.
    """

    model_config = SettingsConfigDict(
        env_prefix="CCRELAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    whatsapp: WhatsAppSettings = Field(default_factory=WhatsAppSettings)
    feishu: FeishuSettings = Field(default_factory=FeishuSettings)
    mobile: MobileSettings = Field(default_factory=MobileSettings)

    permission_timeout_ms: int = DEFAULT_PERMISSION_TIMEOUT_MS
    permission_cleanup_interval_ms: int = DEFAULT_CLEANUP_INTERVAL_MS
    command_prefix: str = "/"

    def platform(self, platform: Platform) -> PlatformSettings:
        match platform:
            case Platform.WHATSAPP:
                return self.whatsapp
            case Platform.FEISHU:
                return self.feishu
        raise ValueError(f"Unknown platform: {platform}")

    def platform_blocks(self) -> dict[str, dict[str, Any]]:
        """Per-platform config dicts as consumed by AdapterManager.initialize()."""
        return {p.value: self.platform(p).model_dump() for p in Platform}

    def enabled_platforms(self) -> list[Platform]:
        return [p for p in Platform if self.platform(p).enabled]
