"""
Reducer state and raw stream records.

ReducerState is owned by exactly one ClaudeIntegration and mutated only
through ccrelay.reducer.reduce().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .messages import (
    Message,
    PermissionDecision,
    PermissionMessage,
    PermissionStatus,
    now_ms,
)


class RawMessage(BaseModel):
    """Unprocessed record from the assistant stream (possibly duplicated)."""

    model_config = ConfigDict(extra="allow")

    id: str
    role: Literal["user", "assistant", "system"]
    timestamp: int = Field(default_factory=now_ms)
    content: Any = Field(default_factory=list)
    type: (
        Literal["text", "tool_call", "tool_result", "permission_request", "event"]
        | None
    ) = None
    local_id: str | None = None

    def blocks(self) -> list[dict[str, Any]]:
        """Content blocks as dicts; scalar content yields no blocks."""
        if isinstance(self.content, list):
            return [b for b in self.content if isinstance(b, dict)]
        return []


class PermissionRequestRecord(BaseModel):
    """A single pending request as reported by the assistant's agent state."""

    model_config = ConfigDict(extra="allow")

    tool: str = "unknown"
    arguments: dict[str, Any] = Field(default_factory=dict)
    created_at: int | None = Field(default=None, alias="createdAt")


class AgentState(BaseModel):
    """Assistant-side state snapshot carrying outstanding permission requests."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    requests: dict[str, PermissionRequestRecord] = Field(default_factory=dict)


@dataclass
class PermissionData:
    """Reducer-local view of a permission request."""

    tool_name: str
    input: dict[str, Any]
    created_at: int
    status: PermissionStatus = "pending"
    completed_at: int | None = None
    reason: str | None = None
    decision: PermissionDecision | None = None


@dataclass
class ReducerMetrics:
    messages_processed: int = 0
    errors: int = 0
    last_update: int = field(default_factory=now_ms)


@dataclass
class ReducerState:
    """
    Dedup indices, id maps and the authoritative message map.

    Invariants:
    - Every raw message is processed at most once (membership is checked in
      local_ids/message_ids before any mutation).
    - A tool-use id maps to exactly one message for its lifetime.
    """

    local_ids: dict[str, str] = field(default_factory=dict)
    message_ids: dict[str, str] = field(default_factory=dict)
    tool_id_to_message_id: dict[str, str] = field(default_factory=dict)
    pending_permissions: dict[str, PermissionData] = field(default_factory=dict)
    sidechains: dict[str, list[Message]] = field(default_factory=dict)
    messages: dict[str, Message] = field(default_factory=dict)
    current_conversation: str | None = None
    metrics: ReducerMetrics = field(default_factory=ReducerMetrics)


@dataclass
class ReducerResult:
    """Outcome of one reduce() call."""

    new_messages: list[Message]
    permissions: list[PermissionMessage]
    has_changes: bool
    metrics: ReducerMetrics


def create_reducer_state() -> ReducerState:
    """Create an empty reducer state."""
    return ReducerState()
