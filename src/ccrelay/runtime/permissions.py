"""Permission lifecycle with expiry. Async, owns its cleanup task."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Literal

from ccrelay.core.exceptions import PermissionExpiredOrMissingError
from ccrelay.core.messages import PermissionDecision, PermissionStatus, now_ms
from ccrelay.core.protocols import AssistantTransport

logger = logging.getLogger(__name__)

DEFAULT_PERMISSION_TIMEOUT_MS = 5 * 60 * 1000
DEFAULT_CLEANUP_INTERVAL_MS = 60 * 1000

Decision = Literal["approve", "deny"]


@dataclass
class PendingPermission:
    """A permission request awaiting a user decision."""

    id: str
    conversation_id: str
    tool_name: str
    input: dict[str, Any]
    created_at: int
    expires_at: int
    status: PermissionStatus = "pending"
    decision: PermissionDecision | None = None
    completed_at: int | None = None
    reason: str | None = None

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


class PermissionManager:
    """
    Tracks pending permissions and forwards decisions to the assistant.

    Entries become inert once the clock passes expires_at: responding to
    them is a logged no-op, and the periodic sweep removes them.

    Example:
        manager = PermissionManager(transport)
        manager.track("toolu_1", "conv-1", "Bash", {"command": "ls"})
        await manager.start()
        resolved = await manager.respond("toolu_1", "approve")
        await manager.stop()
    """

    def __init__(
        self,
        transport: AssistantTransport,
        timeout_ms: int = DEFAULT_PERMISSION_TIMEOUT_MS,
        cleanup_interval_ms: int = DEFAULT_CLEANUP_INTERVAL_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.transport = transport
        self.timeout_ms = timeout_ms
        self.cleanup_interval_ms = cleanup_interval_ms
        self._clock = clock
        self._pending: dict[str, PendingPermission] = {}
        self._cleanup_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def track(
        self,
        permission_id: str,
        conversation_id: str,
        tool_name: str,
        input: dict[str, Any],
        created_at: int | None = None,
    ) -> PendingPermission:
        """
        Start tracking a permission request.

        Re-tracking an id that is already pending keeps the original entry.
        """
        existing = self._pending.get(permission_id)
        if existing is not None:
            return existing

        created = created_at if created_at is not None else self._clock()
        entry = PendingPermission(
            id=permission_id,
            conversation_id=conversation_id,
            tool_name=tool_name,
            input=input,
            created_at=created,
            expires_at=created + self.timeout_ms,
        )
        self._pending[permission_id] = entry
        logger.info(
            f"Tracking permission {permission_id} for {tool_name} "
            f"(conversation {conversation_id})"
        )
        return entry

    async def respond(
        self,
        permission_id: str,
        decision: Decision,
        *,
        raise_on_missing: bool = False,
    ) -> PendingPermission | None:
        """
        Resolve a pending permission and forward the choice.

        Returns:
            The resolved entry, or None when the id is unknown or expired
            (no transport call is made in that case)

        Raises:
            PermissionExpiredOrMissingError: only with raise_on_missing=True
        """
        now = self._clock()
        entry = self._pending.get(permission_id)

        if entry is None or entry.is_expired(now):
            if entry is not None:
                del self._pending[permission_id]
            logger.warning(f"Permission {permission_id} not found or expired")
            if raise_on_missing:
                raise PermissionExpiredOrMissingError(permission_id)
            return None

        approved = decision == "approve"
        resolved = replace(
            entry,
            status="approved" if approved else "denied",
            decision="approved" if approved else "denied",
            completed_at=now,
        )
        del self._pending[permission_id]

        result = await self.transport.respond_permission(
            resolved.conversation_id, "yes" if approved else "no"
        )
        if not (result or {}).get("success", True):
            logger.warning(
                f"Assistant rejected permission response for {permission_id}: {result}"
            )

        logger.info(f"Permission {permission_id} {resolved.status}")
        return resolved

    def list(self) -> list[PendingPermission]:
        """Non-expired pending entries, oldest first."""
        now = self._clock()
        return sorted(
            (p for p in self._pending.values() if not p.is_expired(now)),
            key=lambda p: p.created_at,
        )

    def get(self, permission_id: str) -> PendingPermission | None:
        entry = self._pending.get(permission_id)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def clear(self) -> None:
        self._pending.clear()

    def sweep(self) -> int:
        """
        Delete expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [pid for pid, p in self._pending.items() if p.is_expired(now)]
        for pid in expired:
            del self._pending[pid]
            logger.warning(f"Permission {pid} expired")
        return len(expired)

    async def start(self) -> None:
        """Start the periodic sweep."""
        if self.is_running:
            logger.warning("Permission cleanup already running")
            return

        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(), name="permission-cleanup"
        )
        logger.debug(
            f"Permission cleanup started (every {self.cleanup_interval_ms}ms)"
        )

    async def stop(self) -> None:
        """Cancel the periodic sweep."""
        if self._cleanup_task is None:
            return

        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None
        logger.debug("Permission cleanup stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_ms / 1000)
            removed = self.sweep()
            if removed:
                logger.info(f"Removed {removed} expired permission(s)")
