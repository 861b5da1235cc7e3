"""Runtime services shared by the relay components."""

from .permissions import (
    DEFAULT_CLEANUP_INTERVAL_MS,
    DEFAULT_PERMISSION_TIMEOUT_MS,
    PendingPermission,
    PermissionManager,
)

__all__ = [
    "DEFAULT_CLEANUP_INTERVAL_MS",
    "DEFAULT_PERMISSION_TIMEOUT_MS",
    "PendingPermission",
    "PermissionManager",
]
