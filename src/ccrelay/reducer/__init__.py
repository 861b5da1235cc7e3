"""Raw event reducer."""

from .reducer import DEFAULT_PERMISSION_ACTIONS, allocate_id, reduce

__all__ = ["DEFAULT_PERMISSION_ACTIONS", "allocate_id", "reduce"]
