"""Port interface for group-membership checks used by ACL rules."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IMembershipChecker(Protocol):
    """Answers whether a principal belongs to ``(group_type, group_id)``."""

    def is_member(self, group_type: str, group_id: str, principal_id: str) -> bool:
        """Return True if ``principal_id`` is a member of the group."""
