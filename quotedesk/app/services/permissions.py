from __future__ import annotations

from typing import Optional

from quotedesk.app.ports.membership import IMembershipChecker
from quotedesk.app.services.object_acl import ObjectPolicy, Permission, Visibility


def _group_key(group_type) -> str:
    return getattr(group_type, "value", group_type)


def check_access(
    policy: ObjectPolicy,
    requester_id: Optional[str],
    requested_permission: Permission,
    membership: IMembershipChecker,
) -> bool:
    """Decide whether ``requester_id`` may exercise ``requested_permission``.

    Owner first, then public read, then the rules in order. The first rule
    whose group contains the requester decides on its own: later rules are
    never consulted for that requester, even if they would grant more.
    ``requester_id`` is None for anonymous callers, who can only ever read
    public objects.
    """
    if requester_id is not None and requester_id == policy.owner_id:
        return True

    if policy.visibility is Visibility.PUBLIC and requested_permission is Permission.READ:
        return True

    if requester_id is None:
        return False

    for rule in policy.rules:
        if membership.is_member(_group_key(rule.group_type), rule.group_id, requester_id):
            return rule.permission.covers(requested_permission)

    return False
