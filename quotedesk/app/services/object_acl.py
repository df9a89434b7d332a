"""Object access policies and their encoding as blob-store metadata.

The blob backend has no ACL model of its own; the only thing it can keep next
to an object is a flat string-to-string metadata record. A policy is stored
there as a few ``acl-*`` keys, with the ordered rule list packed into a single
JSON field::

    acl-version:    "1"
    acl-owner-id:   "<principal id>"
    acl-visibility: "public" | "private"
    acl-rules:      '[{"groupType": "...", "groupId": "...", "permission": "read"}]'

S3-compatible backends lowercase user-metadata keys, so lookups here are
case-insensitive. Keys this module does not know about are ignored.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Tuple

from quotedesk.app.core.errors import MalformedPolicy, NoPolicy

ACL_PREFIX = "acl-"
KEY_VERSION = "acl-version"
KEY_OWNER = "acl-owner-id"
KEY_VISIBILITY = "acl-visibility"
KEY_RULES = "acl-rules"
POLICY_VERSION = "1"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class Permission(str, enum.Enum):
    READ = "read"
    WRITE = "write"

    def covers(self, requested: "Permission") -> bool:
        if self is Permission.WRITE:
            return True
        return requested is Permission.READ


class GroupType(str, enum.Enum):
    USER = "user"
    EMAIL_DOMAIN = "email_domain"
    SUBSCRIBERS = "subscribers"


_KNOWN_GROUP_TYPES = {g.value for g in GroupType}


@dataclass(frozen=True)
class AccessRule:
    group_type: str
    group_id: str
    permission: Permission


@dataclass(frozen=True)
class ObjectPolicy:
    owner_id: str
    visibility: Visibility
    rules: Tuple[AccessRule, ...] = field(default_factory=tuple)

    @classmethod
    def build(
        cls,
        owner_id: str,
        visibility: Visibility | str,
        rules: Optional[Sequence[AccessRule]] = None,
    ) -> "ObjectPolicy":
        return cls(
            owner_id=str(owner_id),
            visibility=Visibility(visibility),
            rules=tuple(rules or ()),
        )


def _rule_to_json(rule: AccessRule) -> dict[str, str]:
    group_type = rule.group_type.value if isinstance(rule.group_type, GroupType) else str(rule.group_type)
    return {
        "groupType": group_type,
        "groupId": rule.group_id,
        "permission": rule.permission.value,
    }


def encode_policy(policy: ObjectPolicy) -> dict[str, str]:
    return {
        KEY_VERSION: POLICY_VERSION,
        KEY_OWNER: policy.owner_id,
        KEY_VISIBILITY: policy.visibility.value,
        KEY_RULES: json.dumps(
            [_rule_to_json(rule) for rule in policy.rules],
            separators=(",", ":"),
        ),
    }


def _rule_from_json(raw: Any, index: int) -> AccessRule:
    if not isinstance(raw, dict):
        raise MalformedPolicy("ACL rule is not an object", {"rule": str(index)})
    group_type = raw.get("groupType")
    group_id = raw.get("groupId")
    if not isinstance(group_type, str) or not group_type:
        raise MalformedPolicy("ACL rule has no groupType", {"rule": str(index)})
    if not isinstance(group_id, str):
        raise MalformedPolicy("ACL rule has no groupId", {"rule": str(index)})
    try:
        permission = Permission(raw.get("permission"))
    except ValueError:
        raise MalformedPolicy("ACL rule has an unknown permission", {"rule": str(index)}) from None
    # Group types this build does not know stay plain strings and never match.
    if group_type in _KNOWN_GROUP_TYPES:
        group_type = GroupType(group_type)
    return AccessRule(group_type=group_type, group_id=group_id, permission=permission)


def decode_policy(metadata: Optional[Mapping[str, str]]) -> ObjectPolicy:
    """Rebuild the policy stored in ``metadata``.

    Raises :class:`NoPolicy` when the record carries no ``acl-*`` keys at all
    and :class:`MalformedPolicy` when it carries some but they do not form a
    valid policy.
    """
    record = {str(k).lower(): v for k, v in (metadata or {}).items()}
    if not any(key.startswith(ACL_PREFIX) for key in record):
        raise NoPolicy("object has no ACL metadata")

    owner_id = record.get(KEY_OWNER)
    if not owner_id:
        raise MalformedPolicy("ACL metadata is missing the owner")

    try:
        visibility = Visibility(str(record.get(KEY_VISIBILITY, "")).lower())
    except ValueError:
        raise MalformedPolicy(
            "ACL metadata has an invalid visibility",
            {"visibility": str(record.get(KEY_VISIBILITY))},
        ) from None

    raw_rules = record.get(KEY_RULES)
    rules: list[AccessRule] = []
    if raw_rules:
        try:
            parsed = json.loads(raw_rules)
        except (TypeError, ValueError) as exc:
            raise MalformedPolicy("ACL rules are not valid JSON") from exc
        if not isinstance(parsed, list):
            raise MalformedPolicy("ACL rules are not a list")
        rules = [_rule_from_json(item, i) for i, item in enumerate(parsed)]

    return ObjectPolicy(owner_id=owner_id, visibility=visibility, rules=tuple(rules))
