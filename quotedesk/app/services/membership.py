"""Group membership resolution for ACL rules.

Each ``group_type`` maps to one resolver. Group types without a resolver
never match, so a policy written by a newer build fails closed here.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from quotedesk.app import models
from quotedesk.app.services.object_acl import GroupType

logger = logging.getLogger(__name__)

GroupResolver = Callable[[str, str], bool]


def user_group(group_id: str, principal_id: str) -> bool:
    return group_id == principal_id


class EmailDomainGroup:
    """Members are users whose e-mail address ends in ``@<group_id>``."""

    def __init__(self, session: Session):
        self.session = session

    def __call__(self, group_id: str, principal_id: str) -> bool:
        domain = group_id.strip().lstrip("@").lower()
        if not domain:
            return False
        email = (
            self.session.query(models.User.email)
            .filter(models.User.id == principal_id)
            .scalar()
        )
        if not email:
            return False
        return email.strip().lower().endswith("@" + domain)


class SubscriberListGroup:
    """Members are listed explicitly in ``access_group_members``."""

    def __init__(self, session: Session):
        self.session = session

    def __call__(self, group_id: str, principal_id: str) -> bool:
        hit = (
            self.session.query(models.AccessGroupMember.id)
            .filter(models.AccessGroupMember.group_id == group_id)
            .filter(models.AccessGroupMember.user_id == principal_id)
            .first()
        )
        return hit is not None


class MembershipRegistry:
    def __init__(self, resolvers: Optional[Dict[str, GroupResolver]] = None):
        self._resolvers: Dict[str, GroupResolver] = dict(resolvers or {})

    def register(self, group_type: str, resolver: GroupResolver) -> None:
        self._resolvers[getattr(group_type, "value", group_type)] = resolver

    def is_member(self, group_type: str, group_id: str, principal_id: str) -> bool:
        resolver = self._resolvers.get(group_type)
        if resolver is None:
            logger.warning("No membership resolver for group type %s", group_type)
            return False
        return bool(resolver(group_id, principal_id))


def build_membership_registry(session: Session) -> MembershipRegistry:
    registry = MembershipRegistry()
    registry.register(GroupType.USER, user_group)
    registry.register(GroupType.EMAIL_DOMAIN, EmailDomainGroup(session))
    registry.register(GroupType.SUBSCRIBERS, SubscriberListGroup(session))
    return registry
