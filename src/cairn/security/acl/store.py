"""
Rule store: supplies the ordered groups and personal rules of a user.

Ordering contract of `SQLRuleStore`:
- groups: ``priority`` ascending, then ``id`` ascending (creation order)
- rules (per group and personal): ``id`` ascending (creation order)

Under the default last-wins policy a later group overrides an earlier one,
so raising a group's priority makes its rules win conflicts.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Sequence, runtime_checkable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cairn.exceptions.handlers import RuleStoreUnavailableError
from cairn.security.acl.models import AccessRuleRecord, UserGroup, user_group_members
from cairn.security.acl.rules import AccessRule, Group, Subject

logger = logging.getLogger(__name__)


@runtime_checkable
class RuleStore(Protocol):
    def groups_of(self, user: Subject) -> Sequence[Group]:
        """Groups of `user` in merge order, each carrying its rules."""

    def rules_of(self, user: Subject) -> Sequence[AccessRule]:
        """Personal rules of `user` in merge order."""


def rule_from_record(record: AccessRuleRecord) -> AccessRule:
    # Flags are passed through untouched so AccessRule.validate() sees bad rows.
    return AccessRule(
        id=record.id,
        resource=record.controller,
        package=record.package,
        create_access=record.create_access,
        read_access=record.read_access,
        update_access=record.update_access,
        delete_access=record.delete_access,
    )


class SQLRuleStore:
    def __init__(self, session: Session):
        self.session = session

    def groups_of(self, user: Subject) -> List[Group]:
        try:
            query = (
                self.session.query(UserGroup)
                .join(user_group_members, user_group_members.c.user_group_id == UserGroup.id)
                .filter(user_group_members.c.user_id == user.id)
            )
            if user.tenant_id is not None:
                query = query.filter(UserGroup.tenant_id == user.tenant_id)
            rows = query.order_by(UserGroup.priority.asc(), UserGroup.id.asc()).all()
            return [
                Group(
                    id=row.id,
                    name=row.name,
                    is_super=bool(row.super_group),
                    rules=tuple(rule_from_record(r) for r in row.access_rules),
                )
                for row in rows
            ]
        except SQLAlchemyError as exc:
            logger.error("Failed to load groups of user %s: %s", user.id, exc)
            raise RuleStoreUnavailableError(
                "Failed to load user groups", user_id=user.id
            ) from exc

    def rules_of(self, user: Subject) -> List[AccessRule]:
        try:
            query = self.session.query(AccessRuleRecord).filter(
                AccessRuleRecord.user_id == user.id
            )
            if user.tenant_id is not None:
                query = query.filter(AccessRuleRecord.tenant_id == user.tenant_id)
            return [rule_from_record(r) for r in query.order_by(AccessRuleRecord.id.asc()).all()]
        except SQLAlchemyError as exc:
            logger.error("Failed to load access rules of user %s: %s", user.id, exc)
            raise RuleStoreUnavailableError(
                "Failed to load user access rules", user_id=user.id
            ) from exc

    def member_ids(self, group_id: int) -> List[int]:
        rows = (
            self.session.query(user_group_members.c.user_id)
            .filter(user_group_members.c.user_group_id == group_id)
            .all()
        )
        return [int(r[0]) for r in rows]
