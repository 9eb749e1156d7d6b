"""
Administration of user groups, memberships and access rules.

Every mutation that can change somebody's effective permissions records the
affected users; `commit()` persists the change and only then invalidates
their cached maps, so a resolution racing the commit cannot re-cache the old
rules.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from cairn.exceptions.handlers import NotFoundError, ValidationError
from cairn.security.acl.cache import ResolutionCache
from cairn.security.acl.models import AccessRuleRecord, UserGroup
from cairn.security.acl.registry import ResourceRegistry
from cairn.security.acl.rules import WILDCARD
from cairn.security.acl.store import SQLRuleStore
from cairn.security.auth.models import AuthUser

logger = logging.getLogger(__name__)

_FLAG_FIELDS = ("create_access", "read_access", "update_access", "delete_access")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "group"


class AccessManagementService:
    def __init__(self, session: Session, registry: ResourceRegistry, cache: ResolutionCache):
        self.session = session
        self.registry = registry
        self.cache = cache
        self._pending: Set[int] = set()

    # -- invalidation -----------------------------------------------------

    def _member_ids(self, group_id: int) -> List[int]:
        return SQLRuleStore(self.session).member_ids(group_id)

    def _mark_affected(self, user_ids: Iterable[int]) -> None:
        self._pending.update(int(u) for u in user_ids)

    def commit(self) -> List[int]:
        """Commit the session, then drop the cached maps of affected users."""
        self.session.commit()
        affected = sorted(self._pending)
        self._pending.clear()
        for user_id in affected:
            self.cache.invalidate_user(user_id)
        if affected:
            logger.info("Invalidated cached permissions of user(s) %s", affected)
        return affected

    def rollback(self) -> None:
        self.session.rollback()
        self._pending.clear()

    def _mark_rule_owner(self, rule: AccessRuleRecord) -> None:
        if rule.user_id is not None:
            self._mark_affected([rule.user_id])
        elif rule.user_group_id is not None:
            self._mark_affected(self._member_ids(rule.user_group_id))

    # -- groups -----------------------------------------------------------

    def list_groups(self, tenant_id: str) -> List[UserGroup]:
        return (
            self.session.query(UserGroup)
            .filter(UserGroup.tenant_id == tenant_id)
            .order_by(UserGroup.priority.asc(), UserGroup.id.asc())
            .all()
        )

    def _check_slug_free(
        self, tenant_id: str, slug: str, *, exclude_id: Optional[int] = None
    ) -> None:
        query = self.session.query(UserGroup).filter(
            UserGroup.tenant_id == tenant_id, UserGroup.slug == slug
        )
        if exclude_id is not None:
            query = query.filter(UserGroup.id != exclude_id)
        if query.first():
            raise ValidationError(f"User group slug already in use: {slug}", field="slug")

    def get_group(self, tenant_id: str, group_id: int) -> UserGroup:
        group = self.session.get(UserGroup, group_id)
        if not group or group.tenant_id != tenant_id:
            raise NotFoundError("User group", group_id)
        return group

    def create_group(
        self,
        tenant_id: str,
        *,
        name: str,
        slug: Optional[str] = None,
        description: Optional[str] = None,
        super_group: bool = False,
        priority: int = 0,
    ) -> UserGroup:
        slug = slugify(slug or name)
        self._check_slug_free(tenant_id, slug)
        group = UserGroup(
            tenant_id=tenant_id,
            name=name,
            slug=slug,
            description=description,
            super_group=bool(super_group),
            priority=int(priority),
        )
        self.session.add(group)
        self.session.flush()
        logger.info("Created user group %s (%s) in tenant %s", group.id, slug, tenant_id)
        return group

    def update_group(self, tenant_id: str, group_id: int, changes: Dict[str, Any]) -> UserGroup:
        group = self.get_group(tenant_id, group_id)
        affects_permissions = False
        for key in ("name", "description", "super_group", "priority", "slug"):
            if key not in changes or changes[key] is None:
                continue
            value = changes[key]
            if key == "slug":
                value = slugify(value)
                self._check_slug_free(tenant_id, value, exclude_id=group.id)
            if key in ("super_group", "priority") and getattr(group, key) != value:
                affects_permissions = True
            setattr(group, key, value)
        self.session.flush()
        if affects_permissions:
            self._mark_affected(self._member_ids(group.id))
        return group

    def delete_group(self, tenant_id: str, group_id: int) -> None:
        group = self.get_group(tenant_id, group_id)
        members = self._member_ids(group.id)
        self.session.delete(group)
        self.session.flush()
        self._mark_affected(members)
        logger.info("Deleted user group %s in tenant %s", group_id, tenant_id)

    # -- membership -------------------------------------------------------

    def _get_user(self, tenant_id: str, user_id: int) -> AuthUser:
        user = self.session.get(AuthUser, user_id)
        if not user or user.tenant_id != tenant_id:
            raise NotFoundError("User", user_id)
        return user

    def add_member(self, tenant_id: str, group_id: int, user_id: int) -> None:
        group = self.get_group(tenant_id, group_id)
        user = self._get_user(tenant_id, user_id)
        if user not in group.users:
            group.users.append(user)
            self.session.flush()
        self._mark_affected([user.id])

    def remove_member(self, tenant_id: str, group_id: int, user_id: int) -> None:
        group = self.get_group(tenant_id, group_id)
        user = self._get_user(tenant_id, user_id)
        if user in group.users:
            group.users.remove(user)
            self.session.flush()
        self._mark_affected([user.id])

    # -- rules ------------------------------------------------------------

    def _check_selector(self, controller: str, package: Optional[str]) -> None:
        if controller == WILDCARD:
            if not package:
                raise ValidationError("Wildcard rules require a package", field="package")
            if not self.registry.has_package(package):
                raise ValidationError(f"Unknown package: {package}", field="package")
            return
        owner = self.registry.resolve(controller)
        if owner is None:
            raise ValidationError(f"Unknown controller: {controller}", field="controller")
        if package and owner != package:
            raise ValidationError(
                f"Controller {controller} belongs to package {owner}", field="package"
            )

    def list_rules(
        self,
        tenant_id: str,
        *,
        user_group_id: Optional[int] = None,
        user_id: Optional[int] = None,
    ) -> List[AccessRuleRecord]:
        query = self.session.query(AccessRuleRecord).filter(
            AccessRuleRecord.tenant_id == tenant_id
        )
        if user_group_id is not None:
            query = query.filter(AccessRuleRecord.user_group_id == user_group_id)
        if user_id is not None:
            query = query.filter(AccessRuleRecord.user_id == user_id)
        return query.order_by(AccessRuleRecord.id.asc()).all()

    def get_rule(self, tenant_id: str, rule_id: int) -> AccessRuleRecord:
        rule = self.session.get(AccessRuleRecord, rule_id)
        if not rule or rule.tenant_id != tenant_id:
            raise NotFoundError("Access rule", rule_id)
        return rule

    def create_rule(
        self,
        tenant_id: str,
        *,
        controller: str,
        package: Optional[str] = None,
        user_group_id: Optional[int] = None,
        user_id: Optional[int] = None,
        create_access: bool,
        read_access: bool,
        update_access: bool,
        delete_access: bool,
    ) -> AccessRuleRecord:
        if (user_group_id is None) == (user_id is None):
            raise ValidationError(
                "A rule belongs to exactly one user group or one user", field="user_group_id"
            )
        if user_group_id is not None:
            self.get_group(tenant_id, user_group_id)
        if user_id is not None:
            self._get_user(tenant_id, user_id)

        if package is None and controller != WILDCARD:
            package = self.registry.resolve(controller)
        self._check_selector(controller, package)

        rule = AccessRuleRecord(
            tenant_id=tenant_id,
            user_group_id=user_group_id,
            user_id=user_id,
            controller=controller,
            package=package,
            create_access=bool(create_access),
            read_access=bool(read_access),
            update_access=bool(update_access),
            delete_access=bool(delete_access),
        )
        self.session.add(rule)
        self.session.flush()
        self._mark_rule_owner(rule)
        return rule

    def update_rule(self, tenant_id: str, rule_id: int, changes: Dict[str, Any]) -> AccessRuleRecord:
        rule = self.get_rule(tenant_id, rule_id)
        controller = changes.get("controller") or rule.controller
        package = changes.get("package") if changes.get("package") is not None else rule.package
        if "controller" in changes and changes["controller"] and "package" not in changes:
            package = self.registry.resolve(controller) if controller != WILDCARD else rule.package
        self._check_selector(controller, package)

        rule.controller = controller
        rule.package = package
        for flag in _FLAG_FIELDS:
            if changes.get(flag) is not None:
                setattr(rule, flag, bool(changes[flag]))
        self.session.flush()
        self._mark_rule_owner(rule)
        return rule

    def delete_rule(self, tenant_id: str, rule_id: int) -> None:
        rule = self.get_rule(tenant_id, rule_id)
        self._mark_rule_owner(rule)
        self.session.delete(rule)
        self.session.flush()
