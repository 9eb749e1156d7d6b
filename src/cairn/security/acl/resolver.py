"""
Permission resolution: merge group and personal access rules into an
effective permission map.

Rules are applied as an ordered sequence of overlays, not as a union:

1. groups in the order the rule store supplies them; a super group first
   grants every action on every registered resource, then its own rules apply
2. the user's personal rules, after every group

A rule flag set to true adds the action to each selected resource, false
removes it. A later rule therefore revokes what an earlier rule (or a super
group) granted, and re-grants what an earlier rule revoked. Personal rules
always have the last word.

With ``ConflictPolicy.most_restrictive`` a revoke from any group beats grants
from every other group regardless of order; personal rules still overlay the
result.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, Union

from cairn.exceptions.handlers import (
    CMSException,
    InvalidRuleError,
    RuleStoreUnavailableError,
    ValidationError,
)
from cairn.security.acl.actions import ALL_ACTIONS, Action
from cairn.security.acl.permission_map import EffectivePermissionMap
from cairn.security.acl.registry import ResourceRegistry
from cairn.security.acl.rules import AccessRule, Group, Subject
from cairn.security.acl.store import RuleStore

logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    last_wins = "last-wins"
    most_restrictive = "most-restrictive"


def parse_conflict_policy(value: Union[str, ConflictPolicy]) -> ConflictPolicy:
    try:
        return ConflictPolicy(value)
    except ValueError:
        raise ValidationError(
            f"Unknown conflict policy: {value}", field="ACL_CONFLICT_POLICY"
        ) from None


class _RuleMerger:
    def __init__(self, registry: ResourceRegistry, *, strict_packages: bool) -> None:
        self.registry = registry
        self.strict_packages = strict_packages
        self._expansions: Dict[str, Tuple[str, ...]] = {}
        self._all: Optional[Tuple[str, ...]] = None

    def _registry_call(self, name: str, *args: Any) -> Any:
        try:
            return getattr(self.registry, name)(*args)
        except CMSException:
            raise
        except Exception as exc:
            logger.error("Resource registry call %s%r failed: %s", name, args, exc)
            raise RuleStoreUnavailableError(
                f"Resource registry call failed: {name}", source="resource_registry"
            ) from exc

    def all_resources(self) -> Tuple[str, ...]:
        if self._all is None:
            self._all = tuple(self._registry_call("all_resources"))
        return self._all

    def expand(self, rule: AccessRule) -> Tuple[str, ...]:
        if not rule.is_wildcard:
            return (rule.resource,)

        package = str(rule.package)
        cached = self._expansions.get(package)
        if cached is not None:
            return cached

        resources = tuple(self._registry_call("resources_of", package))
        if not resources and not self._registry_call("has_package", package):
            if self.strict_packages:
                raise InvalidRuleError(
                    f"Wildcard rule references unknown package: {package}",
                    rule_id=rule.id,
                    package=package,
                )
            logger.warning(
                "Wildcard rule %s references unknown package %s; it selects nothing",
                rule.id,
                package,
            )
        self._expansions[package] = resources
        return resources

    def apply(
        self,
        entries: Dict[str, Set[Action]],
        rule: AccessRule,
        revoked: Optional[Set[Tuple[str, Action]]] = None,
    ) -> None:
        rule.validate()
        for resource in self.expand(rule):
            permitted = entries.setdefault(resource, set())
            for action, granted in rule.flags():
                if granted:
                    permitted.add(action)
                else:
                    permitted.discard(action)
                    if revoked is not None:
                        revoked.add((resource, action))


def merge_rules(
    groups: Sequence[Group],
    user_rules: Sequence[AccessRule],
    registry: ResourceRegistry,
    *,
    conflict_policy: ConflictPolicy = ConflictPolicy.last_wins,
    strict_packages: bool = False,
) -> EffectivePermissionMap:
    merger = _RuleMerger(registry, strict_packages=strict_packages)
    entries: Dict[str, Set[Action]] = {}
    group_revokes: Set[Tuple[str, Action]] = set()

    for group in groups:
        if group.is_super:
            for resource in merger.all_resources():
                entries[resource] = set(ALL_ACTIONS)
        for rule in group.rules:
            merger.apply(entries, rule, revoked=group_revokes)

    if conflict_policy == ConflictPolicy.most_restrictive:
        for resource, action in group_revokes:
            entries[resource].discard(action)

    for rule in user_rules:
        merger.apply(entries, rule)

    return EffectivePermissionMap(entries)


class PermissionResolver:
    def __init__(
        self,
        rule_store: RuleStore,
        registry: ResourceRegistry,
        *,
        conflict_policy: Union[str, ConflictPolicy] = ConflictPolicy.last_wins,
        strict_packages: bool = False,
    ) -> None:
        self.rule_store = rule_store
        self.registry = registry
        self.conflict_policy = parse_conflict_policy(conflict_policy)
        self.strict_packages = strict_packages

    def _load(self, user: Subject) -> Tuple[List[Group], List[AccessRule]]:
        try:
            groups = list(self.rule_store.groups_of(user))
            user_rules = list(self.rule_store.rules_of(user))
        except CMSException:
            raise
        except Exception as exc:
            logger.error("Rule store failed for user %s: %s", user.id, exc)
            raise RuleStoreUnavailableError(
                "Rule store call failed", user_id=user.id
            ) from exc
        return groups, user_rules

    def resolve(self, user: Subject) -> EffectivePermissionMap:
        groups, user_rules = self._load(user)
        permission_map = merge_rules(
            groups,
            user_rules,
            self.registry,
            conflict_policy=self.conflict_policy,
            strict_packages=self.strict_packages,
        )
        logger.debug(
            "Resolved permissions for user %s: %d group(s), %d personal rule(s), "
            "%d resource(s)",
            user.id,
            len(groups),
            len(user_rules),
            len(permission_map),
        )
        return permission_map
