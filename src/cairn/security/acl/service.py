from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from cairn.security.acl.actions import Action, parse_actions
from cairn.security.acl.cache import ResolutionCache
from cairn.security.acl.permission_map import EffectivePermissionMap
from cairn.security.acl.query import is_authorized
from cairn.security.acl.registry import ResourceRegistry
from cairn.security.acl.resolver import ConflictPolicy, PermissionResolver
from cairn.security.acl.rules import Subject
from cairn.security.acl.store import RuleStore

logger = logging.getLogger(__name__)


class AccessControlService:
    """
    Entry point used by the application: resolve once per session, then
    answer authorization checks from the cached map.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        registry: ResourceRegistry,
        cache: ResolutionCache,
        *,
        conflict_policy: Union[str, ConflictPolicy] = ConflictPolicy.last_wins,
        strict_packages: bool = False,
    ):
        self.registry = registry
        self.cache = cache
        self.resolver = PermissionResolver(
            rule_store,
            registry,
            conflict_policy=conflict_policy,
            strict_packages=strict_packages,
        )

    def resolve(self, user: Subject) -> EffectivePermissionMap:
        return self.resolver.resolve(user)

    def get_or_resolve(self, session_id: str, user: Subject) -> EffectivePermissionMap:
        return self.cache.get_or_resolve(session_id, user.id, lambda: self.resolver.resolve(user))

    def authorized(
        self,
        session_id: str,
        user: Subject,
        resource_id: str,
        required: Iterable[Union[str, Action]],
        require_all: bool = True,
    ) -> bool:
        actions = parse_actions(required)
        if self.registry.resolve(resource_id) is None:
            logger.debug("Denying %s on unknown resource %s", actions, resource_id)
            return False
        permission_map = self.get_or_resolve(session_id, user)
        return is_authorized(permission_map, resource_id, actions, require_all)

    def invalidate(self, session_id: str) -> None:
        self.cache.invalidate(session_id)

    def invalidate_user(self, user_id: int) -> int:
        return self.cache.invalidate_user(user_id)

    def end_session(self, session_id: Optional[str]) -> None:
        if session_id:
            self.cache.forget(session_id)
