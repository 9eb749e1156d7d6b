from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Sequence, Union

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from cairn.api.dependencies.auth import CurrentUser, get_current_user
from cairn.config import get_settings
from cairn.database import get_db
from cairn.exceptions.handlers import CMSException, PermissionError
from cairn.security.acl.actions import Action, parse_actions
from cairn.security.acl.cache import ResolutionCache
from cairn.security.acl.packages import load_registry, parse_package_dirs
from cairn.security.acl.permission_map import EffectivePermissionMap
from cairn.security.acl.registry import PackageRegistry
from cairn.security.acl.service import AccessControlService
from cairn.security.acl.store import SQLRuleStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_package_registry() -> PackageRegistry:
    settings = get_settings()
    return load_registry(parse_package_dirs(settings.PACKAGE_DIRS))


@lru_cache(maxsize=1)
def get_resolution_cache() -> ResolutionCache:
    return ResolutionCache(ttl_seconds=get_settings().ACL_CACHE_TTL_SECONDS)


def get_acl_service(
    db: Session = Depends(get_db),
    registry: PackageRegistry = Depends(get_package_registry),
    cache: ResolutionCache = Depends(get_resolution_cache),
) -> AccessControlService:
    settings = get_settings()
    return AccessControlService(
        SQLRuleStore(db),
        registry,
        cache,
        conflict_policy=settings.ACL_CONFLICT_POLICY,
        strict_packages=settings.ACL_STRICT_PACKAGES,
    )


def get_permission_map(
    user: CurrentUser = Depends(get_current_user),
    service: AccessControlService = Depends(get_acl_service),
) -> EffectivePermissionMap:
    try:
        return service.get_or_resolve(user.session_id, user.subject())
    except CMSException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict())


def require_access(
    resource: str,
    actions: Sequence[Union[str, Action]],
    require_all: bool = True,
) -> Callable[..., CurrentUser]:
    """
    Route dependency denying the request unless the current user holds
    `actions` on `resource` (all of them, or any one with require_all=False).
    """
    required = parse_actions(actions)

    def _dependency(
        user: CurrentUser = Depends(get_current_user),
        service: AccessControlService = Depends(get_acl_service),
    ) -> CurrentUser:
        try:
            allowed = service.authorized(
                user.session_id, user.subject(), resource, required, require_all
            )
        except CMSException as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.to_dict())
        if not allowed:
            logger.info(
                "User %s denied %s on %s",
                user.id,
                [a.value for a in required],
                resource,
            )
            denied = PermissionError(required, resource=resource)
            raise HTTPException(status_code=denied.status_code, detail=denied.to_dict())
        return user

    return _dependency
