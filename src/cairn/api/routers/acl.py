from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from cairn.api.dependencies.acl import get_acl_service, get_package_registry, get_permission_map
from cairn.api.dependencies.auth import CurrentUser, get_current_user
from cairn.exceptions.handlers import CMSException
from cairn.security.acl.navigation import build_menu
from cairn.security.acl.permission_map import EffectivePermissionMap
from cairn.security.acl.registry import PackageRegistry
from cairn.security.acl.service import AccessControlService

router = APIRouter(prefix="/acl", tags=["Access Control"])


class PermissionsResponse(BaseModel):
    user_id: int
    tenant_id: str
    session_id: str
    permissions: Dict[str, List[str]]


@router.get("/permissions", response_model=PermissionsResponse)
def get_permissions(
    user: CurrentUser = Depends(get_current_user),
    permission_map: EffectivePermissionMap = Depends(get_permission_map),
) -> PermissionsResponse:
    return PermissionsResponse(
        user_id=user.id,
        tenant_id=user.tenant_id,
        session_id=user.session_id,
        permissions=permission_map.to_dict(),
    )


class CheckRequest(BaseModel):
    resource: str = Field(..., min_length=1, max_length=100)
    actions: List[str] = Field(..., description="create|read|update|delete")
    require_all: bool = True


class CheckResponse(BaseModel):
    resource: str
    actions: List[str]
    require_all: bool
    authorized: bool


@router.post("/check", response_model=CheckResponse)
def check_access(
    req: CheckRequest,
    user: CurrentUser = Depends(get_current_user),
    service: AccessControlService = Depends(get_acl_service),
) -> CheckResponse:
    try:
        authorized = service.authorized(
            user.session_id, user.subject(), req.resource, req.actions, req.require_all
        )
    except CMSException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict())
    return CheckResponse(
        resource=req.resource,
        actions=req.actions,
        require_all=req.require_all,
        authorized=authorized,
    )


@router.get("/menu")
def get_menu(
    registry: PackageRegistry = Depends(get_package_registry),
    permission_map: EffectivePermissionMap = Depends(get_permission_map),
) -> Dict[str, Any]:
    return {"items": build_menu(registry, permission_map)}


@router.post("/refresh")
def refresh_permissions(
    user: CurrentUser = Depends(get_current_user),
    service: AccessControlService = Depends(get_acl_service),
) -> Dict[str, Any]:
    service.invalidate(user.session_id)
    return {"ok": True, "session_id": user.session_id}


class PackageResponse(BaseModel):
    name: str
    title: str
    author: str
    url: str
    about: str
    version: Optional[str] = None
    controllers: List[str]


@router.get("/packages", response_model=List[PackageResponse])
def list_packages(
    _user: CurrentUser = Depends(get_current_user),
    registry: PackageRegistry = Depends(get_package_registry),
) -> List[PackageResponse]:
    return [
        PackageResponse(
            name=p.name,
            title=p.title,
            author=p.author,
            url=p.url,
            about=p.about,
            version=p.version or None,
            controllers=list(p.controllers),
        )
        for p in registry.packages()
    ]
