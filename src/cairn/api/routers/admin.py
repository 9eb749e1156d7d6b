from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from cairn.api.dependencies.acl import get_package_registry, get_resolution_cache, require_access
from cairn.api.dependencies.auth import CurrentUser
from cairn.database import get_db
from cairn.exceptions.handlers import CMSException
from cairn.security.acl.cache import ResolutionCache
from cairn.security.acl.management import AccessManagementService
from cairn.security.acl.models import AccessRuleRecord, UserGroup
from cairn.security.acl.registry import PackageRegistry

router = APIRouter(prefix="/admin", tags=["Admin"])


def get_management_service(
    db: Session = Depends(get_db),
    registry: PackageRegistry = Depends(get_package_registry),
    cache: ResolutionCache = Depends(get_resolution_cache),
) -> AccessManagementService:
    return AccessManagementService(db, registry, cache)


def _raise_http(service: AccessManagementService, exc: CMSException) -> NoReturn:
    service.rollback()
    raise HTTPException(status_code=exc.status_code, detail=exc.to_dict())


class UserGroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    super_group: bool = Field(default=False)
    priority: int = Field(default=0, description="Groups merge in ascending priority")


class UserGroupUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    super_group: Optional[bool] = None
    priority: Optional[int] = None


class UserGroupResponse(BaseModel):
    id: int
    tenant_id: str
    name: str
    slug: str
    description: Optional[str] = None
    super_group: bool
    priority: int
    member_ids: List[int] = Field(default_factory=list)
    created_at: datetime


class AccessRuleCreateRequest(BaseModel):
    controller: str = Field(..., min_length=1, max_length=100, description="Resource id or *")
    package: Optional[str] = Field(default=None, max_length=100)
    user_group_id: Optional[int] = None
    user_id: Optional[int] = None
    create_access: bool = Field(default=False)
    read_access: bool = Field(default=False)
    update_access: bool = Field(default=False)
    delete_access: bool = Field(default=False)


class AccessRuleUpdateRequest(BaseModel):
    controller: Optional[str] = Field(default=None, min_length=1, max_length=100)
    package: Optional[str] = Field(default=None, max_length=100)
    create_access: Optional[bool] = None
    read_access: Optional[bool] = None
    update_access: Optional[bool] = None
    delete_access: Optional[bool] = None


class AccessRuleResponse(BaseModel):
    id: int
    tenant_id: str
    controller: str
    package: Optional[str] = None
    user_group_id: Optional[int] = None
    user_id: Optional[int] = None
    create_access: bool
    read_access: bool
    update_access: bool
    delete_access: bool


def _group_response(group: UserGroup) -> UserGroupResponse:
    return UserGroupResponse(
        id=group.id,
        tenant_id=group.tenant_id,
        name=group.name,
        slug=group.slug,
        description=group.description,
        super_group=bool(group.super_group),
        priority=int(group.priority or 0),
        member_ids=sorted(u.id for u in group.users),
        created_at=group.created_at,
    )


def _rule_response(rule: AccessRuleRecord) -> AccessRuleResponse:
    return AccessRuleResponse(
        id=rule.id,
        tenant_id=rule.tenant_id,
        controller=rule.controller,
        package=rule.package,
        user_group_id=rule.user_group_id,
        user_id=rule.user_id,
        create_access=bool(rule.create_access),
        read_access=bool(rule.read_access),
        update_access=bool(rule.update_access),
        delete_access=bool(rule.delete_access),
    )


# -- user groups ------------------------------------------------------------


@router.get("/user-groups", response_model=Dict[str, Any])
def list_user_groups(
    user: CurrentUser = Depends(require_access("user_groups", ["read"])),
    service: AccessManagementService = Depends(get_management_service),
) -> Dict[str, Any]:
    groups = service.list_groups(user.tenant_id)
    return {"total": len(groups), "items": [_group_response(g) for g in groups]}


@router.post("/user-groups", response_model=UserGroupResponse)
def create_user_group(
    req: UserGroupCreateRequest,
    user: CurrentUser = Depends(require_access("user_groups", ["create"])),
    service: AccessManagementService = Depends(get_management_service),
) -> UserGroupResponse:
    try:
        group = service.create_group(
            user.tenant_id,
            name=req.name,
            slug=req.slug,
            description=req.description,
            super_group=req.super_group,
            priority=req.priority,
        )
    except CMSException as exc:
        _raise_http(service, exc)
    service.commit()
    return _group_response(group)


@router.get("/user-groups/{group_id}", response_model=UserGroupResponse)
def get_user_group(
    group_id: int,
    user: CurrentUser = Depends(require_access("user_groups", ["read"])),
    service: AccessManagementService = Depends(get_management_service),
) -> UserGroupResponse:
    try:
        group = service.get_group(user.tenant_id, group_id)
    except CMSException as exc:
        _raise_http(service, exc)
    return _group_response(group)


@router.patch("/user-groups/{group_id}", response_model=UserGroupResponse)
def update_user_group(
    group_id: int,
    req: UserGroupUpdateRequest,
    user: CurrentUser = Depends(require_access("user_groups", ["update"])),
    service: AccessManagementService = Depends(get_management_service),
) -> UserGroupResponse:
    try:
        group = service.update_group(user.tenant_id, group_id, req.model_dump(exclude_unset=True))
    except CMSException as exc:
        _raise_http(service, exc)
    service.commit()
    return _group_response(group)


@router.delete("/user-groups/{group_id}", response_model=Dict[str, Any])
def delete_user_group(
    group_id: int,
    user: CurrentUser = Depends(require_access("user_groups", ["delete"])),
    service: AccessManagementService = Depends(get_management_service),
) -> Dict[str, Any]:
    try:
        service.delete_group(user.tenant_id, group_id)
    except CMSException as exc:
        _raise_http(service, exc)
    affected = service.commit()
    return {"ok": True, "id": group_id, "invalidated_users": affected}


@router.put("/user-groups/{group_id}/members/{user_id}", response_model=Dict[str, Any])
def add_user_group_member(
    group_id: int,
    user_id: int,
    user: CurrentUser = Depends(require_access("user_groups", ["update"])),
    service: AccessManagementService = Depends(get_management_service),
) -> Dict[str, Any]:
    try:
        service.add_member(user.tenant_id, group_id, user_id)
    except CMSException as exc:
        _raise_http(service, exc)
    affected = service.commit()
    return {"ok": True, "group_id": group_id, "user_id": user_id, "invalidated_users": affected}


@router.delete("/user-groups/{group_id}/members/{user_id}", response_model=Dict[str, Any])
def remove_user_group_member(
    group_id: int,
    user_id: int,
    user: CurrentUser = Depends(require_access("user_groups", ["update"])),
    service: AccessManagementService = Depends(get_management_service),
) -> Dict[str, Any]:
    try:
        service.remove_member(user.tenant_id, group_id, user_id)
    except CMSException as exc:
        _raise_http(service, exc)
    affected = service.commit()
    return {"ok": True, "group_id": group_id, "user_id": user_id, "invalidated_users": affected}


# -- access rules -----------------------------------------------------------


@router.get("/access-rules", response_model=Dict[str, Any])
def list_access_rules(
    user_group_id: Optional[int] = None,
    user_id: Optional[int] = None,
    user: CurrentUser = Depends(require_access("access_rules", ["read"])),
    service: AccessManagementService = Depends(get_management_service),
) -> Dict[str, Any]:
    rules = service.list_rules(user.tenant_id, user_group_id=user_group_id, user_id=user_id)
    return {"total": len(rules), "items": [_rule_response(r) for r in rules]}


@router.post("/access-rules", response_model=AccessRuleResponse)
def create_access_rule(
    req: AccessRuleCreateRequest,
    user: CurrentUser = Depends(require_access("access_rules", ["create"])),
    service: AccessManagementService = Depends(get_management_service),
) -> AccessRuleResponse:
    try:
        rule = service.create_rule(user.tenant_id, **req.model_dump())
    except CMSException as exc:
        _raise_http(service, exc)
    service.commit()
    return _rule_response(rule)


@router.patch("/access-rules/{rule_id}", response_model=AccessRuleResponse)
def update_access_rule(
    rule_id: int,
    req: AccessRuleUpdateRequest,
    user: CurrentUser = Depends(require_access("access_rules", ["update"])),
    service: AccessManagementService = Depends(get_management_service),
) -> AccessRuleResponse:
    try:
        rule = service.update_rule(user.tenant_id, rule_id, req.model_dump(exclude_unset=True))
    except CMSException as exc:
        _raise_http(service, exc)
    service.commit()
    return _rule_response(rule)


@router.delete("/access-rules/{rule_id}", response_model=Dict[str, Any])
def delete_access_rule(
    rule_id: int,
    user: CurrentUser = Depends(require_access("access_rules", ["delete"])),
    service: AccessManagementService = Depends(get_management_service),
) -> Dict[str, Any]:
    try:
        service.delete_rule(user.tenant_id, rule_id)
    except CMSException as exc:
        _raise_http(service, exc)
    affected = service.commit()
    return {"ok": True, "id": rule_id, "invalidated_users": affected}
