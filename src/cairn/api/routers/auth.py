from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.requests import Request

from cairn.api.dependencies.acl import get_resolution_cache
from cairn.api.dependencies.auth import (
    CurrentUser,
    decode_session_token,
    get_bearer_token,
    get_current_user,
)
from cairn.config import get_settings
from cairn.database import get_db
from cairn.security.acl.cache import ResolutionCache
from cairn.security.auth.jwt import build_session_token_payload, encode_hs256, new_session_id
from cairn.security.auth.service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


class LoginRequest(BaseModel):
    tenant_id: str = Field(..., description="Tenant id")
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    tenant_id: str
    user_id: int
    session_id: str


def _previous_session_id(request: Request) -> Optional[str]:
    token = get_bearer_token(request)
    if not token:
        return None
    try:
        return str(decode_session_token(token)["sid"])
    except HTTPException:
        return None


@router.post("/login", response_model=LoginResponse)
def login(
    req: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    cache: ResolutionCache = Depends(get_resolution_cache),
) -> LoginResponse:
    settings = get_settings()
    service = AuthService(db)
    try:
        user = service.authenticate(
            tenant_id=req.tenant_id, username=req.username, password=req.password
        )
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    db.commit()

    # A new login starts a new session; the old one's map must not survive it.
    previous = _previous_session_id(request)
    if previous:
        cache.forget(previous)
    cache.prune()

    session_id = new_session_id()
    payload = build_session_token_payload(
        user_id=user.id,
        tenant_id=req.tenant_id,
        session_id=session_id,
        ttl_seconds=settings.JWT_ACCESS_TOKEN_TTL_SECONDS,
    )
    token = encode_hs256(payload, secret=settings.JWT_SECRET_KEY)
    logger.info("User %s logged in to tenant %s", user.id, req.tenant_id)
    return LoginResponse(
        access_token=token,
        expires_in=settings.JWT_ACCESS_TOKEN_TTL_SECONDS,
        tenant_id=req.tenant_id,
        user_id=user.id,
        session_id=session_id,
    )


@router.post("/logout")
def logout(
    user: CurrentUser = Depends(get_current_user),
    cache: ResolutionCache = Depends(get_resolution_cache),
) -> dict:
    """
    End the caller's session in the permission cache.

    Tokens are stateless: logout does not revoke the bearer token. Until it
    expires (JWT_ACCESS_TOKEN_TTL_SECONDS) the same token still authenticates,
    and its `sid` starts from an empty cache entry, so the next check resolves
    the permissions from the current rules again. Clients discard the token.
    """
    cache.forget(user.session_id)
    logger.info("User %s ended session %s", user.id, user.session_id)
    return {"ok": True, "session_id": user.session_id}


class MeResponse(BaseModel):
    tenant_id: str
    user_id: int
    username: str
    email: Optional[str] = None
    session_id: str
    groups: List[str] = Field(default_factory=list)


@router.get("/me", response_model=MeResponse)
def me(
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MeResponse:
    service = AuthService(db)
    record = service.get_user(tenant_id=user.tenant_id, username=user.username)
    groups = sorted(g.slug for g in record.user_groups) if record else []
    return MeResponse(
        tenant_id=user.tenant_id,
        user_id=user.id,
        username=user.username,
        email=user.email,
        session_id=user.session_id,
        groups=groups,
    )
