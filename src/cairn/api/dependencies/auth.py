from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session
from starlette.requests import Request

from cairn.config import get_settings
from cairn.context import session_id_var, tenant_id_var, user_id_var
from cairn.database import get_db
from cairn.security.acl.rules import Subject
from cairn.security.auth.jwt import JWTError, decode_hs256
from cairn.security.auth.models import AuthUser


@dataclass(frozen=True)
class CurrentUser:
    id: int
    tenant_id: str
    session_id: str
    username: str
    email: Optional[str] = None

    def subject(self) -> Subject:
        return Subject(id=self.id, tenant_id=self.tenant_id, username=self.username)


def get_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth:
        return None
    parts = auth.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def auth_mode() -> str:
    mode = (get_settings().AUTH_MODE or "optional").strip().lower()
    if mode not in {"disabled", "optional", "required"}:
        return "optional"
    return mode


def decode_session_token(token: str) -> Dict[str, Any]:
    """Decode and check the claims every session token must carry."""
    settings = get_settings()
    try:
        payload = decode_hs256(
            token, secret=settings.JWT_SECRET_KEY, leeway_seconds=settings.AUTH_LEEWAY_SECONDS
        )
    except JWTError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    if not payload.get("tenant_id") or not payload.get("sub") or not payload.get("sid"):
        raise HTTPException(status_code=401, detail="Invalid token claims")
    try:
        payload["sub"] = int(payload["sub"])
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid sub claim") from e
    return payload


def get_current_user_optional(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[CurrentUser]:
    settings = get_settings()
    mode = auth_mode()

    token = get_bearer_token(request)
    if not token:
        if mode == "required":
            raise HTTPException(status_code=401, detail="Missing bearer token")
        return None

    payload = decode_session_token(token)
    tenant_id = str(payload["tenant_id"])

    tenant_header = request.headers.get(settings.TENANT_HEADER)
    if tenant_header and str(tenant_header) != tenant_id:
        raise HTTPException(status_code=401, detail="Tenant mismatch")

    user: Optional[AuthUser] = (
        db.query(AuthUser)
        .filter(AuthUser.id == payload["sub"], AuthUser.tenant_id == tenant_id)
        .first()
    )
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")

    user_id_var.set(str(user.id))
    session_id_var.set(str(payload["sid"]))
    if tenant_id_var.get() is None:
        tenant_id_var.set(tenant_id)

    return CurrentUser(
        id=user.id,
        tenant_id=tenant_id,
        session_id=str(payload["sid"]),
        username=user.username,
        email=user.email,
    )


def get_current_user(
    user: Optional[CurrentUser] = Depends(get_current_user_optional),
) -> CurrentUser:
    if user is None:
        if auth_mode() == "disabled":
            raise HTTPException(status_code=400, detail="Auth is disabled")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
