from __future__ import annotations

from typing import Any, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.status import HTTP_401_UNAUTHORIZED

from cairn.config import get_settings
from cairn.context import session_id_var, tenant_id_var, user_id_var
from cairn.security.auth.jwt import JWTError, decode_hs256

PUBLIC_PATHS = {
    "/api/v1/health",
    "/api/v1/health/deps",
    "/api/v1/auth/login",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def _get_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or request.headers.get("Authorization")
    if not auth:
        return None
    parts = auth.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


def is_public_path(path: str) -> bool:
    if path in PUBLIC_PATHS:
        return True
    return path.startswith("/docs/") or path.startswith("/redoc/")


class AuthEnforcementMiddleware(BaseHTTPMiddleware):
    """
    Reject unauthenticated requests up front when `CAIRN_AUTH_MODE=required`.

    Only the token is checked here; the user lookup and permission checks
    stay in the route dependencies.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        settings = get_settings()
        mode = (settings.AUTH_MODE or "optional").strip().lower()
        if mode != "required":
            return await call_next(request)

        if request.method.upper() == "OPTIONS" or is_public_path(request.url.path):
            return await call_next(request)

        token = _get_bearer_token(request)
        if not token:
            return JSONResponse(
                {"detail": "Missing bearer token"}, status_code=HTTP_401_UNAUTHORIZED
            )

        try:
            payload: dict[str, Any] = decode_hs256(
                token,
                secret=settings.JWT_SECRET_KEY,
                leeway_seconds=settings.AUTH_LEEWAY_SECONDS,
            )
        except JWTError as e:
            return JSONResponse({"detail": str(e)}, status_code=HTTP_401_UNAUTHORIZED)

        tenant_claim = payload.get("tenant_id")
        sub = payload.get("sub")
        sid = payload.get("sid")
        if not tenant_claim or not sub or not sid:
            return JSONResponse(
                {"detail": "Invalid token claims"}, status_code=HTTP_401_UNAUTHORIZED
            )

        tenant_header = request.headers.get(settings.TENANT_HEADER)
        if tenant_header and str(tenant_header) != str(tenant_claim):
            return JSONResponse({"detail": "Tenant mismatch"}, status_code=HTTP_401_UNAUTHORIZED)

        tenant_token = tenant_id_var.set(str(tenant_claim))
        user_token = user_id_var.set(str(sub))
        session_token = session_id_var.set(str(sid))
        try:
            return await call_next(request)
        finally:
            session_id_var.reset(session_token)
            user_id_var.reset(user_token)
            tenant_id_var.reset(tenant_token)
