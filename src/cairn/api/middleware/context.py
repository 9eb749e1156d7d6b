from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from cairn.config import get_settings
from cairn.context import tenant_id_var


class TenantContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        settings = get_settings()
        tenant_id = request.headers.get(settings.TENANT_HEADER)

        # Keep the tenant already established by the auth enforcement layer.
        tenant_token = None
        if tenant_id_var.get() is None:
            tenant_token = tenant_id_var.set(tenant_id)
        try:
            return await call_next(request)
        finally:
            if tenant_token is not None:
                tenant_id_var.reset(tenant_token)
