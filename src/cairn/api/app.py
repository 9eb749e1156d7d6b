from __future__ import annotations

from fastapi import FastAPI

from cairn import __version__
from cairn.api.dependencies.acl import get_package_registry, get_resolution_cache
from cairn.api.middleware.auth_enforce import AuthEnforcementMiddleware
from cairn.api.middleware.context import TenantContextMiddleware
from cairn.api.routers.acl import router as acl_router
from cairn.api.routers.admin import router as admin_router
from cairn.api.routers.auth import router as auth_router
from cairn.api.routers.health import router as health_router
from cairn.config import get_settings
from cairn.database import init_db


def create_app() -> FastAPI:
    app = FastAPI(title="Cairn", version=__version__)
    app.add_middleware(TenantContextMiddleware)
    app.add_middleware(AuthEnforcementMiddleware)
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(acl_router, prefix="/api/v1")
    app.include_router(admin_router, prefix="/api/v1")

    @app.on_event("startup")
    def _startup() -> None:  # pragma: no cover
        # Dev convenience: auto-create tables. Production uses migrations.
        settings = get_settings()
        if settings.ENVIRONMENT == "dev":
            init_db(create_tables=True)
        # Fail fast on broken package manifests.
        get_package_registry()

    @app.on_event("shutdown")
    def _shutdown() -> None:  # pragma: no cover
        get_resolution_cache().invalidate_all()

    return app


app = create_app()
