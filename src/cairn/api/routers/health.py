from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy import text

from cairn import __version__
from cairn.api.dependencies.acl import get_package_registry, get_resolution_cache
from cairn.config import get_settings
from cairn.context import get_request_context
from cairn.database import get_db_session

router = APIRouter(tags=["system"])


@router.get("/health")
def health() -> dict:
    ctx = get_request_context()
    settings = get_settings()
    return {
        "ok": True,
        "service": "cairn",
        "version": __version__,
        "tenant_id": ctx.tenant_id,
        "tenancy_mode": settings.TENANCY_MODE,
        "schema_mode": settings.SCHEMA_MODE,
        "auth_mode": settings.AUTH_MODE,
    }


@router.get("/health/deps")
def health_deps() -> dict:
    ctx = get_request_context()
    settings = get_settings()
    deps: dict = {}
    overall_ok = True

    try:
        with get_db_session() as db:
            db.execute(text("SELECT 1"))
        deps["db"] = {"ok": True, "tenancy_mode": settings.TENANCY_MODE}
    except Exception as exc:
        deps["db"] = {"ok": False, "error": str(exc), "tenancy_mode": settings.TENANCY_MODE}
        overall_ok = False

    try:
        registry = get_package_registry()
        deps["packages"] = {
            "ok": True,
            "dirs": settings.PACKAGE_DIRS,
            "packages": len(registry.packages()),
            "resources": len(registry.all_resources()),
        }
    except Exception as exc:
        deps["packages"] = {"ok": False, "dirs": settings.PACKAGE_DIRS, "error": str(exc)}
        overall_ok = False

    deps["acl_cache"] = {
        "ok": True,
        "sessions": len(get_resolution_cache()),
        "ttl_seconds": settings.ACL_CACHE_TTL_SECONDS,
        "conflict_policy": settings.ACL_CONFLICT_POLICY,
    }

    return {
        "ok": overall_ok,
        "service": "cairn",
        "version": __version__,
        "tenant_id": ctx.tenant_id,
        "tenancy_mode": settings.TENANCY_MODE,
        "schema_mode": settings.SCHEMA_MODE,
        "deps": deps,
    }
