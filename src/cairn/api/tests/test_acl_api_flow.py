from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cairn.api.app import create_app
from cairn.api.dependencies.acl import get_package_registry, get_resolution_cache
from cairn.database import get_db
from cairn.models.base import Base
from cairn.security.acl.cache import ResolutionCache
from cairn.security.acl.models import AccessRuleRecord, UserGroup
from cairn.security.acl.registry import MenuItem, Package, PackageRegistry
from cairn.security.auth.service import AuthService


def _registry():
    return PackageRegistry(
        [
            Package(
                name="categories", title="Categories", author="Cairn",
                url="https://cairn.example.org/", about="Categories",
                controllers=("category_groups", "categories"),
                menu=(MenuItem(title="Categories", url="admin/category-groups", resource="category_groups"),),
            ),
            Package(
                name="users", title="Users", author="Cairn",
                url="https://cairn.example.org/", about="Users",
                controllers=("users", "user_groups", "access_rules"),
                menu=(MenuItem(title="Users", url="admin/users", resource="users"),),
            ),
        ]
    )


@pytest.fixture()
def env():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with SessionLocal() as db:
        auth = AuthService(db)
        auth.ensure_tenant("t1")
        admin = auth.create_user(tenant_id="t1", username="admin", password="admin")
        editor = auth.create_user(tenant_id="t1", username="editor", password="editor")
        admins = UserGroup(tenant_id="t1", name="Admins", slug="admins", super_group=True)
        admins.users.append(admin)
        editors = UserGroup(tenant_id="t1", name="Editors", slug="editors", priority=10)
        editors.users.append(editor)
        db.add_all([admins, editors])
        db.flush()
        db.add(
            AccessRuleRecord(
                tenant_id="t1", user_group_id=editors.id, controller="*", package="categories",
                create_access=True, read_access=True, update_access=True, delete_access=False,
            )
        )
        db.commit()
        ids = {"admin": admin.id, "editor": editor.id, "editors": editors.id}

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    cache = ResolutionCache()
    app = create_app()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_package_registry] = _registry
    app.dependency_overrides[get_resolution_cache] = lambda: cache
    return TestClient(app), cache, ids


def _login(client, username, password, headers=None):
    resp = client.post(
        "/api/v1/auth/login",
        json={"tenant_id": "t1", "username": username, "password": password},
        headers=headers or {},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    return {"Authorization": f"Bearer {body['access_token']}"}, body


def test_login_rejects_bad_credentials(env):
    client, _, _ = env
    resp = client.post(
        "/api/v1/auth/login", json={"tenant_id": "t1", "username": "editor", "password": "nope"}
    )
    assert resp.status_code == 401


def test_editor_permissions_and_check(env):
    client, cache, ids = env
    headers, body = _login(client, "editor", "editor")

    resp = client.get("/api/v1/acl/permissions", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["permissions"] == {
        "category_groups": ["create", "read", "update"],
        "categories": ["create", "read", "update"],
    }
    assert cache.peek(body["session_id"], ids["editor"]) is not None

    resp = client.post(
        "/api/v1/acl/check",
        json={"resource": "categories", "actions": ["read", "delete"], "require_all": False},
        headers=headers,
    )
    assert resp.json()["authorized"] is True

    resp = client.post(
        "/api/v1/acl/check",
        json={"resource": "categories", "actions": ["read", "delete"]},
        headers=headers,
    )
    assert resp.json()["authorized"] is False


def test_check_rejects_empty_action_list(env):
    client, _, _ = env
    headers, _ = _login(client, "editor", "editor")

    resp = client.post(
        "/api/v1/acl/check", json={"resource": "categories", "actions": []}, headers=headers
    )

    assert resp.status_code == 422
    assert resp.json()["detail"]["code"] == "VALIDATION_ERROR"


def test_menu_is_filtered_by_read_permission(env):
    client, _, _ = env
    headers, _ = _login(client, "editor", "editor")

    resp = client.get("/api/v1/acl/menu", headers=headers)

    assert resp.json()["items"] == [
        {"title": "Categories", "url": "/admin/category-groups", "resource": "category_groups"}
    ]


def test_admin_can_manage_rules_and_editor_sees_the_change(env):
    client, _, ids = env
    admin_headers, _ = _login(client, "admin", "admin")
    editor_headers, _ = _login(client, "editor", "editor")

    before = client.post(
        "/api/v1/acl/check",
        json={"resource": "categories", "actions": ["delete"]},
        headers=editor_headers,
    )
    assert before.json()["authorized"] is False

    resp = client.post(
        "/api/v1/admin/access-rules",
        json={
            "controller": "categories",
            "user_id": ids["editor"],
            "create_access": True,
            "read_access": True,
            "update_access": True,
            "delete_access": True,
        },
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["package"] == "categories"

    after = client.post(
        "/api/v1/acl/check",
        json={"resource": "categories", "actions": ["delete"]},
        headers=editor_headers,
    )
    assert after.json()["authorized"] is True


def test_editor_cannot_manage_groups(env):
    client, _, _ = env
    headers, _ = _login(client, "editor", "editor")

    resp = client.get("/api/v1/admin/user-groups", headers=headers)

    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "PERMISSION_DENIED"
    assert resp.json()["detail"]["details"]["resource"] == "user_groups"


def test_logout_drops_cached_permissions(env):
    client, cache, ids = env
    headers, body = _login(client, "editor", "editor")
    client.get("/api/v1/acl/permissions", headers=headers)

    resp = client.post("/api/v1/auth/logout", headers=headers)

    assert resp.status_code == 200
    assert cache.peek(body["session_id"], ids["editor"]) is None


def test_token_used_after_logout_resolves_from_scratch(env):
    client, cache, ids = env
    headers, body = _login(client, "editor", "editor")
    before = client.get("/api/v1/acl/permissions", headers=headers).json()
    client.post("/api/v1/auth/logout", headers=headers)
    assert cache.peek(body["session_id"], ids["editor"]) is None

    resp = client.get("/api/v1/acl/permissions", headers=headers)

    assert resp.status_code == 200
    assert resp.json() == before
    assert cache.peek(body["session_id"], ids["editor"]) is not None


def test_login_ends_the_previous_session(env):
    client, cache, ids = env
    headers, first = _login(client, "editor", "editor")
    client.get("/api/v1/acl/permissions", headers=headers)

    _, second = _login(client, "admin", "admin", headers=headers)

    assert second["session_id"] != first["session_id"]
    assert cache.peek(first["session_id"], ids["editor"]) is None


def test_refresh_and_me(env):
    client, cache, ids = env
    headers, body = _login(client, "editor", "editor")
    client.get("/api/v1/acl/permissions", headers=headers)

    assert client.post("/api/v1/acl/refresh", headers=headers).json()["ok"] is True
    assert cache.peek(body["session_id"], ids["editor"]) is None

    me = client.get("/api/v1/auth/me", headers=headers).json()
    assert me["username"] == "editor"
    assert me["groups"] == ["editors"]


def test_packages_listing(env):
    client, _, _ = env
    headers, _ = _login(client, "editor", "editor")

    resp = client.get("/api/v1/acl/packages", headers=headers)

    assert [p["name"] for p in resp.json()] == ["categories", "users"]
    assert resp.json()[1]["controllers"] == ["users", "user_groups", "access_rules"]


def test_requests_without_token_are_unauthorized(env):
    client, _, _ = env
    assert client.get("/api/v1/acl/permissions").status_code == 401
