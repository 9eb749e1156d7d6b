from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from cairn.api.app import create_app
from cairn.api.dependencies.acl import get_acl_service
from cairn.api.dependencies.auth import CurrentUser, get_current_user
from cairn.api.routers.admin import get_management_service
from cairn.exceptions.handlers import NotFoundError, RuleStoreUnavailableError, ValidationError


def _client(*, allowed=True, service=None):
    user = CurrentUser(id=1, tenant_id="t1", session_id="sess-1", username="admin")
    acl = MagicMock()
    acl.authorized.return_value = allowed
    management = service or MagicMock()

    app = create_app()
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_acl_service] = lambda: acl
    app.dependency_overrides[get_management_service] = lambda: management
    return TestClient(app), acl, management


def _group(**overrides):
    data = dict(
        id=5, tenant_id="t1", name="Editors", slug="editors", description=None,
        super_group=False, priority=10, users=[SimpleNamespace(id=3), SimpleNamespace(id=2)],
        created_at=datetime(2026, 1, 1),
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def test_list_groups_requires_read_on_user_groups():
    client, acl, management = _client(allowed=False)

    resp = client.get("/api/v1/admin/user-groups")

    assert resp.status_code == 403
    assert resp.json()["detail"]["code"] == "PERMISSION_DENIED"
    args = acl.authorized.call_args.args
    assert args[2] == "user_groups"
    assert [a.value for a in args[3]] == ["read"]
    management.list_groups.assert_not_called()


def test_create_group_commits_and_returns_members():
    client, acl, management = _client()
    management.create_group.return_value = _group()

    resp = client.post("/api/v1/admin/user-groups", json={"name": "Editors", "priority": 10})

    assert resp.status_code == 200
    assert resp.json()["member_ids"] == [2, 3]
    management.commit.assert_called_once()
    assert [a.value for a in acl.authorized.call_args.args[3]] == ["create"]


def test_missing_group_returns_not_found_and_rolls_back():
    client, _, management = _client()
    management.update_group.side_effect = NotFoundError("User group", 99)

    resp = client.patch("/api/v1/admin/user-groups/99", json={"priority": 1})

    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NOT_FOUND"
    management.rollback.assert_called_once()
    management.commit.assert_not_called()


def test_member_changes_report_invalidated_users():
    client, acl, management = _client()
    management.commit.return_value = [4]

    resp = client.put("/api/v1/admin/user-groups/5/members/4")

    assert resp.status_code == 200
    assert resp.json()["invalidated_users"] == [4]
    management.add_member.assert_called_once_with("t1", 5, 4)
    assert [a.value for a in acl.authorized.call_args.args[3]] == ["update"]


def test_invalid_rule_selector_is_rejected():
    client, _, management = _client()
    management.create_rule.side_effect = ValidationError("Unknown controller: orders", field="controller")

    resp = client.post(
        "/api/v1/admin/access-rules",
        json={"controller": "orders", "user_id": 4, "read_access": True},
    )

    assert resp.status_code == 422
    assert resp.json()["detail"]["details"]["field"] == "controller"


def test_delete_rule_requires_delete_on_access_rules():
    client, acl, management = _client()
    management.commit.return_value = [2, 3]

    resp = client.delete("/api/v1/admin/access-rules/12")

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "id": 12, "invalidated_users": [2, 3]}
    assert acl.authorized.call_args.args[2] == "access_rules"
    assert [a.value for a in acl.authorized.call_args.args[3]] == ["delete"]


def test_rule_store_outage_is_a_503_not_a_deny():
    client, acl, _ = _client()
    acl.authorized.side_effect = RuleStoreUnavailableError("Failed to load user groups")

    resp = client.get("/api/v1/admin/access-rules")

    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "RULE_STORE_UNAVAILABLE"
