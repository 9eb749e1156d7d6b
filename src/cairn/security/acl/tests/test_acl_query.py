import pytest

from cairn.exceptions.handlers import ValidationError
from cairn.security.acl.actions import Action, parse_actions
from cairn.security.acl.permission_map import EMPTY_PERMISSION_MAP, EffectivePermissionMap
from cairn.security.acl.query import is_authorized


def _map():
    return EffectivePermissionMap(
        {
            "categories": {Action.read, Action.update},
            "users": set(),
        }
    )


def test_missing_entry_is_denied_in_both_modes():
    permission_map = _map()

    assert is_authorized(permission_map, "sections", ["read"], True) is False
    assert is_authorized(permission_map, "sections", ["read"], False) is False
    assert is_authorized(EMPTY_PERMISSION_MAP, "categories", ["read"]) is False


def test_empty_entry_permits_nothing():
    assert is_authorized(_map(), "users", ["read", "create"], False) is False


def test_all_and_any_modes():
    permission_map = _map()

    assert is_authorized(permission_map, "categories", ["read", "update"]) is True
    assert is_authorized(permission_map, "categories", ["read", "delete"]) is False
    assert is_authorized(permission_map, "categories", ["read", "delete"], require_all=False) is True
    assert is_authorized(permission_map, "categories", ["create", "delete"], require_all=False) is False


def test_empty_action_list_is_rejected():
    with pytest.raises(ValidationError):
        is_authorized(_map(), "categories", [])


def test_unknown_action_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        is_authorized(_map(), "categories", ["publish"])
    assert excinfo.value.details["field"] == "actions"


def test_parse_actions_normalizes_and_dedupes():
    assert parse_actions(["READ", " update ", Action.read]) == [Action.read, Action.update]


def test_permission_map_to_dict_uses_canonical_action_order():
    permission_map = EffectivePermissionMap(
        {"categories": {Action.delete, Action.create, Action.read}}
    )

    assert permission_map.to_dict() == {"categories": ["create", "read", "delete"]}
    assert permission_map.actions_for("users") == frozenset()
