from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cairn.exceptions.handlers import InvalidRuleError, RuleStoreUnavailableError, ValidationError
from cairn.security.acl.actions import ALL_ACTIONS, Action
from cairn.security.acl.permission_map import EffectivePermissionMap
from cairn.security.acl.query import is_authorized
from cairn.security.acl.registry import Package, PackageRegistry, ResourceRegistry
from cairn.security.acl.resolver import ConflictPolicy, PermissionResolver, merge_rules
from cairn.security.acl.rules import AccessRule, Group, Subject


def _package(name, *controllers):
    return Package(
        name=name,
        title=name.title(),
        author="Cairn",
        url="https://cairn.example.org/",
        about=f"{name} package",
        controllers=tuple(controllers),
    )


def _registry():
    return PackageRegistry(
        [
            _package("categories", "category_groups", "categories"),
            _package("users", "users", "user_groups"),
            _package("sections", "sections", "section_entries"),
        ]
    )


def _rule(resource, c=False, r=False, u=False, d=False, package=None, id=None):
    return AccessRule(
        resource=resource,
        create_access=c,
        read_access=r,
        update_access=u,
        delete_access=d,
        package=package,
        id=id,
    )


class StaticRuleStore:
    def __init__(self, groups=(), rules=()):
        self.groups = list(groups)
        self.rules = list(rules)
        self.calls = 0

    def groups_of(self, user):
        self.calls += 1
        return self.groups

    def rules_of(self, user):
        return self.rules


USER = Subject(id=7, tenant_id="t1", username="editor")


def test_user_without_groups_or_rules_gets_empty_map():
    resolver = PermissionResolver(StaticRuleStore(), _registry())

    permission_map = resolver.resolve(USER)

    assert len(permission_map) == 0
    for resource in ("categories", "users", "sections"):
        for action in ALL_ACTIONS:
            assert is_authorized(permission_map, resource, [action]) is False


def test_super_group_grants_every_action_on_every_resource():
    registry = _registry()
    store = StaticRuleStore(groups=[Group(id=1, name="Admins", is_super=True)])

    permission_map = PermissionResolver(store, registry).resolve(USER)

    for resource in registry.all_resources():
        assert is_authorized(permission_map, resource, list(ALL_ACTIONS)) is True
    assert list(permission_map) == list(registry.all_resources())


def test_user_rule_overrides_group_rule():
    store = StaticRuleStore(
        groups=[Group(id=1, name="Editors", rules=(_rule("categories", r=True),))],
        rules=[_rule("categories", r=False)],
    )

    permission_map = PermissionResolver(store, _registry()).resolve(USER)

    assert is_authorized(permission_map, "categories", [Action.read], True) is False
    assert "categories" in permission_map


def test_require_all_versus_any():
    store = StaticRuleStore(rules=[_rule("categories", r=True)])
    permission_map = PermissionResolver(store, _registry()).resolve(USER)

    assert is_authorized(permission_map, "categories", ["read", "update"], True) is False
    assert is_authorized(permission_map, "categories", ["read", "update"], False) is True


def test_wildcard_expands_to_package_resources_only():
    store = StaticRuleStore(rules=[_rule("*", c=True, package="categories")])

    permission_map = PermissionResolver(store, _registry()).resolve(USER)

    assert list(permission_map) == ["category_groups", "categories"]
    assert permission_map["category_groups"] == frozenset({Action.create})
    assert permission_map["categories"] == frozenset({Action.create})


def test_resolve_is_idempotent():
    store = StaticRuleStore(
        groups=[
            Group(id=1, name="Admins", is_super=True),
            Group(id=2, name="Editors", rules=(_rule("users", d=False, r=True),)),
        ],
        rules=[_rule("*", u=False, r=True, package="sections")],
    )
    resolver = PermissionResolver(store, _registry())

    first = resolver.resolve(USER)
    second = resolver.resolve(USER)

    assert first == second
    assert first.to_dict() == second.to_dict()
    assert list(first.items()) == list(second.items())
    assert hash(first) == hash(second)


def test_super_group_with_later_revoke_scenario():
    registry = PackageRegistry(
        [_package("categories", "categories"), _package("users", "users")]
    )
    store = StaticRuleStore(
        groups=[
            Group(id="G1", name="G1", is_super=True),
            Group(id="G2", name="G2", rules=(_rule("categories", c=True, r=True, u=True, d=False),)),
        ]
    )

    permission_map = PermissionResolver(store, registry).resolve(USER)

    assert is_authorized(permission_map, "categories", ["delete"]) is False
    assert is_authorized(permission_map, "categories", ["read"]) is True
    assert is_authorized(permission_map, "users", ["delete"]) is True


def test_false_flag_revokes_only_that_action():
    groups = [Group(id=1, name="Admins", is_super=True)]
    revoke_delete = _rule("users", c=True, r=True, u=True, d=False)

    permission_map = merge_rules(groups, [revoke_delete], _registry())

    assert permission_map["users"] == frozenset({Action.create, Action.read, Action.update})


def test_rule_with_only_false_flags_leaves_an_empty_entry():
    permission_map = merge_rules([], [_rule("categories")], _registry())

    assert "categories" in permission_map
    assert permission_map["categories"] == frozenset()
    assert is_authorized(permission_map, "categories", ["read"], False) is False


def test_later_group_wins_under_last_wins():
    grant = Group(id=1, name="Granting", rules=(_rule("categories", r=True, d=True),))
    revoke = Group(id=2, name="Revoking", rules=(_rule("categories", r=True, d=False),))

    forward = merge_rules([grant, revoke], [], _registry())
    backward = merge_rules([revoke, grant], [], _registry())

    assert Action.delete not in forward["categories"]
    assert Action.delete in backward["categories"]


def test_most_restrictive_revoke_beats_any_group_order():
    grant = Group(id=1, name="Granting", rules=(_rule("categories", r=True, d=True),))
    revoke = Group(id=2, name="Revoking", rules=(_rule("categories", r=True, d=False),))

    for groups in ([grant, revoke], [revoke, grant]):
        permission_map = merge_rules(
            groups, [], _registry(), conflict_policy=ConflictPolicy.most_restrictive
        )
        assert permission_map["categories"] == frozenset({Action.read})


def test_most_restrictive_still_lets_user_rules_regrant():
    grant = Group(id=1, name="Granting", rules=(_rule("categories", d=True),))
    revoke = Group(id=2, name="Revoking", rules=(_rule("categories", d=False),))

    permission_map = merge_rules(
        [revoke, grant],
        [_rule("categories", d=True)],
        _registry(),
        conflict_policy=ConflictPolicy.most_restrictive,
    )

    assert permission_map["categories"] == frozenset({Action.delete})


def test_conflict_policy_accepts_setting_strings():
    resolver = PermissionResolver(StaticRuleStore(), _registry(), conflict_policy="most-restrictive")
    assert resolver.conflict_policy is ConflictPolicy.most_restrictive

    with pytest.raises(ValidationError):
        PermissionResolver(StaticRuleStore(), _registry(), conflict_policy="first-wins")


def test_non_boolean_flag_is_an_invalid_rule():
    broken = AccessRule(
        resource="categories",
        create_access=None,
        read_access=True,
        update_access=False,
        delete_access=False,
        id=42,
    )
    store = StaticRuleStore(rules=[broken])

    with pytest.raises(InvalidRuleError) as excinfo:
        PermissionResolver(store, _registry()).resolve(USER)

    assert excinfo.value.code == "INVALID_RULE"
    assert excinfo.value.details["rule_id"] == 42


def test_wildcard_without_package_is_an_invalid_rule():
    store = StaticRuleStore(rules=[_rule("*", r=True, id=3)])

    with pytest.raises(InvalidRuleError):
        PermissionResolver(store, _registry()).resolve(USER)


def test_wildcard_on_unknown_package_selects_nothing(caplog):
    store = StaticRuleStore(rules=[_rule("*", r=True, package="shop", id=9)])

    with caplog.at_level("WARNING", logger="cairn.security.acl.resolver"):
        permission_map = PermissionResolver(store, _registry()).resolve(USER)

    assert len(permission_map) == 0
    assert "unknown package shop" in caplog.text


def test_wildcard_on_unknown_package_raises_when_strict():
    store = StaticRuleStore(rules=[_rule("*", r=True, package="shop", id=9)])
    resolver = PermissionResolver(store, _registry(), strict_packages=True)

    with pytest.raises(InvalidRuleError) as excinfo:
        resolver.resolve(USER)

    assert excinfo.value.details["package"] == "shop"


def test_rule_store_failure_surfaces_instead_of_empty_map():
    store = MagicMock()
    store.groups_of.side_effect = RuntimeError("connection reset")

    with pytest.raises(RuleStoreUnavailableError) as excinfo:
        PermissionResolver(store, _registry()).resolve(USER)

    assert excinfo.value.status_code == 503
    assert excinfo.value.details["user_id"] == USER.id


def test_registry_failure_surfaces_as_unavailable():
    registry = MagicMock()
    registry.all_resources.side_effect = OSError("registry offline")
    store = StaticRuleStore(groups=[Group(id=1, name="Admins", is_super=True)])

    with pytest.raises(RuleStoreUnavailableError) as excinfo:
        PermissionResolver(store, registry).resolve(USER)

    assert excinfo.value.details["source"] == "resource_registry"


def test_permission_map_equality_is_order_sensitive():
    a = EffectivePermissionMap({"users": {Action.read}, "categories": {Action.read}})
    b = EffectivePermissionMap({"categories": {Action.read}, "users": {Action.read}})

    assert dict(a) == dict(b)
    assert a != b


class DictRegistry:
    def __init__(self, packages):
        self.packages = packages

    def resolve(self, resource_id):
        for name, resources in self.packages.items():
            if resource_id in resources:
                return name
        return None

    def resources_of(self, package):
        return tuple(self.packages.get(package, ()))

    def all_resources(self):
        return tuple(r for resources in self.packages.values() for r in resources)

    def has_package(self, name):
        return name in self.packages


def test_any_resource_registry_drives_unknown_package_handling(caplog):
    registry = DictRegistry({"categories": ["categories"], "drafts": []})
    assert isinstance(registry, ResourceRegistry)
    store = StaticRuleStore(
        rules=[_rule("*", r=True, package="drafts", id=1), _rule("*", r=True, package="shop", id=2)]
    )

    with caplog.at_level("WARNING", logger="cairn.security.acl.resolver"):
        permission_map = PermissionResolver(store, registry).resolve(USER)

    assert len(permission_map) == 0
    assert "unknown package shop" in caplog.text
    assert "unknown package drafts" not in caplog.text

    with pytest.raises(InvalidRuleError) as excinfo:
        PermissionResolver(store, registry, strict_packages=True).resolve(USER)
    assert excinfo.value.details["package"] == "shop"
