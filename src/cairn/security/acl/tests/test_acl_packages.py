import json

import pytest
import yaml

from cairn.exceptions.handlers import ConfigurationError
from cairn.security.acl.packages import discover_packages, load_registry, parse_package_dirs
from cairn.security.acl.registry import Package, PackageRegistry


def _write_yaml(directory, data):
    directory.mkdir(parents=True)
    (directory / "package.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


def _manifest(name, controllers, **extra):
    data = {
        "name": name,
        "title": name.title(),
        "author": "Cairn",
        "url": "https://cairn.example.org/",
        "about": f"The {name} package",
        "controllers": controllers,
    }
    data.update(extra)
    return data


def test_discover_reads_yaml_and_json_in_name_order(tmp_path):
    _write_yaml(tmp_path / "users", _manifest("users", ["users", "user_groups"]))
    (tmp_path / "categories").mkdir()
    (tmp_path / "categories" / "package.json").write_text(
        json.dumps(_manifest("categories", ["category_groups", "categories"])),
        encoding="utf-8",
    )
    (tmp_path / "notes.txt").write_text("not a package", encoding="utf-8")
    (tmp_path / "empty").mkdir()

    packages = discover_packages([tmp_path])

    assert [p.name for p in packages] == ["categories", "users"]
    assert packages[0].controllers == ("category_groups", "categories")
    assert packages[0].directory == str(tmp_path / "categories")


def test_load_registry_orders_resources_by_registration(tmp_path):
    _write_yaml(tmp_path / "a_categories", _manifest("categories", ["category_groups", "categories"]))
    _write_yaml(tmp_path / "b_users", _manifest("users", ["users"]))

    registry = load_registry([tmp_path, tmp_path / "missing"])

    assert registry.all_resources() == ("category_groups", "categories", "users")
    assert registry.resources_of("categories") == ("category_groups", "categories")
    assert registry.resources_of("shop") == ()
    assert registry.resolve("users") == "users"
    assert registry.resolve("orders") is None


def test_manifest_missing_required_field_is_rejected(tmp_path):
    data = _manifest("users", ["users"])
    del data["author"]
    _write_yaml(tmp_path / "users", data)

    with pytest.raises(ConfigurationError) as excinfo:
        discover_packages([tmp_path])

    assert excinfo.value.details["config_key"] == "author"


def test_controller_owned_twice_is_rejected(tmp_path):
    _write_yaml(tmp_path / "a", _manifest("categories", ["categories"]))
    _write_yaml(tmp_path / "b", _manifest("tags", ["categories"]))

    with pytest.raises(ConfigurationError) as excinfo:
        load_registry([tmp_path])

    assert excinfo.value.details["controller"] == "categories"


def test_menu_items_are_parsed_recursively(tmp_path):
    _write_yaml(
        tmp_path / "users",
        _manifest(
            "users",
            ["users", "user_groups"],
            menu=[
                {
                    "title": "Users",
                    "url": "admin/users",
                    "resource": "users",
                    "children": [{"title": "Groups", "url": "/admin/user-groups", "resource": "user_groups"}],
                }
            ],
        ),
    )

    (package,) = discover_packages([tmp_path])

    assert package.menu[0].title == "Users"
    assert package.menu[0].children[0].resource == "user_groups"


def test_menu_item_without_url_is_rejected(tmp_path):
    _write_yaml(tmp_path / "users", _manifest("users", ["users"], menu=[{"title": "Users"}]))

    with pytest.raises(ConfigurationError):
        discover_packages([tmp_path])


def test_parse_package_dirs_splits_on_commas():
    assert [str(p) for p in parse_package_dirs("./packages, /opt/cairn/packages,,")] == [
        "packages",
        "/opt/cairn/packages",
    ]


def test_registry_rejects_duplicate_package_and_unregisters():
    package = Package(
        name="users", title="Users", author="Cairn", url="https://cairn.example.org/",
        about="Users", controllers=("users",),
    )
    registry = PackageRegistry([package])

    with pytest.raises(ConfigurationError):
        registry.register(package)

    registry.unregister("users")
    assert registry.resolve("users") is None
    assert registry.has_package("users") is False


def test_bundled_packages_load(request):
    root = request.config.rootpath / "packages"
    registry = load_registry([root])

    assert registry.resolve("user_groups") == "users"
    assert registry.resolve("access_rules") == "users"
    assert "categories" in registry.resources_of("categories")
