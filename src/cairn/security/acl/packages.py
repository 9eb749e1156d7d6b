"""
Package manifest discovery.

Each package lives in its own directory under one of the configured package
directories and describes itself in `package.json`, `package.yaml` or
`package.yml`:

    name: categories
    title: Categories
    author: Cairn
    url: https://example.org/
    about: Manage categories and category groups
    controllers: [category_groups, categories]
    menu:
      - title: Categories
        url: admin/category-groups
        resource: category_groups
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import yaml

from cairn.exceptions.handlers import ConfigurationError
from cairn.security.acl.registry import (
    REQUIRED_PACKAGE_FIELDS,
    MenuItem,
    Package,
    PackageRegistry,
)

logger = logging.getLogger(__name__)

MANIFEST_FILES = ("package.json", "package.yaml", "package.yml")


def _parse_menu(items: Any, manifest_path: Path) -> tuple:
    if items is None:
        return ()
    if not isinstance(items, list):
        raise ConfigurationError(
            f"Package menu must be a list in {manifest_path}", config_key="menu"
        )
    parsed: List[MenuItem] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("title") or not item.get("url"):
            raise ConfigurationError(
                f"Menu items need a title and url in {manifest_path}", config_key="menu"
            )
        parsed.append(
            MenuItem(
                title=str(item["title"]),
                url=str(item["url"]),
                resource=item.get("resource"),
                children=_parse_menu(item.get("children"), manifest_path),
            )
        )
    return tuple(parsed)


def package_from_dict(data: Dict[str, Any], *, manifest_path: Path) -> Package:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Package manifest is not a mapping: {manifest_path}")

    for field_name in REQUIRED_PACKAGE_FIELDS:
        if not data.get(field_name):
            raise ConfigurationError(
                f'A loaded package has no value set for "{field_name}" ({manifest_path})',
                config_key=field_name,
            )

    controllers = data.get("controllers") or []
    if not isinstance(controllers, list) or not all(
        isinstance(c, str) and c for c in controllers
    ):
        raise ConfigurationError(
            f"Package controllers must be a list of names in {manifest_path}",
            config_key="controllers",
        )

    return Package(
        name=str(data["name"]),
        title=str(data["title"]),
        author=str(data["author"]),
        url=str(data["url"]),
        about=str(data["about"]),
        controllers=tuple(controllers),
        menu=_parse_menu(data.get("menu"), manifest_path),
        version=str(data.get("version", "")),
        directory=str(manifest_path.parent),
    )


def read_manifest(manifest_path: Path) -> Package:
    with open(manifest_path, "r", encoding="utf-8") as f:
        if manifest_path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    return package_from_dict(data, manifest_path=manifest_path)


def _find_manifest(package_dir: Path) -> Optional[Path]:
    for name in MANIFEST_FILES:
        candidate = package_dir / name
        if candidate.exists():
            return candidate
    return None


def discover_packages(directories: Iterable[Path]) -> List[Package]:
    """
    Read every package manifest below `directories`.

    Directories are visited in the given order and their sub-directories in
    name order, which fixes the registry order across processes.
    """
    packages: List[Package] = []
    for directory in directories:
        if not directory.exists():
            logger.debug("Package directory %s does not exist", directory)
            continue
        for item in sorted(directory.iterdir()):
            if not item.is_dir():
                continue
            manifest_path = _find_manifest(item)
            if manifest_path is None:
                continue
            packages.append(read_manifest(manifest_path))
    return packages


def parse_package_dirs(value: str) -> List[Path]:
    return [Path(p.strip()) for p in (value or "").split(",") if p.strip()]


def load_registry(directories: Iterable[Path]) -> PackageRegistry:
    registry = PackageRegistry()
    for package in discover_packages(directories):
        registry.register(package)
    logger.info(
        "Loaded %d package(s) with %d resource(s)",
        len(registry.packages()),
        len(registry.all_resources()),
    )
    return registry
