from __future__ import annotations

from typing import Any, Dict, Iterable, List

from cairn.security.acl.actions import Action
from cairn.security.acl.permission_map import EffectivePermissionMap
from cairn.security.acl.registry import MenuItem, PackageRegistry


def _normalize_url(url: str) -> str:
    return url if url.startswith("/") else "/" + url


def _visible(item: MenuItem, permission_map: EffectivePermissionMap) -> bool:
    if item.resource is None:
        return True
    return Action.read in permission_map.actions_for(item.resource)


def _build(items: Iterable[MenuItem], permission_map: EffectivePermissionMap) -> List[Dict[str, Any]]:
    nodes: List[Dict[str, Any]] = []
    for item in sorted(items, key=lambda i: i.title):
        if not _visible(item, permission_map):
            continue
        node: Dict[str, Any] = {
            "title": item.title,
            "url": _normalize_url(item.url),
            "resource": item.resource,
        }
        children = _build(item.children, permission_map)
        if children:
            node["children"] = children
        nodes.append(node)
    return nodes


def build_menu(
    registry: PackageRegistry, permission_map: EffectivePermissionMap
) -> List[Dict[str, Any]]:
    """
    Navigation tree of every registered package, alphabetical by title.

    Items tied to a resource only show up when the user may read it; items
    without a resource are always shown.
    """
    items: List[MenuItem] = []
    for package in registry.packages():
        items.extend(package.menu)
    return _build(items, permission_map)
