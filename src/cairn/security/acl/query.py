from __future__ import annotations

from typing import Iterable, Union

from cairn.security.acl.actions import Action, parse_actions
from cairn.security.acl.permission_map import EffectivePermissionMap


def is_authorized(
    permission_map: EffectivePermissionMap,
    resource_id: str,
    required: Iterable[Union[str, Action]],
    require_all: bool = True,
) -> bool:
    """
    Check `required` actions on `resource_id` against a resolved map.

    A resource without an entry is denied whatever the mode. With
    `require_all` every action must be permitted, otherwise one is enough.
    """
    actions = parse_actions(required)
    if resource_id not in permission_map:
        return False

    permitted = permission_map[resource_id]
    if require_all:
        return all(action in permitted for action in actions)
    return any(action in permitted for action in actions)
