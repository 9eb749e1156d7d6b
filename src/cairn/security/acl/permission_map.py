from __future__ import annotations

from collections.abc import Mapping
from typing import Dict, FrozenSet, Iterator, List

from cairn.security.acl.actions import ALL_ACTIONS, Action


class EffectivePermissionMap(Mapping):
    """
    Immutable resource id -> permitted actions mapping.

    Entries keep the order in which the resolver first touched each resource,
    so two resolutions over the same inputs compare and serialize identically.
    Empty action sets are kept: a resource whose grants were all revoked still
    has an entry, it just permits nothing.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping = ()) -> None:
        frozen: Dict[str, FrozenSet[Action]] = {}
        for resource, actions in dict(entries).items():
            frozen[str(resource)] = frozenset(Action(a) for a in actions)
        self._entries = frozen

    def __getitem__(self, resource: str) -> FrozenSet[Action]:
        return self._entries[resource]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, EffectivePermissionMap):
            return list(self._entries.items()) == list(other._entries.items())
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._entries.items()))

    def __repr__(self) -> str:
        return f"EffectivePermissionMap({self.to_dict()!r})"

    def actions_for(self, resource: str) -> FrozenSet[Action]:
        return self._entries.get(resource, frozenset())

    def to_dict(self) -> Dict[str, List[str]]:
        """JSON friendly form; actions are listed in canonical order."""
        return {
            resource: [a.value for a in ALL_ACTIONS if a in actions]
            for resource, actions in self._entries.items()
        }


EMPTY_PERMISSION_MAP = EffectivePermissionMap()
