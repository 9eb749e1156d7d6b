"""
Plain value types fed into the permission resolver.

The resolver never touches ORM rows directly: the rule store converts rows
into these frozen dataclasses so resolution stays a pure function.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from cairn.exceptions.handlers import InvalidRuleError
from cairn.security.acl.actions import ALL_ACTIONS, Action

WILDCARD = "*"


@dataclass(frozen=True)
class AccessRule:
    resource: str
    create_access: bool
    read_access: bool
    update_access: bool
    delete_access: bool
    package: Optional[str] = None
    id: Optional[Any] = None

    @property
    def is_wildcard(self) -> bool:
        return self.resource == WILDCARD

    def flag(self, action: Action) -> bool:
        return getattr(self, f"{action.value}_access")

    def flags(self) -> Tuple[Tuple[Action, bool], ...]:
        return tuple((action, self.flag(action)) for action in ALL_ACTIONS)

    def validate(self) -> None:
        for action in ALL_ACTIONS:
            value = getattr(self, f"{action.value}_access")
            if not isinstance(value, bool):
                raise InvalidRuleError(
                    f"Rule flag {action.value}_access must be a boolean, got {value!r}",
                    rule_id=self.id,
                )
        if not self.resource:
            raise InvalidRuleError("Rule has no resource selector", rule_id=self.id)
        if self.is_wildcard and not self.package:
            raise InvalidRuleError(
                "Wildcard rule requires a package reference", rule_id=self.id
            )


@dataclass(frozen=True)
class Group:
    id: Any
    name: str
    is_super: bool = False
    rules: Tuple[AccessRule, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Subject:
    """The authenticated identity whose permissions are being resolved."""

    id: int
    tenant_id: Optional[str] = None
    username: Optional[str] = None
