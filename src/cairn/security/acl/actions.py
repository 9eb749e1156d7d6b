from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Tuple, Union

from cairn.exceptions.handlers import ValidationError


class Action(str, Enum):
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"


ALL_ACTIONS: Tuple[Action, ...] = (
    Action.create,
    Action.read,
    Action.update,
    Action.delete,
)


def parse_action(value: Union[str, Action]) -> Action:
    if isinstance(value, Action):
        return value
    try:
        return Action(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown action: {value}", field="actions") from None


def parse_actions(values: Iterable[Union[str, Action]]) -> List[Action]:
    """Normalize a list of required actions, keeping order and dropping repeats."""
    actions: List[Action] = []
    for value in values:
        action = parse_action(value)
        if action not in actions:
            actions.append(action)
    if not actions:
        raise ValidationError("At least one action is required", field="actions")
    return actions
