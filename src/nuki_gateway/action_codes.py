"""Switch intent -> bridge action code mapping and the status labels shown to users."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Literal


SwitchIntent = Literal["on", "off"]


class ActionCode(IntEnum):
    UNLOCK = 1
    LOCK = 2
    UNLATCH = 3
    LOCK_N_GO = 4
    LOCK_N_GO_WITH_UNLATCH = 5
    UNDEFINED = 255


DEFAULT_SWITCH_OFF_ACTION = ActionCode.LOCK
DEFAULT_SWITCH_ON_ACTION = ActionCode.UNLOCK

_LABELS: dict[ActionCode, str] = {
    ActionCode.UNLOCK: "unlock",
    ActionCode.LOCK: "lock",
    ActionCode.UNLATCH: "unlatch",
    ActionCode.LOCK_N_GO: "lock 'n' go",
    ActionCode.LOCK_N_GO_WITH_UNLATCH: "lock 'n' go with unlatch",
    ActionCode.UNDEFINED: "undefined",
}


def coerce_action_code(value: Any, *, default: ActionCode | None = None) -> ActionCode:
    """Parse a configured action value ("2", 2, ActionCode.LOCK).

    Missing values fall back to `default`; anything unparseable becomes UNDEFINED so that
    it is rejected before reaching the bridge.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return default if default is not None else ActionCode.UNDEFINED
    if isinstance(value, bool):
        return ActionCode.UNDEFINED
    try:
        return ActionCode(int(value))
    except (TypeError, ValueError):
        return ActionCode.UNDEFINED


def resolve(
    intent: SwitchIntent | bool,
    *,
    off_action: ActionCode | None = None,
    on_action: ActionCode | None = None,
) -> ActionCode:
    if isinstance(intent, bool):
        intent = "on" if intent else "off"
    if intent == "on":
        return on_action if on_action is not None else DEFAULT_SWITCH_ON_ACTION
    if intent == "off":
        return off_action if off_action is not None else DEFAULT_SWITCH_OFF_ACTION
    return ActionCode.UNDEFINED


def label(code: ActionCode) -> str:
    # Every ActionCode member has a label; a miss here is a programming error.
    return _LABELS[ActionCode(code)]
