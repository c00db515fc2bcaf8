from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any


class LockState(str, Enum):
    UNCALIBRATED = "uncalibrated"
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED = "unlocked"
    LOCKING = "locking"
    UNLATCHED = "unlatched"
    UNLATCHING = "unlatching"
    UNLATCH_RECALIBRATION = "unlatch-recalibration"
    MOTOR_BLOCKED = "motor-blocked"
    UNDEFINED = "undefined"


# Raw bridge state codes. 6 is "unlocked (lock 'n' go)" on the bridge.
_CODE_TO_STATE: dict[int, LockState] = {
    0: LockState.UNCALIBRATED,
    1: LockState.LOCKED,
    2: LockState.UNLOCKING,
    3: LockState.UNLOCKED,
    4: LockState.LOCKING,
    5: LockState.UNLATCHED,
    6: LockState.UNLOCKED,
    7: LockState.UNLATCHING,
    253: LockState.UNLATCH_RECALIBRATION,
    254: LockState.MOTOR_BLOCKED,
    255: LockState.UNDEFINED,
}

_SWITCH_ON = {LockState.UNLOCKING, LockState.UNLOCKED, LockState.UNLATCHED, LockState.UNLATCHING}
_SWITCH_OFF = {LockState.LOCKED, LockState.LOCKING}


def state_from_code(code: int) -> LockState:
    return _CODE_TO_STATE.get(code, LockState.UNDEFINED)


def switch_value(state: LockState) -> bool | None:
    """Switch position implied by a lock state; None when it says nothing about it."""
    if state in _SWITCH_ON:
        return True
    if state in _SWITCH_OFF:
        return False
    return None


@dataclass(frozen=True)
class LockReading:
    state: LockState
    raw_code: int
    observed_at: float
    battery_critical: bool | None = None
    state_name: str | None = None
    device_id: str | None = None


def parse_lock_payload(payload: Any, *, observed_at: float | None = None) -> LockReading | None:
    """Build a LockReading from a bridge JSON object (lockState reply, callback body or /list entry).

    Returns None when the object carries no usable integer `state`.
    """
    if not isinstance(payload, dict):
        return None
    raw = payload.get("state")
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        return None
    try:
        code = int(raw)
    except ValueError:
        return None

    battery = payload.get("batteryCritical")
    state_name = payload.get("stateName")
    nuki_id = payload.get("nukiId")
    return LockReading(
        state=state_from_code(code),
        raw_code=code,
        observed_at=observed_at if observed_at is not None else time.time(),
        battery_critical=battery if isinstance(battery, bool) else None,
        state_name=state_name if isinstance(state_name, str) else None,
        device_id=str(nuki_id) if isinstance(nuki_id, (int, str)) and not isinstance(nuki_id, bool) else None,
    )
