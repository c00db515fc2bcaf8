from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from nuki_gateway.errors import BridgeResult, protocol_error
from nuki_gateway.event_hub import EventHub
from nuki_gateway.lock_state import LockReading, LockState, switch_value


class ObservationSource(str, Enum):
    PUSH = "push"
    POLL = "poll"


@dataclass(frozen=True)
class ProtocolEntry:
    observed_at: float
    state: str
    source: ObservationSource

    def render(self) -> str:
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(self.observed_at))
        return f"{stamp}, {self.state} ({self.source.value})"


@dataclass(frozen=True)
class DeviceSnapshot:
    device_id: str
    name: str
    state: LockState
    raw_code: int | None
    observed_at: float | None
    source: ObservationSource | None
    battery_critical: bool
    switch_on: bool | None
    protocol: tuple[ProtocolEntry, ...]
    hide_switch: bool = False
    revision: int = 0

    @property
    def protocol_text(self) -> str:
        return "\n".join(entry.render() for entry in reversed(self.protocol))

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "name": self.name,
            "state": self.state.value,
            "rawCode": self.raw_code,
            "observedAt": self.observed_at,
            "source": self.source.value if self.source else None,
            "batteryCritical": self.battery_critical,
            "switchOn": self.switch_on,
            "hideSwitch": self.hide_switch,
            "protocol": [
                {"observedAt": e.observed_at, "state": e.state, "source": e.source.value} for e in self.protocol
            ],
        }


@dataclass
class _Device:
    device_id: str
    name: str
    protocol: deque[ProtocolEntry]
    state: LockState = LockState.UNCALIBRATED
    raw_code: int | None = None
    observed_at: float | None = None
    source: ObservationSource | None = None
    battery_critical: bool = False
    switch_on: bool | None = None
    hide_switch: bool = False
    revision: int = 0

    def snapshot(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            device_id=self.device_id,
            name=self.name,
            state=self.state,
            raw_code=self.raw_code,
            observed_at=self.observed_at,
            source=self.source,
            battery_critical=self.battery_critical,
            switch_on=self.switch_on,
            protocol=tuple(self.protocol),
            hide_switch=self.hide_switch,
            revision=self.revision,
        )


@dataclass
class StateReconciler:
    """Single owner of per-device lock state.

    Push and poll observations are applied in arrival order; the latest accepted one wins. Readers
    only ever get frozen snapshots.

    Every accepted observation bumps a reconciler-wide revision and stamps it on the device, so a
    caller holding data fetched earlier can tell whether the device has moved on since.
    """

    protocol_capacity: int = 6
    hub: EventHub | None = None
    _devices: dict[str, _Device] = field(default_factory=dict, init=False)
    _revision: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        if self.protocol_capacity < 1:
            raise ValueError("protocol_capacity must be at least 1")

    @property
    def revision(self) -> int:
        return self._revision

    def device_revision(self, device_id: str) -> int:
        device = self._devices.get(device_id)
        return device.revision if device else 0

    def _new_device(self, device_id: str, name: str) -> _Device:
        return _Device(
            device_id=device_id,
            name=name,
            protocol=deque(maxlen=self.protocol_capacity),
        )

    def register(self, device_id: str, name: str = "", *, hide_switch: bool | None = None) -> DeviceSnapshot:
        device = self._devices.get(device_id)
        if device is None:
            device = self._new_device(device_id, name)
            self._devices[device_id] = device
        elif name:
            device.name = name
        if hide_switch is not None:
            device.hide_switch = hide_switch
        return device.snapshot()

    async def observe(
        self,
        device_id: str,
        reading: LockReading,
        source: ObservationSource,
    ) -> BridgeResult[DeviceSnapshot]:
        if reading.device_id is not None and reading.device_id != device_id:
            return protocol_error(
                "Observation belongs to a different device",
                device_id=device_id,
                reported_id=reading.device_id,
            )

        device = self._devices.get(device_id)
        if device is None:
            device = self._new_device(device_id, "")
            self._devices[device_id] = device

        previous = device.state
        device.state = reading.state
        device.raw_code = reading.raw_code
        device.observed_at = reading.observed_at
        device.source = source
        if reading.battery_critical is not None:
            device.battery_critical = reading.battery_critical
        switch = switch_value(reading.state)
        if switch is not None:
            device.switch_on = switch
        device.protocol.append(ProtocolEntry(observed_at=reading.observed_at, state=reading.state.value, source=source))
        self._revision += 1
        device.revision = self._revision

        snapshot = device.snapshot()
        if self.hub is not None:
            await self.hub.publish(
                {
                    "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                    "source": source.value,
                    "type": "lock.state_changed",
                    "device": {"id": device_id, "name": device.name},
                    "data": {"state": reading.state.value, "previous": previous.value, "rawCode": reading.raw_code},
                }
            )
        return BridgeResult.success(snapshot)

    def current_state(self, device_id: str) -> LockState | None:
        device = self._devices.get(device_id)
        return device.state if device else None

    def snapshot(self, device_id: str) -> DeviceSnapshot | None:
        device = self._devices.get(device_id)
        return device.snapshot() if device else None

    def snapshots(self) -> list[DeviceSnapshot]:
        return [device.snapshot() for device in self._devices.values()]
