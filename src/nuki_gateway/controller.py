from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum

from nuki_gateway.action_codes import ActionCode, label, resolve
from nuki_gateway.bridge_client import Ack, BridgeClient, BridgeInfo, RegisteredCallback
from nuki_gateway.config import AppConfig
from nuki_gateway.errors import BridgeError, BridgeResult, ErrorKind
from nuki_gateway.host import DebugSink, DeviceRegistry, LoggingDebugSink, StaticDeviceRegistry
from nuki_gateway.reconciler import DeviceSnapshot, ObservationSource, StateReconciler


logger = logging.getLogger(__name__)


class BridgeStatus(str, Enum):
    ACTIVE = "active"
    MISCONFIGURED = "misconfigured"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class ActionOutcome:
    device_id: str
    action: ActionCode
    label: str
    ack: Ack
    snapshot: DeviceSnapshot | None


class LockController:
    """Device-facing entry point: turns intents into bridge calls and feeds the reconciler.

    Calls for the same device are serialized so a poll can never overtake a newer command.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        client: BridgeClient,
        reconciler: StateReconciler,
        registry: DeviceRegistry | None = None,
        sink: DebugSink | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.reconciler = reconciler
        self.registry = registry or StaticDeviceRegistry(config)
        self.sink = sink or LoggingDebugSink()
        self._device_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        for lock in config.locks.values():
            reconciler.register(lock.device_id, lock.name, hide_switch=lock.hide_switch)

    @property
    def push_enabled(self) -> bool:
        return self.client.endpoint.use_callback

    def owns(self, device_id: str) -> bool:
        return self.registry.resolve_bridge(device_id) is not None

    def _report(self, tag: str, error: BridgeError) -> None:
        self.sink.send_debug(tag, f"{error.kind.value}: {error.message} {error.details}")

    async def bridge_info(self) -> BridgeResult[BridgeInfo]:
        result = await self.client.get_bridge_info()
        if not result.ok:
            self._report("BridgeInfo", result.error)
        return result

    async def bridge_status(self) -> tuple[BridgeStatus, BridgeError | None]:
        checked = self.client.endpoint.validate()
        if not checked.ok:
            return BridgeStatus.MISCONFIGURED, checked.error
        result = await self.bridge_info()
        if result.ok:
            return BridgeStatus.ACTIVE, None
        if result.error.kind is ErrorKind.CONFIGURATION:
            return BridgeStatus.MISCONFIGURED, result.error
        return BridgeStatus.UNREACHABLE, result.error

    async def switch(self, device_id: str, on: bool) -> BridgeResult[ActionOutcome]:
        lock = self.config.lock(device_id)
        action = resolve(on, off_action=lock.switch_off_action, on_action=lock.switch_on_action)
        return await self.perform_action(device_id, action)

    async def perform_action(self, device_id: str, action: ActionCode | int) -> BridgeResult[ActionOutcome]:
        async with self._device_locks[device_id]:
            sent = await self.client.set_lock_action(device_id, action)
            if not sent.ok:
                self._report("SetLockAction", sent.error)
                return BridgeResult(error=sent.error)

            code = ActionCode(int(action))
            self.sink.send_debug("SetLockAction", f"{device_id}: {label(code)} -> success={sent.value.success}")
            snapshot = self.reconciler.snapshot(device_id)
            # Without push callbacks nothing else will report the outcome, so ask for it now.
            if not self.push_enabled:
                polled = await self._poll(device_id)
                if polled.ok:
                    snapshot = polled.value
            return BridgeResult.success(
                ActionOutcome(device_id=device_id, action=code, label=label(code), ack=sent.value, snapshot=snapshot)
            )

    async def refresh(self, device_id: str) -> BridgeResult[DeviceSnapshot]:
        async with self._device_locks[device_id]:
            return await self._poll(device_id)

    async def _poll(self, device_id: str) -> BridgeResult[DeviceSnapshot]:
        polled = await self.client.get_lock_state(device_id)
        if not polled.ok:
            self._report("GetLockState", polled.error)
            return BridgeResult(error=polled.error)
        observed = await self.reconciler.observe(device_id, polled.value, ObservationSource.POLL)
        if not observed.ok:
            self._report("GetLockState", observed.error)
        return observed

    async def sync_all(self) -> BridgeResult[list[DeviceSnapshot]]:
        started = self.reconciler.revision
        listed = await self.client.list_paired_devices()
        if not listed.ok:
            self._report("SyncAll", listed.error)
            return BridgeResult(error=listed.error)

        snapshots: list[DeviceSnapshot] = []
        for device in listed.value:
            if not self.owns(device.device_id):
                continue
            configured = self.config.locks.get(device.device_id)
            self.reconciler.register(device.device_id, (configured.name if configured else "") or device.name)
            if device.last_known is None:
                continue
            async with self._device_locks[device.device_id]:
                # /list may have been answered before a newer push or poll for this device landed.
                if self.reconciler.device_revision(device.device_id) > started:
                    snapshot = self.reconciler.snapshot(device.device_id)
                    if snapshot is not None:
                        snapshots.append(snapshot)
                    continue
                observed = await self.reconciler.observe(device.device_id, device.last_known, ObservationSource.POLL)
            if observed.ok:
                snapshots.append(observed.value)
        return BridgeResult.success(snapshots)

    async def unpair(self, device_id: str) -> BridgeResult[Ack]:
        async with self._device_locks[device_id]:
            result = await self.client.unpair_device(device_id)
        if not result.ok:
            self._report("UnpairDevice", result.error)
        return result

    async def ensure_callback(self) -> BridgeResult[RegisteredCallback | None]:
        """Register the listener URL with the bridge unless it is already known there."""
        url = self.client.endpoint.callback_url
        if not self.push_enabled or not url:
            return BridgeResult.success(None)
        listed = await self.client.list_callbacks()
        if not listed.ok:
            self._report("Callback", listed.error)
            return BridgeResult(error=listed.error)
        for callback in listed.value:
            if callback.url == url:
                return BridgeResult.success(callback)

        added = await self.client.add_callback(url)
        if not added.ok:
            self._report("Callback", added.error)
            return BridgeResult(error=added.error)
        if not added.value.success:
            logger.warning("bridge refused callback %s: %s", url, added.value.message)
            return BridgeResult.success(None)
        logger.info("registered callback %s with bridge", url)
        # The add call does not echo the assigned id.
        relisted = await self.client.list_callbacks()
        if relisted.ok:
            for callback in relisted.value:
                if callback.url == url:
                    return BridgeResult.success(callback)
        return BridgeResult.success(None)
