import asyncio
from dataclasses import replace

import httpx
import pytest

from nuki_gateway.action_codes import ActionCode
from nuki_gateway.bridge_client import BridgeClient
from nuki_gateway.config import LockConfig
from nuki_gateway.controller import BridgeStatus, LockController
from nuki_gateway.errors import ErrorKind
from nuki_gateway.lock_state import LockReading, LockState
from nuki_gateway.reconciler import ObservationSource, StateReconciler


class RecordingSink:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def send_debug(self, tag: str, message: str) -> None:
        self.messages.append((tag, message))


def _controller(config, handler, **kwargs) -> LockController:
    client = BridgeClient(endpoint=config.endpoint, transport=httpx.MockTransport(handler))
    return LockController(
        config=config,
        client=client,
        reconciler=StateReconciler(protocol_capacity=config.protocol_entries),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_switch_polls_after_action_when_push_is_disabled(config):
    paths: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/lockAction":
            assert request.url.params["action"] == "2"
            return httpx.Response(200, json={"success": True, "batteryCritical": False})
        return httpx.Response(200, json={"state": 1, "stateName": "locked", "success": True})

    controller = _controller(config, handler)
    try:
        result = await controller.switch("11", False)
        assert result.ok
        assert result.value.action is ActionCode.LOCK
        assert result.value.label == "lock"
        assert result.value.snapshot.state is LockState.LOCKED
        assert paths == ["/lockAction", "/lockState"]
        assert controller.reconciler.snapshot("11").source is ObservationSource.POLL
    finally:
        await controller.client.close()


@pytest.mark.asyncio
async def test_switch_waits_for_push_when_push_is_enabled(config):
    paths: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"success": True})

    config = replace(config, endpoint=replace(config.endpoint, use_callback=True, callback_host="10.0.0.2"))
    controller = _controller(config, handler)
    try:
        result = await controller.switch("22", True)
        assert result.ok
        assert result.value.action is ActionCode.UNLATCH
        assert paths == ["/lockAction"]
        assert controller.reconciler.current_state("22") is LockState.UNCALIBRATED
    finally:
        await controller.client.close()


@pytest.mark.asyncio
async def test_undefined_switch_mapping_is_rejected_without_network(config):
    calls = {"n": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={"success": True})

    locks = {**config.locks, "33": LockConfig(device_id="33", switch_on_action=ActionCode.UNDEFINED)}
    sink = RecordingSink()
    controller = _controller(replace(config, locks=locks), handler, sink=sink)
    try:
        result = await controller.switch("33", True)
        assert result.error.kind is ErrorKind.INVALID_ACTION
        assert calls["n"] == 0
        assert sink.messages and sink.messages[0][0] == "SetLockAction"
    finally:
        await controller.client.close()


@pytest.mark.asyncio
async def test_unreachable_bridge_leaves_state_unchanged(config):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    controller = _controller(config, handler)
    await controller.reconciler.observe(
        "11", LockReading(state=LockState.LOCKED, raw_code=1, observed_at=1.0), ObservationSource.PUSH
    )
    try:
        switched = await controller.switch("11", True)
        assert switched.error.kind is ErrorKind.REACHABILITY
        refreshed = await controller.refresh("11")
        assert refreshed.error.kind is ErrorKind.REACHABILITY
        assert controller.reconciler.current_state("11") is LockState.LOCKED
        assert len(controller.reconciler.snapshot("11").protocol) == 1
    finally:
        await controller.client.close()


@pytest.mark.asyncio
async def test_calls_for_the_same_device_are_serialized(config):
    active = {"n": 0, "max": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        active["n"] += 1
        active["max"] = max(active["max"], active["n"])
        await asyncio.sleep(0.01)
        active["n"] -= 1
        if request.url.path == "/lockAction":
            return httpx.Response(200, json={"success": True})
        return httpx.Response(200, json={"state": 3, "success": True})

    controller = _controller(config, handler)
    try:
        await asyncio.gather(controller.switch("11", True), controller.refresh("11"), controller.switch("11", False))
        assert active["max"] == 1
    finally:
        await controller.client.close()


@pytest.mark.asyncio
async def test_sync_all_registers_names_and_states(config):
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/list"
        return httpx.Response(
            200,
            json=[
                {"nukiId": 11, "name": "Bridge name", "lastKnownState": {"state": 1, "batteryCritical": True}},
                {"nukiId": 22, "name": "Garage", "lastKnownState": {"state": 5}},
                {"nukiId": 99, "name": "Neighbour", "lastKnownState": {"state": 3}},
            ],
        )

    controller = _controller(config, handler)
    try:
        result = await controller.sync_all()
        assert [s.device_id for s in result.value] == ["11", "22"]
        front = controller.reconciler.snapshot("11")
        assert front.name == "Front door"
        assert front.battery_critical is True
        assert controller.reconciler.current_state("22") is LockState.UNLATCHED
        assert controller.reconciler.snapshot("99") is None
    finally:
        await controller.client.close()


@pytest.mark.asyncio
async def test_sync_all_keeps_states_observed_while_the_list_was_in_flight(config):
    listing = asyncio.Event()
    switched = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/list":
            listing.set()
            await switched.wait()
            return httpx.Response(
                200,
                json=[
                    {"nukiId": 11, "name": "Front", "lastKnownState": {"state": 1}},
                    {"nukiId": 22, "name": "Garage", "lastKnownState": {"state": 1}},
                ],
            )
        if request.url.path == "/lockAction":
            return httpx.Response(200, json={"success": True})
        return httpx.Response(200, json={"state": 3, "stateName": "unlocked", "success": True})

    controller = _controller(config, handler)
    try:
        sync = asyncio.create_task(controller.sync_all())
        await asyncio.wait_for(listing.wait(), timeout=3.0)

        switched_on = await controller.switch("11", True)
        assert switched_on.ok
        assert controller.reconciler.current_state("11") is LockState.UNLOCKED
        switched.set()

        result = await sync
        assert result.ok
        assert [s.device_id for s in result.value] == ["11", "22"]
        assert controller.reconciler.current_state("11") is LockState.UNLOCKED
        assert controller.reconciler.current_state("22") is LockState.LOCKED
        assert [e.state for e in controller.reconciler.snapshot("11").protocol] == ["unlocked"]
    finally:
        await controller.client.close()


def test_hidden_switch_flag_reaches_snapshots(config):
    locks = dict(config.locks)
    locks["11"] = replace(locks["11"], hide_switch=True)
    controller = _controller(replace(config, locks=locks), lambda request: httpx.Response(500))

    assert controller.reconciler.snapshot("11").hide_switch is True
    assert controller.reconciler.snapshot("11").to_dict()["hideSwitch"] is True
    assert controller.reconciler.snapshot("22").to_dict()["hideSwitch"] is False


@pytest.mark.asyncio
async def test_bridge_status_reflects_configuration_and_reachability(config):
    async def ok(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"bridgeType": 1, "ids": {}, "versions": {}})

    async def down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    healthy = _controller(config, ok)
    offline = _controller(config, down)
    broken = _controller(replace(config, endpoint=replace(config.endpoint, host=None)), ok)
    try:
        assert (await healthy.bridge_status())[0] is BridgeStatus.ACTIVE
        assert (await offline.bridge_status())[0] is BridgeStatus.UNREACHABLE
        status, error = await broken.bridge_status()
        assert status is BridgeStatus.MISCONFIGURED
        assert error.kind is ErrorKind.CONFIGURATION
    finally:
        for c in (healthy, offline, broken):
            await c.client.close()


@pytest.mark.asyncio
async def test_ensure_callback_registers_missing_url(config):
    registered: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/callback/list":
            return httpx.Response(200, json={"callbacks": [{"id": 4, "url": u} for u in registered]})
        if request.url.path == "/callback/add":
            registered.append(request.url.params["url"])
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404)

    config = replace(config, endpoint=replace(config.endpoint, use_callback=True, callback_host="10.0.0.2"))
    controller = _controller(config, handler)
    try:
        first = await controller.ensure_callback()
        assert first.value.callback_id == 4
        second = await controller.ensure_callback()
        assert second.value.url == "http://10.0.0.2:8081/"
        assert registered == ["http://10.0.0.2:8081/"]
    finally:
        await controller.client.close()
