import httpx
import pytest

from nuki_gateway.action_codes import ActionCode
from nuki_gateway.bridge_client import BridgeClient
from nuki_gateway.config import BridgeEndpoint
from nuki_gateway.errors import ErrorKind
from nuki_gateway.lock_state import LockState


@pytest.mark.asyncio
async def test_get_lock_state_sends_token_and_decodes_state(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/lockState"
        assert request.url.params["token"] == "tok"
        assert request.url.params["nukiId"] == "11"
        return httpx.Response(200, json={"state": 1, "stateName": "locked", "batteryCritical": False, "success": True})

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.get_lock_state("11")
        assert result.ok
        assert result.value.state is LockState.LOCKED
        assert result.value.raw_code == 1
        assert result.value.battery_critical is False
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_get_bridge_info_parses_identity(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/info"
        return httpx.Response(
            200,
            json={
                "bridgeType": 1,
                "ids": {"hardwareId": 12345678, "serverId": 123456},
                "versions": {"firmwareVersion": "1.12.5"},
                "uptime": 120,
                "serverConnected": True,
            },
        )

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.get_bridge_info()
        assert result.ok
        assert result.value.hardware_id == 12345678
        assert result.value.firmware_version == "1.12.5"
        assert result.value.server_connected is True
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_set_lock_action_sends_numeric_code(endpoint):
    seen = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json={"success": True, "batteryCritical": True})

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.set_lock_action("11", ActionCode.UNLATCH)
        assert result.ok
        assert result.value.success is True
        assert result.value.battery_critical is True
        assert seen["action"] == "3"
        assert seen["nukiId"] == "11"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_undefined_action_never_reaches_the_network(endpoint):
    calls = {"n": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={"success": True})

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.set_lock_action("11", ActionCode.UNDEFINED)
        assert not result.ok
        assert result.error.kind is ErrorKind.INVALID_ACTION
        unknown = await client.set_lock_action("11", 77)
        assert unknown.error.kind is ErrorKind.INVALID_ACTION
        assert calls["n"] == 0
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_connect_failure_is_a_reachability_error(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.get_lock_state("11")
        assert not result.ok
        assert result.error.kind is ErrorKind.REACHABILITY
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_timeout_is_a_reachability_error(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.set_lock_action("11", ActionCode.LOCK)
        assert result.error.kind is ErrorKind.REACHABILITY
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_malformed_body_is_a_protocol_error(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.get_lock_state("11")
        assert result.error.kind is ErrorKind.PROTOCOL
        info = await client.get_bridge_info()
        assert info.error.kind is ErrorKind.PROTOCOL
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_status_mapping_for_rejected_token_and_unknown_device(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/info":
            return httpx.Response(401, text="")
        return httpx.Response(404, text="")

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        assert (await client.get_bridge_info()).error.kind is ErrorKind.CONFIGURATION
        missing = await client.unpair_device("99")
        assert missing.error.kind is ErrorKind.PROTOCOL
        assert missing.error.details["status"] == 404
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_incomplete_endpoint_is_rejected_before_any_request():
    calls = {"n": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={})

    client = BridgeClient(endpoint=BridgeEndpoint(host="bridge.test", token=None), transport=httpx.MockTransport(handler))
    try:
        result = await client.get_bridge_info()
        assert result.error.kind is ErrorKind.CONFIGURATION
        assert calls["n"] == 0
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_list_paired_devices_and_callbacks(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/list":
            return httpx.Response(
                200,
                json=[
                    {"nukiId": 11, "name": "Front", "lastKnownState": {"state": 3, "stateName": "unlocked"}},
                    {"nukiId": 22, "name": "Garage"},
                    {"name": "no id"},
                ],
            )
        if request.url.path == "/callback/list":
            return httpx.Response(200, json={"callbacks": [{"id": 0, "url": "http://10.0.0.2:8081/"}]})
        if request.url.path == "/callback/add":
            assert request.url.params["url"] == "http://10.0.0.2:8081/"
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404)

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        devices = (await client.list_paired_devices()).value
        assert [d.device_id for d in devices] == ["11", "22"]
        assert devices[0].last_known.state is LockState.UNLOCKED
        assert devices[1].last_known is None

        callbacks = (await client.list_callbacks()).value
        assert callbacks[0].callback_id == 0
        assert (await client.add_callback("http://10.0.0.2:8081/")).value.success is True
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_undecodable_body_is_a_protocol_error(endpoint):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, stream=httpx.ByteStream(b"not gzip"))

    client = BridgeClient(endpoint=endpoint, transport=httpx.MockTransport(handler))
    try:
        result = await client.get_lock_state("11")
        assert not result.ok
        assert result.error.kind is ErrorKind.PROTOCOL
        assert result.error.details["path"] == "/lockState"
    finally:
        await client.close()
