from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from nuki_gateway.action_codes import ActionCode, label
from nuki_gateway.config import BridgeEndpoint
from nuki_gateway.errors import (
    BridgeResult,
    configuration_error,
    invalid_action,
    protocol_error,
    reachability_error,
)
from nuki_gateway.lock_state import LockReading, parse_lock_payload


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BridgeInfo:
    bridge_type: int | None
    hardware_id: int | None
    server_id: int | None
    firmware_version: str | None
    uptime: int | None
    server_connected: bool | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Ack:
    success: bool
    battery_critical: bool | None = None
    message: str | None = None


@dataclass(frozen=True)
class PairedDevice:
    device_id: str
    name: str
    last_known: LockReading | None


@dataclass(frozen=True)
class RegisteredCallback:
    callback_id: int
    url: str


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    return value if isinstance(value, int) else None


class BridgeClient:
    """Request/response client for the bridge HTTP API.

    Every public call returns a BridgeResult; network, decoding and configuration failures are
    reported as tagged errors and never raised.
    """

    def __init__(
        self,
        *,
        endpoint: BridgeEndpoint,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def endpoint(self) -> BridgeEndpoint:
        return self._endpoint

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client:
            return self._client
        self._client = httpx.AsyncClient(
            base_url=self._endpoint.base_url,
            timeout=httpx.Timeout(self._endpoint.timeout_seconds),
            transport=self._transport,
        )
        return self._client

    async def request_json(self, path: str, *, params: dict[str, Any] | None = None) -> BridgeResult[Any]:
        checked = self._endpoint.validate()
        if not checked.ok:
            return BridgeResult(error=checked.error)

        query = {**(params or {}), "token": self._endpoint.token}
        client = self._get_client()
        try:
            resp = await client.get(path, params=query)
        except httpx.TimeoutException as exc:
            logger.debug("bridge request %s timed out: %s", path, exc)
            return reachability_error("Bridge request timed out", path=path)
        except httpx.DecodingError as exc:
            logger.debug("bridge response for %s could not be decoded: %s", path, exc)
            return protocol_error("Bridge response could not be decoded", path=path, error=str(exc))
        except httpx.RequestError as exc:
            logger.debug("bridge request %s failed: %s", path, exc)
            return reachability_error("Bridge unreachable", path=path, error=str(exc))

        if resp.status_code in (401, 403):
            return configuration_error("Bridge rejected the API token", path=path, status=resp.status_code)
        if resp.status_code >= 400:
            return protocol_error("Bridge returned an error status", path=path, status=resp.status_code, body=resp.text)

        try:
            body = resp.json()
        except ValueError:
            return protocol_error("Bridge response is not valid JSON", path=path, body=resp.text)
        return BridgeResult.success(body)

    async def get_bridge_info(self) -> BridgeResult[BridgeInfo]:
        result = await self.request_json("/info")
        if not result.ok:
            return result
        body = result.value
        if not isinstance(body, dict):
            return protocol_error("Unexpected /info payload", body=body)
        ids = body.get("ids") if isinstance(body.get("ids"), dict) else {}
        versions = body.get("versions") if isinstance(body.get("versions"), dict) else {}
        firmware = versions.get("firmwareVersion")
        connected = body.get("serverConnected")
        return BridgeResult.success(
            BridgeInfo(
                bridge_type=_int_or_none(body.get("bridgeType")),
                hardware_id=_int_or_none(ids.get("hardwareId")),
                server_id=_int_or_none(ids.get("serverId")),
                firmware_version=firmware if isinstance(firmware, str) else None,
                uptime=_int_or_none(body.get("uptime")),
                server_connected=connected if isinstance(connected, bool) else None,
                raw=body,
            )
        )

    async def get_lock_state(self, device_id: str) -> BridgeResult[LockReading]:
        result = await self.request_json("/lockState", params={"nukiId": device_id})
        if not result.ok:
            return result
        body = result.value
        if isinstance(body, dict) and body.get("success") is False:
            return protocol_error("Bridge could not fetch the lock state", device_id=device_id, body=body)
        reading = parse_lock_payload(body)
        if reading is None:
            return protocol_error("Unexpected /lockState payload", device_id=device_id, body=body)
        return BridgeResult.success(reading)

    async def set_lock_action(self, device_id: str, action: ActionCode | int) -> BridgeResult[Ack]:
        try:
            code = ActionCode(int(action))
        except (TypeError, ValueError):
            return invalid_action("Unknown action code", device_id=device_id, action=action)
        if code is ActionCode.UNDEFINED:
            return invalid_action("Action is undefined and will not be sent", device_id=device_id, action=int(code))

        logger.debug("sending %s to %s", label(code), device_id)
        result = await self.request_json("/lockAction", params={"nukiId": device_id, "action": int(code)})
        if not result.ok:
            return result
        return self._ack(result.value, path="/lockAction")

    async def unpair_device(self, device_id: str) -> BridgeResult[Ack]:
        result = await self.request_json("/unpair", params={"nukiId": device_id})
        if not result.ok:
            return result
        return self._ack(result.value, path="/unpair")

    async def list_paired_devices(self) -> BridgeResult[list[PairedDevice]]:
        result = await self.request_json("/list")
        if not result.ok:
            return result
        body = result.value
        if not isinstance(body, list):
            return protocol_error("Unexpected /list payload", body=body)
        devices: list[PairedDevice] = []
        for item in body:
            if not isinstance(item, dict) or "nukiId" not in item:
                continue
            name = item.get("name")
            devices.append(
                PairedDevice(
                    device_id=str(item["nukiId"]),
                    name=name if isinstance(name, str) else "",
                    last_known=parse_lock_payload(item.get("lastKnownState")),
                )
            )
        return BridgeResult.success(devices)

    async def list_callbacks(self) -> BridgeResult[list[RegisteredCallback]]:
        result = await self.request_json("/callback/list")
        if not result.ok:
            return result
        body = result.value
        items = body.get("callbacks") if isinstance(body, dict) else None
        if not isinstance(items, list):
            return protocol_error("Unexpected /callback/list payload", body=body)
        callbacks = [
            RegisteredCallback(callback_id=int(item["id"]), url=str(item["url"]))
            for item in items
            if isinstance(item, dict) and isinstance(item.get("id"), int) and "url" in item
        ]
        return BridgeResult.success(callbacks)

    async def add_callback(self, url: str) -> BridgeResult[Ack]:
        result = await self.request_json("/callback/add", params={"url": url})
        if not result.ok:
            return result
        return self._ack(result.value, path="/callback/add")

    async def remove_callback(self, callback_id: int) -> BridgeResult[Ack]:
        result = await self.request_json("/callback/remove", params={"id": callback_id})
        if not result.ok:
            return result
        return self._ack(result.value, path="/callback/remove")

    @staticmethod
    def _ack(body: Any, *, path: str) -> BridgeResult[Ack]:
        if not isinstance(body, dict) or not isinstance(body.get("success"), bool):
            return protocol_error("Unexpected acknowledgement payload", path=path, body=body)
        battery = body.get("batteryCritical")
        message = body.get("message")
        return BridgeResult.success(
            Ack(
                success=body["success"],
                battery_critical=battery if isinstance(battery, bool) else None,
                message=message if isinstance(message, str) else None,
            )
        )
