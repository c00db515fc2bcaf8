from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from nuki_gateway.action_codes import ActionCode, coerce_action_code
from nuki_gateway.controller import LockController
from nuki_gateway.errors import KIND_TO_CODE, BridgeError, BridgeResult, lookup


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionHTTPResponse:
    status_code: int
    body: dict[str, Any]


class ActionError(Exception):
    def __init__(
        self,
        *,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code if status_code is not None else lookup(code).http_status
        self.code = code
        self.message = message
        self.details = details or {}

    @classmethod
    def from_bridge_error(cls, error: BridgeError) -> "ActionError":
        return cls(code=KIND_TO_CODE[error.kind], message=error.message, details=dict(error.details))


Handler = Callable[[dict[str, Any]], Awaitable[Any]]


def _unwrap(result: BridgeResult[Any]) -> Any:
    if not result.ok:
        raise ActionError.from_bridge_error(result.error)
    return result.value


def _device_id(args: dict[str, Any]) -> str:
    value = args.get("deviceId")
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ActionError(code="invalid_args", message="deviceId must be a non-empty string")
    return value.strip()


class ActionDispatcher:
    def __init__(self, *, controller: LockController) -> None:
        self.controller = controller
        self._handlers: dict[str, Handler] = {
            "bridge.info": self._bridge_info,
            "bridge.status": self._bridge_status,
            "locks.list": self._locks_list,
            "locks.sync": self._locks_sync,
            "lock.get": self._lock_get,
            "lock.refresh": self._lock_refresh,
            "lock.switch": self._lock_switch,
            "lock.action": self._lock_action,
            "lock.unpair": self._lock_unpair,
            "callbacks.list": self._callbacks_list,
            "callbacks.add": self._callbacks_add,
            "callbacks.remove": self._callbacks_remove,
        }

    async def dispatch(self, *, payload: dict[str, Any]) -> ActionHTTPResponse:
        request_id = payload.get("requestId")
        action = payload.get("action")
        args = payload.get("args") or {}

        if not isinstance(action, str) or not action:
            return self._error_response(
                request_id=request_id,
                action="",
                err=ActionError(code="invalid_request", message="Field 'action' must be a non-empty string"),
            )
        if not isinstance(args, dict):
            return self._error_response(
                request_id=request_id,
                action=action,
                err=ActionError(code="invalid_args", message="Field 'args' must be an object"),
            )

        handler = self._handlers.get(action)
        if not handler:
            return self._error_response(
                request_id=request_id,
                action=action,
                err=ActionError(code="unknown_action", message=f"Unknown action: {action}"),
            )

        try:
            result = await handler(args)
            return ActionHTTPResponse(
                status_code=200,
                body={"requestId": request_id, "action": action, "ok": True, "result": result},
            )
        except ActionError as err:
            return self._error_response(request_id=request_id, action=action, err=err)
        except Exception as err:
            logger.exception("action %s failed", action)
            return self._error_response(
                request_id=request_id,
                action=action,
                err=ActionError(code="internal_error", message=str(err)),
            )

    @staticmethod
    def _error_response(*, request_id: str | None, action: str, err: ActionError) -> ActionHTTPResponse:
        body: dict[str, Any] = {
            "requestId": request_id,
            "action": action,
            "ok": False,
            "error": {"code": err.code, "message": err.message, "details": err.details},
        }
        return ActionHTTPResponse(status_code=err.status_code, body=body)

    def _owned_device(self, args: dict[str, Any]) -> str:
        device_id = _device_id(args)
        if not self.controller.owns(device_id):
            raise ActionError(code="not_found", message="Lock is not handled by this bridge", details={"deviceId": device_id})
        return device_id

    async def _bridge_info(self, args: dict[str, Any]):
        info = _unwrap(await self.controller.bridge_info())
        return {
            "bridgeType": info.bridge_type,
            "hardwareId": info.hardware_id,
            "serverId": info.server_id,
            "firmwareVersion": info.firmware_version,
            "uptime": info.uptime,
            "serverConnected": info.server_connected,
        }

    async def _bridge_status(self, args: dict[str, Any]):
        status, error = await self.controller.bridge_status()
        return {
            "status": status.value,
            "pushEnabled": self.controller.push_enabled,
            "error": {"kind": error.kind.value, "message": error.message} if error else None,
        }

    async def _locks_list(self, args: dict[str, Any]):
        return {"locks": [snapshot.to_dict() for snapshot in self.controller.reconciler.snapshots()]}

    async def _locks_sync(self, args: dict[str, Any]):
        snapshots = _unwrap(await self.controller.sync_all())
        return {"locks": [snapshot.to_dict() for snapshot in snapshots]}

    async def _lock_get(self, args: dict[str, Any]):
        device_id = self._owned_device(args)
        snapshot = self.controller.reconciler.snapshot(device_id)
        if snapshot is None:
            raise ActionError(code="not_found", message="Lock has not been observed yet", details={"deviceId": device_id})
        return snapshot.to_dict()

    async def _lock_refresh(self, args: dict[str, Any]):
        device_id = self._owned_device(args)
        return _unwrap(await self.controller.refresh(device_id)).to_dict()

    async def _lock_switch(self, args: dict[str, Any]):
        device_id = self._owned_device(args)
        on = args.get("on")
        if not isinstance(on, bool):
            raise ActionError(code="invalid_args", message="on must be a boolean")
        return self._outcome(_unwrap(await self.controller.switch(device_id, on)))

    async def _lock_action(self, args: dict[str, Any]):
        device_id = self._owned_device(args)
        code = coerce_action_code(args.get("action"))
        if code is ActionCode.UNDEFINED:
            raise ActionError(
                code="invalid_action",
                message="Action is undefined and will not be sent",
                details={"action": args.get("action")},
            )
        return self._outcome(_unwrap(await self.controller.perform_action(device_id, code)))

    async def _lock_unpair(self, args: dict[str, Any]):
        device_id = self._owned_device(args)
        ack = _unwrap(await self.controller.unpair(device_id))
        return {"deviceId": device_id, "success": ack.success}

    async def _callbacks_list(self, args: dict[str, Any]):
        callbacks = _unwrap(await self.controller.client.list_callbacks())
        return {"callbacks": [{"id": cb.callback_id, "url": cb.url} for cb in callbacks]}

    async def _callbacks_add(self, args: dict[str, Any]):
        url = args.get("url")
        if not isinstance(url, str) or not url.startswith(("http://", "https://")):
            raise ActionError(code="invalid_args", message="url must be an http(s) URL")
        return asdict(_unwrap(await self.controller.client.add_callback(url)))

    async def _callbacks_remove(self, args: dict[str, Any]):
        callback_id = args.get("callbackId")
        if not isinstance(callback_id, int) or isinstance(callback_id, bool) or callback_id < 0:
            raise ActionError(code="invalid_args", message="callbackId must be a non-negative integer")
        return asdict(_unwrap(await self.controller.client.remove_callback(callback_id)))

    @staticmethod
    def _outcome(outcome) -> dict[str, Any]:
        return {
            "deviceId": outcome.device_id,
            "action": int(outcome.action),
            "label": outcome.label,
            "success": outcome.ack.success,
            "batteryCritical": outcome.ack.battery_critical,
            "lock": outcome.snapshot.to_dict() if outcome.snapshot else None,
        }
