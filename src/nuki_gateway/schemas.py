from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    ok: bool = Field(..., description="Process is alive.")


class ReadinessResponse(BaseModel):
    ready: bool = Field(..., description="True when the bridge is configured and reachable.")
    status: Literal["active", "misconfigured", "unreachable"] = Field(
        ..., description="Bridge status as last determined."
    )
    reason: str | None = Field(default=None, description="Short machine-readable reason when not ready.")
    details: Any | None = Field(default=None, description="Optional extra details; do not rely on this shape.")


class _BaseActionRequest(BaseModel):
    requestId: str | None = Field(
        default=None,
        description="Optional client-provided id used for correlating logs and responses.",
        examples=["req-123"],
    )


class _NoArgs(BaseModel):
    pass


class DeviceArgs(BaseModel):
    deviceId: str = Field(..., min_length=1, description="Bridge device id (nukiId) of the lock.", examples=["12345678"])


class LockSwitchArgs(DeviceArgs):
    on: bool = Field(..., description="Switch intent: true runs the configured on-action, false the off-action.")


class LockActionArgs(DeviceArgs):
    action: int = Field(
        ...,
        description="Raw action code: 1 unlock, 2 lock, 3 unlatch, 4 lock 'n' go, 5 lock 'n' go with unlatch.",
        examples=[2],
    )


class CallbackAddArgs(BaseModel):
    url: str = Field(..., min_length=1, description="Callback URL the bridge should post to.")


class CallbackRemoveArgs(BaseModel):
    callbackId: int = Field(..., ge=0, description="Bridge-assigned callback id.")


class BridgeInfoRequest(_BaseActionRequest):
    action: Literal["bridge.info"] = Field("bridge.info", description="Bridge identity, firmware and uptime.")
    args: _NoArgs = Field(default_factory=_NoArgs)


class BridgeStatusRequest(_BaseActionRequest):
    action: Literal["bridge.status"] = Field("bridge.status", description="Configuration and reachability status.")
    args: _NoArgs = Field(default_factory=_NoArgs)


class LocksListRequest(_BaseActionRequest):
    action: Literal["locks.list"] = Field("locks.list", description="Snapshots of every known lock.")
    args: _NoArgs = Field(default_factory=_NoArgs)


class LocksSyncRequest(_BaseActionRequest):
    action: Literal["locks.sync"] = Field("locks.sync", description="Poll every paired lock via the bridge list.")
    args: _NoArgs = Field(default_factory=_NoArgs)


class LockGetRequest(_BaseActionRequest):
    action: Literal["lock.get"] = Field("lock.get", description="Current snapshot of one lock (no bridge call).")
    args: DeviceArgs


class LockRefreshRequest(_BaseActionRequest):
    action: Literal["lock.refresh"] = Field("lock.refresh", description="Poll one lock's state from the bridge.")
    args: DeviceArgs


class LockSwitchRequest(_BaseActionRequest):
    action: Literal["lock.switch"] = Field("lock.switch", description="Switch a lock on/off using its action mapping.")
    args: LockSwitchArgs


class LockActionRequest(_BaseActionRequest):
    action: Literal["lock.action"] = Field("lock.action", description="Send a raw action code to a lock.")
    args: LockActionArgs


class LockUnpairRequest(_BaseActionRequest):
    action: Literal["lock.unpair"] = Field("lock.unpair", description="Remove a lock from the bridge.")
    args: DeviceArgs


class CallbacksListRequest(_BaseActionRequest):
    action: Literal["callbacks.list"] = Field("callbacks.list", description="Callbacks registered on the bridge.")
    args: _NoArgs = Field(default_factory=_NoArgs)


class CallbacksAddRequest(_BaseActionRequest):
    action: Literal["callbacks.add"] = Field("callbacks.add", description="Register a callback URL on the bridge.")
    args: CallbackAddArgs


class CallbacksRemoveRequest(_BaseActionRequest):
    action: Literal["callbacks.remove"] = Field("callbacks.remove", description="Remove a callback from the bridge.")
    args: CallbackRemoveArgs


ActionRequest = Annotated[
    Union[
        BridgeInfoRequest,
        BridgeStatusRequest,
        LocksListRequest,
        LocksSyncRequest,
        LockGetRequest,
        LockRefreshRequest,
        LockSwitchRequest,
        LockActionRequest,
        LockUnpairRequest,
        CallbacksListRequest,
        CallbacksAddRequest,
        CallbacksRemoveRequest,
    ],
    Field(discriminator="action"),
]

KNOWN_ACTIONS = frozenset(
    {
        "bridge.info",
        "bridge.status",
        "locks.list",
        "locks.sync",
        "lock.get",
        "lock.refresh",
        "lock.switch",
        "lock.action",
        "lock.unpair",
        "callbacks.list",
        "callbacks.add",
        "callbacks.remove",
    }
)


class ActionError(BaseModel):
    code: str = Field(..., description="Machine-readable error code.")
    message: str = Field(..., description="Human-readable error message.")
    details: dict[str, Any] = Field(default_factory=dict, description="Structured extra error details.")


class ActionSuccessResponse(BaseModel):
    requestId: str | None = Field(default=None, description="Echoed from the request (if provided).")
    action: str = Field(..., description="Echoed action name.")
    ok: Literal[True] = Field(True, description="True for successful action execution.")
    result: Any = Field(..., description="Action-specific result payload.")


class ActionFailureResponse(BaseModel):
    requestId: str | None = Field(default=None, description="Echoed from the request (if provided).")
    action: str = Field(..., description="Echoed action name.")
    ok: Literal[False] = Field(False, description="False for failed action execution.")
    error: ActionError


ActionResponse = ActionSuccessResponse | ActionFailureResponse


class UnauthorizedResponse(BaseModel):
    detail: dict[str, Any] = Field(
        ...,
        description="FastAPI error envelope, typically `{ \"detail\": {\"error\":\"unauthorized\"} }`.",
        examples=[{"error": "unauthorized"}],
    )
