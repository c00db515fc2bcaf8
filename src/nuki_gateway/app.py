from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable

from fastapi import Body, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from nuki_gateway.actions import ActionDispatcher
from nuki_gateway.bridge_client import BridgeClient
from nuki_gateway.bridge_sync import callback_ingest_loop, resync_loop
from nuki_gateway.callback_listener import CallbackListener, ListenerHandle
from nuki_gateway.config import AppConfig
from nuki_gateway.controller import BridgeStatus, LockController
from nuki_gateway.event_hub import EventHub
from nuki_gateway.framing import identity_filter
from nuki_gateway.reconciler import StateReconciler
from nuki_gateway.schemas import (
    KNOWN_ACTIONS,
    ActionRequest,
    ActionResponse,
    HealthResponse,
    ReadinessResponse,
    UnauthorizedResponse,
)
from nuki_gateway.security import AuthContext, require_auth


logger = logging.getLogger("nuki_gateway")


@dataclass
class AppState:
    config: AppConfig
    client: BridgeClient
    reconciler: StateReconciler
    controller: LockController
    dispatcher: ActionDispatcher
    hub: EventHub
    listener: CallbackListener | None
    listener_handle: ListenerHandle | None
    tasks: list[asyncio.Task]


async def _start_push(state: AppState) -> None:
    endpoint = state.config.endpoint
    listener = CallbackListener()
    try:
        handle = await listener.start(endpoint.callback_bind, endpoint.callback_port)
    except OSError as exc:
        logger.error("cannot bind callback listener on %s:%s: %s", endpoint.callback_bind, endpoint.callback_port, exc)
        return
    state.listener = listener
    state.listener_handle = handle
    subscription = await listener.subscribe(identity_filter(endpoint.bridge_id))
    state.tasks.append(asyncio.create_task(callback_ingest_loop(subscription=subscription, controller=state.controller)))

    registered = await state.controller.ensure_callback()
    if not registered.ok:
        logger.warning("callback registration failed: %s", registered.error.message)


async def _bootstrap(state: AppState) -> None:
    if state.config.endpoint.use_callback:
        await _start_push(state)
    result = await state.controller.sync_all()
    if not result.ok:
        logger.warning("initial lock sync failed: %s", result.error.message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = AppConfig.from_env()
    hub = EventHub()
    reconciler = StateReconciler(protocol_capacity=config.protocol_entries, hub=hub)
    client = BridgeClient(endpoint=config.endpoint)
    controller = LockController(config=config, client=client, reconciler=reconciler)

    state = AppState(
        config=config,
        client=client,
        reconciler=reconciler,
        controller=controller,
        dispatcher=ActionDispatcher(controller=controller),
        hub=hub,
        listener=None,
        listener_handle=None,
        tasks=[],
    )
    app.state.state = state

    checked = config.endpoint.validate()
    if checked.ok:
        state.tasks.append(asyncio.create_task(_bootstrap(state)))
        if config.resync_seconds > 0:
            state.tasks.append(asyncio.create_task(resync_loop(controller=controller, seconds=config.resync_seconds)))
    else:
        logger.warning("bridge misconfigured: %s %s", checked.error.message, checked.error.details)

    try:
        yield
    finally:
        for task in state.tasks:
            task.cancel()
        for task in state.tasks:
            try:
                await task
            except BaseException:
                pass
        if state.listener and state.listener_handle:
            await state.listener.stop(state.listener_handle)
        await client.close()


app = FastAPI(
    title="Nuki Gateway",
    version="0.1.0",
    description=(
        "# Nuki Gateway API\n\n"
        "LAN gateway between a Nuki Bridge and home-automation clients.\n\n"
        "## Auth\n"
        "All `/v1/*` endpoints require `Authorization: Bearer <token>` or `X-API-Key: <key>`.\n\n"
        "## Endpoints\n"
        "- `GET /healthz` liveness\n"
        "- `GET /readyz` readiness (bridge configured + reachable)\n"
        "- `POST /v1/actions` single action endpoint (`action` discriminator + `args`)\n"
        "- `GET /v1/events/stream` SSE stream of `lock.state_changed` events\n\n"
        "## Common errors\n"
        "- **400** invalid JSON / args / unknown or undefined action\n"
        "- **404** lock not handled by this bridge\n"
        "- **424** bridge unreachable\n"
        "- **502** bridge answered with a malformed or error response\n"
        "- **503** bridge endpoint misconfigured or token rejected\n"
    ),
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    code = "invalid_request"
    message = "Request validation failed"
    details: dict = {"errors": json.loads(json.dumps(exc.errors(), default=str))}
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            code, message = "invalid_json", "Request body must be valid JSON"
            details = {"error": str(err.get("msg", "invalid json"))}
            break
        loc = err.get("loc")
        # Discriminated unions put the action tag in the location: ("body", "<action>", "args", ...).
        if isinstance(loc, tuple) and loc and loc[0] == "body" and "args" in loc[1:3]:
            code, message = "invalid_args", "Field 'args' must match the action schema"

    body_action = ""
    body_request_id = request.headers.get("x-request-id")
    if code != "invalid_json":
        try:
            raw = await request.body()
            parsed = json.loads(raw) if raw else None
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            if isinstance(parsed.get("action"), str):
                body_action = parsed["action"]
                if body_action not in KNOWN_ACTIONS:
                    code, message = "unknown_action", "Unknown action"
            if body_request_id is None and isinstance(parsed.get("requestId"), str):
                body_request_id = parsed["requestId"]

    payload = {
        "requestId": body_request_id,
        "action": body_action,
        "ok": False,
        "error": {"code": code, "message": message, "details": details},
    }
    return JSONResponse(payload, status_code=status.HTTP_400_BAD_REQUEST)


@app.middleware("http")
async def access_log(request: Request, call_next: Callable[[Request], Response]):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s -> %s (%.1fms) rid=%s",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
        request.headers.get("x-request-id", ""),
    )
    return response


@app.get("/healthz", summary="Liveness check", response_model=HealthResponse, tags=["meta"])
async def healthz() -> HealthResponse:
    return {"ok": True}


@app.get(
    "/readyz",
    summary="Readiness check",
    description="`ready=true` when the bridge endpoint is complete and the bridge answers `/info`.",
    response_model=ReadinessResponse,
    tags=["meta"],
)
async def readyz() -> ReadinessResponse:
    state: AppState = app.state.state
    bridge_status, error = await state.controller.bridge_status()
    if bridge_status is BridgeStatus.ACTIVE:
        return {"ready": True, "status": bridge_status.value}
    return JSONResponse(
        {
            "ready": False,
            "status": bridge_status.value,
            "reason": error.kind.value if error else None,
            "details": {"message": error.message, **error.details} if error else None,
        },
        status_code=503,
    )


@app.post(
    "/v1/actions",
    summary="Single action endpoint",
    response_model=ActionResponse,
    responses={
        400: {"description": "Invalid JSON / args / unknown or undefined action."},
        401: {"description": "Unauthorized.", "model": UnauthorizedResponse},
        404: {"description": "Lock not handled by this bridge."},
        424: {"description": "Bridge unreachable."},
        502: {"description": "Bridge protocol error."},
        503: {"description": "Bridge misconfigured."},
    },
    tags=["actions"],
)
async def actions(
    payload: ActionRequest = Body(
        ...,
        openapi_examples={
            "switch_off": {
                "summary": "Switch a lock off (runs its configured off-action)",
                "value": {"action": "lock.switch", "args": {"deviceId": "12345678", "on": False}},
            },
            "unlatch": {
                "summary": "Unlatch a lock",
                "value": {"action": "lock.action", "args": {"deviceId": "12345678", "action": 3}},
            },
            "list_locks": {"summary": "List known locks", "value": {"action": "locks.list"}},
        },
    ),
    _: AuthContext = Depends(require_auth),
) -> ActionResponse:
    state: AppState = app.state.state
    response = await state.dispatcher.dispatch(payload=payload.model_dump())
    return JSONResponse(response.body, status_code=response.status_code)


@app.get(
    "/v1/events/stream",
    summary="Lock state event stream (SSE)",
    tags=["events"],
    responses={
        200: {"description": "SSE stream (text/event-stream).", "content": {"text/event-stream": {}}},
        401: {"description": "Unauthorized.", "model": UnauthorizedResponse},
    },
)
async def events_stream(_: AuthContext = Depends(require_auth)):
    state: AppState = app.state.state
    subscription = await state.hub.subscribe()

    async def _gen():
        try:
            while True:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=15.0)
                    yield f"data: {json.dumps(event, separators=(',', ':'))}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            await subscription.unsubscribe()

    return StreamingResponse(_gen(), media_type="text/event-stream")
