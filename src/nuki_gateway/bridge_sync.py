from __future__ import annotations

import asyncio
import logging

from nuki_gateway.controller import LockController
from nuki_gateway.framing import CallbackFrame, decode_frame, extract_identity
from nuki_gateway.event_hub import Subscription
from nuki_gateway.reconciler import ObservationSource


logger = logging.getLogger(__name__)


async def apply_callback_frame(*, frame: CallbackFrame, controller: LockController) -> int:
    """Decode one pushed frame and feed every lock state it carries to the reconciler.

    Returns the number of observations accepted. Undecodable frames are reported and dropped.
    """
    decoded = decode_frame(frame)
    if not decoded.ok:
        controller.sink.send_debug("ReceiveData", f"protocol: {decoded.error.message} {decoded.error.details}")
        return 0

    accepted = 0
    for reading in decoded.value:
        if reading.device_id is None:
            controller.sink.send_debug("ReceiveData", "lock state without nukiId ignored")
            continue
        if not controller.owns(reading.device_id):
            controller.sink.send_debug("ReceiveData", f"device {reading.device_id} is not handled by this bridge")
            continue
        observed = await controller.reconciler.observe(reading.device_id, reading, ObservationSource.PUSH)
        if observed.ok:
            accepted += 1
            controller.sink.send_debug(
                "ReceiveData",
                f"{reading.device_id} -> {reading.state.value} via {extract_identity(frame.text) or 'unknown bridge'}",
            )
    return accepted


async def callback_ingest_loop(*, subscription: Subscription, controller: LockController) -> None:
    try:
        while True:
            frame = await subscription.queue.get()
            try:
                await apply_callback_frame(frame=frame, controller=controller)
            except Exception:
                logger.exception("failed to apply callback frame from %s", frame.peer)
    finally:
        await subscription.unsubscribe()


async def resync_loop(*, controller: LockController, seconds: int) -> None:
    while True:
        await asyncio.sleep(seconds)
        result = await controller.sync_all()
        if not result.ok:
            logger.info("resync skipped: %s", result.error.message)
