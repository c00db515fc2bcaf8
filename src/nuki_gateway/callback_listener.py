from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from nuki_gateway.event_hub import EventHub, Subscription
from nuki_gateway.framing import CallbackFrame, FramePredicate


logger = logging.getLogger(__name__)

MAX_FRAME_BYTES = 64 * 1024
_ACK = b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"


@dataclass(frozen=True)
class ListenerHandle:
    host: str
    port: int
    server: asyncio.AbstractServer


def _expected_length(buffer: bytes) -> int | None:
    """Total frame size announced by an HTTP-ish header block, if the headers are complete."""
    head_end = buffer.find(b"\r\n\r\n")
    if head_end < 0:
        return None
    for line in buffer[:head_end].split(b"\r\n"):
        name, sep, value = line.partition(b":")
        if sep and name.strip().lower() == b"content-length":
            try:
                return head_end + 4 + int(value.strip())
            except ValueError:
                return None
    return None


class CallbackListener:
    """Raw TCP listener for bridge push callbacks.

    Each accepted connection yields one CallbackFrame. Subscribers register a predicate and only
    receive the frames it accepts.
    """

    def __init__(self, *, max_queue_size: int = 100, read_timeout: float = 2.0) -> None:
        self._hub = EventHub(max_queue_size=max_queue_size)
        self._read_timeout = read_timeout
        self._writers: set[asyncio.StreamWriter] = set()

    async def start(self, host: str, port: int) -> ListenerHandle:
        server = await asyncio.start_server(self._handle_connection, host=host, port=port)
        sockets = server.sockets or ()
        bound_port = sockets[0].getsockname()[1] if sockets else port
        logger.info("callback listener bound to %s:%s", host, bound_port)
        return ListenerHandle(host=host, port=bound_port, server=server)

    async def stop(self, handle: ListenerHandle) -> None:
        handle.server.close()
        for writer in list(self._writers):
            writer.close()
        await handle.server.wait_closed()
        logger.info("callback listener on %s:%s stopped", handle.host, handle.port)

    async def subscribe(self, accept: FramePredicate) -> Subscription:
        return await self._hub.subscribe(accept)

    async def dispatch(self, frame: CallbackFrame) -> int:
        """Hand `frame` to every subscriber whose predicate accepts it; returns the delivery count."""
        delivered = await self._hub.publish(frame)
        if not delivered:
            logger.debug("callback frame from %s matched no subscriber", frame.peer)
        return delivered

    async def _read_frame(self, reader: asyncio.StreamReader) -> bytes:
        buffer = b""
        while len(buffer) < MAX_FRAME_BYTES:
            try:
                chunk = await asyncio.wait_for(reader.read(4096), timeout=self._read_timeout)
            except asyncio.TimeoutError:
                break
            if not chunk:
                break
            buffer += chunk
            expected = _expected_length(buffer)
            if expected is not None and len(buffer) >= expected:
                break
        return buffer[:MAX_FRAME_BYTES]

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._writers.add(writer)
        peer: Any = writer.get_extra_info("peername")
        try:
            try:
                raw = await self._read_frame(reader)
            except ConnectionError as exc:
                logger.debug("callback connection from %s dropped: %s", peer, exc)
                return
            if raw:
                try:
                    writer.write(_ACK)
                    await writer.drain()
                except ConnectionError:
                    pass
                await self.dispatch(CallbackFrame(raw=raw, peer=str(peer[0]) if peer else None))
        finally:
            self._writers.discard(writer)
            writer.close()
