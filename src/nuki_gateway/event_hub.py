from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


Accept = Callable[[Any], bool]


@dataclass(frozen=True)
class Subscription:
    queue: "asyncio.Queue[Any]"
    unsubscribe: Callable[[], Awaitable[None]]


def _accept_all(item: Any) -> bool:
    return True


class EventHub:
    """In-process fan-out with per-subscriber filters.

    Carries `lock.state_changed` events to SSE clients and raw callback frames to the ingest loop.
    A full queue drops its oldest item to make room.
    """

    def __init__(self, *, max_queue_size: int = 200) -> None:
        self._subscribers: list[tuple[Accept, asyncio.Queue[Any]]] = []
        self._max_queue_size = max_queue_size
        self._lock = asyncio.Lock()

    async def subscribe(self, accept: Accept | None = None) -> Subscription:
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=self._max_queue_size)
        entry = (accept or _accept_all, queue)
        async with self._lock:
            self._subscribers.append(entry)

        async def _unsubscribe() -> None:
            async with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return Subscription(queue=queue, unsubscribe=_unsubscribe)

    async def publish(self, item: Any) -> int:
        """Queue `item` for every subscriber whose filter accepts it; returns the delivery count."""
        async with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for accept, queue in subscribers:
            if not accept(item):
                continue
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            try:
                queue.put_nowait(item)
                delivered += 1
            except asyncio.QueueFull:
                pass
        return delivered
