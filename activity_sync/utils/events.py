from typing import Any, Callable, List, Optional
import asyncio
import inspect
import logging
logger = logging.getLogger(__name__)

_CLOSED = object()


class SnapshotChannel:
    """
    Single serialized channel for state snapshots.

    Publishing goes through one lock so listeners see snapshots in the order
    they were published. Callbacks registered with ``on_update`` may be plain
    functions or coroutines; each queue from ``subscribe`` gets every snapshot.
    """

    def __init__(self):
        self._listeners: List[Callable] = []
        self._queues: List[asyncio.Queue] = []
        self._latest: Optional[Any] = None
        self._lock = asyncio.Lock()

    @property
    def latest(self) -> Optional[Any]:
        return self._latest

    def on_update(self, callback: Callable[[Any], None]):
        if callback not in self._listeners:
            self._listeners.append(callback)

    def off_update(self, callback: Callable[[Any], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def subscribe(self) -> asyncio.Queue:
        """Return a queue that receives every snapshot published from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._queues:
            self._queues.remove(queue)

    async def publish(self, snapshot: Any):
        async with self._lock:
            self._latest = snapshot
            for queue in self._queues[:]:
                queue.put_nowait(snapshot)
            for callback in self._listeners[:]:
                try:
                    if inspect.iscoroutinefunction(callback):
                        await callback(snapshot)
                    else:
                        callback(snapshot)
                except Exception as e:
                    logger.error(f"Error in snapshot listener {callback!r}: {e}")

    async def stream(self):
        """Async iterator over snapshots until ``close`` is called."""
        queue = self.subscribe()
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    return
                yield item
        finally:
            self.unsubscribe(queue)

    def close(self):
        """End all active ``stream`` iterations."""
        for queue in self._queues[:]:
            queue.put_nowait(_CLOSED)
