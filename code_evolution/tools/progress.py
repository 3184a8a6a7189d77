"""Progress sinks for optimizer events."""

import asyncio
from typing import Generic, List, Optional, TypeVar

from ..models import ProgressEvent

T = TypeVar('T')


class ProgressRecorder(Generic[T]):
    """
    Collects values handed to it, in arrival order.

    Usable directly as a progress sink: calling the recorder stores the event.
    """

    def __init__(self):
        self._values: List[T] = []

    def store(self, value: T) -> int:
        """Store one value and return the new total."""
        self._values.append(value)
        return len(self._values)

    def __call__(self, value: T) -> None:
        self.store(value)

    @property
    def values(self) -> List[T]:
        """Get copy of stored values."""
        return self._values.copy()

    def clear(self):
        """Clear all stored values."""
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)


class QueueProgressSink:
    """
    Forwards events from optimizer threads into an asyncio.Queue.

    The optimizer never waits on the consumer: events are scheduled onto the
    loop with call_soon_threadsafe and queued without a size limit. A
    transport reads them with `get()` or by iterating `drain()`.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()
        self.queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()

    def __call__(self, event: ProgressEvent) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, event)

    async def get(self) -> ProgressEvent:
        return await self.queue.get()

    def drain(self) -> List[ProgressEvent]:
        """Events queued so far, without waiting."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events
