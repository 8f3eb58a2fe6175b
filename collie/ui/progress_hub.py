"""Progress hub for live scrape updates.

The ProgressHub fans progress events out from the scrape session to any
number of observers (SSE connections). Every subscriber owns a bounded
queue; publishing never waits, and a subscriber that falls behind far enough
to fill its queue is dropped instead of slowing the session down.
"""

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable, Dict, List, Optional, Union

from collie.ui.events import KEEP_ALIVE, ProgressEvent
from collie.workflow.progress import SessionState

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

# Queued after a subscriber is dropped or closed so its reader wakes up
_CLOSED = object()


class Subscription:
    """One observer's view of the progress stream.

    Iterate with ``async for event in subscription``; iteration ends when the
    subscriber is dropped or closed.
    """

    def __init__(self, hub: 'ProgressHub', queue_size: int):
        self._hub = hub
        # One extra slot so the close marker always fits
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size + 1)
        self._limit = queue_size
        self._closed = False
        self.dropped = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _offer(self, event: ProgressEvent) -> bool:
        """Enqueue without waiting; False when the queue is full."""
        if self._closed:
            return False
        if self._queue.qsize() >= self._limit:
            return False
        self._queue.put_nowait(event)
        return True

    def _terminate(self, dropped: bool = False) -> None:
        if self._closed:
            return
        self._closed = True
        self.dropped = dropped
        if dropped:
            # A dropped subscriber resyncs on reconnect, pending events are stale
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[ProgressEvent]:
        """
        Wait for the next event.

        Returns:
            The event, or None once the subscription has ended
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any later reader
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self) -> 'Subscription':
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def close(self) -> None:
        """Unsubscribe; the iterator ends after already queued events."""
        self._hub.unsubscribe(self)


class ProgressHub:
    """Multi-subscriber broadcast of ProgressEvents.

    Example:
        >>> hub = ProgressHub(state_provider=lambda: session.state)
        >>> subscription = hub.subscribe()
        >>> hub.publish(ProgressEvent.from_state(state, "Scraping complete"))
        >>> async for event in subscription:
        ...     send(event.to_json())
    """

    def __init__(
        self,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        state_provider: Optional[Callable[[], SessionState]] = None
    ):
        """Initialize the hub.

        Args:
            queue_size: Per-subscriber queue bound
            state_provider: Returns the current SessionState for resync
        """
        self.queue_size = max(1, int(queue_size))
        self.state_provider = state_provider or SessionState
        self._subscribers: List[Subscription] = []
        # Held only while registering or enqueueing
        self._lock = threading.Lock()
        self._event_count = 0
        self._dropped_count = 0

    def subscribe(self) -> Subscription:
        """Register a new observer.

        The first event the subscriber sees is a resync built from the
        current SessionState.

        Returns:
            Subscription to iterate
        """
        subscription = Subscription(self, self.queue_size)
        state = self.state_provider()
        subscription._offer(ProgressEvent.from_state(state))

        with self._lock:
            self._subscribers.append(subscription)
            count = len(self._subscribers)

        logger.debug(f"Progress subscriber added (total subscribers: {count})")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove an observer and end its iterator."""
        with self._lock:
            try:
                self._subscribers.remove(subscription)
            except ValueError:
                pass
        subscription._terminate()

    def publish(self, event: ProgressEvent) -> None:
        """Deliver an event to every subscriber without waiting.

        Subscribers whose queue is full are dropped.

        Args:
            event: The event to broadcast
        """
        dropped = []
        with self._lock:
            self._event_count += 1
            for subscription in self._subscribers:
                if not subscription._offer(event):
                    dropped.append(subscription)
            for subscription in dropped:
                self._subscribers.remove(subscription)
                self._dropped_count += 1

        for subscription in dropped:
            subscription._terminate(dropped=True)
            logger.warning("Dropped slow progress subscriber (queue full)")

    def close_all(self) -> None:
        """End every subscription (server shutdown)."""
        with self._lock:
            subscribers = list(self._subscribers)
            self._subscribers.clear()
        for subscription in subscribers:
            subscription._terminate()
        logger.debug(f"Closed {len(subscribers)} progress subscribers")

    def get_stats(self) -> Dict[str, int]:
        """Get hub statistics.

        Returns:
            Dictionary with 'events_published', 'subscribers_dropped',
            'subscriber_count'
        """
        with self._lock:
            count = len(self._subscribers)
        return {
            'events_published': self._event_count,
            'subscribers_dropped': self._dropped_count,
            'subscriber_count': count,
        }

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


async def with_keepalive(
    subscription: Subscription,
    interval: float = 1.0
) -> AsyncIterator[Union[ProgressEvent, str]]:
    """Interleave KEEP_ALIVE markers into a subscription.

    Yields events as they arrive and KEEP_ALIVE whenever `interval` seconds
    pass without one. Ends when the subscription ends.

    Args:
        subscription: Subscription to read
        interval: Seconds of silence before a keep-alive
    """
    pending: Optional[asyncio.Task] = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(subscription.get())
            done, _ = await asyncio.wait({pending}, timeout=interval)
            if not done:
                yield KEEP_ALIVE
                continue
            event = pending.result()
            pending = None
            if event is None:
                return
            yield event
    finally:
        if pending is not None and not pending.done():
            pending.cancel()
