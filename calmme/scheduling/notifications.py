"""
In-process push notifications for schedule changes.

Writers publish a snapshot of a psychologist's schedule after each commit;
readers hold a ``Subscription`` and either iterate it or poll ``get``. Leaving a
``with`` block (or calling ``cancel``) detaches the subscription from the hub.

Event-loop readers use ``subscribe_async`` instead. Their snapshots are handed
to the loop with ``call_soon_threadsafe``, so waiting for one never holds a
worker thread.
"""

import asyncio
import logging
import queue
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)


class Subscription:
    def __init__(self, hub: 'ScheduleChangeHub', psychologist_id: str, max_pending: int = 100):
        self.psychologist_id = psychologist_id
        self._hub = hub
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending)
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def deliver(self, snapshot: dict[str, Any]) -> None:
        if self._cancelled:
            return
        try:
            self._queue.put_nowait(snapshot)
        except queue.Full:
            # Keep the newest snapshot; older ones are superseded by it anyway.
            try:
                self._queue.get_nowait()
            except queue.Empty:
                pass
            try:
                self._queue.put_nowait(snapshot)
            except queue.Full:
                logger.warning('Dropped schedule snapshot for %s', self.psychologist_id)

    def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Return the next snapshot, or None on timeout or cancellation."""
        if self._cancelled:
            return None
        try:
            snapshot = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return snapshot

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._hub.unsubscribe(self)
        # Wake up a reader blocked in get().
        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass

    def __iter__(self):
        while not self._cancelled:
            snapshot = self.get()
            if snapshot is None:
                return
            yield snapshot

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class AsyncSubscription(Subscription):
    """A subscription read from an event loop with ``await next(...)``."""

    def __init__(
        self,
        hub: 'ScheduleChangeHub',
        psychologist_id: str,
        loop: asyncio.AbstractEventLoop,
        max_pending: int = 100,
    ):
        super().__init__(hub, psychologist_id, max_pending=max_pending)
        self._loop = loop
        self._pending: asyncio.Queue = asyncio.Queue(maxsize=max_pending)

    def deliver(self, snapshot: dict[str, Any]) -> None:
        if self._cancelled:
            return
        self._call_in_loop(self._enqueue, snapshot)

    def _call_in_loop(self, callback, *args) -> None:
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            logger.warning('Event loop for %s subscription is closed', self.psychologist_id)

    def _enqueue(self, snapshot: dict[str, Any] | None) -> None:
        # Runs on the loop thread.
        if self._pending.full():
            self._pending.get_nowait()
        self._pending.put_nowait(snapshot)

    async def next(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Wait for the next snapshot; None on timeout or cancellation."""
        if self._cancelled:
            return None
        try:
            return await asyncio.wait_for(self._pending.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def get(self, timeout: float | None = None) -> dict[str, Any] | None:
        raise TypeError('AsyncSubscription is read with await next().')

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._hub.unsubscribe(self)
        self._call_in_loop(self._enqueue, None)

    def __iter__(self):
        raise TypeError('AsyncSubscription is read with await next().')

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict[str, Any]:
        snapshot = await self.next()
        if snapshot is None:
            raise StopAsyncIteration
        return snapshot


class ScheduleChangeHub:
    def __init__(self):
        self._lock = Lock()
        self._subscriptions: dict[str, list[Subscription]] = {}

    def _register(self, subscription: Subscription) -> Subscription:
        with self._lock:
            self._subscriptions.setdefault(subscription.psychologist_id, []).append(subscription)
        return subscription

    def subscribe(self, psychologist_id: str, max_pending: int = 100) -> Subscription:
        return self._register(Subscription(self, psychologist_id, max_pending=max_pending))

    def subscribe_async(
        self,
        psychologist_id: str,
        loop: asyncio.AbstractEventLoop | None = None,
        max_pending: int = 100,
    ) -> AsyncSubscription:
        """Subscribe from a coroutine; ``loop`` defaults to the running loop."""
        loop = loop or asyncio.get_running_loop()
        return self._register(AsyncSubscription(self, psychologist_id, loop, max_pending=max_pending))

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.psychologist_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscriptions.pop(subscription.psychologist_id, None)

    def subscriber_count(self, psychologist_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(psychologist_id, []))

    def publish(self, psychologist_id: str, snapshot: dict[str, Any]) -> int:
        with self._lock:
            subscribers = list(self._subscriptions.get(psychologist_id, []))

        for subscription in subscribers:
            subscription.deliver(snapshot)

        logger.debug('Published schedule change for %s to %d subscriber(s)', psychologist_id, len(subscribers))
        return len(subscribers)


schedule_changes = ScheduleChangeHub()
