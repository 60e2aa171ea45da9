"""
Progress broadcaster for download tasks.

Thread-safe fan-out of task updates to every live subscriber. There is no
history: a subscriber only sees events published after it subscribed.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, Optional, Protocol, Set

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    def send(self, event: Dict[str, Any]) -> None:
        ...


class LoopSubscription:
    """
    Subscriber drained by a coroutine on an event loop (the SSE stream).

    Producers on any thread append under a lock and wake the loop with
    call_soon_threadsafe, so a waiting stream holds no worker thread.
    send() raises once maxsize events are waiting, which makes the
    broadcaster drop this subscriber.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = 100):
        self._loop = loop
        self._events: Deque[Dict[str, Any]] = deque()
        self._lock = threading.Lock()
        self._ready = asyncio.Event()
        self.maxsize = maxsize
        self.closed = False

    def send(self, event: Dict[str, Any]) -> None:
        if self.closed:
            raise ConnectionError("subscription closed")
        with self._lock:
            if len(self._events) >= self.maxsize:
                raise OverflowError(f"subscriber backlog reached {self.maxsize} events")
            self._events.append(event)
        self._loop.call_soon_threadsafe(self._ready.set)

    def _pop(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._events.popleft() if self._events else None

    async def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next event, or None if nothing arrived within timeout."""
        event = self._pop()
        if event is not None:
            return event
        # cleared on the loop thread; a later send schedules set() after this
        self._ready.clear()
        event = self._pop()
        if event is not None:
            return event
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return None
        return self._pop()

    def close(self) -> None:
        self.closed = True


class ProgressBroadcaster:
    def __init__(self):
        self._subscribers: Set[Subscriber] = set()
        self._lock = threading.Lock()

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        with self._lock:
            self._subscribers.add(subscriber)
        logger.debug(f"[broadcaster] subscriber added ({self.subscriber_count} live)")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.discard(subscriber)
        if isinstance(subscriber, LoopSubscription):
            subscriber.close()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Dict[str, Any]) -> int:
        """Deliver event to every subscriber; failing subscribers are removed. Returns deliveries."""
        with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        failed = []
        for subscriber in targets:
            try:
                subscriber.send(event)
                delivered += 1
            except Exception as e:
                logger.info(f"[broadcaster] dropping subscriber after send failure: {e!r}")
                failed.append(subscriber)

        for subscriber in failed:
            self.unsubscribe(subscriber)
        return delivered
