# aurix/state/event_stream.py
"""
Live tail of the call event log.

The event store publishes every appended event here before `append()` returns.
Observers subscribe per call_sid and receive events appended after they
subscribed, in append order. History is not replayed: use
`snapshot_and_tail()` to combine a store read with the live tail.

Exports:
 - get_event_stream() -> EventStream
 - Subscription (async iterable; get(timeout); close())
 - snapshot_and_tail(call_sid) -> (snapshot, subscription)
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from aurix.models.schemas import CallEvent

logger = logging.getLogger("aurix.state.event_stream")

_CLOSED = object()


class SubscriptionClosed(Exception):
    """Raised by Subscription.get() once the subscription was closed."""


class Subscription:
    def __init__(self, stream: "EventStream", call_sid: str):
        self.call_sid = call_sid
        self._stream = stream
        self._queue: asyncio.Queue = asyncio.Queue()
        self._high_water = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def high_water(self) -> int:
        """Id of the last event handed out (or skipped past)."""
        return self._high_water

    def _deliver(self, event: CallEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def advance_to(self, event_id: int) -> None:
        """Drop anything at or below `event_id` (already seen through a snapshot)."""
        if event_id > self._high_water:
            self._high_water = event_id

    async def get(self, timeout: Optional[float] = None) -> CallEvent:
        while True:
            if timeout is None:
                item = await self._queue.get()
            else:
                item = await asyncio.wait_for(self._queue.get(), timeout)
            if item is _CLOSED:
                raise SubscriptionClosed(self.call_sid)
            # at-least-once upstream; hand each id out once
            if item.id <= self._high_water:
                continue
            self._high_water = item.id
            return item

    def drain(self) -> List[CallEvent]:
        """Return whatever is already queued without waiting."""
        events = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                break
            if item.id <= self._high_water:
                continue
            self._high_water = item.id
            events.append(item)
        return events

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> CallEvent:
        try:
            return await self.get()
        except SubscriptionClosed:
            raise StopAsyncIteration

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class EventStream:
    """In-process fan-out of appended events, keyed by call_sid."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {}

    def subscribe(self, call_sid: str) -> Subscription:
        sub = Subscription(self, call_sid)
        self._subscribers.setdefault(call_sid, []).append(sub)
        logger.debug("Subscribed to %s (%d observers)", call_sid, len(self._subscribers[call_sid]))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.call_sid)
        if not subs:
            return
        if sub in subs:
            subs.remove(sub)
        if not subs:
            del self._subscribers[sub.call_sid]

    def publish(self, event: CallEvent) -> int:
        """Deliver to every current subscriber of event.call_sid. Returns the number of deliveries."""
        subs = list(self._subscribers.get(event.call_sid, []))
        for sub in subs:
            sub._deliver(event)
        return len(subs)

    def subscriber_count(self, call_sid: str) -> int:
        return len(self._subscribers.get(call_sid, []))

    def clear(self) -> None:
        for subs in list(self._subscribers.values()):
            for sub in list(subs):
                sub.close()
        self._subscribers = {}


_stream = EventStream()


def get_event_stream() -> EventStream:
    return _stream


async def snapshot_and_tail(call_sid: str) -> Tuple[List[CallEvent], Subscription]:
    """
    Read the session history and open a live tail with no gap and no overlap.

    The subscription is opened before the snapshot is read, so anything appended
    in between is queued; its high-water mark is then moved to the snapshot's max
    id so those events are not handed out twice.
    """
    from aurix.storage.events_store import list_by_session

    sub = get_event_stream().subscribe(call_sid)
    try:
        snapshot = await list_by_session(call_sid)
    except Exception:
        sub.close()
        raise
    if snapshot:
        sub.advance_to(snapshot[-1].id)
    return snapshot, sub
