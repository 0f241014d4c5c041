"""
Per-game publish/subscribe channel between the engine and its
presentation/audio collaborators.

Delivery is synchronous and in emission order. A failing subscriber is
logged and skipped; it never interrupts delivery to the others or the
engine that published.
"""
import asyncio
import logging
from collections import deque

logger = logging.getLogger(__name__)

# Outbound (engine -> presentation/audio)
SPIN_REQUESTED = 'spin-requested'
SPIN_REJECTED = 'spin-rejected'
SPIN_ERROR = 'spin-error'
WIN = 'win'
CASCADE_REMOVED = 'cascade-removed'
CASCADE_REFILLED = 'cascade-refilled'
CASCADE_COMPLETE = 'cascade-complete'
SCATTER_TRIGGERED = 'scatter-triggered'
BONUS_STARTED = 'bonus-started'
BONUS_RETRIGGERED = 'bonus-retriggered'
BONUS_ENDED = 'bonus-ended'
INSUFFICIENT_BALANCE = 'insufficient-balance'
STATE_CHANGED = 'state-changed'
AUTOPLAY_STARTED = 'autoplay-started'
AUTOPLAY_COMPLETE = 'autoplay-complete'

# Inbound acknowledgements (presentation -> engine)
ANIMATION_REMOVAL_DONE = 'animation-removal-done'
ANIMATION_REFILL_DONE = 'animation-refill-done'

OUTBOUND_EVENTS = (
    SPIN_REQUESTED, SPIN_REJECTED, SPIN_ERROR, WIN, CASCADE_REMOVED, CASCADE_REFILLED,
    CASCADE_COMPLETE, SCATTER_TRIGGERED, BONUS_STARTED, BONUS_RETRIGGERED, BONUS_ENDED,
    INSUFFICIENT_BALANCE, STATE_CHANGED, AUTOPLAY_STARTED, AUTOPLAY_COMPLETE,
)
INBOUND_EVENTS = (ANIMATION_REMOVAL_DONE, ANIMATION_REFILL_DONE)

ALL_EVENTS = '*'


class EventBus:
    def __init__(self, name=None):
        self.name = name or 'bus'
        self._subscribers = {}  # event -> [handler]
        self._waiters = {}      # event -> [Future]
        self._queue = deque()
        self._delivering = False

    def subscribe(self, event, handler):
        """
        Registers `handler(payload)`; for ALL_EVENTS the handler is called as
        `handler(event, payload)`. Returns a zero-argument unsubscribe callable.
        """
        self._subscribers.setdefault(event, []).append(handler)
        return lambda: self.unsubscribe(event, handler)

    def unsubscribe(self, event, handler):
        handlers = self._subscribers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def once(self, event, handler):
        def _wrapper(payload):
            self.unsubscribe(event, _wrapper)
            handler(payload)
        return self.subscribe(event, _wrapper)

    def publish(self, event, **payload):
        """
        Delivers `event` to every subscriber. Events published from inside a
        subscriber are queued and delivered once the current event has reached
        all of its subscribers, so every subscriber sees emission order.
        """
        self._queue.append((event, payload))
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._queue:
                self._deliver(*self._queue.popleft())
        finally:
            self._delivering = False

    def _deliver(self, event, payload):
        for handler in list(self._subscribers.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.error(f"[{self.name}] Subscriber {handler!r} failed on '{event}'", exc_info=True)

        for handler in list(self._subscribers.get(ALL_EVENTS, [])):
            try:
                handler(event, payload)
            except Exception:
                logger.error(f"[{self.name}] Wildcard subscriber {handler!r} failed on '{event}'", exc_info=True)

        for future in self._waiters.pop(event, []):
            if not future.done():
                future.set_result(payload)

    def expect(self, event):
        """
        Future resolved with the payload of the next `event`. Register it
        before publishing whatever the other side is acknowledging, so an
        acknowledgement delivered synchronously is not missed.
        """
        future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(event, []).append(future)
        return future

    async def wait(self, future, timeout=None):
        """Awaits an `expect` future; returns None on timeout."""
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            for waiters in self._waiters.values():
                if future in waiters:
                    waiters.remove(future)
            return None

    async def wait_for(self, event, timeout=None):
        return await self.wait(self.expect(event), timeout)

    def subscriber_count(self, event):
        return len(self._subscribers.get(event, []))
