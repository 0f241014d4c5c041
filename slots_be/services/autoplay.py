"""
Autoplay: issues spins one after another until the budget runs out, the
balance can no longer cover a spin, or the player stops it.

Completion of a spin is observed through `cascade-complete`; the next spin
is scheduled on the running event loop after the pacing delay. Stopping
never aborts the spin in flight, it only prevents the next one.
"""
import asyncio
import logging

from ..utils import event_bus as events
from .spin_session import REJECT_INSUFFICIENT_BALANCE, REJECT_INVALID_OUTCOME, REJECT_RATE_LIMITED

logger = logging.getLogger(__name__)

DEFAULT_SPIN_DELAY = 0.5
DEFAULT_TURBO_MULTIPLIER = 0.25

STOP_BUDGET_EXHAUSTED = 'budget_exhausted'
STOP_INSUFFICIENT_BALANCE = 'insufficient_balance'
STOP_BONUS_ENDED = 'bonus_ended'
STOP_CANCELLED = 'cancelled'
STOP_ERROR = 'spin_error'


class AutoplayController:
    def __init__(self, bus, session, spin_delay=DEFAULT_SPIN_DELAY,
                 turbo_multiplier=DEFAULT_TURBO_MULTIPLIER, auto_run_free_spins=True):
        self.bus = bus
        self.session = session
        self.spin_delay = spin_delay
        self.turbo_multiplier = turbo_multiplier
        self.auto_run_free_spins = auto_run_free_spins

        self.remaining_spins = 0
        self.is_active = False
        self.free_spins_only = False
        self.spins_issued = 0

        self._pending_paid_spin = False
        self._next_spin_handle = None
        self._spin_task = None

        bus.subscribe(events.CASCADE_COMPLETE, self._on_cascade_complete)
        bus.subscribe(events.BONUS_STARTED, self._on_bonus_started)
        bus.subscribe(events.SPIN_ERROR, self._on_spin_error)

    def start(self, spin_count):
        """Starts a new autoplay run of `spin_count` paid spins. Must run on the game's event loop."""
        if spin_count <= 0:
            raise ValueError(f"Autoplay needs a positive spin count, got {spin_count}")
        if self.is_active:
            self.stop(STOP_CANCELLED)

        self.remaining_spins = spin_count
        self.is_active = True
        self.free_spins_only = False
        logger.info(f"[{self.bus.name}] Autoplay started for {spin_count} spins")
        self.bus.publish(events.AUTOPLAY_STARTED, spins=spin_count, free_spins_only=False)
        self._issue_spin()

    def stop(self, reason=STOP_CANCELLED):
        if self._next_spin_handle is not None:
            self._next_spin_handle.cancel()
            self._next_spin_handle = None
        if not self.is_active:
            return

        self.is_active = False
        self.free_spins_only = False
        self.remaining_spins = 0
        self._pending_paid_spin = False
        logger.info(f"[{self.bus.name}] Autoplay stopped ({reason}) after {self.spins_issued} spins")
        self.bus.publish(events.AUTOPLAY_COMPLETE, reason=reason, spins_issued=self.spins_issued)

    def next_spin_delay(self):
        delay = self.spin_delay
        if self.session.state.turbo_enabled:
            delay *= self.turbo_multiplier
        return max(delay, self.session.rate_limit_remaining())

    def _schedule_next_spin(self, delay):
        loop = asyncio.get_running_loop()
        if self._next_spin_handle is not None:
            self._next_spin_handle.cancel()
        self._next_spin_handle = loop.call_later(delay, self._issue_spin)

    def _issue_spin(self):
        self._next_spin_handle = None
        if not self.is_active or self.session.state.is_spinning:
            return
        if self._spin_task is not None and not self._spin_task.done():
            # Issued but not yet admitted; its completion schedules the next spin
            return

        state = self.session.state
        is_free_spin = state.free_spins_remaining > 0
        if not is_free_spin:
            if self.free_spins_only:
                self.stop(STOP_BONUS_ENDED)
                return
            if self.remaining_spins <= 0:
                self.stop(STOP_BUDGET_EXHAUSTED)
                return
            if not self.session.can_afford_next_spin():
                self.stop(STOP_INSUFFICIENT_BALANCE)
                return

        wait = self.session.rate_limit_remaining()
        if wait > 0:
            self._schedule_next_spin(wait)
            return

        self._pending_paid_spin = not is_free_spin
        self.spins_issued += 1
        self._spin_task = asyncio.ensure_future(self._run_spin())

    async def _run_spin(self):
        result = await self.session.spin()
        if result.admitted or not self.is_active:
            return

        self._pending_paid_spin = False
        self.spins_issued -= 1
        if result.rejection == REJECT_INSUFFICIENT_BALANCE:
            self.stop(STOP_INSUFFICIENT_BALANCE)
        elif result.rejection == REJECT_RATE_LIMITED:
            self._schedule_next_spin(self.session.rate_limit_remaining())
        # spin already in flight: its completion schedules the next one

    def _on_cascade_complete(self, payload):
        if not self.is_active:
            return
        if self._pending_paid_spin:
            self._pending_paid_spin = False
            self.remaining_spins -= 1

        state = self.session.state
        if state.free_spins_remaining > 0:
            self._schedule_next_spin(self.next_spin_delay())
            return
        if self.free_spins_only:
            self.stop(STOP_BONUS_ENDED)
            return
        if self.remaining_spins <= 0:
            self.stop(STOP_BUDGET_EXHAUSTED)
            return
        if not self.session.can_afford_next_spin():
            self.stop(STOP_INSUFFICIENT_BALANCE)
            return
        self._schedule_next_spin(self.next_spin_delay())

    def _on_bonus_started(self, payload):
        if self.is_active or not self.auto_run_free_spins:
            return
        self.is_active = True
        self.free_spins_only = True
        self.remaining_spins = 0
        logger.info(f"[{self.bus.name}] Running {payload.get('free_spins')} free spins automatically")
        self.bus.publish(events.AUTOPLAY_STARTED, spins=0, free_spins_only=True)
        # The triggering spin is still resolving; its cascade-complete schedules the first free spin.

    def _on_spin_error(self, payload):
        if self.is_active and payload.get('reason') != REJECT_INVALID_OUTCOME:
            self.stop(STOP_ERROR)
