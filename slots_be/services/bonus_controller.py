import logging

from ..utils import event_bus as events
from ..utils.payout import free_spins_for, to_money

logger = logging.getLogger(__name__)


class BonusController:
    """
    Enters, extends and leaves the free-spins bonus round in response to
    scatter triggers and spin completions.
    """

    def __init__(self, bus, state, game_config):
        self.bus = bus
        self.state = state
        self.base_awards = game_config['free_spins']['base']
        self.retrigger_awards = game_config['free_spins']['retrigger']

        bus.subscribe(events.SCATTER_TRIGGERED, self._on_scatter_triggered)
        bus.subscribe(events.CASCADE_COMPLETE, self._on_cascade_complete)

    def handle_scatter(self, scatter_count):
        """Starts the bonus or retriggers it; returns the free spins awarded."""
        if self.state.is_bonus_round:
            return self._retrigger(scatter_count)
        return self._start_bonus(scatter_count)

    def _start_bonus(self, scatter_count):
        awarded = free_spins_for(scatter_count, self.base_awards)
        if awarded <= 0:
            logger.warning(f"[{self.bus.name}] Scatter trigger with {scatter_count} scatters awards no free spins")
            return 0

        self.state.is_bonus_round = True
        self.state.free_spins_remaining += awarded
        self.state.total_bonus_win = to_money(0)
        logger.info(f"[{self.bus.name}] Bonus started: {scatter_count} scatters, {awarded} free spins")
        self.bus.publish(events.BONUS_STARTED, free_spins=awarded, scatter_count=scatter_count)
        self.bus.publish(events.STATE_CHANGED, state=self.state.to_dict())
        return awarded

    def _retrigger(self, scatter_count):
        awarded = free_spins_for(scatter_count, self.retrigger_awards)
        if awarded <= 0:
            return 0

        self.state.free_spins_remaining += awarded
        logger.info(f"[{self.bus.name}] Bonus retriggered: +{awarded} free spins "
                    f"({self.state.free_spins_remaining} remaining)")
        self.bus.publish(
            events.BONUS_RETRIGGERED,
            added_free_spins=awarded,
            free_spins_remaining=self.state.free_spins_remaining,
        )
        self.bus.publish(events.STATE_CHANGED, state=self.state.to_dict())
        return awarded

    def end_bonus(self):
        total_bonus_win = self.state.total_bonus_win
        self.state.is_bonus_round = False
        self.state.free_spins_remaining = 0
        logger.info(f"[{self.bus.name}] Bonus ended, total bonus win {total_bonus_win}")
        self.bus.publish(events.BONUS_ENDED, total_bonus_win=total_bonus_win)
        self.bus.publish(events.STATE_CHANGED, state=self.state.to_dict())

    def _on_scatter_triggered(self, payload):
        self.handle_scatter(payload['scatter_count'])

    def _on_cascade_complete(self, payload):
        if self.state.is_bonus_round and self.state.free_spins_remaining <= 0:
            self.end_bonus()
