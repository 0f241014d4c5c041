"""
Headless simulation: plays a game through the autoplay controller with no
pacing and no presentation, collecting hit-rate and return statistics.
"""
import asyncio
import logging
import random
from decimal import Decimal

from ..utils import event_bus as events
from ..utils.payout import to_money
from .slot_game import SlotGame

logger = logging.getLogger(__name__)


class SimulationStats:
    def __init__(self):
        self.spins = 0
        self.paid_spins = 0
        self.free_spins = 0
        self.winning_spins = 0
        self.amount_wagered = Decimal('0.00')
        self.amount_won = Decimal('0.00')
        self.bonus_triggers = 0
        self.retriggers = 0
        self.max_win = Decimal('0.00')
        self.max_cascades = 0
        self._current_cost = Decimal('0.00')
        self._current_is_free = False

    def on_spin_requested(self, payload):
        self._current_cost = payload['cost']
        self._current_is_free = payload['is_free_spin']

    def on_cascade_complete(self, payload):
        self.spins += 1
        if self._current_is_free:
            self.free_spins += 1
        else:
            self.paid_spins += 1
        self.amount_wagered += self._current_cost
        win = payload['total_win']
        self.amount_won += win
        if win > 0:
            self.winning_spins += 1
        self.max_win = max(self.max_win, win)
        self.max_cascades = max(self.max_cascades, payload['cascade_count'])

    @property
    def hit_rate(self):
        return self.winning_spins / self.spins if self.spins else 0.0

    @property
    def rtp(self):
        if not self.amount_wagered:
            return 0.0
        return float(self.amount_won / self.amount_wagered)

    def to_dict(self):
        return {
            'spins': self.spins,
            'paid_spins': self.paid_spins,
            'free_spins': self.free_spins,
            'hit_rate': round(self.hit_rate, 4),
            'rtp': round(self.rtp, 4),
            'amount_wagered': str(self.amount_wagered),
            'amount_won': str(self.amount_won),
            'bonus_triggers': self.bonus_triggers,
            'retriggers': self.retriggers,
            'max_win': str(self.max_win),
            'max_cascades': self.max_cascades,
        }


async def simulate(game_config, spins, bet, seed=None, max_cascade_iterations=200):
    """Runs `spins` paid spins (plus any free spins they award) and returns SimulationStats."""
    bet = to_money(bet)
    game = SlotGame(
        game_config,
        balance=bet * spins,
        bet=bet,
        rng=random.Random(seed),
        min_spin_interval=0,
        autoplay_delay=0,
        max_cascade_iterations=max_cascade_iterations,
    )
    stats = SimulationStats()
    game.bus.subscribe(events.SPIN_REQUESTED, stats.on_spin_requested)
    game.bus.subscribe(events.CASCADE_COMPLETE, stats.on_cascade_complete)

    def count_trigger(payload):
        stats.bonus_triggers += 1

    def count_retrigger(payload):
        stats.retriggers += 1

    game.bus.subscribe(events.BONUS_STARTED, count_trigger)
    game.bus.subscribe(events.BONUS_RETRIGGERED, count_retrigger)

    done = game.bus.expect(events.AUTOPLAY_COMPLETE)
    game.start_autoplay(spins)
    result = await done
    logger.info(f"Simulation of {spins} spins on '{game.slot_short_name}' finished ({result.get('reason')})")
    return stats


def run_simulation(game_config, spins, bet, seed=None):
    return asyncio.run(simulate(game_config, spins, bet, seed))
