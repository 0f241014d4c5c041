"""
Spin Session state machine: admits or rejects spin requests, charges the
spin, generates (or accepts) the outcome grid and hands it to the cascade
resolver. Owns the SessionState every other component reads.
"""
import logging
import secrets
import time
from decimal import Decimal
from typing import NamedTuple, Optional

from ..utils import event_bus as events
from ..utils.grid import Grid, SymbolPool, create_random_grid, place_scatters, validate_grid_values
from ..utils.game_config import symbol_weights
from ..utils.payout import to_money

logger = logging.getLogger(__name__)

DEFAULT_MIN_SPIN_INTERVAL = 0.2  # seconds

# Rejection reasons
REJECT_SPINNING = 'spin_in_progress'
REJECT_RATE_LIMITED = 'rate_limited'
REJECT_INSUFFICIENT_BALANCE = 'insufficient_balance'
REJECT_INVALID_OUTCOME = 'invalid_outcome'
REJECT_FEATURE_UNAVAILABLE = 'feature_unavailable'
REJECT_ERROR = 'cascade_error'

IDLE = 'idle'
SPINNING = 'spinning'


class SessionState:
    """Plain session data; mutated only by SpinSession and BonusController."""

    def __init__(self, balance, bet):
        self.is_spinning = False
        self.is_bonus_round = False
        self.free_spins_remaining = 0
        self.total_spin_win = to_money(0)
        self.total_bonus_win = to_money(0)
        self.balance = to_money(balance)
        self.bet = to_money(bet)
        self.min_scatter_floor = 0
        self.turbo_enabled = False
        self.enhanced_bet_enabled = False
        self.spin_count = 0

    def to_dict(self):
        return {
            'is_spinning': self.is_spinning,
            'is_bonus_round': self.is_bonus_round,
            'free_spins_remaining': self.free_spins_remaining,
            'total_spin_win': self.total_spin_win,
            'total_bonus_win': self.total_bonus_win,
            'balance': self.balance,
            'bet': self.bet,
            'min_scatter_floor': self.min_scatter_floor,
            'turbo_enabled': self.turbo_enabled,
            'enhanced_bet_enabled': self.enhanced_bet_enabled,
            'spin_count': self.spin_count,
        }

    def __repr__(self):
        return (f"<SessionState balance={self.balance} bet={self.bet} "
                f"bonus={self.is_bonus_round} free_spins={self.free_spins_remaining}>")


class SpinResult(NamedTuple):
    admitted: bool
    rejection: Optional[str] = None
    cost: Decimal = Decimal('0.00')
    is_free_spin: bool = False
    initial_grid: Optional[list] = None
    final_grid: Optional[list] = None
    total_win: Decimal = Decimal('0.00')
    cascade_count: int = 0
    scatter_count: int = 0
    outcome: Optional[str] = None
    errors: tuple = ()

    def to_dict(self):
        return self._asdict()


class SpinSession:
    def __init__(self, bus, game_config, resolver, state, rng=None, clock=None,
                 min_spin_interval=DEFAULT_MIN_SPIN_INTERVAL):
        self.bus = bus
        self.game_config = game_config
        self.resolver = resolver
        self.state = state
        self.rng = rng or secrets.SystemRandom()
        self.clock = clock or time.monotonic
        self.min_spin_interval = min_spin_interval
        self._last_spin_at = None

        scatter_id = game_config['scatter_symbol_id']
        self.symbol_ids = frozenset(game_config['symbols'])
        self.base_pool = SymbolPool(symbol_weights(game_config)).without(scatter_id)

        bus.subscribe(events.CASCADE_COMPLETE, self._on_cascade_complete)

    @property
    def status(self):
        return SPINNING if self.state.is_spinning else IDLE

    # --- Costs and admission ---

    def spin_cost(self):
        cost = self.state.bet
        if self.state.enhanced_bet_enabled:
            cost = cost * self.game_config['enhanced_bet']['cost_multiplier']
        return to_money(cost)

    def buy_feature_cost(self):
        return to_money(self.state.bet * self.game_config['buy_feature']['cost_multiplier'])

    def can_afford_next_spin(self):
        return self.state.free_spins_remaining > 0 or self.state.balance >= self.spin_cost()

    def rate_limit_remaining(self):
        if self._last_spin_at is None:
            return 0.0
        return max(0.0, self.min_spin_interval - (self.clock() - self._last_spin_at))

    def _admission_rejection(self, cost, is_free_spin):
        if self.state.is_spinning:
            return REJECT_SPINNING
        if self.rate_limit_remaining() > 0:
            return REJECT_RATE_LIMITED
        if not is_free_spin and self.state.balance < cost:
            return REJECT_INSUFFICIENT_BALANCE
        return None

    def _reject(self, reason, cost=Decimal('0.00'), **details):
        if reason == REJECT_INSUFFICIENT_BALANCE:
            logger.info(f"[{self.bus.name}] Spin rejected: balance {self.state.balance} below cost {cost}")
            self.bus.publish(events.INSUFFICIENT_BALANCE, balance=self.state.balance, cost=cost)
        else:
            logger.debug(f"[{self.bus.name}] Spin rejected: {reason}")
        self.bus.publish(events.SPIN_REJECTED, reason=reason, **details)
        return SpinResult(admitted=False, rejection=reason, cost=cost, errors=tuple(details.get('errors', ())))

    # --- Settings ---

    def update_settings(self, bet=None, turbo=None, enhanced_bet=None):
        """
        Applies bet/turbo/enhanced-bet changes. Bet and enhanced bet are
        locked while a spin or bonus round is running; returns False then.
        """
        if (bet is not None or enhanced_bet is not None) and (self.state.is_spinning or self.state.is_bonus_round):
            return False
        if bet is not None:
            self.state.bet = to_money(bet)
        if enhanced_bet is not None:
            self.state.enhanced_bet_enabled = bool(enhanced_bet)
        if turbo is not None:
            self.state.turbo_enabled = bool(turbo)
        self.bus.publish(events.STATE_CHANGED, state=self.state.to_dict())
        return True

    def arm_scatter_floor(self, count):
        """Forces at least `count` scatters onto the next generated grid (single use)."""
        self.state.min_scatter_floor = max(0, int(count))

    # --- Spins ---

    async def spin(self, outcome_grid=None):
        """
        Runs one spin to completion. `outcome_grid` (row-major list of
        lists) replaces the random draw when an external service decides
        the outcome; it is shape-checked before anything is charged.
        """
        is_free_spin = self.state.free_spins_remaining > 0
        cost = Decimal('0.00') if is_free_spin else self.spin_cost()

        reason = self._admission_rejection(cost, is_free_spin)
        if reason:
            return self._reject(reason, cost)

        if outcome_grid is not None:
            errors = validate_grid_values(
                outcome_grid, self.game_config['columns'], self.game_config['rows'], self.symbol_ids
            )
            if errors:
                logger.warning(f"[{self.bus.name}] Invalid spin outcome rejected: {errors}")
                self.bus.publish(events.SPIN_ERROR, reason=REJECT_INVALID_OUTCOME, details=errors)
                return self._reject(REJECT_INVALID_OUTCOME, cost, errors=errors)

        return await self._run_spin(cost, is_free_spin, outcome_grid)

    async def buy_feature(self):
        """Charges the feature price and runs one spin with guaranteed scatters."""
        cost = self.buy_feature_cost()
        if self.state.is_bonus_round or self.state.free_spins_remaining > 0:
            return self._reject(REJECT_FEATURE_UNAVAILABLE, cost)

        reason = self._admission_rejection(cost, is_free_spin=False)
        if reason:
            return self._reject(reason, cost)

        self.arm_scatter_floor(self.game_config['buy_feature']['guaranteed_scatters'])
        return await self._run_spin(cost, False, None)

    async def _run_spin(self, cost, is_free_spin, outcome_grid):
        state = self.state
        state.is_spinning = True
        self._last_spin_at = self.clock()
        if is_free_spin:
            state.free_spins_remaining -= 1
        else:
            state.balance -= cost
        state.total_spin_win = to_money(0)
        state.spin_count += 1

        if outcome_grid is not None:
            grid = Grid(outcome_grid)
            state.min_scatter_floor = 0
        else:
            grid = self._generate_grid(is_free_spin)
        initial_grid = grid.to_list()

        logger.debug(f"[{self.bus.name}] Spin {state.spin_count} admitted "
                     f"(cost {cost}, free: {is_free_spin}, balance {state.balance})")
        self.bus.publish(events.SPIN_REQUESTED, grid=initial_grid, cost=cost, is_free_spin=is_free_spin)
        self.bus.publish(events.STATE_CHANGED, state=state.to_dict())

        try:
            cascade = await self.resolver.resolve(grid, state.bet, self)
        except Exception:
            logger.error(f"[{self.bus.name}] Cascade failed on spin {state.spin_count}", exc_info=True)
            self.bus.publish(events.SPIN_ERROR, reason=REJECT_ERROR, details=[])
            self._return_to_idle()
            return SpinResult(admitted=True, rejection=REJECT_ERROR, cost=cost,
                              is_free_spin=is_free_spin, initial_grid=initial_grid)

        if state.is_spinning:
            # cascade-complete was not observed (subscriber removed); never stay stuck
            self._return_to_idle()

        return SpinResult(
            admitted=True,
            cost=cost,
            is_free_spin=is_free_spin,
            initial_grid=initial_grid,
            final_grid=cascade.final_grid.to_list(),
            total_win=cascade.total_win,
            cascade_count=cascade.cascade_count,
            scatter_count=cascade.scatter_count,
            outcome=cascade.outcome,
        )

    def _generate_grid(self, is_free_spin):
        config = self.game_config
        grid = create_random_grid(config['columns'], config['rows'], self.base_pool, self.rng)

        chance = config['scatter']['chance']
        if self.state.enhanced_bet_enabled and not is_free_spin:
            chance = min(1.0, chance * config['enhanced_bet']['scatter_chance_multiplier'])

        floor = self.state.min_scatter_floor
        self.state.min_scatter_floor = 0
        place_scatters(grid, config['scatter_symbol_id'], floor, config['scatter']['max'], chance, self.rng)
        return grid

    def credit_win(self, amount):
        state = self.state
        state.total_spin_win += amount
        state.balance += amount
        if state.is_bonus_round:
            state.total_bonus_win += amount

    def _return_to_idle(self):
        self.state.is_spinning = False
        self.bus.publish(events.STATE_CHANGED, state=self.state.to_dict())

    def _on_cascade_complete(self, payload):
        self._return_to_idle()
