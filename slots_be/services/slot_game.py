"""
One playable game instance: a private event bus with the session, bonus
and autoplay controllers wired around it.

Subscription order on `cascade-complete` matters and is fixed here:
the session returns to idle first, the bonus controller then closes a
finished bonus, and only then does autoplay decide on the next spin.
"""
import logging
import secrets
import uuid

from ..utils import event_bus as events
from ..utils.cascade_resolver import CascadeResolver, DEFAULT_ANIMATION_ACK_TIMEOUT, DEFAULT_MAX_CASCADE_ITERATIONS
from ..utils.event_bus import EventBus
from ..utils.game_config import load_game_config, symbol_weights
from ..utils.grid import SymbolPool
from ..utils.match_evaluator import build_evaluator
from ..utils.payout import PayTable
from .autoplay import AutoplayController, DEFAULT_SPIN_DELAY, DEFAULT_TURBO_MULTIPLIER
from .bonus_controller import BonusController
from .spin_session import DEFAULT_MIN_SPIN_INTERVAL, SessionState, SpinSession

logger = logging.getLogger(__name__)


class SlotGame:
    def __init__(self, game_config, balance, bet, game_id=None, rng=None, clock=None,
                 await_presentation=False, ack_timeout=DEFAULT_ANIMATION_ACK_TIMEOUT,
                 min_spin_interval=DEFAULT_MIN_SPIN_INTERVAL, autoplay_delay=DEFAULT_SPIN_DELAY,
                 turbo_multiplier=DEFAULT_TURBO_MULTIPLIER, max_cascade_iterations=DEFAULT_MAX_CASCADE_ITERATIONS,
                 auto_run_free_spins=True):
        self.game_id = game_id or uuid.uuid4().hex
        self.game_config = game_config
        self.slot_short_name = game_config['short_name']
        self.rng = rng or secrets.SystemRandom()

        self.bus = EventBus(name=f"game-{self.game_id[:8]}")
        self.state = SessionState(balance, bet)

        self.resolver = CascadeResolver(
            self.bus,
            evaluator=build_evaluator(game_config),
            pay_table=PayTable.from_game_config(game_config),
            refill_pool=SymbolPool(symbol_weights(game_config)),
            rng=self.rng,
            await_presentation=await_presentation,
            ack_timeout=ack_timeout,
            max_iterations=max_cascade_iterations,
        )
        self.session = SpinSession(
            self.bus, game_config, self.resolver, self.state,
            rng=self.rng, clock=clock, min_spin_interval=min_spin_interval,
        )
        self.bonus = BonusController(self.bus, self.state, game_config)
        self.autoplay = AutoplayController(
            self.bus, self.session,
            spin_delay=autoplay_delay,
            turbo_multiplier=turbo_multiplier,
            auto_run_free_spins=auto_run_free_spins,
        )
        logger.info(f"Created game {self.game_id} on slot '{self.slot_short_name}' "
                    f"(balance {self.state.balance}, bet {self.state.bet})")

    @classmethod
    def from_app_config(cls, app_config, slot_short_name=None, balance=None, bet=None, **kwargs):
        """Builds a game from Flask config values; explicit kwargs win."""
        slot_short_name = slot_short_name or app_config['DEFAULT_SLOT']
        game_config = load_game_config(slot_short_name, app_config.get('SLOT_CONFIG_DIR'))
        options = dict(
            min_spin_interval=app_config['SPIN_RATE_LIMIT_MS'] / 1000.0,
            ack_timeout=app_config['ANIMATION_ACK_TIMEOUT_SECONDS'],
            autoplay_delay=app_config['AUTOPLAY_SPIN_DELAY_SECONDS'],
            turbo_multiplier=app_config['TURBO_SPEED_MULTIPLIER'],
            max_cascade_iterations=app_config['MAX_CASCADE_ITERATIONS'],
            auto_run_free_spins=app_config['AUTO_RUN_FREE_SPINS'],
        )
        options.update(kwargs)
        return cls(
            game_config,
            balance=app_config['DEFAULT_BALANCE'] if balance is None else balance,
            bet=app_config['DEFAULT_BET'] if bet is None else bet,
            **options
        )

    # --- Commands (call on the game's event loop) ---

    async def spin(self, outcome_grid=None):
        return await self.session.spin(outcome_grid)

    async def buy_feature(self):
        return await self.session.buy_feature()

    def start_autoplay(self, spin_count):
        self.autoplay.start(spin_count)

    def stop_autoplay(self):
        self.autoplay.stop()

    def update_settings(self, **settings):
        return self.session.update_settings(**settings)

    def acknowledge(self, event, cascade_index=None):
        """
        Relays a presentation acknowledgement onto the bus. Passing the
        `cascade_index` of the step being acknowledged lets the resolver
        drop an ack that arrives after its step already timed out.
        """
        if event not in events.INBOUND_EVENTS:
            raise ValueError(f"Unknown acknowledgement event '{event}'")
        if cascade_index is None:
            self.bus.publish(event)
        else:
            self.bus.publish(event, cascade_index=cascade_index)

    def snapshot(self):
        snapshot = self.state.to_dict()
        snapshot.update({
            'game_id': self.game_id,
            'slot': self.slot_short_name,
            'autoplay_active': self.autoplay.is_active,
            'autoplay_remaining_spins': self.autoplay.remaining_spins,
        })
        return snapshot

    def __repr__(self):
        return f"<SlotGame {self.game_id} slot={self.slot_short_name}>"
