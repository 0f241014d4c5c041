"""
Spin history: persists a GameSession row per game and a SlotSpin row per
completed spin, driven purely by the game's bus events.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from ..models import db, GameSession, SlotSpin
from ..utils import event_bus as events
from ..utils.cascade_resolver import CascadeOutcome

logger = logging.getLogger(__name__)


class SpinHistoryRecorder:
    def __init__(self, app, game_loop=None):
        self.app = app
        self._pending = {}  # game_id -> spin-requested payload
        if game_loop is not None:
            game_loop.add_game_created_hook(self.attach_game)

    def attach_game(self, game):
        with self.app.app_context():
            session_row = GameSession(
                id=game.game_id,
                slot_short_name=game.slot_short_name,
                starting_balance=game.state.balance,
                bet=game.state.bet,
            )
            db.session.add(session_row)
            self._commit(f"create session {game.game_id}")

        game.bus.subscribe(events.SPIN_REQUESTED, lambda payload: self._pending.__setitem__(game.game_id, payload))
        game.bus.subscribe(events.CASCADE_COMPLETE, lambda payload: self.record_spin(game, payload))

    def record_spin(self, game, payload):
        requested = self._pending.pop(game.game_id, None)
        if requested is None:
            logger.warning(f"Spin completion on game {game.game_id} without a matching request; not recorded")
            return None

        with self.app.app_context():
            spin = SlotSpin(
                game_session_id=game.game_id,
                spin_number=game.state.spin_count,
                initial_grid=requested['grid'],
                final_grid=payload['final_grid'],
                cost=requested['cost'],
                win_amount=payload['total_win'],
                balance_after=game.state.balance,
                cascade_count=payload['cascade_count'],
                scatter_count=payload['scatter_count'],
                is_free_spin=requested['is_free_spin'],
                bonus_triggered=payload['outcome'] == CascadeOutcome.SCATTER_TRIGGERED,
            )
            db.session.add(spin)

            session_row = db.session.get(GameSession, game.game_id)
            if session_row is not None:
                session_row.num_spins += 1
                session_row.amount_wagered += requested['cost']
                session_row.amount_won += payload['total_win']
            self._commit(f"record spin {spin.spin_number} of game {game.game_id}")
            return spin

    def close_session(self, game_id):
        with self.app.app_context():
            session_row = db.session.get(GameSession, game_id)
            if session_row is not None and session_row.session_end is None:
                session_row.session_end = datetime.now(timezone.utc)
                self._commit(f"close session {game_id}")

    def _commit(self, action):
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.error(f"Spin history: failed to {action}", exc_info=True)
