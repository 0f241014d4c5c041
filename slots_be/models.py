from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from sqlalchemy import JSON, Numeric

db = SQLAlchemy()


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.String(32), primary_key=True)  # same id the game loop hands out
    slot_short_name = db.Column(db.String(64), nullable=False, index=True)
    starting_balance = db.Column(Numeric(18, 2), nullable=False)
    bet = db.Column(Numeric(18, 2), nullable=False)
    num_spins = db.Column(db.Integer, default=0, nullable=False)
    amount_wagered = db.Column(Numeric(18, 2), default=0, nullable=False)
    amount_won = db.Column(Numeric(18, 2), default=0, nullable=False)
    session_start = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    session_end = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<GameSession {self.id} (Slot: {self.slot_short_name}, Spins: {self.num_spins})>"


class SlotSpin(db.Model):
    __tablename__ = 'slot_spin'
    id = db.Column(db.Integer, primary_key=True)
    game_session_id = db.Column(db.String(32), db.ForeignKey('game_session.id'), nullable=False, index=True)
    spin_number = db.Column(db.Integer, nullable=False)
    initial_grid = db.Column(JSON, nullable=False)
    final_grid = db.Column(JSON, nullable=False)
    cost = db.Column(Numeric(18, 2), nullable=False)
    win_amount = db.Column(Numeric(18, 2), nullable=False)
    balance_after = db.Column(Numeric(18, 2), nullable=False)
    cascade_count = db.Column(db.Integer, default=0, nullable=False)
    scatter_count = db.Column(db.Integer, default=0, nullable=False)
    is_free_spin = db.Column(db.Boolean, default=False, nullable=False)
    bonus_triggered = db.Column(db.Boolean, default=False, nullable=False)
    spin_time = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    game_session = db.relationship('GameSession', backref='slot_spins')

    def __repr__(self):
        return f"<SlotSpin {self.id} (Session: {self.game_session_id}, Cost: {self.cost}, Win: {self.win_amount})>"
