from marshmallow import Schema, fields, ValidationError, validates, validates_schema
from marshmallow_sqlalchemy import SQLAlchemyAutoSchema
from marshmallow.validate import OneOf, Range, Length

from .models import db, GameSession, SlotSpin

MAX_BALANCE = 10_000_000
MAX_AUTOPLAY_SPINS = 1000


def validate_amount(amount):
    """Validate monetary amounts (in currency units, two decimals)"""
    if amount < 0:
        raise ValidationError('Amount cannot be negative.')

    if amount > MAX_BALANCE:
        raise ValidationError('Amount exceeds maximum allowed value.')

    return amount


# --- Slot configuration (gameConfig.json) ---

class SymbolConfigSchema(Schema):
    id = fields.Int(required=True, validate=Range(min=0))
    name = fields.Str(required=True, validate=Length(min=1, max=50))
    weight = fields.Float(load_default=1.0, validate=Range(min=0))
    is_scatter = fields.Bool(load_default=False)
    is_wild = fields.Bool(load_default=False)

class LayoutConfigSchema(Schema):
    rows = fields.Int(required=True, validate=Range(min=1, max=12))
    columns = fields.Int(required=True, validate=Range(min=1, max=12))
    paylines = fields.List(fields.List(fields.Int(validate=Range(min=0))), load_default=list)

class FreeSpinsConfigSchema(Schema):
    base = fields.Dict(keys=fields.Str(), values=fields.Int(validate=Range(min=0)), required=True)
    retrigger = fields.Dict(keys=fields.Str(), values=fields.Int(validate=Range(min=0)), required=True)
    base_threshold = fields.Int(load_default=4, validate=Range(min=1))
    retrigger_threshold = fields.Int(load_default=3, validate=Range(min=1))

class ScatterConfigSchema(Schema):
    chance = fields.Float(load_default=0.025, validate=Range(min=0, max=1))
    max = fields.Int(load_default=6, validate=Range(min=0))

class EnhancedBetConfigSchema(Schema):
    cost_multiplier = fields.Decimal(load_default=None, validate=Range(min=1))
    scatter_chance_multiplier = fields.Float(load_default=2.0, validate=Range(min=1))

class BuyFeatureConfigSchema(Schema):
    cost_multiplier = fields.Decimal(load_default=None, validate=Range(min=1))
    guaranteed_scatters = fields.Int(load_default=4, validate=Range(min=1))

class BetLimitsConfigSchema(Schema):
    min = fields.Decimal(load_default=None, validate=Range(min=0))
    max = fields.Decimal(load_default=None, validate=Range(min=0))

class GameConfigSchema(Schema):
    name = fields.Str(required=True, validate=Length(min=1, max=100))
    short_name = fields.Str(required=True, validate=Length(min=1, max=64))
    layout = fields.Nested(LayoutConfigSchema, required=True)
    match_model = fields.Str(load_default='cluster', validate=OneOf(['cluster', 'payline']))
    min_cluster_size = fields.Int(load_default=8, validate=Range(min=1))
    min_line_run = fields.Int(load_default=3, validate=Range(min=1))
    symbols = fields.List(fields.Nested(SymbolConfigSchema), required=True, validate=Length(min=2))
    scatter_symbol_id = fields.Int(required=True)
    wild_symbol_ids = fields.List(fields.Int(), load_default=list)
    pay_table = fields.Dict(keys=fields.Str(), values=fields.Raw(), required=True)
    free_spins = fields.Nested(FreeSpinsConfigSchema, required=True)
    scatter = fields.Nested(ScatterConfigSchema, load_default=dict)
    enhanced_bet = fields.Nested(EnhancedBetConfigSchema, load_default=dict)
    buy_feature = fields.Nested(BuyFeatureConfigSchema, load_default=dict)
    bet_limits = fields.Nested(BetLimitsConfigSchema, load_default=dict)

    @validates_schema
    def validate_symbol_references(self, data, **kwargs):
        symbol_ids = [s['id'] for s in data.get('symbols', [])]
        if len(symbol_ids) != len(set(symbol_ids)):
            raise ValidationError('Symbol IDs must be unique.', 'symbols')
        if data.get('scatter_symbol_id') not in symbol_ids:
            raise ValidationError('scatter_symbol_id must reference a defined symbol.', 'scatter_symbol_id')
        for wild_id in data.get('wild_symbol_ids', []):
            if wild_id not in symbol_ids:
                raise ValidationError(f'Wild symbol {wild_id} is not a defined symbol.', 'wild_symbol_ids')


# --- Request schemas ---

class CreateGameSchema(Schema):
    slot = fields.Str(load_default=None, validate=Length(min=1, max=64))
    balance = fields.Decimal(load_default=None, places=2, validate=validate_amount)
    bet = fields.Decimal(load_default=None, places=2, validate=Range(min=0, min_inclusive=False))
    await_presentation = fields.Bool(load_default=False)

class UpdateSettingsSchema(Schema):
    bet = fields.Decimal(places=2, validate=Range(min=0, min_inclusive=False))
    turbo = fields.Bool()
    enhanced_bet = fields.Bool()

    @validates_schema
    def validate_at_least_one_field(self, data, **kwargs):
        if not data:
            raise ValidationError('At least one of bet, turbo or enhanced_bet must be provided.')

class SpinRequestSchema(Schema):
    # Externally supplied outcome; shape is checked against the slot layout by the session
    grid = fields.List(fields.List(fields.Int(strict=True)), load_default=None, allow_none=True)

class AutoplayRequestSchema(Schema):
    spins = fields.Int(required=True, validate=Range(min=1, max=MAX_AUTOPLAY_SPINS))

    @validates('spins')
    def validate_spins_is_integral(self, value, **kwargs):
        if isinstance(value, bool):
            raise ValidationError('spins must be an integer.')


# --- Response schemas ---

class SessionStateSchema(Schema):
    game_id = fields.Str(dump_only=True)
    slot = fields.Str(dump_only=True)
    is_spinning = fields.Bool(dump_only=True)
    is_bonus_round = fields.Bool(dump_only=True)
    free_spins_remaining = fields.Int(dump_only=True)
    total_spin_win = fields.Decimal(as_string=True, dump_only=True)
    total_bonus_win = fields.Decimal(as_string=True, dump_only=True)
    balance = fields.Decimal(as_string=True, dump_only=True)
    bet = fields.Decimal(as_string=True, dump_only=True)
    min_scatter_floor = fields.Int(dump_only=True)
    turbo_enabled = fields.Bool(dump_only=True)
    enhanced_bet_enabled = fields.Bool(dump_only=True)
    spin_count = fields.Int(dump_only=True)
    autoplay_active = fields.Bool(dump_only=True)
    autoplay_remaining_spins = fields.Int(dump_only=True)

class SpinResultSchema(Schema):
    admitted = fields.Bool(dump_only=True)
    rejection = fields.Str(dump_only=True, allow_none=True)
    cost = fields.Decimal(as_string=True, dump_only=True)
    is_free_spin = fields.Bool(dump_only=True)
    initial_grid = fields.List(fields.List(fields.Int()), dump_only=True, allow_none=True)
    final_grid = fields.List(fields.List(fields.Int()), dump_only=True, allow_none=True)
    total_win = fields.Decimal(as_string=True, dump_only=True)
    cascade_count = fields.Int(dump_only=True)
    scatter_count = fields.Int(dump_only=True)
    outcome = fields.Str(dump_only=True, allow_none=True)

class GameSessionSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = GameSession
        load_instance = True
        sqla_session = db.session

class SlotSpinSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = SlotSpin
        load_instance = True
        include_fk = True
        sqla_session = db.session

    cost = fields.Decimal(as_string=True)
    win_amount = fields.Decimal(as_string=True)
    balance_after = fields.Decimal(as_string=True)

class SlotSpinListSchema(Schema):
    page = fields.Int(dump_only=True)
    pages = fields.Int(dump_only=True)
    per_page = fields.Int(dump_only=True)
    total = fields.Int(dump_only=True)
    items = fields.Nested(SlotSpinSchema, many=True, attribute='items')
