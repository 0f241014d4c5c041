import copy
import json
import os
from decimal import Decimal

from marshmallow import ValidationError

from ..schemas import GameConfigSchema
from .payout import BASE_FREE_SPINS, RETRIGGER_FREE_SPINS

SLOT_CONFIG_BASE_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'public', 'slots'))

DEFAULT_ENHANCED_BET_COST_MULTIPLIER = Decimal('1.25')
DEFAULT_BUY_FEATURE_COST_MULTIPLIER = Decimal('100')


def load_game_config(slot_short_name, base_dir=None):
    """
    Loads `<base_dir>/<slot_short_name>/gameConfig.json`, validates it and
    returns the flattened, type-normalized `game` section.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If the JSON is malformed or fails validation.
    """
    base_dir = base_dir or SLOT_CONFIG_BASE_PATH
    file_path = os.path.join(base_dir, slot_short_name, "gameConfig.json")
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Configuration file not found for slot '{slot_short_name}' at {file_path}")

    try:
        with open(file_path, 'r') as f:
            raw_config = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_path}: {e.msg} (line {e.lineno}, col {e.colno})")

    if not isinstance(raw_config, dict) or not isinstance(raw_config.get('game'), dict):
        raise ValueError(f"Config validation error for slot '{slot_short_name}': 'game' key must be a dictionary.")
    return prepare_game_config(raw_config['game'], slot_short_name)


def prepare_game_config(game_section, slot_short_name='inline'):
    """Validates a raw `game` section and flattens it into the engine's config dict."""
    try:
        game = GameConfigSchema().load(game_section)
    except ValidationError as e:
        raise ValueError(f"Config validation error for slot '{slot_short_name}': {e.messages}")

    layout = game.pop('layout')
    game['rows'] = layout['rows']
    game['columns'] = layout['columns']
    game['paylines'] = layout['paylines']

    game['symbols'] = {s['id']: s for s in game['symbols']}
    game['free_spins']['base'] = _int_keys(game['free_spins']['base']) or dict(BASE_FREE_SPINS)
    game['free_spins']['retrigger'] = _int_keys(game['free_spins']['retrigger']) or dict(RETRIGGER_FREE_SPINS)
    game['pay_table'] = _int_keys(game['pay_table'])

    if game['enhanced_bet'].get('cost_multiplier') is None:
        game['enhanced_bet']['cost_multiplier'] = DEFAULT_ENHANCED_BET_COST_MULTIPLIER
    if game['buy_feature'].get('cost_multiplier') is None:
        game['buy_feature']['cost_multiplier'] = DEFAULT_BUY_FEATURE_COST_MULTIPLIER

    _validate_game_config(game, slot_short_name)
    return game


def build_game_config(slot_short_name, overrides=None, base_dir=None):
    """Loaded config with top-level keys (and nested dict keys) replaced by `overrides`."""
    game_config = copy.deepcopy(load_game_config(slot_short_name, base_dir))
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(game_config.get(key), dict) and key not in ('symbols', 'pay_table'):
            game_config[key].update(value)
        else:
            game_config[key] = value
    return game_config


def symbol_weights(game_config):
    return {s_id: s['weight'] for s_id, s in game_config['symbols'].items()}


def _int_keys(mapping):
    return {int(k): v for k, v in mapping.items()}


def _validate_game_config(game, slot_short_name):
    """Cross-field checks the schema cannot express on its own."""
    rows, columns = game['rows'], game['columns']
    symbol_ids = set(game['symbols'])
    scatter_id = game['scatter_symbol_id']

    payable_ids = symbol_ids - {scatter_id} - set(game['wild_symbol_ids'])
    if not any(game['symbols'][s_id]['weight'] > 0 for s_id in payable_ids):
        raise ValueError(f"Config validation error for slot '{slot_short_name}': at least one payable symbol needs a positive weight.")

    for s_id in game['pay_table']:
        if s_id not in symbol_ids:
            raise ValueError(f"Config validation error for slot '{slot_short_name}': pay_table references unknown symbol {s_id}.")

    if game['match_model'] == 'cluster':
        if game['min_cluster_size'] > rows * columns:
            raise ValueError(f"Config validation error for slot '{slot_short_name}': min_cluster_size exceeds the grid size.")
        for s_id, tiers in game['pay_table'].items():
            if not isinstance(tiers, list) or len(tiers) != 3 or not all(isinstance(m, (int, float)) and m >= 0 for m in tiers):
                raise ValueError(f"Config validation error for slot '{slot_short_name}': pay_table[{s_id}] must list three non-negative tier multipliers.")
    else:
        if not game['paylines']:
            raise ValueError(f"Config validation error for slot '{slot_short_name}': payline slots need at least one payline.")
        for i, line in enumerate(game['paylines']):
            if len(line) != columns:
                raise ValueError(f"Config validation error for slot '{slot_short_name}': paylines[{i}] must give one row per column ({columns}).")
            if any(not 0 <= row < rows for row in line):
                raise ValueError(f"Config validation error for slot '{slot_short_name}': paylines[{i}] has a row outside 0..{rows - 1}.")
        for s_id, runs in game['pay_table'].items():
            if not isinstance(runs, dict) or not all(str(run).isdigit() for run in runs):
                raise ValueError(f"Config validation error for slot '{slot_short_name}': pay_table[{s_id}] must map run lengths to multipliers.")

    if game['scatter']['max'] > rows * columns:
        raise ValueError(f"Config validation error for slot '{slot_short_name}': scatter.max exceeds the grid size.")
    if game['buy_feature']['guaranteed_scatters'] > game['scatter']['max']:
        raise ValueError(f"Config validation error for slot '{slot_short_name}': buy_feature.guaranteed_scatters exceeds scatter.max.")
