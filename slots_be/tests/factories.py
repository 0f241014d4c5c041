"""Shared builders for the test suite: slot configs, grids, RNG stubs, event recorders."""
import copy
import itertools
import random

from slots_be.services.slot_game import SlotGame
from slots_be.utils import event_bus as events
from slots_be.utils.game_config import prepare_game_config

SCATTER = 9

# 6 columns x 5 rows, symbols 0-8 payable, 9 scatter
CLUSTER_GAME = {
    "name": "Test Tumble",
    "short_name": "test_tumble",
    "layout": {"rows": 5, "columns": 6},
    "match_model": "cluster",
    "min_cluster_size": 8,
    "scatter_symbol_id": SCATTER,
    "symbols": [
        {"id": 0, "name": "Crown", "weight": 6},
        {"id": 1, "name": "Ring", "weight": 8},
        {"id": 2, "name": "Hourglass", "weight": 9},
        {"id": 3, "name": "Chalice", "weight": 10},
        {"id": 4, "name": "Red Gem", "weight": 11},
        {"id": 5, "name": "Purple Gem", "weight": 12},
        {"id": 6, "name": "Yellow Gem", "weight": 12},
        {"id": 7, "name": "Green Gem", "weight": 13},
        {"id": 8, "name": "Blue Gem", "weight": 14},
        {"id": 9, "name": "Scatter", "weight": 1, "is_scatter": True},
    ],
    "pay_table": {
        "0": [10, 25, 50], "1": [2.5, 10, 25], "2": [2, 5, 15], "3": [1, 2, 12], "4": [1, 1.5, 10],
        "5": [0.8, 1.2, 8], "6": [0.5, 1, 5], "7": [0.4, 0.9, 4], "8": [0.25, 0.75, 2],
    },
    "free_spins": {
        "base": {"4": 10, "5": 12, "6": 15},
        "retrigger": {"3": 3, "4": 5, "5": 10, "6": 15},
    },
    "scatter": {"chance": 0.025, "max": 6},
    "enhanced_bet": {"cost_multiplier": 1.25, "scatter_chance_multiplier": 2},
    "buy_feature": {"cost_multiplier": 100, "guaranteed_scatters": 4},
}

# A symbol 3 cluster of exactly 9 cells; every other symbol appears at most 3 times
CLUSTER_OF_THREES = [
    [3, 3, 3, 0, 1, 2],
    [3, 3, 3, 4, 5, 6],
    [3, 3, 3, 7, 8, 0],
    [1, 2, 4, 5, 6, 7],
    [8, 0, 1, 2, 4, 5],
]

# No symbol reaches 8, no scatters
NO_WIN_GRID = [
    [0, 1, 2, 3, 4, 5],
    [6, 7, 8, 0, 1, 2],
    [3, 4, 5, 6, 7, 8],
    [0, 1, 2, 3, 4, 5],
    [6, 7, 8, 0, 1, 2],
]


def cluster_config(**overrides):
    section = copy.deepcopy(CLUSTER_GAME)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(section.get(key), dict) and key != 'pay_table':
            section[key].update(value)
        else:
            section[key] = value
    return prepare_game_config(section)


def no_scatter_config(**overrides):
    """Scatters never appear: zero base chance and zero refill weight."""
    section_symbols = copy.deepcopy(CLUSTER_GAME['symbols'])
    section_symbols[-1]['weight'] = 0
    overrides.setdefault('symbols', section_symbols)
    overrides.setdefault('scatter', {'chance': 0, 'max': 6})
    return cluster_config(**overrides)


def zero_pay_config(**overrides):
    """Nothing ever pays and scatters never appear."""
    overrides.setdefault('pay_table', {str(s_id): [0, 0, 0] for s_id in range(9)})
    return no_scatter_config(**overrides)


def with_scatters(grid, count):
    """Copy of `grid` with the first `count` cells (row-major) replaced by scatters."""
    values = [list(row) for row in grid]
    columns = len(values[0])
    for index in range(count):
        values[index // columns][index % columns] = SCATTER
    return values


class ScriptedRandom(random.Random):
    """Seeded Random whose weighted draws cycle through a fixed symbol sequence."""

    def __init__(self, symbols, seed=0):
        super().__init__(seed)
        self._symbols = itertools.cycle(symbols)

    def choices(self, population, weights=None, *, cum_weights=None, k=1):
        return [next(self._symbols) for _ in range(k)]


# Refill sequence that never builds a cluster on top of the grids above
SAFE_REFILL = [0, 1, 2, 4, 5, 6, 7, 8]


def make_game(game_config=None, balance=100, bet=1, **kwargs):
    kwargs.setdefault('rng', random.Random(7))
    kwargs.setdefault('min_spin_interval', 0)
    kwargs.setdefault('autoplay_delay', 0)
    return SlotGame(game_config or cluster_config(), balance=balance, bet=bet, **kwargs)


class EventRecorder:
    """Records every event published on a bus, in delivery order."""

    def __init__(self, bus):
        self.events = []
        bus.subscribe(events.ALL_EVENTS, self._record)

    def _record(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]

    def of(self, event):
        return [payload for name, payload in self.events if name == event]

    def count(self, event):
        return len(self.of(event))

    def clear(self):
        self.events.clear()
