"""
Match evaluators. Both are pure: same grid in, same MatchResult out.

ClusterMatchEvaluator implements cluster pays (N+ of one symbol anywhere
on the grid). PaylineMatchEvaluator scans fixed paylines left to right.
The cascade resolver only talks to the `evaluate(grid, is_bonus_round)`
interface, so either can drive a game.
"""
from typing import FrozenSet, NamedTuple, Optional, Tuple


class LineWin(NamedTuple):
    line_index: int
    symbol_id: int
    count: int
    cells: Tuple[Tuple[int, int], ...]


class MatchResult(NamedTuple):
    matched_symbol: Optional[int]
    matched_cells: FrozenSet[Tuple[int, int]]
    scatter_count: int
    scatter_triggered: bool = False
    line_wins: Tuple[LineWin, ...] = ()

    @property
    def has_win(self):
        return self.matched_symbol is not None


def scatter_threshold_met(scatter_count, is_bonus_round, base_threshold, bonus_threshold):
    threshold = bonus_threshold if is_bonus_round else base_threshold
    return scatter_count >= threshold


class ClusterMatchEvaluator:
    def __init__(self, scatter_symbol_id, min_cluster_size=8, base_scatter_threshold=4, bonus_scatter_threshold=3):
        self.scatter_symbol_id = scatter_symbol_id
        self.min_cluster_size = min_cluster_size
        self.base_scatter_threshold = base_scatter_threshold
        self.bonus_scatter_threshold = bonus_scatter_threshold

    def evaluate(self, grid, is_bonus_round=False):
        symbol_counts = {}
        symbol_positions = {}
        # Row-major scan; dict insertion order records first discovery.
        for col, row in grid.coordinates():
            s_id = grid.cell(col, row)
            symbol_counts[s_id] = symbol_counts.get(s_id, 0) + 1
            symbol_positions.setdefault(s_id, []).append((col, row))

        scatter_count = symbol_counts.get(self.scatter_symbol_id, 0)

        for s_id, count in symbol_counts.items():
            if s_id == self.scatter_symbol_id:
                continue
            if count >= self.min_cluster_size:
                # Ties resolve to the symbol discovered first in scan order.
                return MatchResult(
                    matched_symbol=s_id,
                    matched_cells=frozenset(symbol_positions[s_id]),
                    scatter_count=scatter_count,
                )

        return MatchResult(
            matched_symbol=None,
            matched_cells=frozenset(),
            scatter_count=scatter_count,
            scatter_triggered=scatter_threshold_met(
                scatter_count, is_bonus_round, self.base_scatter_threshold, self.bonus_scatter_threshold
            ),
        )


class PaylineMatchEvaluator:
    def __init__(self, paylines, scatter_symbol_id, wild_symbol_ids=(), min_run=3,
                 base_scatter_threshold=4, bonus_scatter_threshold=3):
        # paylines: one list per line holding the row index used in each column
        self.paylines = [list(line) for line in paylines]
        self.scatter_symbol_id = scatter_symbol_id
        self.wild_symbol_ids = frozenset(wild_symbol_ids)
        self.min_run = min_run
        self.base_scatter_threshold = base_scatter_threshold
        self.bonus_scatter_threshold = bonus_scatter_threshold

    def _line_win(self, grid, line_index, line):
        cells = [(col, row) for col, row in enumerate(line) if col < grid.columns and 0 <= row < grid.rows]
        symbols = [grid.cell(col, row) for col, row in cells]

        target = None
        for s_id in symbols:
            if s_id == self.scatter_symbol_id:
                return None
            if s_id not in self.wild_symbol_ids:
                target = s_id
                break
        if target is None:
            return None

        run = 0
        for s_id in symbols:
            if s_id == target or s_id in self.wild_symbol_ids:
                run += 1
            else:
                break

        if run < self.min_run:
            return None
        return LineWin(line_index=line_index, symbol_id=target, count=run, cells=tuple(cells[:run]))

    def evaluate(self, grid, is_bonus_round=False):
        scatter_count = grid.count(self.scatter_symbol_id)

        line_wins = []
        for line_index, line in enumerate(self.paylines):
            line_win = self._line_win(grid, line_index, line)
            if line_win:
                line_wins.append(line_win)

        if line_wins:
            matched_cells = frozenset(cell for line_win in line_wins for cell in line_win.cells)
            return MatchResult(
                matched_symbol=line_wins[0].symbol_id,
                matched_cells=matched_cells,
                scatter_count=scatter_count,
                line_wins=tuple(line_wins),
            )

        return MatchResult(
            matched_symbol=None,
            matched_cells=frozenset(),
            scatter_count=scatter_count,
            scatter_triggered=scatter_threshold_met(
                scatter_count, is_bonus_round, self.base_scatter_threshold, self.bonus_scatter_threshold
            ),
        )


def build_evaluator(game_config):
    """Picks the evaluator named by `match_model` in a loaded slot config."""
    free_spins = game_config['free_spins']
    common = dict(
        scatter_symbol_id=game_config['scatter_symbol_id'],
        base_scatter_threshold=free_spins['base_threshold'],
        bonus_scatter_threshold=free_spins['retrigger_threshold'],
    )
    if game_config['match_model'] == 'payline':
        return PaylineMatchEvaluator(
            paylines=game_config['paylines'],
            wild_symbol_ids=game_config.get('wild_symbol_ids', []),
            min_run=game_config.get('min_line_run', 3),
            **common
        )
    return ClusterMatchEvaluator(min_cluster_size=game_config['min_cluster_size'], **common)
