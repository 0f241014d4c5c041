"""
Grid model for the tumble slots.

A grid is `columns x rows` integer symbol IDs stored row-major
(`values[row][col]`, row 0 at the top). Cell coordinates handed to the
rest of the engine are always `(col, row)` tuples.
"""
import secrets


class SymbolPool:
    """Weighted set of symbol IDs that new cells are drawn from."""

    def __init__(self, weights):
        # weights: {symbol_id: weight}; zero-weight symbols are never drawn
        self.weights = {int(s_id): float(w) for s_id, w in weights.items()}
        self.symbol_ids = [s_id for s_id, w in self.weights.items() if w > 0]
        if not self.symbol_ids:
            raise ValueError("Cannot build a symbol pool: no symbol has a positive weight.")

    def without(self, *excluded_ids):
        """Copy of this pool with the given symbols removed (e.g. the scatter for base grids)."""
        remaining = {s_id: w for s_id, w in self.weights.items() if s_id not in excluded_ids}
        return SymbolPool(remaining)

    def draw(self, rng, count):
        weights = [self.weights[s_id] for s_id in self.symbol_ids]
        return rng.choices(self.symbol_ids, weights=weights, k=count)

    def __contains__(self, symbol_id):
        return symbol_id in self.weights

    def __repr__(self):
        return f"<SymbolPool {self.weights}>"


class Grid:
    def __init__(self, values):
        if not values or not values[0]:
            raise ValueError("Grid must have at least one row and one column.")
        self.values = [list(row) for row in values]
        self.rows = len(self.values)
        self.columns = len(self.values[0])

    def cell(self, col, row):
        return self.values[row][col]

    def set_cell(self, col, row, symbol_id):
        self.values[row][col] = symbol_id

    def column(self, col):
        return [self.values[row][col] for row in range(self.rows)]

    def coordinates(self):
        """All cell coordinates in row-major scan order."""
        return [(col, row) for row in range(self.rows) for col in range(self.columns)]

    def count(self, symbol_id):
        return sum(1 for row in self.values for s_id in row if s_id == symbol_id)

    def copy(self):
        return Grid(self.values)

    def to_list(self):
        return [list(row) for row in self.values]

    def __eq__(self, other):
        return isinstance(other, Grid) and self.values == other.values

    def __repr__(self):
        return f"<Grid {self.columns}x{self.rows}>"


def create_random_grid(columns, rows, symbol_pool, rng=None):
    """Fills a `columns x rows` grid with draws from `symbol_pool`."""
    rng = rng or secrets.SystemRandom()
    values = [symbol_pool.draw(rng, columns) for _ in range(rows)]
    return Grid(values)


def set_column(grid, col_index, values):
    if not 0 <= col_index < grid.columns:
        raise IndexError(f"Column {col_index} is outside a grid of {grid.columns} columns.")
    if len(values) != grid.rows:
        raise ValueError(f"Column needs {grid.rows} values, got {len(values)}.")
    for row, symbol_id in enumerate(values):
        grid.values[row][col_index] = symbol_id


def place_scatters(grid, scatter_symbol_id, min_count, max_count, per_cell_chance, rng=None):
    """
    Writes scatter symbols onto the grid and returns how many were placed.

    All cell coordinates are shuffled and walked in order: the first
    `min_count` cells are forced to scatter, every later cell becomes a
    scatter with probability `per_cell_chance`, and placement stops once
    `max_count` scatters are on the grid.
    """
    rng = rng or secrets.SystemRandom()
    cells = grid.coordinates()
    rng.shuffle(cells)

    placed = 0
    for col, row in cells:
        if placed >= max_count:
            break
        if placed < min_count or rng.random() < per_cell_chance:
            grid.set_cell(col, row, scatter_symbol_id)
            placed += 1
    return placed


def collapse(grid, cells_to_remove):
    """
    Removes `cells_to_remove` and lets the surviving cells of each column
    fall to the bottom, keeping their relative order.

    Returns {col: vacated_count} for every column that lost cells; the
    vacated cells are the top `vacated_count` rows of that column and hold
    None until `refill` runs.
    """
    removed_by_column = {}
    for col, row in cells_to_remove:
        removed_by_column.setdefault(col, set()).add(row)

    vacated = {}
    for col, removed_rows in removed_by_column.items():
        survivors = [grid.values[row][col] for row in range(grid.rows) if row not in removed_rows]
        empty = grid.rows - len(survivors)
        new_column = [None] * empty + survivors
        for row, symbol_id in enumerate(new_column):
            grid.values[row][col] = symbol_id
        vacated[col] = empty
    return vacated


def refill(grid, vacated, symbol_pool, rng=None):
    """Draws fresh symbols into the vacated top cells; returns [(col, row, symbol_id)]."""
    rng = rng or secrets.SystemRandom()
    new_cells = []
    for col in sorted(vacated):
        count = vacated[col]
        if count <= 0:
            continue
        for row, symbol_id in enumerate(symbol_pool.draw(rng, count)):
            grid.values[row][col] = symbol_id
            new_cells.append((col, row, symbol_id))
    return new_cells


def validate_grid_values(values, columns, rows, valid_symbol_ids):
    """
    Shape/range check for externally supplied grids.
    Returns a list of error strings; empty means the grid is usable.
    """
    errors = []
    if not isinstance(values, (list, tuple)) or len(values) != rows:
        return [f"Grid must have exactly {rows} rows."]
    for r_idx, row in enumerate(values):
        if not isinstance(row, (list, tuple)) or len(row) != columns:
            errors.append(f"Row {r_idx} must have exactly {columns} columns.")
            continue
        for c_idx, symbol_id in enumerate(row):
            if isinstance(symbol_id, bool) or not isinstance(symbol_id, int):
                errors.append(f"Cell ({c_idx},{r_idx}) is not an integer symbol ID.")
            elif symbol_id not in valid_symbol_ids:
                errors.append(f"Cell ({c_idx},{r_idx}) holds unknown symbol ID {symbol_id}.")
    return errors
