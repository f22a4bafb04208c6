"""Grid builders and a scripted RNG shared by the engine tests."""

# Seven non-scatter symbols without the strawberry. (r + 2c) % 7 never repeats
# between horizontal or vertical neighbours, so the background has no clusters.
BACKGROUND_SYMBOLS = ['🍉', '🍇', '🍊', '🍬', '🍭', '⭐', '💎']
STRAWBERRY = '🍓'
SCATTER = '🎁'


def background_symbol(r, c):
    return BACKGROUND_SYMBOLS[(r + 2 * c) % 7]


def background_grid(rows=7, cols=7):
    return [[background_symbol(r, c) for c in range(cols)] for r in range(rows)]


def grid_with(cells, symbol, rows=7, cols=7):
    grid = background_grid(rows, cols)
    for r, c in cells:
        grid[r][c] = symbol
    return grid


# Six strawberries along the top row: one bracket-5 cluster.
TOP_ROW_CLUSTER = [(0, c) for c in range(6)]
# Three isolated scatters on the diagonal.
DIAGONAL_SCATTERS = [(0, 0), (3, 3), (6, 6)]


def refill_for(cells):
    """Refill draws that restore the background after ``cells`` detonate on the top row."""
    return [background_symbol(r, c) for r, c in sorted(cells, key=lambda cell: cell[1])]


class ScriptedRng:
    """Stands in for random.Random; choice() returns the scripted values in order."""

    def __init__(self, values=None):
        self.values = list(values or [])

    def choice(self, seq):
        if not self.values:
            raise AssertionError("ScriptedRng ran out of values")
        return self.values.pop(0)


def forced_fills(*grids):
    """
    side_effect for patching fill_grid: the n-th call copies the n-th grid
    into place; once the list is exhausted the last grid repeats.
    """
    calls = {'count': 0}

    def _fill(grid, pool, rng):
        source = grids[min(calls['count'], len(grids) - 1)]
        calls['count'] += 1
        for r, row in enumerate(source):
            grid[r][:] = row
        return grid

    return _fill
