"""
Grid, scatter and cluster-pays helpers for the cascading-cluster slot.

Everything here is a pure transformation of a grid (a list of rows, row 0 at
the top) and an injected ``random.Random``-compatible generator. Nothing in
this module holds state between calls.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from cascade_be.exceptions import CascadeLimitExceededException, InvalidConfigurationException

logger = logging.getLogger(__name__)

DEFAULT_BRACKETS = (5, 8, 11, 15)

Cell = Tuple[int, int]
Grid = List[List[Optional[str]]]


@dataclass(frozen=True)
class SymbolPools:
    full_pool: Tuple[str, ...]  # includes the scatter
    restricted_pool: Tuple[str, ...]  # never contains the scatter


@dataclass
class ScatterResult:
    scatter_count: int
    free_spins_awarded: int
    positions: List[Cell] = field(default_factory=list)


@dataclass
class Cluster:
    symbol: str
    cells: List[Cell]

    @property
    def size(self) -> int:
        return len(self.cells)


@dataclass
class ClusterPay:
    symbol: str
    size: int
    bracket: int
    pay_multiplier: float
    win: float
    cells: List[Cell]


@dataclass
class ClusterEvaluation:
    total_win: float
    detonations: List[Cell]
    cluster_pays: List[ClusterPay]


@dataclass
class CascadeResult:
    total_win: float
    cascade_count: int


# --- Pools and grid generation ---

def build_symbol_pools(symbols, scatter_id: str) -> SymbolPools:
    """
    Expands (id, weight) symbols into flat sampling pools.

    Each id appears ``weight`` times, so a uniform pick over the pool is a
    weighted pick over the ids.
    """
    full_pool = []
    restricted_pool = []
    for symbol in symbols:
        for _ in range(symbol.weight or 0):
            full_pool.append(symbol.id)
            if symbol.id != scatter_id:
                restricted_pool.append(symbol.id)

    if not restricted_pool:
        fallback = [s.id for s in symbols if s.id != scatter_id]
        if not fallback:
            raise InvalidConfigurationException(
                status_message="Symbol table has no non-scatter symbols to refill the grid with."
            )
        logger.warning("Non-scatter symbol weights sum to zero; refilling with one copy of each symbol: %s", fallback)
        restricted_pool = fallback

    return SymbolPools(full_pool=tuple(full_pool), restricted_pool=tuple(restricted_pool))


def generate_grid(pool: Sequence[str], rows: int, cols: int, rng) -> Grid:
    """Fills a rows x cols grid with independent draws from ``pool`` (row-major)."""
    if not pool:
        raise InvalidConfigurationException(status_message="Cannot generate a grid from an empty symbol pool.")
    return [[rng.choice(pool) for _ in range(cols)] for _ in range(rows)]


def fill_grid(grid: Grid, pool: Sequence[str], rng) -> Grid:
    """Overwrites every cell of an existing grid in place."""
    if not pool:
        raise InvalidConfigurationException(status_message="Cannot fill a grid from an empty symbol pool.")
    for row in grid:
        for c_idx in range(len(row)):
            row[c_idx] = rng.choice(pool)
    return grid


# --- Scatters ---

def count_scatters(grid: Grid, scatter_id: str) -> int:
    return sum(1 for row in grid for symbol in row if symbol == scatter_id)


def free_spins_for_scatter_count(scatter_count: int, awards: Dict[int, int], trigger_count: int = 3) -> int:
    """
    Free spins for a scatter count. The highest configured count applies to
    every larger count (7 scatters and 10 scatters award the same).
    """
    if scatter_count < trigger_count:
        return 0
    eligible = [count for count in awards if count <= scatter_count]
    if not eligible:
        return 0
    return awards[max(eligible)]


def resolve_scatters(grid: Grid, scatter_id: str, restricted_pool: Sequence[str],
                     awards: Dict[int, int], rng, trigger_count: int = 3) -> ScatterResult:
    """
    Counts scatters on a freshly generated grid, works out the award, then
    replaces every scatter in place with a restricted-pool draw so that no
    scatter reaches cluster detection.
    """
    positions = [
        (r_idx, c_idx)
        for r_idx, row in enumerate(grid)
        for c_idx, symbol in enumerate(row)
        if symbol == scatter_id
    ]
    scatter_count = len(positions)
    awarded = free_spins_for_scatter_count(scatter_count, awards, trigger_count)

    for r_idx, c_idx in positions:
        grid[r_idx][c_idx] = rng.choice(restricted_pool)

    return ScatterResult(scatter_count=scatter_count, free_spins_awarded=awarded, positions=positions)


# --- Clusters ---

def find_clusters(grid: Grid) -> List[Cluster]:
    """
    Connected components of identical symbols (up/down/left/right).

    Seeds are taken in row-major order so the output is stable. Empty cells
    are marked visited and never reported.
    """
    rows = len(grid)
    cols = len(grid[0]) if rows else 0
    visited = [[False] * cols for _ in range(rows)]
    clusters = []

    for r in range(rows):
        for c in range(cols):
            if visited[r][c]:
                continue
            visited[r][c] = True
            symbol = grid[r][c]
            if symbol is None:
                continue

            cells = [(r, c)]
            queue = deque(cells)
            while queue:
                cur_r, cur_c = queue.popleft()
                for n_r, n_c in ((cur_r - 1, cur_c), (cur_r + 1, cur_c), (cur_r, cur_c - 1), (cur_r, cur_c + 1)):
                    if n_r < 0 or n_r >= rows or n_c < 0 or n_c >= cols:
                        continue
                    if visited[n_r][n_c] or grid[n_r][n_c] != symbol:
                        continue
                    visited[n_r][n_c] = True
                    queue.append((n_r, n_c))
                    cells.append((n_r, n_c))
            clusters.append(Cluster(symbol=symbol, cells=cells))

    return clusters


def cluster_bracket(size: int, brackets: Sequence[int] = DEFAULT_BRACKETS) -> int:
    """Largest bracket threshold not exceeding ``size``; 0 when below every threshold."""
    best = 0
    for threshold in brackets:
        if size >= threshold and threshold > best:
            best = threshold
    return best


def evaluate_clusters(grid: Grid, multiplier_grid: List[List[int]], clusters: List[Cluster], bet: float,
                      paytable: Dict[str, Dict[int, float]], scatter_id: Optional[str],
                      brackets: Sequence[int] = DEFAULT_BRACKETS) -> ClusterEvaluation:
    """
    Pays every cluster that reaches a bracket.

    The tile multiplier is applied per cell, so a cluster pays
    ``sum(bet * pay * multiplier[cell])`` over its cells. Missing paytable
    entries pay nothing and leave the cluster on the board.
    """
    total_win = 0.0
    detonations = []
    cluster_pays = []

    for cluster in clusters:
        if cluster.symbol == scatter_id:
            continue
        bracket = cluster_bracket(cluster.size, brackets)
        if bracket == 0:
            continue
        pay_multiplier = paytable.get(cluster.symbol, {}).get(bracket, 0.0)
        if not pay_multiplier:
            continue

        cluster_win = 0.0
        for r, c in cluster.cells:
            cluster_win += bet * pay_multiplier * (multiplier_grid[r][c] or 1)

        total_win += cluster_win
        detonations.extend(cluster.cells)
        cluster_pays.append(ClusterPay(
            symbol=cluster.symbol, size=cluster.size, bracket=bracket,
            pay_multiplier=pay_multiplier, win=cluster_win, cells=list(cluster.cells)
        ))

    return ClusterEvaluation(total_win=total_win, detonations=detonations, cluster_pays=cluster_pays)


# --- Cascade ---

def increase_tile_multipliers(multiplier_grid: List[List[int]], detonations: List[Cell]):
    """+1 on every detonated position. Multipliers belong to positions and do not fall with symbols."""
    for r, c in detonations:
        multiplier_grid[r][c] = (multiplier_grid[r][c] or 1) + 1


def apply_detonations(grid: Grid, detonations: List[Cell], restricted_pool: Sequence[str], rng) -> Grid:
    """
    Removes detonated cells, lets each column's survivors fall keeping their
    order, and refills the vacated top rows from the restricted pool.
    Works column by column, left to right; new symbols are drawn from the
    lowest vacated row upwards.
    """
    rows = len(grid)
    cols = len(grid[0]) if rows else 0
    to_remove = set(detonations)

    for c in range(cols):
        column = [grid[r][c] for r in range(rows - 1, -1, -1) if (r, c) not in to_remove]
        while len(column) < rows:
            column.append(rng.choice(restricted_pool))
        for i, r in enumerate(range(rows - 1, -1, -1)):
            grid[r][c] = column[i]

    return grid


def run_cascade(grid: Grid, multiplier_grid: List[List[int]], bet: float, definition,
                restricted_pool: Sequence[str], rng, max_iterations: int = 500,
                emit: Optional[Callable[[dict], None]] = None) -> CascadeResult:
    """
    Detect, evaluate, detonate and refill until nothing pays.

    Raises:
        CascadeLimitExceededException: More than ``max_iterations`` paying tumbles in one spin.
    """
    total_win = 0.0
    cascade_count = 0

    while True:
        clusters = find_clusters(grid)
        evaluation = evaluate_clusters(
            grid, multiplier_grid, clusters, bet,
            definition.paytable, definition.scatter_id, definition.brackets
        )
        if evaluation.total_win <= 0:
            break

        cascade_count += 1
        if cascade_count > max_iterations:
            logger.error("Cascade exceeded %d paying iterations (bet %s, accumulated win %.4f)",
                         max_iterations, bet, total_win)
            raise CascadeLimitExceededException(
                details={'max_iterations': max_iterations, 'accumulated_win': total_win}
            )

        increase_tile_multipliers(multiplier_grid, evaluation.detonations)
        total_win += evaluation.total_win
        apply_detonations(grid, evaluation.detonations, restricted_pool, rng)

        if emit is not None:
            emit({
                "type": "cascade_step",
                "cascade": cascade_count,
                "win": evaluation.total_win,
                "cumulative_win": total_win,
                "detonations": [list(cell) for cell in evaluation.detonations],
                "clusters": [
                    {"symbol": p.symbol, "size": p.size, "bracket": p.bracket, "win": p.win}
                    for p in evaluation.cluster_pays
                ],
                "grid": [row[:] for row in grid],
                "multiplier_grid": [row[:] for row in multiplier_grid],
            })

    if emit is not None:
        emit({"type": "cascade_complete", "cascades": cascade_count, "win": total_win})

    return CascadeResult(total_win=total_win, cascade_count=cascade_count)
