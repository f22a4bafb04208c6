import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from cascade_be.error_codes import ErrorCodes
from cascade_be.exceptions import (
    FreeSpinChainLimitExceededException,
    InsufficientFundsException,
    ValidationException,
)
from cascade_be.utils.cluster_helper import (
    build_symbol_pools,
    fill_grid,
    resolve_scatters,
    run_cascade,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CASCADE_ITERATIONS = 500
DEFAULT_MAX_FREE_SPINS_PER_CHAIN = 5000


@dataclass
class SpinState:
    """
    Mutable session state for one player. Grid and multiplier grid are
    updated in place for the life of the session.
    """
    grid: List[List[str]]
    multiplier_grid: List[List[int]]
    balance: float
    free_spins_remaining: int = 0
    current_is_free: bool = False
    last_win: float = 0.0

    @property
    def global_multiplier(self) -> int:
        """Highest tile multiplier currently on the board."""
        return max((value for row in self.multiplier_grid for value in row), default=1)

    def reset_multipliers(self):
        for row in self.multiplier_grid:
            for c_idx in range(len(row)):
                row[c_idx] = 1


@dataclass
class SpinOutcome:
    spin_win: float
    free_spins_awarded: int
    scatter_count: int
    cascade_count: int
    is_free: bool
    balance: float
    bonus_win: float = 0.0
    free_spins_played: int = 0
    free_spin_outcomes: List["SpinOutcome"] = field(default_factory=list)

    @property
    def total_win(self) -> float:
        """Win of this spin plus everything won in the free-spin chain it started."""
        return self.spin_win + self.bonus_win


class EventRecorder:
    """Collects emitted engine events; pass the instance as ``emit``."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    def of_type(self, event_type):
        return [e for e in self.events if e["type"] == event_type]

    def clear(self):
        self.events = []


def create_spin_state(definition, pools, rng, balance: float) -> SpinState:
    """Fresh session state: a scatter-free board and all multipliers at 1."""
    grid = [[None] * definition.cols for _ in range(definition.rows)]
    fill_grid(grid, pools.restricted_pool, rng)
    multiplier_grid = [[1] * definition.cols for _ in range(definition.rows)]
    return SpinState(grid=grid, multiplier_grid=multiplier_grid, balance=float(balance))


class SpinHandler:
    """
    Runs full spins of a cascading-cluster slot against a caller-owned SpinState.

    A paid spin that awards free spins also plays the whole free-spin chain
    before returning, so the outcome of a paid spin is the complete round.
    """

    def __init__(self, definition, rng=None,
                 max_cascade_iterations: int = DEFAULT_MAX_CASCADE_ITERATIONS,
                 max_free_spins_per_chain: int = DEFAULT_MAX_FREE_SPINS_PER_CHAIN):
        self.definition = definition
        self.rng = rng if rng is not None else random.SystemRandom()
        self.max_cascade_iterations = max_cascade_iterations
        self.max_free_spins_per_chain = max_free_spins_per_chain
        self.pools = build_symbol_pools(definition.symbols, definition.scatter_id)

    def new_state(self, balance: float) -> SpinState:
        return create_spin_state(self.definition, self.pools, self.rng, balance)

    def spin(self, bet: float, state: SpinState, is_free: bool = False,
             emit: Optional[Callable[[dict], None]] = None) -> SpinOutcome:
        """
        Plays one spin and, for a paid spin, any free spins it awards.

        Raises:
            ValidationException: Bet is not a positive number.
            InsufficientFundsException: Paid spin with bet above the balance. State is left untouched.
            CascadeLimitExceededException: A single spin tumbled more times than allowed.
            FreeSpinChainLimitExceededException: A free-spin chain ran longer than allowed.
        """
        if bet is None or isinstance(bet, bool) or not isinstance(bet, (int, float)) or bet <= 0:
            raise ValidationException(
                status_message="Bet amount must be a positive number.",
                details={'bet_amount': bet},
                error_code=ErrorCodes.INVALID_BET
            )

        if not is_free and bet > state.balance:
            raise InsufficientFundsException(
                status_message="Insufficient balance for this bet.",
                details={'bet_amount': bet, 'balance': state.balance}
            )

        outcome = self._play_single(bet, state, is_free, emit)

        if not is_free and state.free_spins_remaining > 0:
            self._drain_free_spins(bet, state, outcome, emit)

        return outcome

    def _play_single(self, bet, state, is_free, emit) -> SpinOutcome:
        definition = self.definition
        state.current_is_free = is_free

        if not is_free:
            state.balance -= bet
            if state.free_spins_remaining == 0:
                state.reset_multipliers()

        fill_grid(state.grid, self.pools.full_pool, self.rng)
        if emit is not None:
            emit({"type": "grid_generated", "is_free": is_free, "grid": [row[:] for row in state.grid]})

        scatter = resolve_scatters(
            state.grid, definition.scatter_id, self.pools.restricted_pool,
            definition.free_spin_awards, self.rng, definition.scatter_trigger_count
        )
        if scatter.free_spins_awarded:
            state.free_spins_remaining += scatter.free_spins_awarded
            logger.info("%d scatters awarded %d free spins (%s spin, %d now pending)",
                        scatter.scatter_count, scatter.free_spins_awarded,
                        "free" if is_free else "paid", state.free_spins_remaining)
        if emit is not None:
            emit({
                "type": "scatters_resolved",
                "scatter_count": scatter.scatter_count,
                "free_spins_awarded": scatter.free_spins_awarded,
                "free_spins_remaining": state.free_spins_remaining,
                "positions": [list(p) for p in scatter.positions],
                "grid": [row[:] for row in state.grid],
            })

        cascade = run_cascade(
            state.grid, state.multiplier_grid, bet, definition,
            self.pools.restricted_pool, self.rng,
            max_iterations=self.max_cascade_iterations, emit=emit
        )
        if cascade.cascade_count:
            logger.debug("Spin resolved after %d cascades, win %.4f", cascade.cascade_count, cascade.total_win)

        state.balance += cascade.total_win
        state.last_win = cascade.total_win
        if emit is not None:
            emit({
                "type": "spin_complete",
                "is_free": is_free,
                "win": cascade.total_win,
                "balance": state.balance,
                "global_multiplier": state.global_multiplier,
            })

        return SpinOutcome(
            spin_win=cascade.total_win,
            free_spins_awarded=scatter.free_spins_awarded,
            scatter_count=scatter.scatter_count,
            cascade_count=cascade.cascade_count,
            is_free=is_free,
            balance=state.balance,
        )

    def _drain_free_spins(self, bet, state, outcome, emit):
        # Retriggers add to state.free_spins_remaining while the loop runs.
        if emit is not None:
            emit({"type": "free_spins_started", "free_spins": state.free_spins_remaining})

        played = 0
        bonus_win = 0.0
        while state.free_spins_remaining > 0:
            if played >= self.max_free_spins_per_chain:
                logger.error("Free-spin chain exceeded %d spins (bonus win so far %.4f)",
                             self.max_free_spins_per_chain, bonus_win)
                raise FreeSpinChainLimitExceededException(
                    details={'max_free_spins': self.max_free_spins_per_chain, 'bonus_win': bonus_win}
                )

            state.free_spins_remaining -= 1
            played += 1
            if emit is not None:
                emit({"type": "free_spin_consumed", "index": played, "remaining": state.free_spins_remaining})

            free_outcome = self._play_single(bet, state, True, emit)
            bonus_win += free_outcome.spin_win
            outcome.free_spin_outcomes.append(free_outcome)

        state.current_is_free = False
        outcome.bonus_win = bonus_win
        outcome.free_spins_played = played
        outcome.balance = state.balance

        logger.info("Free-spin chain finished: %d spins, bonus win %.4f", played, bonus_win)
        if emit is not None:
            emit({"type": "free_spins_complete", "free_spins_played": played,
                  "bonus_win": bonus_win, "balance": state.balance})
