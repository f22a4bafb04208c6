import copy
import random
import unittest
from unittest.mock import patch

import pytest

from cascade_be.error_codes import ErrorCodes
from cascade_be.exceptions import (
    FreeSpinChainLimitExceededException,
    InsufficientFundsException,
    ValidationException,
)
from cascade_be.utils.cluster_helper import count_scatters
from cascade_be.utils.game_config_manager import load_game_config
from cascade_be.utils.spin_handler import EventRecorder, SpinHandler, SpinState, create_spin_state
from cascade_be.tests.helpers import (
    DIAGONAL_SCATTERS, SCATTER, STRAWBERRY, TOP_ROW_CLUSTER,
    ScriptedRng, background_grid, background_symbol, forced_fills, grid_with, refill_for,
)

FILL_GRID = 'cascade_be.utils.spin_handler.fill_grid'
SCATTER_GRID = grid_with(DIAGONAL_SCATTERS, SCATTER)
CLUSTER_GRID = grid_with(TOP_ROW_CLUSTER, STRAWBERRY)
SCATTER_REPLACEMENTS = [background_symbol(r, c) for r, c in DIAGONAL_SCATTERS]


def make_state(balance=100.0):
    return SpinState(
        grid=background_grid(),
        multiplier_grid=[[1] * 7 for _ in range(7)],
        balance=balance,
    )


class TestSpinHandler(unittest.TestCase):

    def setUp(self):
        self.definition = load_game_config('sugar_rush')

    def _handler(self, rng_values=None, **kwargs):
        return SpinHandler(self.definition, rng=ScriptedRng(rng_values), **kwargs)

    def test_scenario_single_strawberry_cluster(self):
        handler = self._handler(refill_for(TOP_ROW_CLUSTER))
        state = make_state(100.0)

        with patch(FILL_GRID, side_effect=forced_fills(CLUSTER_GRID)):
            outcome = handler.spin(1, state)

        self.assertEqual(outcome.spin_win, pytest.approx(2.295))
        self.assertEqual(outcome.total_win, pytest.approx(2.295))
        self.assertEqual(outcome.cascade_count, 1)
        self.assertEqual(outcome.free_spins_awarded, 0)
        self.assertFalse(outcome.is_free)
        self.assertEqual(state.balance, pytest.approx(101.295))
        self.assertEqual(outcome.balance, pytest.approx(101.295))
        for r, c in TOP_ROW_CLUSTER:
            self.assertEqual(state.multiplier_grid[r][c], 2)
        self.assertEqual(state.global_multiplier, 2)
        self.assertEqual(state.last_win, pytest.approx(2.295))

    def test_scenario_three_scatters_award_ten_free_spins(self):
        handler = self._handler(SCATTER_REPLACEMENTS)
        state = make_state(100.0)

        with patch(FILL_GRID, side_effect=forced_fills(SCATTER_GRID)):
            outcome = handler.spin(1, state, is_free=True)

        self.assertEqual(outcome.scatter_count, 3)
        self.assertEqual(outcome.free_spins_awarded, 10)
        self.assertEqual(outcome.spin_win, 0)
        self.assertEqual(count_scatters(state.grid, SCATTER), 0)
        self.assertEqual(state.free_spins_remaining, 10)
        self.assertEqual(state.balance, 100.0)  # free spin: nothing deducted

    def test_paid_spin_drains_awarded_free_spins(self):
        handler = self._handler(SCATTER_REPLACEMENTS)
        state = make_state(100.0)
        recorder = EventRecorder()

        with patch(FILL_GRID, side_effect=forced_fills(SCATTER_GRID, background_grid())):
            outcome = handler.spin(1, state, emit=recorder)

        self.assertEqual(outcome.free_spins_awarded, 10)
        self.assertEqual(outcome.free_spins_played, 10)
        self.assertEqual(len(outcome.free_spin_outcomes), 10)
        self.assertTrue(all(f.is_free for f in outcome.free_spin_outcomes))
        self.assertEqual(state.free_spins_remaining, 0)
        self.assertFalse(state.current_is_free)
        self.assertEqual(state.balance, 99.0)
        self.assertEqual(len(recorder.of_type('free_spins_started')), 1)
        self.assertEqual(len(recorder.of_type('free_spin_consumed')), 10)
        self.assertEqual(recorder.of_type('free_spin_consumed')[-1]['remaining'], 0)
        self.assertEqual(recorder.events[-1]['type'], 'free_spins_complete')

    def test_retrigger_extends_the_chain(self):
        handler = self._handler(SCATTER_REPLACEMENTS * 2)
        state = make_state(100.0)

        with patch(FILL_GRID, side_effect=forced_fills(SCATTER_GRID, SCATTER_GRID, background_grid())):
            outcome = handler.spin(1, state)

        self.assertEqual(outcome.free_spins_played, 20)
        self.assertEqual(outcome.free_spin_outcomes[0].free_spins_awarded, 10)
        self.assertEqual(state.free_spins_remaining, 0)

    def test_multipliers_carry_across_the_free_spin_chain(self):
        rng_values = SCATTER_REPLACEMENTS + refill_for(TOP_ROW_CLUSTER) * 2
        handler = self._handler(rng_values)
        state = make_state(100.0)
        fills = forced_fills(SCATTER_GRID, CLUSTER_GRID, CLUSTER_GRID, background_grid())

        with patch(FILL_GRID, side_effect=fills):
            outcome = handler.spin(1, state)

        # Each top-row cell detonated twice: 1 + 2
        for r, c in TOP_ROW_CLUSTER:
            self.assertEqual(state.multiplier_grid[r][c], 3)
        self.assertEqual(outcome.free_spin_outcomes[0].spin_win, pytest.approx(2.295))
        self.assertEqual(outcome.free_spin_outcomes[1].spin_win, pytest.approx(4.59))
        self.assertEqual(outcome.bonus_win, pytest.approx(6.885))
        self.assertEqual(outcome.total_win, pytest.approx(6.885))
        self.assertEqual(state.balance, pytest.approx(105.885))

        # Next paid spin starts from fresh multipliers
        with patch(FILL_GRID, side_effect=forced_fills(background_grid())):
            handler.spin(1, state)
        self.assertEqual(state.global_multiplier, 1)

    def test_free_spin_chain_ceiling(self):
        handler = self._handler(SCATTER_REPLACEMENTS, max_free_spins_per_chain=5)
        state = make_state(100.0)

        with patch(FILL_GRID, side_effect=forced_fills(SCATTER_GRID, background_grid())):
            with self.assertRaises(FreeSpinChainLimitExceededException) as ctx:
                handler.spin(1, state)
        self.assertEqual(ctx.exception.error_code, ErrorCodes.INTERNAL_CONSISTENCY_FAULT)

    def test_insufficient_funds_leaves_state_untouched(self):
        handler = SpinHandler(self.definition, rng=random.Random(3))
        state = make_state(0.5)
        state.multiplier_grid[2][2] = 4
        before = copy.deepcopy(state)

        with self.assertRaises(InsufficientFundsException) as ctx:
            handler.spin(1, state)

        self.assertEqual(ctx.exception.error_code, ErrorCodes.INSUFFICIENT_FUNDS)
        self.assertEqual(state, before)

    def test_invalid_bets_are_rejected(self):
        handler = SpinHandler(self.definition, rng=random.Random(3))
        state = make_state()
        for bet in (0, -1, None, "1", True):
            with self.assertRaises(ValidationException) as ctx:
                handler.spin(bet, state)
            self.assertEqual(ctx.exception.error_code, ErrorCodes.INVALID_BET)
        self.assertEqual(state.balance, 100.0)

    def test_event_sequence_for_a_losing_spin(self):
        handler = self._handler()
        state = make_state()
        recorder = EventRecorder()

        with patch(FILL_GRID, side_effect=forced_fills(background_grid())):
            handler.spin(1, state, emit=recorder)

        self.assertEqual(
            [e['type'] for e in recorder.events],
            ['grid_generated', 'scatters_resolved', 'cascade_complete', 'spin_complete']
        )
        self.assertEqual(recorder.events[-1]['balance'], 99.0)

    def test_seeded_sessions_are_identical(self):
        def play(seed):
            handler = SpinHandler(self.definition, rng=random.Random(seed))
            state = handler.new_state(1000)
            wins = [handler.spin(1, state).total_win for _ in range(50)]
            return wins, state.balance, state.grid

        self.assertEqual(play(42), play(42))


class TestCreateSpinState(unittest.TestCase):

    def test_initial_board_has_no_scatters(self):
        definition = load_game_config('sugar_rush')
        handler = SpinHandler(definition, rng=random.Random(8))
        for _ in range(20):
            state = create_spin_state(definition, handler.pools, handler.rng, 250)
            self.assertEqual(count_scatters(state.grid, SCATTER), 0)
            self.assertEqual(state.balance, 250.0)
            self.assertEqual(state.free_spins_remaining, 0)
            self.assertEqual(state.global_multiplier, 1)
            self.assertEqual(len(state.grid), 7)
            self.assertTrue(all(len(row) == 7 for row in state.grid))
