"""
Single long-lived slot session owned by the hosting application.
"""
import logging
import threading
from typing import Optional

from cascade_be.error_codes import ErrorCodes
from cascade_be.exceptions import GameLogicException, ValidationException
from cascade_be.utils.spin_handler import EventRecorder

logger = logging.getLogger(__name__)


class SlotSession:
    """
    Wraps a SpinHandler and the one SpinState it plays against.

    Only one spin (or autoplay run) may resolve at a time; a second caller
    gets a SPIN_IN_PROGRESS error instead of waiting.
    """

    def __init__(self, handler, starting_balance: float, enforce_bet_options: bool = True):
        self.handler = handler
        self.definition = handler.definition
        self.starting_balance = float(starting_balance)
        self.enforce_bet_options = enforce_bet_options
        self.state = handler.new_state(self.starting_balance)
        self._lock = threading.Lock()

    def _validate_bet(self, bet):
        if not self.enforce_bet_options:
            return
        allowed = [float(option) for option in self.definition.bet_options]
        if float(bet) not in allowed:
            raise ValidationException(
                status_message="Bet amount is not one of the available bet options.",
                details={'bet_amount': bet, 'bet_options': allowed},
                error_code=ErrorCodes.INVALID_BET
            )

    def _acquire(self):
        if not self._lock.acquire(blocking=False):
            raise GameLogicException(
                status_message="A spin is already in progress.",
                status_code=409,
                error_code=ErrorCodes.SPIN_IN_PROGRESS
            )

    def spin(self, bet: float):
        """Plays one paid spin (plus its free-spin chain). Returns (outcome, events)."""
        self._validate_bet(bet)
        self._acquire()
        try:
            recorder = EventRecorder()
            outcome = self.handler.spin(bet, self.state, is_free=False, emit=recorder)
            return outcome, recorder.events
        finally:
            self._lock.release()

    def autoplay(self, bet: float, count: int):
        """
        Plays up to ``count`` paid spins, stopping early once the balance can
        no longer cover the bet.

        Returns:
            tuple: (list of outcomes, stop reason: 'completed' or 'insufficient_funds')
        """
        self._validate_bet(bet)
        self._acquire()
        try:
            outcomes = []
            stop_reason = "completed"
            for _ in range(count):
                if bet > self.state.balance:
                    stop_reason = "insufficient_funds"
                    break
                outcomes.append(self.handler.spin(bet, self.state, is_free=False))
            logger.info("Autoplay finished after %d of %d spins (%s), balance %.2f",
                        len(outcomes), count, stop_reason, self.state.balance)
            return outcomes, stop_reason
        finally:
            self._lock.release()

    def reset(self, balance: Optional[float] = None):
        """Fresh board, multipliers at 1, no pending free spins."""
        self._acquire()
        try:
            new_balance = self.starting_balance if balance is None else float(balance)
            self.state = self.handler.new_state(new_balance)
            logger.info("Session reset with balance %.2f", new_balance)
            return self.state
        finally:
            self._lock.release()

    def snapshot(self):
        state = self.state
        return {
            "balance": state.balance,
            "free_spins_remaining": state.free_spins_remaining,
            "current_is_free": state.current_is_free,
            "last_win": state.last_win,
            "global_multiplier": state.global_multiplier,
            "grid": [row[:] for row in state.grid],
            "multiplier_grid": [row[:] for row in state.multiplier_grid],
        }
