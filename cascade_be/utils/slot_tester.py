import argparse
import os
import random
import sys

import matplotlib
matplotlib.use('Agg') # Use a non-interactive backend suitable for saving files
import matplotlib.pyplot as plt
import numpy as np

from cascade_be.exceptions import InsufficientFundsException, InvalidConfigurationException
from cascade_be.utils.game_config_manager import load_game_config
from cascade_be.utils.spin_handler import SpinHandler

SCATTER_TRIGGER_KEYS = ("3", "4", "5", "6", "7+")
BONUS_WIN_BUCKETS = ("<1x", "1x-10x", "10x-100x", "100x+")


def _scatter_trigger_key(scatter_count):
    return "7+" if scatter_count >= 7 else str(scatter_count)


def _bonus_win_bucket(win_multiple):
    if win_multiple < 1:
        return "<1x"
    if win_multiple < 10:
        return "1x-10x"
    if win_multiple < 100:
        return "10x-100x"
    return "100x+"


class SlotTester:
    """
    Plays a cascading-cluster slot for a fixed number of paid spins against
    one in-memory session and reports RTP, hit rate and bonus statistics.

    Free spins are played inside the paid spin that awarded them, so every
    recorded spin is a complete round (base spin plus its free-spin chain).
    """

    def __init__(self, slot_short_name, num_spins, bet_amount, seed=None, verbose=True,
                 max_cascade_iterations=500, max_free_spins_per_chain=5000):
        self.slot_short_name = slot_short_name
        self.num_spins = num_spins
        self.bet_amount = bet_amount
        self.seed = seed
        self.verbose = verbose
        self.max_cascade_iterations = max_cascade_iterations
        self.max_free_spins_per_chain = max_free_spins_per_chain

        self.definition = None
        self.handler = None
        self.state = None

        # Statistics to be collected
        self.spins_played = 0
        self.total_bet = 0.0
        self.total_win = 0.0
        self.total_base_win = 0.0
        self.total_bonus_win = 0.0
        self.hit_count = 0
        self.bonus_hits = 0
        self.free_spins_played = 0
        self.bonus_triggers = 0
        self.retriggers = 0
        self.max_base_win = 0.0
        self.max_cascade_count = 0
        self.triggers_by_scatter = {key: 0 for key in SCATTER_TRIGGER_KEYS}
        self.bonus_win_buckets = {key: 0 for key in BONUS_WIN_BUCKETS}
        self.bonus_data = [] # One entry per bonus chain: total win and spins played
        self.round_win_multiples = [] # Round win / bet for every paid spin
        self.wins_by_multiplier = {}
        self.rtp_over_time = []

        # Attributes to store calculated derived statistics
        self.overall_rtp = 0
        self.avg_payout_per_spin = 0
        self.hit_rate = 0
        self.bonus_frequency = 0
        self.avg_bonus_win = 0
        self.max_bonus_win = 0
        self.avg_spins_in_bonus = 0
        self.base_game_rtp_contribution = 0
        self.bonus_rtp_contribution = 0
        self.volatility_index = 0

    def _log(self, message):
        if self.verbose:
            print(message)

    def load_configuration(self, test_config_base_path=None):
        self._log(f"INFO: Loading configuration for slot: {self.slot_short_name}...")
        try:
            self.definition = load_game_config(self.slot_short_name, base_path=test_config_base_path)
        except InvalidConfigurationException as e:
            print(f"ERROR: {e.status_message} {e.details or ''}".rstrip())
            self.definition = None
            return False

        self._log(f"INFO: Successfully loaded configuration for {self.definition.name}.")
        return True

    def initialize_simulation_state(self):
        rng = random.Random(self.seed)
        self.handler = SpinHandler(
            self.definition,
            rng=rng,
            max_cascade_iterations=self.max_cascade_iterations,
            max_free_spins_per_chain=self.max_free_spins_per_chain,
        )
        initial_balance = self.num_spins * self.bet_amount * 10 # Ample balance
        self.state = self.handler.new_state(initial_balance)
        self._log(f"INFO: Initialized simulation state: Balance={self.state.balance}, Seed={self.seed}")

    def run_simulation(self):
        if not self.definition or not self.handler:
            print("ERROR: Game configuration or simulation state not loaded. Cannot run simulation.")
            return

        self._log(f"INFO: Starting simulation for {self.slot_short_name} with {self.num_spins} spins "
                  f"at {self.bet_amount} per spin.")

        progress_interval = self.num_spins // 20 or 1
        for i in range(self.num_spins):
            try:
                outcome = self.handler.spin(self.bet_amount, self.state)
            except InsufficientFundsException:
                print(f"Warning: Balance exhausted after {i} spins. Stopping simulation.")
                break
            self._collect_spin_statistics(outcome)
            if (i + 1) % progress_interval == 0:
                self._log(f"INFO: Completed {i+1}/{self.num_spins} spins...")

        self._log(f"INFO: Simulation finished for {self.slot_short_name}.")
        self.calculate_derived_statistics()

    def _collect_spin_statistics(self, outcome):
        bet = self.bet_amount
        round_win = outcome.total_win

        self.spins_played += 1
        self.total_bet += bet
        self.total_win += round_win
        self.total_base_win += outcome.spin_win

        if outcome.spin_win > 0:
            self.hit_count += 1
        self.max_base_win = max(self.max_base_win, outcome.spin_win)

        cascade_counts = [outcome.cascade_count] + [f.cascade_count for f in outcome.free_spin_outcomes]
        self.max_cascade_count = max(self.max_cascade_count, max(cascade_counts))

        if outcome.free_spins_played > 0:
            self.bonus_triggers += 1
            self.triggers_by_scatter[_scatter_trigger_key(outcome.scatter_count)] += 1
            self.free_spins_played += outcome.free_spins_played
            self.total_bonus_win += outcome.bonus_win
            self.bonus_hits += sum(1 for f in outcome.free_spin_outcomes if f.spin_win > 0)
            self.retriggers += sum(1 for f in outcome.free_spin_outcomes if f.free_spins_awarded > 0)
            self.bonus_win_buckets[_bonus_win_bucket(outcome.bonus_win / bet)] += 1
            self.bonus_data.append({
                'total_win': outcome.bonus_win,
                'num_spins': outcome.free_spins_played,
                'trigger_spin_number': self.spins_played,
            })

        win_multiple = round_win / bet
        self.round_win_multiples.append(win_multiple)
        multiplier_category = int(round(win_multiple))
        self.wins_by_multiplier[multiplier_category] = self.wins_by_multiplier.get(multiplier_category, 0) + 1

        interval = self.num_spins // 20 or 1 # Aim for ~20 data points for the graph
        if self.spins_played % interval == 0 or self.spins_played == self.num_spins:
            self.rtp_over_time.append({
                'spin_count': self.spins_played,
                'rtp': (self.total_win / self.total_bet) * 100 if self.total_bet > 0 else 0,
            })

    def calculate_derived_statistics(self):
        if self.spins_played == 0:
            print("Warning: No spins were simulated. Cannot calculate derived statistics.")
            return

        self.overall_rtp = (self.total_win / self.total_bet) * 100 if self.total_bet > 0 else 0
        self.avg_payout_per_spin = self.total_win / self.spins_played
        self.hit_rate = (self.hit_count / self.spins_played) * 100
        self.bonus_frequency = (self.bonus_triggers / self.spins_played) * 100

        bonus_wins = [b['total_win'] for b in self.bonus_data]
        self.avg_bonus_win = (self.total_bonus_win / self.bonus_triggers) if self.bonus_triggers > 0 else 0
        self.max_bonus_win = max(bonus_wins) if bonus_wins else 0
        self.avg_spins_in_bonus = (self.free_spins_played / self.bonus_triggers) if self.bonus_triggers > 0 else 0

        self.base_game_rtp_contribution = (self.total_base_win / self.total_bet) * 100 if self.total_bet > 0 else 0
        self.bonus_rtp_contribution = (self.total_bonus_win / self.total_bet) * 100 if self.total_bet > 0 else 0

        # Volatility Index: standard deviation of round win measured in bets
        self.volatility_index = float(np.std(np.asarray(self.round_win_multiples, dtype=float)))

    def get_summary(self):
        return {
            "slot": self.slot_short_name,
            "seed": self.seed,
            "bet": self.bet_amount,
            "total_spins": self.spins_played,
            "total_bet": self.total_bet,
            "total_payout": self.total_win,
            "rtp": self.overall_rtp,
            "avg_payout_per_spin": self.avg_payout_per_spin,
            "hit_count": self.hit_count,
            "hit_rate": self.hit_rate,
            "bonus_hits": self.bonus_hits,
            "free_spins_played": self.free_spins_played,
            "bonus_triggers": self.bonus_triggers,
            "retriggers": self.retriggers,
            "bonus_frequency": self.bonus_frequency,
            "avg_bonus_win": self.avg_bonus_win,
            "max_bonus_win": self.max_bonus_win,
            "max_base_win": self.max_base_win,
            "avg_spins_in_bonus": self.avg_spins_in_bonus,
            "triggers_by_scatter": dict(self.triggers_by_scatter),
            "bonus_win_buckets": dict(self.bonus_win_buckets),
            "base_game_rtp_contribution": self.base_game_rtp_contribution,
            "bonus_rtp_contribution": self.bonus_rtp_contribution,
            "volatility_index": self.volatility_index,
            "wins_by_multiplier": {str(k): v for k, v in sorted(self.wins_by_multiplier.items())},
            "rtp_over_time": list(self.rtp_over_time),
            "max_cascade_count": self.max_cascade_count,
        }

    def print_summary_statistics(self):
        print("\n--- Simulation Summary ---")
        slot_name_display = self.definition.name if self.definition else self.slot_short_name
        print(f"Slot Game: {slot_name_display}")
        print(f"Total Spins Simulated: {self.spins_played}")
        print(f"Bet Amount Per Spin: {self.bet_amount}")
        print(f"Total Wagered: {self.total_bet:.2f}")
        print(f"Total Won: {self.total_win:.2f}")
        print(f"Seed: {self.seed if self.seed is not None else 'random'}")

        print("\n--- Detailed Metrics ---")
        print(f"Overall RTP: {self.overall_rtp:.2f}%")
        print(f"Average Payout Per Spin: {self.avg_payout_per_spin:.4f}")
        print(f"Hit Rate: {self.hit_rate:.2f}% ({self.hit_count} wins out of {self.spins_played} spins)")
        print(f"Bonus Trigger Frequency: {self.bonus_frequency:.3f}% ({self.bonus_triggers} triggers, "
              f"{self.retriggers} retriggers)")
        print(f"Free Spins Played: {self.free_spins_played} ({self.bonus_hits} with a win)")
        print(f"Average Bonus Win: {self.avg_bonus_win:.2f} (Max: {self.max_bonus_win:.2f})")
        print(f"Average Spins in Bonus: {self.avg_spins_in_bonus:.2f} spins")
        print(f"Max Base Game Win: {self.max_base_win:.2f}")
        print(f"Max Cascades in One Spin: {self.max_cascade_count}")
        print(f"Base Game RTP Contribution: {self.base_game_rtp_contribution:.2f}%")
        print(f"Bonus Game RTP Contribution: {self.bonus_rtp_contribution:.2f}%")
        print(f"Volatility Index (Win StdDev / Bet): {self.volatility_index:.2f}")

        print("\nBonus Triggers by Scatter Count:")
        for key in SCATTER_TRIGGER_KEYS:
            print(f"  {key} scatters: {self.triggers_by_scatter[key]}")

        print("\nBonus Win Distribution (by Bet Multiplier):")
        for key in BONUS_WIN_BUCKETS:
            print(f"  {key}: {self.bonus_win_buckets[key]}")

        print("\nWin Distribution (by Bet Multiplier):")
        if self.wins_by_multiplier:
            for mult, count in sorted(self.wins_by_multiplier.items()):
                percentage_of_total_spins = (count / self.spins_played) * 100 if self.spins_played > 0 else 0
                print(f"  {mult}x Bet: {count} times ({percentage_of_total_spins:.2f}%)")
        else:
            print("  No win data to display for multiplier distribution.")

    def generate_graphs(self, graph_dir="slot_tester_graphs"):
        os.makedirs(graph_dir, exist_ok=True)

        slot_name_for_file = self.slot_short_name.replace("/", "_")
        slot_display_name = self.definition.name if self.definition else self.slot_short_name
        saved = []

        # Graph 1: Histogram of Win Multipliers
        if self.wins_by_multiplier:
            multipliers = sorted(self.wins_by_multiplier.keys())
            counts = [self.wins_by_multiplier[m] for m in multipliers]

            plt.figure(figsize=(12, 7))
            plt.bar([str(m) + 'x' for m in multipliers], counts, color='skyblue', width=0.8)
            plt.yscale('log')
            plt.title(f"Win Multiplier Distribution for {slot_display_name}", fontsize=16)
            plt.xlabel("Bet Multiplier", fontsize=12)
            plt.ylabel("Frequency (log)", fontsize=12)
            plt.xticks(rotation=45, ha="right", fontsize=10)
            plt.grid(axis='y', linestyle='--', alpha=0.7)
            plt.tight_layout()
            saved.append(self._save_figure(graph_dir, f"{slot_name_for_file}_win_multipliers.png"))
        else:
            print("INFO: No win multiplier data to generate graph.")

        # Graph 2: RTP Convergence Over Time
        if self.rtp_over_time:
            spin_counts = [d['spin_count'] for d in self.rtp_over_time]
            rtps = [d['rtp'] for d in self.rtp_over_time]

            plt.figure(figsize=(10, 6))
            plt.plot(spin_counts, rtps, label="Simulated RTP", marker='.', linestyle='-')
            plt.axhline(y=self.overall_rtp, color='r', linestyle='--', label=f"Final RTP ({self.overall_rtp:.2f}%)")
            plt.title(f"RTP Convergence for {slot_display_name}", fontsize=16)
            plt.xlabel("Number of Spins", fontsize=12)
            plt.ylabel("RTP (%)", fontsize=12)
            plt.legend(fontsize=10)
            plt.grid(True, linestyle='--', alpha=0.7)
            plt.tight_layout()
            saved.append(self._save_figure(graph_dir, f"{slot_name_for_file}_rtp_convergence.png"))
        else:
            print("INFO: No RTP over time data to generate graph.")

        # Graph 3: Pie Chart of Win Contributions (Base Game vs. Bonus Game)
        if self.total_win > 0:
            sizes = [self.total_base_win, self.total_bonus_win]
            explode = (0, 0.1) if self.total_bonus_win > 0 else (0, 0)

            plt.figure(figsize=(8, 8))
            plt.pie(sizes, explode=explode, labels=('Base Game Wins', 'Free Spin Wins'),
                    colors=['lightcoral', 'lightskyblue'], autopct='%1.1f%%', startangle=90)
            plt.title(f"Win Contribution (Base vs Free Spins)\nfor {slot_display_name}", fontsize=16)
            plt.axis('equal')
            plt.tight_layout()
            saved.append(self._save_figure(graph_dir, f"{slot_name_for_file}_win_contributions.png"))
        else:
            print("INFO: Total win is zero, skipping win contribution pie chart.")

        # Graph 4: Histogram of Bonus Chain Wins
        bonus_round_wins = [b['total_win'] / self.bet_amount for b in self.bonus_data if b['total_win'] > 0]
        if bonus_round_wins:
            plt.figure(figsize=(10, 6))
            plt.hist(bonus_round_wins, bins=max(10, len(bonus_round_wins) // 5), color='gold', edgecolor='black')
            plt.title(f"Free Spin Chain Win Distribution for {slot_display_name}", fontsize=16)
            plt.xlabel("Chain Win (x Bet)", fontsize=12)
            plt.ylabel("Frequency of Chains", fontsize=12)
            plt.grid(axis='y', linestyle='--', alpha=0.7)
            plt.tight_layout()
            saved.append(self._save_figure(graph_dir, f"{slot_name_for_file}_bonus_win_distribution.png"))
        else:
            print("INFO: No bonus chains with wins > 0 to generate distribution graph.")

        plt.close('all') # Close all figures to free memory
        return [path for path in saved if path]

    def _save_figure(self, graph_dir, file_name):
        graph_file_path = os.path.join(graph_dir, file_name)
        try:
            plt.savefig(graph_file_path)
        except OSError as e:
            print(f"ERROR: Failed to save graph {graph_file_path}: {e}")
            return None
        finally:
            plt.clf()
        print(f"INFO: Saved graph to {graph_file_path}")
        return graph_file_path


def simulate(total_spins, bet, seed=None, slot_short_name="sugar_rush", base_path=None, **limits):
    """
    Runs a quiet simulation and returns the summary dict.

    Raises:
        InvalidConfigurationException: If the slot configuration cannot be loaded.
    """
    tester = SlotTester(slot_short_name, total_spins, bet, seed=seed, verbose=False, **limits)
    if not tester.load_configuration(test_config_base_path=base_path):
        raise InvalidConfigurationException(
            status_message=f"Could not load configuration for slot '{slot_short_name}'."
        )
    tester.initialize_simulation_state()
    tester.run_simulation()
    return tester.get_summary()


def build_arg_parser():
    parser = argparse.ArgumentParser(description="Slot Machine Tester - Simulates cascading-cluster slot play to analyze RTP and other metrics.")
    parser.add_argument("num_spins", type=int, nargs="?", default=100000, help="Number of paid spins to simulate.")
    parser.add_argument("bet", type=float, nargs="?", default=1.0, help="Bet amount for each paid spin.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for a reproducible run.")
    parser.add_argument("--slot", dest="slot_short_name", default="sugar_rush", help="Slot short name (directory under cascade_be/slots).")
    parser.add_argument("--graphs", action="store_true", help="Save distribution and RTP graphs as PNG files.")
    parser.add_argument("--graph-dir", default="slot_tester_graphs", help="Directory for generated graphs.")
    return parser


def main(argv=None):
    args = build_arg_parser().parse_args(argv)

    if args.num_spins < 1 or args.bet <= 0:
        print("ERROR: num_spins must be at least 1 and bet must be positive.")
        return 2

    print(f"--- Initializing Slot Tester for: {args.slot_short_name} ---")

    tester = SlotTester(
        slot_short_name=args.slot_short_name,
        num_spins=args.num_spins,
        bet_amount=args.bet,
        seed=args.seed
    )

    if not tester.load_configuration():
        return 1

    tester.initialize_simulation_state()
    tester.run_simulation()
    tester.print_summary_statistics()
    if args.graphs:
        tester.generate_graphs(args.graph_dir)

    print(f"--- Slot Tester run finished for: {args.slot_short_name} ---")
    return 0


if __name__ == "__main__":
    sys.exit(main())
