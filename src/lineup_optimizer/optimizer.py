"""
Win-probability lineup optimizer

Pipeline: drop ineligible players and price in injury risk -> K-best DP over
several risk sweeps -> analytic screen -> Monte Carlo on the top candidates ->
highest simulated win probability wins. The analytic screen only orders
candidates.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .candidates import KBestDP
from .config import OptimizerConfig
from .distribution import adjust_for_injury
from .eligibility import filter_eligible, validate_lineup
from .models import (ESPN_PPR_2025, POSITIONS, InfeasibleRosterError, OptimizationDiagnostics,
                     OptimizedLineup, PlayerScore, RosterRequirement)
from .seeding import SeedManager
from .win_probability import MonteCarloEstimator, lineup_mean_var, screen_candidates


def _slot_order(player: PlayerScore):
    return (POSITIONS.index(player.position), player.id)


class LineupOptimizer:
    """Selects the starting lineup that maximizes P(beat opponent)"""

    def __init__(self, config: Optional[OptimizerConfig] = None):
        self.config = config or OptimizerConfig()
        cfg = self.config
        self.dp = KBestDP(k=cfg.k_best, max_global=cfg.max_global)
        self.estimator = MonteCarloEstimator(
            target_se=cfg.target_se,
            min_sims=cfg.min_sims,
            max_sims=cfg.max_sims,
            batch_size=cfg.batch_size,
            method=cfg.variance_reduction,
            joint_simulation=cfg.joint_simulation,
            cross_correlation=cfg.cross_correlation,
            settings=cfg.correlation,
            seeds=SeedManager(cfg.base_seed, cfg.common_random_numbers),
        )

    def eligible_players(self, roster: Sequence[PlayerScore], locked: Iterable[str] = (),
                         excluded: Iterable[str] = (), now_utc: Optional[datetime] = None,
                         bye_teams: Iterable[str] = ()) -> List[PlayerScore]:
        """Players the lineup may use, with injury risk folded into their distributions"""
        eligible = filter_eligible(roster, now_utc, locked, excluded, bye_teams)
        if self.config.injury_adjustment:
            eligible = [adjust_for_injury(p) for p in eligible]
        return eligible

    def optimize(self, roster: Sequence[PlayerScore], opponent,
                 requirement: RosterRequirement = ESPN_PPR_2025,
                 locked: Optional[Iterable[str]] = None, excluded: Optional[Iterable[str]] = None,
                 now_utc: Optional[datetime] = None,
                 bye_teams: Optional[Iterable[str]] = None) -> OptimizedLineup:
        """
        Pick starters for one matchup

        Args:
            roster: every rostered player with a fitted distribution
            opponent: LeagueAverageOpponent, RosterOpponent or MixtureOpponent
            requirement: lineup format
            locked: player ids that must start
            excluded: player ids that must not start
            now_utc: current time; players whose game has kicked off are
                only used when locked
            bye_teams: teams not playing this week

        Raises:
            InfeasibleRosterError: the eligible players cannot fill the lineup
            ValueError: a locked id is unknown or also excluded
        """
        cfg = self.config
        locked = frozenset(locked or ())
        eligible = self.eligible_players(roster, locked, excluded or (), now_utc, bye_teams or ())

        shortages = requirement.shortages(eligible)
        if shortages:
            raise InfeasibleRosterError(
                f"Roster cannot fill lineup, short at {shortages}", shortages)

        candidates = self.dp.generate_diverse_candidates(
            eligible, requirement,
            risk_lambdas=cfg.risk_lambdas,
            underdog_bias=cfg.underdog_bias,
            tiebreak_seed=cfg.base_seed,
            required_ids=locked,
        )
        if not candidates:
            if locked:
                raise InfeasibleRosterError(f"No feasible lineup contains locked players {sorted(locked)}")
            raise InfeasibleRosterError("No feasible lineup found for roster")

        screened = screen_candidates(candidates, opponent)
        top = screened[:cfg.max_mc_candidates]
        logging.info(f"Screened {len(screened)} candidates, simulating top {len(top)} "
                     f"against {getattr(opponent, 'kind', type(opponent).__name__)} opponent")

        results = self.estimator.evaluate_many(
            [cand.players for cand, _ in top], opponent, n_workers=cfg.n_workers)

        order = sorted(
            range(len(top)),
            key=lambda i: (-results[i].win_probability, -results[i].expected_margin, top[i][0].mask),
        )
        best_idx = order[0]
        best_cand, best_analytic = top[best_idx]
        best_result = results[best_idx]

        starters = tuple(sorted(best_cand.players, key=_slot_order))
        problems = validate_lineup(starters, requirement, locked)
        if problems:
            raise InfeasibleRosterError(f"Selected lineup is invalid: {'; '.join(problems)}")
        starter_ids = {p.id for p in starters}
        bench = tuple(sorted((p for p in roster if p.id not in starter_ids), key=lambda p: p.id))

        lineup_mean, lineup_var = lineup_mean_var(starters)
        diagnostics = OptimizationDiagnostics(
            analytic_win_probability=best_analytic,
            mc_win_probability=best_result.win_probability,
            lineup_mean=lineup_mean,
            lineup_var=lineup_var,
            opponent_mean=opponent.mean(),
            opponent_var=opponent.variance(),
            n_sims=best_result.n_sims,
            std_error=best_result.std_error,
            candidates_generated=len(candidates),
            candidates_screened=len(screened),
            candidates_evaluated=len(top),
        )
        ranking = [(top[i][0].player_ids, results[i].win_probability) for i in order]

        logging.info(f"Best lineup: P(win)={best_result.win_probability:.3f} "
                     f"(analytic {best_analytic:.3f}), se={best_result.std_error:.4f}, "
                     f"{best_result.n_sims} sims")
        return OptimizedLineup(
            starters=starters,
            bench=bench,
            result=best_result,
            diagnostics=diagnostics,
            ranking=ranking,
        )
