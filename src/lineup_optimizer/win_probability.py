"""
Win probability: analytic screen and Monte Carlo refinement

The analytic screen treats both totals as independent normals and is only
used to rank candidates. Monte Carlo draws correlated lineup totals in
batches until the standard error of the win rate falls below target or the
simulation budget runs out.
"""

import logging
import math
from concurrent.futures import ProcessPoolExecutor
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from .correlation import CorrelationSettings
from .models import Candidate, PlayerScore, SimulationResult
from .sampling import METHODS, CopulaSampler
from .seeding import SeedManager

PERCENTILES = (5, 25, 50, 75, 95)
MIN_MARGIN_VARIANCE = 1e-6


def lineup_mean_var(players: Sequence[PlayerScore]) -> Tuple[float, float]:
    """Sum of means and variances, ignoring correlation"""
    mean = float(sum(p.mean for p in players))
    var = float(sum(p.dist.variance() for p in players))
    return mean, var


def analytic_win_probability(lineup_mean: float, lineup_var: float,
                             opponent_mean: float, opponent_var: float) -> float:
    """P(lineup - opponent > 0) for independent normal totals"""
    sd = math.sqrt(max(lineup_var + opponent_var, MIN_MARGIN_VARIANCE))
    return float(norm.cdf((lineup_mean - opponent_mean) / sd))


def screen_candidates(candidates: Sequence[Candidate], opponent) -> List[Tuple[Candidate, float]]:
    """Rank candidates by analytic win probability, best first"""
    opp_mean, opp_var = opponent.mean(), opponent.variance()
    scored = []
    for cand in candidates:
        mean, var = lineup_mean_var(cand.players)
        scored.append((cand, analytic_win_probability(mean, var, opp_mean, opp_var)))
    scored.sort(key=lambda item: (-item[1], item[0].mask))
    return scored


def _evaluate_worker(args):
    """Worker function for parallel evaluation - must be at module level for pickling"""
    estimator, players, opponent = args
    return estimator.evaluate(players, opponent)


class MonteCarloEstimator:
    """
    Early-stopping Monte Carlo win probability

    Args:
        target_se: stop once the win-rate standard error drops below this
        min_sims: never stop before this many simulations
        max_sims: hard budget
        batch_size: simulations per convergence check
        method: 'none', 'lhs' or 'qmc'
        joint_simulation: share factors with a RosterOpponent's starters
        cross_correlation: loading of the shared cross-lineup factor
        settings: correlation settings
        seeds: seed manager for per-evaluation generators
    """

    def __init__(self, target_se: float = 0.006, min_sims: int = 1000, max_sims: int = 12000,
                 batch_size: int = 512, method: str = 'lhs', joint_simulation: bool = True,
                 cross_correlation: float = 0.15, settings: Optional[CorrelationSettings] = None,
                 seeds: Optional[SeedManager] = None):
        if method not in METHODS:
            raise ValueError(f"Unknown variance reduction method {method!r}, expected one of {METHODS}")
        if batch_size < 1 or max_sims < 1:
            raise ValueError("batch_size and max_sims must be positive")
        if min_sims > max_sims:
            raise ValueError(f"min_sims ({min_sims}) cannot exceed max_sims ({max_sims})")
        self.target_se = target_se
        self.min_sims = min_sims
        self.max_sims = max_sims
        self.batch_size = batch_size
        self.method = method
        self.joint_simulation = joint_simulation
        self.cross_correlation = cross_correlation
        self.settings = settings or CorrelationSettings()
        self.seeds = seeds or SeedManager()

    def _uses_joint(self, opponent) -> bool:
        return self.joint_simulation and getattr(opponent, 'kind', None) == 'roster'

    def evaluate(self, lineup: Sequence[PlayerScore], opponent) -> SimulationResult:
        """Simulate lineup total minus opponent total"""
        lineup_rng, opponent_rng = self.seeds.generators(p.id for p in lineup)
        joint = self._uses_joint(opponent)
        if joint:
            sampler = CopulaSampler.joint(lineup, opponent.starters, self.cross_correlation,
                                          self.settings, self.method)
        else:
            sampler = CopulaSampler(lineup, self.settings, self.method)

        margins = []
        n = 0
        wins = 0
        se = 1.0
        converged = False
        while n < self.max_sims:
            size = min(self.batch_size, self.max_sims - n)
            if joint:
                mine, theirs = sampler.sample_totals(lineup_rng, size)
            else:
                mine = sampler.sample_totals(lineup_rng, size)[0]
                theirs = opponent.sample(opponent_rng, size)
            margin = mine - theirs
            margins.append(margin)
            wins += int(np.count_nonzero(margin > 0))
            n += size

            p = wins / n
            se = math.sqrt(max(p * (1 - p), MIN_MARGIN_VARIANCE) / n)
            if n >= self.min_sims and se < self.target_se:
                converged = True
                break

        all_margins = np.concatenate(margins)
        ladder = np.percentile(all_margins, PERCENTILES)
        result = SimulationResult(
            win_probability=wins / n,
            expected_margin=float(all_margins.mean()),
            margin_sd=float(all_margins.std(ddof=1)) if n > 1 else 0.0,
            percentiles={f"p{q}": float(v) for q, v in zip(PERCENTILES, ladder)},
            std_error=se,
            n_sims=n,
            converged=converged,
            method=self.method,
            joint=joint,
        )
        logging.debug(f"MC {sorted(p.id for p in lineup)}: p={result.win_probability:.4f} "
                      f"se={se:.4f} n={n} joint={joint}")
        return result

    def evaluate_many(self, lineups: Sequence[Sequence[PlayerScore]], opponent,
                      n_workers: int = 1) -> List[SimulationResult]:
        """Evaluate lineups, in parallel when n_workers > 1; results keep input order"""
        if n_workers <= 1 or len(lineups) <= 1:
            return [self.evaluate(lineup, opponent) for lineup in lineups]

        logging.info(f"Evaluating {len(lineups)} lineups on {n_workers} workers")
        worker_args = [(self, tuple(lineup), opponent) for lineup in lineups]
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            futures = [executor.submit(_evaluate_worker, args) for args in worker_args]
            return [f.result() for f in futures]
