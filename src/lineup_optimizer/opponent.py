"""
Opponent scoring models

Three variants share one interface: kind, mean(), variance(), sd() and
sample(rng, n). LeagueAverageOpponent is closed form, RosterOpponent is a
known set of starters sampled through the copula (and usable for joint
simulation), MixtureOpponent spreads weight over several plausible lineups.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .candidates import KBestDP
from .correlation import CorrelationSettings, lineup_moments
from .distribution import adjust_for_injury
from .models import ESPN_PPR_2025, PlayerScore, RosterRequirement
from .sampling import CopulaSampler

# 12-team PPR baseline and adjustments
LEAGUE_BASELINE = (115.0, 25.0)
SCORING_ADJUSTMENTS = {
    'PPR': (0.0, 0.0),
    'HALF_PPR': (-7.0, -1.5),
    'STANDARD': (-15.0, -3.0),
}
TEAM_COUNT_ADJUSTMENTS = {
    10: (5.0, 2.0),
    12: (0.0, 0.0),
    14: (-5.0, -2.0),
}


def league_opponent_stats(scoring: str = 'PPR', teams: int = 12) -> Tuple[float, float]:
    """League-average weekly (mean, sd) for a scoring format and league size"""
    scoring = scoring.upper()
    if scoring not in SCORING_ADJUSTMENTS:
        raise ValueError(f"Unknown scoring type {scoring!r}")
    mean, sd = LEAGUE_BASELINE
    d_mean, d_sd = SCORING_ADJUSTMENTS[scoring]
    t_mean, t_sd = TEAM_COUNT_ADJUSTMENTS.get(teams, (0.0, 0.0))
    return mean + d_mean + t_mean, sd + d_sd + t_sd


class LeagueAverageOpponent:
    kind = 'league_average'

    def __init__(self, mean_score: float = 115.0, sd_score: float = 25.0):
        if sd_score <= 0:
            raise ValueError(f"sd_score must be positive, got {sd_score}")
        self.mean_score = float(mean_score)
        self.sd_score = float(sd_score)

    def __repr__(self):
        return f"LeagueAverageOpponent(mean={self.mean_score}, sd={self.sd_score})"

    @classmethod
    def for_league(cls, scoring: str = 'PPR', teams: int = 12) -> 'LeagueAverageOpponent':
        return cls(*league_opponent_stats(scoring, teams))

    def mean(self) -> float:
        return self.mean_score

    def variance(self) -> float:
        return self.sd_score ** 2

    def sd(self) -> float:
        return self.sd_score

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        return rng.normal(self.mean_score, self.sd_score, size=n)


class RosterOpponent:
    """Known opposing starters, sampled with the same copula as our lineup"""
    kind = 'roster'

    def __init__(self, starters: Sequence[PlayerScore], settings: Optional[CorrelationSettings] = None,
                 method: str = 'lhs'):
        if not starters:
            raise ValueError("RosterOpponent needs at least one starter")
        self.starters = tuple(sorted(starters, key=lambda p: p.id))
        self.settings = settings or CorrelationSettings()
        self.method = method
        self._mean, self._var = lineup_moments(self.starters, self.settings)
        self._sampler = None

    def __repr__(self):
        return f"RosterOpponent({len(self.starters)} starters, mean={self._mean:.1f})"

    def mean(self) -> float:
        return self._mean

    def variance(self) -> float:
        """Factor-correlated variance (latent correlation used as score correlation)"""
        return self._var

    def sd(self) -> float:
        return math.sqrt(self._var)

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        if self._sampler is None:
            self._sampler = CopulaSampler(self.starters, self.settings, self.method)
        return self._sampler.sample_totals(rng, n)[0]


class MixtureOpponent:
    """Weighted mixture over opponent models (law of total variance)"""
    kind = 'mixture'

    def __init__(self, components: Sequence, weights: Optional[Sequence[float]] = None):
        if not components:
            raise ValueError("MixtureOpponent needs at least one component")
        w = np.ones(len(components)) if weights is None else np.asarray(weights, dtype=float)
        if len(w) != len(components) or np.any(w < 0) or w.sum() <= 0:
            raise ValueError("Mixture weights must be non-negative, one per component, with positive sum")
        self.components = list(components)
        self.weights = w / w.sum()

        means = np.array([c.mean() for c in self.components])
        second = np.array([c.variance() + c.mean() ** 2 for c in self.components])
        self._mean = float(self.weights @ means)
        self._var = max(float(self.weights @ second) - self._mean ** 2, 0.0)

    def __repr__(self):
        return f"MixtureOpponent({len(self.components)} components, mean={self._mean:.1f})"

    @property
    def starters(self) -> Tuple[PlayerScore, ...]:
        """Starters of the heaviest roster component, if any"""
        best = int(np.argmax(self.weights))
        return getattr(self.components[best], 'starters', ())

    def mean(self) -> float:
        return self._mean

    def variance(self) -> float:
        return self._var

    def sd(self) -> float:
        return math.sqrt(self._var)

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        choice = rng.choice(len(self.components), size=n, p=self.weights)
        out = np.empty(n)
        for i, comp in enumerate(self.components):
            hits = np.flatnonzero(choice == i)
            if hits.size:
                out[hits] = comp.sample(rng, hits.size)
        return out


def _available(roster: Sequence[PlayerScore]) -> List[PlayerScore]:
    return [adjust_for_injury(p) for p in roster if p.available]


def opponent_from_roster(roster: Sequence[PlayerScore], requirement: RosterRequirement = ESPN_PPR_2025,
                         settings: Optional[CorrelationSettings] = None,
                         method: str = 'lhs') -> RosterOpponent:
    """Infer the opponent's likely starters (best lineup by mean)"""
    candidates = KBestDP(k=30, max_global=2000).optimize_candidates(
        _available(roster), requirement, lambda p: p.mean)
    if not candidates:
        raise ValueError("Opponent roster cannot fill the lineup requirement")
    return RosterOpponent(candidates[0].players, settings, method)


def opponent_with_uncertainty(roster: Sequence[PlayerScore], requirement: RosterRequirement = ESPN_PPR_2025,
                              top_k: int = 10, settings: Optional[CorrelationSettings] = None,
                              method: str = 'lhs'):
    """
    Equal-weight mixture over the opponent's top-K lineups by mean

    Falls back to the league average when the roster cannot field a lineup.
    """
    candidates = KBestDP(k=50, max_global=2000).optimize_candidates(
        _available(roster), requirement, lambda p: p.mean)
    if not candidates:
        logging.warning("Opponent roster cannot fill the requirement; using league average")
        return LeagueAverageOpponent(*LEAGUE_BASELINE)
    components = [RosterOpponent(c.players, settings, method) for c in candidates[:top_k]]
    return MixtureOpponent(components)
