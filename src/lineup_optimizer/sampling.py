"""
Gaussian copula sampling of correlated player scores

Correlated latent normals come from the factor model, map through the
standard normal CDF to uniforms, then through each player's bounded-normal
quantile. Marginals stay exact; nothing is clamped afterwards.

Usage:
    sampler = CopulaSampler(lineup, method='lhs')
    totals = sampler.sample_totals(rng, 2000)[0]
"""

import logging
import math
from typing import List, Optional, Sequence

import numpy as np
from scipy.stats import norm, qmc

from .correlation import (CorrelationSettings, FactorModel, apply_pairwise_adjustments,
                          build_factor_model, build_joint_factor_model, correlation_matrix,
                          symmetric_sqrt, validate_correlation_matrix)
from .models import PlayerScore

METHODS = ('none', 'lhs', 'qmc')
UNIFORM_EPS = 1e-12


def latent_normals(rng: np.random.Generator, n: int, dims: int, method: str = 'lhs') -> np.ndarray:
    """
    Standard normal draws of shape (n, dims)

    'none' draws independently, 'lhs' stratifies every dimension with a Latin
    Hypercube, 'qmc' uses a scrambled Sobol sequence.
    """
    if method not in METHODS:
        raise ValueError(f"Unknown variance reduction method {method!r}, expected one of {METHODS}")
    if n <= 0 or dims <= 0:
        return np.zeros((max(n, 0), max(dims, 0)))

    if method == 'none':
        return rng.standard_normal((n, dims))

    if method == 'lhs':
        u = qmc.LatinHypercube(d=dims, rng=rng).random(n)
    else:
        engine = qmc.Sobol(d=dims, scramble=True, rng=rng)
        # Sobol points balance only in powers of two
        u = engine.random_base2(m=max(0, math.ceil(math.log2(n))))[:n]

    u = np.clip(u, UNIFORM_EPS, 1.0 - UNIFORM_EPS)
    return norm.ppf(u)


class CopulaSampler:
    """
    Draws joint scores for one or more groups of players

    Players are kept in id order so the draws do not depend on how the roster
    was passed in. Groups (lineup, opponent) share one factor space in joint
    mode; totals are returned per group.
    """

    def __init__(self, players: Sequence[PlayerScore], settings: Optional[CorrelationSettings] = None,
                 method: str = 'lhs', model: Optional[FactorModel] = None,
                 group_sizes: Optional[Sequence[int]] = None):
        if method not in METHODS:
            raise ValueError(f"Unknown variance reduction method {method!r}, expected one of {METHODS}")
        self.settings = settings or CorrelationSettings()
        self.method = method

        if model is None:
            self.players = tuple(sorted(players, key=lambda p: p.id))
            self.model = build_factor_model(self.players, self.settings)
            group_sizes = [len(self.players)]
        else:
            self.players = tuple(model.players)
            self.model = model
            group_sizes = list(group_sizes or [len(self.players)])
        if sum(group_sizes) != len(self.players):
            raise ValueError("Group sizes must add up to the number of players")

        bounds = np.cumsum([0] + list(group_sizes))
        self.groups = [slice(int(a), int(b)) for a, b in zip(bounds[:-1], bounds[1:])]

        # Pairwise heuristics move us off the factor structure; sample from the
        # (repaired) matrix root instead
        self._root = None
        if self.settings.has_pairwise_adjustments and self.players:
            corr, touched = apply_pairwise_adjustments(
                correlation_matrix(self.model), self.players, self.settings)
            if touched:
                corr, issues = validate_correlation_matrix(corr, repair=True)
                if issues:
                    logging.warning(f"Pairwise adjustments required repair: {issues}")
                self._root = symmetric_sqrt(corr)

    @classmethod
    def joint(cls, lineup: Sequence[PlayerScore], opponent: Sequence[PlayerScore],
              cross_correlation: float = 0.15, settings: Optional[CorrelationSettings] = None,
              method: str = 'lhs') -> 'CopulaSampler':
        """Sampler over both lineups with a shared cross-lineup factor"""
        settings = settings or CorrelationSettings()
        mine = sorted(lineup, key=lambda p: p.id)
        theirs = sorted(opponent, key=lambda p: p.id)
        model = build_joint_factor_model(mine, theirs, cross_correlation, settings)
        return cls(mine + theirs, settings=settings, method=method, model=model,
                   group_sizes=[len(mine), len(theirs)])

    @property
    def dims(self) -> int:
        if self._root is not None:
            return len(self.players)
        return self.model.n_factors + self.model.n_players

    def latent(self, rng: np.random.Generator, n: int) -> np.ndarray:
        """Correlated standard normals, shape (n, n_players)"""
        g = latent_normals(rng, n, self.dims, self.method)
        if self._root is not None:
            return g @ self._root.T
        k = self.model.n_factors
        factors, resid = g[:, :k], g[:, k:]
        return factors @ self.model.loadings.T + resid * np.sqrt(self.model.residual_var)

    def sample_scores(self, rng: np.random.Generator, n: int) -> np.ndarray:
        """Player scores, shape (n, n_players) in self.players order"""
        u = norm.cdf(self.latent(rng, n))
        scores = np.empty_like(u)
        for j, p in enumerate(self.players):
            scores[:, j] = p.dist.quantile(u[:, j])
        return scores

    def sample_totals(self, rng: np.random.Generator, n: int) -> List[np.ndarray]:
        """Total score per group for each draw"""
        scores = self.sample_scores(rng, n)
        return [scores[:, g].sum(axis=1) for g in self.groups]
