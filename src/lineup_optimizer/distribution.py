"""
Bounded (truncated) normal scoring distributions

Exact moments, CDF and quantile of a normal restricted to [lower, upper],
plus fitting (mu, sigma) from quantile anchors such as floor/median/ceiling.

Usage:
    from lineup_optimizer.distribution import BoundedNormal, fit_from_quantiles
    fit = fit_from_quantiles([(0.10, 8.0), (0.50, 15.0), (0.90, 24.0)], 0.0, 50.0)
    fit.dist.mean(), fit.dist.quantile(0.75)
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import norm

from .models import GameInfo, PlayerInfo, PlayerScore

# Fixed support per position (calibrated annually)
POSITION_BOUNDS: Dict[str, Tuple[float, float]] = {
    'QB': (0.0, 60.0),
    'RB': (0.0, 50.0),
    'WR': (0.0, 55.0),
    'TE': (0.0, 40.0),
    'K': (0.0, 25.0),
    'DST': (-10.0, 35.0),
}

# Coefficient of variation used when only a mean is known
POSITION_CV: Dict[str, float] = {
    'QB': 0.20,
    'RB': 0.25,
    'WR': 0.30,
    'TE': 0.35,
    'K': 0.40,
    'DST': 0.60,
}

MIN_SIGMA = 1e-2

# Least-squares fits count as exact within this fraction of the anchor spread
FIT_RELATIVE_TOL = 0.01

# Chance of playing per health designation
PLAY_PROBABILITY: Dict[str, float] = {
    'HEALTHY': 1.0,
    'QUESTIONABLE': 0.75,
    'GTD': 0.60,
    'DOUBTFUL': 0.25,
    'OUT': 0.0,
    'IR': 0.0,
}
# Inactive players score uniform on [0, INACTIVE_CEILING]
INACTIVE_CEILING = 0.5
MAX_SD_FRACTION = 0.8


class BoundedNormal:
    """
    Normal(mu, sigma) truncated to [lower, upper]

    mu and sigma are the pre-truncation parameters. Methods accept scalars or
    numpy arrays.
    """

    def __init__(self, mu: float, sigma: float, lower: float, upper: float):
        if not upper > lower:
            raise ValueError(f"upper ({upper}) must exceed lower ({lower})")
        if not sigma > 0:
            raise ValueError(f"sigma must be positive, got {sigma}")
        self.mu = float(mu)
        self.sigma = float(sigma)
        self.lower = float(lower)
        self.upper = float(upper)

        self.alpha = (self.lower - self.mu) / self.sigma
        self.beta = (self.upper - self.mu) / self.sigma
        # Work in the upper tail through survival functions when both bounds sit above mu
        self._upper_tail = self.alpha > 0
        if self._upper_tail:
            self._sa = float(norm.sf(self.alpha))
            self._sb = float(norm.sf(self.beta))
            self.Z = self._sa - self._sb
        else:
            self._fa = float(norm.cdf(self.alpha))
            self._fb = float(norm.cdf(self.beta))
            self.Z = self._fb - self._fa
        if not self.Z > 0:
            raise ValueError(
                f"Bounds [{lower}, {upper}] carry no mass under N({mu}, {sigma}^2)")

        pa, pb = norm.pdf(self.alpha), norm.pdf(self.beta)
        delta = (pa - pb) / self.Z
        term = (self.alpha * pa - self.beta * pb) / self.Z
        self._mean = self.mu + self.sigma * delta
        self._var = max(self.sigma ** 2 * (1.0 + term - delta ** 2), 0.0)

    def __repr__(self):
        return (f"BoundedNormal(mu={self.mu:.3f}, sigma={self.sigma:.3f}, "
                f"lower={self.lower}, upper={self.upper})")

    def __eq__(self, other):
        if not isinstance(other, BoundedNormal):
            return NotImplemented
        return (self.mu, self.sigma, self.lower, self.upper) == \
            (other.mu, other.sigma, other.lower, other.upper)

    def __hash__(self):
        return hash((self.mu, self.sigma, self.lower, self.upper))

    def mean(self) -> float:
        """Exact post-truncation mean"""
        return self._mean

    def variance(self) -> float:
        """Exact post-truncation variance"""
        return self._var

    def sd(self) -> float:
        return math.sqrt(self._var)

    def cdf(self, x):
        x = np.asarray(x, dtype=float)
        z = (x - self.mu) / self.sigma
        if self._upper_tail:
            out = (self._sa - norm.sf(z)) / self.Z
        else:
            out = (norm.cdf(z) - self._fa) / self.Z
        out = np.where(x <= self.lower, 0.0, np.where(x >= self.upper, 1.0, out))
        return out if out.ndim else float(out)

    def quantile(self, p):
        """Inverse CDF through the standardized bounds"""
        p = np.asarray(p, dtype=float)
        if np.any((p < 0) | (p > 1)) or np.any(np.isnan(p)):
            raise ValueError("quantile probabilities must lie in [0, 1]")
        if self._upper_tail:
            z = norm.isf(self._sa - p * self.Z)
        else:
            z = norm.ppf(self._fa + p * self.Z)
        out = self.mu + self.sigma * z
        # Rounding in the far tails can step a hair outside the support
        out = np.minimum(np.maximum(out, self.lower), self.upper)
        return out if out.ndim else float(out)

    def sample(self, rng: np.random.Generator, size=None):
        return self.quantile(rng.random(size))


@dataclass(frozen=True)
class FitResult:
    """
    Outcome of a distribution fit

    converged means the anchors are met: RMS error below the absolute
    tolerance, or below FIT_RELATIVE_TOL of the anchor spread when the fit
    stopped at a least-squares point. least_squares marks the latter stop
    whether or not the residual was small enough.
    """
    dist: BoundedNormal
    error: float
    iterations: int
    converged: bool
    least_squares: bool = False


def _rms_error(dist: BoundedNormal, probs: np.ndarray, targets: np.ndarray) -> float:
    resid = dist.quantile(probs) - targets
    return float(np.sqrt(np.mean(resid ** 2)))


def _half_sse(dist: BoundedNormal, probs: np.ndarray, targets: np.ndarray) -> float:
    resid = dist.quantile(probs) - targets
    return 0.5 * float(resid @ resid)


def fit_from_quantiles(anchors: Sequence[Tuple[float, float]], lower: float, upper: float,
                       mu0: Optional[float] = None, sigma0: Optional[float] = None,
                       max_iter: int = 80, tol: float = 1e-6) -> FitResult:
    """
    Fit (mu, sigma) so the bounded normal's quantiles hit the anchors

    Damped Gauss-Newton on the quantile residuals with a finite-difference
    Jacobian, a small Levenberg term and Armijo backtracking. Returns the best
    parameters found with converged=False rather than raising when the
    anchors cannot be met.

    Args:
        anchors: (probability, value) pairs, at least two
        lower, upper: fixed support
        mu0, sigma0: optional starting point
    """
    if len(anchors) < 2:
        raise ValueError("Need at least two (probability, value) anchors to fit")

    anchors = sorted(anchors)
    probs = np.array([p for p, _ in anchors], dtype=float)
    targets = np.array([x for _, x in anchors], dtype=float)
    if np.any((probs <= 0) | (probs >= 1)):
        raise ValueError("Anchor probabilities must lie strictly inside (0, 1)")

    mu = float(np.mean(targets)) if mu0 is None else float(mu0)
    if sigma0 is None:
        spread = norm.ppf(probs[-1]) - norm.ppf(probs[0])
        sigma0 = (targets[-1] - targets[0]) / spread if spread > 0 else 1.0
    sigma = max(float(sigma0), MIN_SIGMA)
    exact_enough = max(tol, FIT_RELATIVE_TOL * float(targets[-1] - targets[0]))

    dist = BoundedNormal(mu, sigma, lower, upper)
    err = _rms_error(dist, probs, targets)
    c1 = 1e-4
    iterations = 0

    for it in range(max_iter):
        iterations = it + 1
        if err < tol:
            return FitResult(dist, err, iterations, True)

        base = dist.quantile(probs)
        resid = base - targets
        h_mu = max(1e-3, abs(mu) * 1e-3)
        h_sig = max(1e-3, sigma * 1e-3)
        try:
            d_mu = (BoundedNormal(mu + h_mu, sigma, lower, upper).quantile(probs) - base) / h_mu
            d_sig = (BoundedNormal(mu, sigma + h_sig, lower, upper).quantile(probs) - base) / h_sig
        except ValueError:
            break
        J = np.column_stack([d_mu, d_sig])

        JTJ = J.T @ J
        JTr = J.T @ resid
        # over-determined fits stop at the least-squares point, not at zero error
        if float(np.linalg.norm(JTr)) < 1e-4 * max(1.0, abs(targets).max()):
            return FitResult(dist, err, iterations, err < exact_enough, least_squares=True)

        JTJ += 1e-6 * np.trace(JTJ) * np.eye(2)
        if abs(np.linalg.det(JTJ)) < 1e-12:
            break
        step_dir = -np.linalg.solve(JTJ, JTr)
        f0 = 0.5 * float(resid @ resid)
        slope = float(JTr @ step_dir)

        step = 1.0
        improved = False
        for _ in range(20):
            new_mu = mu + step * step_dir[0]
            new_sigma = sigma + step * step_dir[1]
            if new_sigma > 0:
                new_sigma = max(new_sigma, MIN_SIGMA)
                try:
                    trial = BoundedNormal(new_mu, new_sigma, lower, upper)
                except ValueError:
                    trial = None
                if trial is not None and _half_sse(trial, probs, targets) <= f0 + c1 * step * slope:
                    improved = True
                    break
            step *= 0.5

        if not improved:
            return FitResult(dist, err, iterations, err < exact_enough, least_squares=True)
        mu, sigma, dist = new_mu, new_sigma, trial
        err = _rms_error(dist, probs, targets)

    return FitResult(dist, err, iterations, err < tol)


def fit_from_mean(target: float, lower: float, upper: float, cv: float,
                  max_iter: int = 30) -> FitResult:
    """Find (mu, sigma) whose truncated mean matches target for a given CV"""
    mu = target
    sigma = max(abs(target) * cv, 1.0)
    dist = BoundedNormal(mu, sigma, lower, upper)
    for it in range(max_iter):
        iterations = it + 1
        diff = dist.mean() - target
        if abs(diff) < 1e-2:
            return FitResult(dist, abs(diff), it + 1, True)
        # shift mu against the truncation pull
        mu -= 0.8 * diff
        sigma = max(0.1, sigma * (1 - 0.1 * math.copysign(1.0, diff)))
        try:
            dist = BoundedNormal(mu, sigma, lower, upper)
        except ValueError:
            break
    return FitResult(dist, abs(dist.mean() - target), max_iter, False)


def fit_from_moments(target_mean: float, target_sd: float, lower: float, upper: float,
                     max_iter: int = 100, tol: float = 1e-3) -> FitResult:
    """
    Find (mu, sigma) whose truncated mean and sd match the targets

    Alternates a Newton step on mu for the mean with rescaling sigma by the sd
    ratio. A one-sided truncation cannot carry an sd above the distance from
    its mean to the bound, so the sd target is capped at MAX_SD_FRACTION of it.
    """
    if not lower < target_mean < upper:
        raise ValueError(f"Target mean {target_mean} must lie inside ({lower}, {upper})")
    room = min(target_mean - lower, upper - target_mean)
    target_sd = min(max(target_sd, MIN_SIGMA), MAX_SD_FRACTION * room)

    mu, sigma = target_mean, target_sd
    dist = BoundedNormal(mu, sigma, lower, upper)
    err = math.inf
    for it in range(max_iter):
        err = max(abs(dist.mean() - target_mean), abs(dist.sd() - target_sd))
        if err < tol:
            return FitResult(dist, err, it + 1, True)
        # d(mean)/d(mu) = variance / sigma^2 for a truncated normal
        gain = min(sigma ** 2 / max(dist.variance(), 1e-12), 10.0)
        mu -= gain * (dist.mean() - target_mean)
        if dist.sd() > 0:
            sigma = max(MIN_SIGMA, sigma * target_sd / dist.sd())
        try:
            dist = BoundedNormal(mu, sigma, lower, upper)
        except ValueError:
            break
    return FitResult(dist, err, max_iter, False)


def adjust_for_injury(score: PlayerScore) -> PlayerScore:
    """
    Fold the chance of not playing into a player's distribution

    An inactive player scores uniform on [0, INACTIVE_CEILING]. The two-part
    mixture's mean and variance are matched by a bounded normal on the
    player's support. Healthy players come back unchanged; players with no
    chance to play get a near-zero distribution.
    """
    p_active = PLAY_PROBABILITY.get(score.player.status, 1.0)
    if p_active >= 1.0:
        return score
    if p_active <= 0.0:
        return replace(score, dist=BoundedNormal(0.1, 0.1, 0.0, 1.0))

    active_mean, active_var = score.mean, score.dist.variance()
    idle_mean, idle_second = INACTIVE_CEILING / 2, INACTIVE_CEILING ** 2 / 3
    mean = p_active * active_mean + (1 - p_active) * idle_mean
    second = p_active * (active_var + active_mean ** 2) + (1 - p_active) * idle_second
    sd = math.sqrt(max(second - mean ** 2, 0.0))

    fit = fit_from_moments(mean, sd, score.lower, score.upper)
    if not fit.converged:
        logging.warning(f"Injury adjustment for {score.player.name} did not converge "
                        f"(error={fit.error:.4f})")
    logging.debug(f"{score.player.name} ({score.player.status}): mean {active_mean:.1f} -> "
                  f"{fit.dist.mean():.1f}")
    return replace(score, dist=fit.dist)


def build_player_score(player: PlayerInfo, game: GameInfo,
                       p10: Optional[float] = None, p50: Optional[float] = None,
                       p90: Optional[float] = None, mean: Optional[float] = None,
                       cv: Optional[float] = None, lower: Optional[float] = None,
                       upper: Optional[float] = None) -> PlayerScore:
    """
    Attach a bounded distribution to a player

    Prefers three quantiles, then floor/ceiling, then a mean with the
    position's CV. Non-converged fits are kept and logged.
    """
    pos = player.position
    a = POSITION_BOUNDS[pos][0] if lower is None else lower
    b = POSITION_BOUNDS[pos][1] if upper is None else upper

    if p10 is not None and p90 is not None:
        anchors = [(0.10, p10), (0.90, p90)]
        if p50 is not None:
            anchors.insert(1, (0.50, p50))
        fit = fit_from_quantiles(anchors, a, b)
    else:
        target = mean if mean is not None else p50
        if target is None:
            raise ValueError(f"No projection supplied for {player.name}")
        fit = fit_from_mean(target, a, b, POSITION_CV[pos] if cv is None else cv)

    if not fit.converged:
        logging.warning(f"Distribution fit for {player.name} did not converge "
                        f"(error={fit.error:.4f} after {fit.iterations} iterations)")
    return PlayerScore(player=player, game=game, dist=fit.dist)
