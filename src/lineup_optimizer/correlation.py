"""
Latent factor correlation model

Each team present contributes a pass factor and a rush factor, each game a
pace factor. Players load on those factors with a norm fixed by position, so
the implied matrix L L^T + D is a valid correlation matrix without repair.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .models import PlayerScore

# Fraction of each position's variance explained by shared factors
DEFAULT_EXPLAINED = {
    'QB': 0.35,
    'WR': 0.30,
    'TE': 0.25,
    'RB': 0.20,
    'K': 0.15,
    'DST': 0.10,
}

# (pass, rush, pace, team boost)
DEFAULT_WEIGHTS = {
    'QB': (0.85, 0.05, 0.25, 1.10),
    'WR': (0.80, 0.05, 0.20, 1.10),
    'TE': (0.70, 0.10, 0.20, 1.05),
    'RB': (0.35, 0.65, 0.15, 1.00),
    'K': (0.25, 0.25, 0.50, 1.00),
    'DST': (-0.25, -0.20, 0.10, 1.00),
}

MAX_BASE_FRACTION = 0.95


@dataclass
class CorrelationSettings:
    """
    Tunables for the factor model

    qb_opposing_dst and same_team_wr are pairwise heuristics applied on top of
    the factor structure. Historical values are -0.30 and -0.10; they are off
    by default so the common path stays PSD by construction.
    """
    explained: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_EXPLAINED))
    weights: Dict[str, Tuple[float, float, float, float]] = field(
        default_factory=lambda: dict(DEFAULT_WEIGHTS))
    max_explained: float = 0.98
    dst_loads_on_opponent: bool = True
    qb_opposing_dst: float = 0.0
    same_team_wr: float = 0.0

    def __post_init__(self):
        if not 0.0 < self.max_explained < 1.0:
            raise ValueError(f"max_explained must be in (0, 1), got {self.max_explained}")
        for pos, frac in self.explained.items():
            if frac < 0:
                raise ValueError(f"Explained fraction for {pos} must be non-negative")
        for pos, w in self.weights.items():
            if len(w) != 4:
                raise ValueError(f"Weights for {pos} need (pass, rush, pace, boost)")
            if not any(w[:3]):
                raise ValueError(f"Weights for {pos} cannot all be zero")
        for name in ('qb_opposing_dst', 'same_team_wr'):
            value = getattr(self, name)
            if not -1.0 < value < 1.0:
                raise ValueError(f"{name} must be in (-1, 1), got {value}")

    @property
    def has_pairwise_adjustments(self) -> bool:
        return self.qb_opposing_dst != 0.0 or self.same_team_wr != 0.0

    def target_fraction(self, position: str) -> float:
        """Squared loading norm for a position after the team boost and cap"""
        f = min(max(self.explained.get(position, 0.0), 0.0), MAX_BASE_FRACTION)
        boost = self.weights[position][3]
        return min(self.max_explained, f * boost)


@dataclass(frozen=True)
class FactorModel:
    """Loadings (players x factors) and residual variances for one scope"""
    players: Tuple[PlayerScore, ...]
    factor_names: Tuple[str, ...]
    loadings: np.ndarray
    residual_var: np.ndarray

    @property
    def n_players(self) -> int:
        return len(self.players)

    @property
    def n_factors(self) -> int:
        return len(self.factor_names)

    def explained(self) -> np.ndarray:
        """Squared loading norm per player"""
        return np.sum(self.loadings ** 2, axis=1)


def _loading_team(player: PlayerScore, settings: CorrelationSettings) -> str:
    if player.position == 'DST' and settings.dst_loads_on_opponent:
        opp = player.game.opponent_of(player.team)
        if opp is not None:
            return opp
    return player.team


def _factor_index(players: Sequence[PlayerScore],
                  settings: CorrelationSettings) -> Dict[str, int]:
    teams = sorted({_loading_team(p, settings) for p in players})
    games = sorted({p.game.game_id for p in players})
    names = []
    for team in teams:
        names.extend([f"pass:{team}", f"rush:{team}"])
    names.extend(f"pace:{game}" for game in games)
    return {name: i for i, name in enumerate(names)}


def build_factor_model(players: Sequence[PlayerScore],
                       settings: Optional[CorrelationSettings] = None) -> FactorModel:
    """Factor loadings for a set of players, in the order given"""
    settings = settings or CorrelationSettings()
    index = _factor_index(players, settings)
    loadings = np.zeros((len(players), len(index)))

    for i, p in enumerate(players):
        w_pass, w_rush, w_pace, _ = settings.weights[p.position]
        raw = np.array([w_pass, w_rush, w_pace])
        scale = np.sqrt(settings.target_fraction(p.position)) / np.linalg.norm(raw)
        team = _loading_team(p, settings)
        loadings[i, index[f"pass:{team}"]] = w_pass * scale
        loadings[i, index[f"rush:{team}"]] = w_rush * scale
        loadings[i, index[f"pace:{p.game.game_id}"]] = w_pace * scale

    residual = 1.0 - np.sum(loadings ** 2, axis=1)
    return FactorModel(
        players=tuple(players),
        factor_names=tuple(index),
        loadings=loadings,
        residual_var=np.clip(residual, 0.0, 1.0),
    )


def build_joint_factor_model(lineup: Sequence[PlayerScore], opponent: Sequence[PlayerScore],
                             cross_correlation: float = 0.15,
                             settings: Optional[CorrelationSettings] = None) -> FactorModel:
    """
    One factor space over both lineups plus a shared cross-lineup factor

    Players of both sides sharing a team or game share those factors. Every
    player also loads sqrt(cross_correlation) on a common factor; where that
    would push the squared norm past the ceiling the team/game loadings are
    scaled down to make room.
    """
    settings = settings or CorrelationSettings()
    if not 0.0 <= cross_correlation < settings.max_explained:
        raise ValueError(
            f"cross_correlation must be in [0, {settings.max_explained}), got {cross_correlation}")

    base = build_factor_model(list(lineup) + list(opponent), settings)
    loadings = base.loadings.copy()
    room = settings.max_explained - cross_correlation
    explained = base.explained()
    for i, f in enumerate(explained):
        if f > room:
            loadings[i] *= np.sqrt(room / f)

    cross = np.full((len(base.players), 1), np.sqrt(cross_correlation))
    loadings = np.hstack([loadings, cross])
    residual = 1.0 - np.sum(loadings ** 2, axis=1)
    return FactorModel(
        players=base.players,
        factor_names=base.factor_names + ('cross',),
        loadings=loadings,
        residual_var=np.clip(residual, 0.0, 1.0),
    )


def correlation_matrix(model: FactorModel) -> np.ndarray:
    """L L^T + diag(D)"""
    corr = model.loadings @ model.loadings.T + np.diag(model.residual_var)
    return (corr + corr.T) / 2


def apply_pairwise_adjustments(corr: np.ndarray, players: Sequence[PlayerScore],
                               settings: CorrelationSettings) -> Tuple[np.ndarray, int]:
    """
    Add the QB/opposing-DST and same-team WR heuristics to a matrix

    Returns the adjusted copy and the number of pairs touched.
    """
    adjusted = np.array(corr, dtype=float, copy=True)
    touched = 0
    for i, a in enumerate(players):
        for j in range(i + 1, len(players)):
            b = players[j]
            delta = 0.0
            positions = {a.position, b.position}
            if positions == {'QB', 'DST'}:
                qb, dst = (a, b) if a.position == 'QB' else (b, a)
                if dst.game.opponent_of(dst.team) == qb.team:
                    delta = settings.qb_opposing_dst
            elif a.position == b.position == 'WR' and a.team == b.team:
                delta = settings.same_team_wr
            if delta:
                value = float(np.clip(adjusted[i, j] + delta, -0.99, 0.99))
                adjusted[i, j] = adjusted[j, i] = value
                touched += 1
    return adjusted, touched


def is_psd(matrix: np.ndarray, tol: float = 1e-9) -> bool:
    return bool(np.linalg.eigvalsh((matrix + matrix.T) / 2).min() >= -tol)


def nearest_psd(matrix: np.ndarray, max_iter: int = 100, tol: float = 1e-9) -> np.ndarray:
    """
    Nearest correlation matrix by alternating projections (Higham 2002)

    Alternates between the PSD cone and the unit-diagonal set with Dykstra's
    correction until the iterate stops moving.
    """
    y = (np.asarray(matrix, dtype=float) + np.asarray(matrix, dtype=float).T) / 2
    correction = np.zeros_like(y)
    x = y.copy()
    for _ in range(max_iter):
        r = y - correction
        w, v = np.linalg.eigh(r)
        x = (v * np.maximum(w, 0.0)) @ v.T
        correction = x - r
        y_next = x.copy()
        np.fill_diagonal(y_next, 1.0)
        delta = np.linalg.norm(y_next - y, 'fro') / max(np.linalg.norm(y, 'fro'), 1e-12)
        y = y_next
        if delta < tol:
            break

    # Final clean-up so tiny negative eigenvalues from rounding disappear
    w, v = np.linalg.eigh((y + y.T) / 2)
    y = (v * np.maximum(w, 1e-10)) @ v.T
    d = np.sqrt(np.diag(y))
    y = y / np.outer(d, d)
    np.fill_diagonal(y, 1.0)
    return (y + y.T) / 2


def validate_correlation_matrix(matrix: np.ndarray, repair: bool = False,
                                tol: float = 1e-8) -> Tuple[np.ndarray, List[str]]:
    """
    Check symmetry, unit diagonal, bounds and PSD

    Returns (matrix, issues). With repair=True a matrix failing any check is
    replaced by its nearest valid correlation matrix; issues still lists what
    was wrong with the input.
    """
    m = np.asarray(matrix, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        raise ValueError(f"Correlation matrix must be square, got shape {m.shape}")

    issues = []
    if not np.allclose(m, m.T, atol=tol):
        issues.append("not symmetric")
    if not np.allclose(np.diag(m), 1.0, atol=tol):
        issues.append("diagonal is not 1")
    if np.any(np.abs(m) > 1.0 + tol):
        issues.append("entries outside [-1, 1]")
    if not is_psd(m):
        issues.append("not positive semi-definite")

    if issues and repair:
        logging.warning(f"Repairing correlation matrix ({', '.join(issues)})")
        m = nearest_psd(m)
    return m, issues


def symmetric_sqrt(matrix: np.ndarray) -> np.ndarray:
    """Square root S with S S^T = matrix, for a PSD matrix"""
    w, v = np.linalg.eigh((matrix + matrix.T) / 2)
    return (v * np.sqrt(np.maximum(w, 0.0))) @ v.T


def lineup_moments(players: Sequence[PlayerScore],
                   settings: Optional[CorrelationSettings] = None) -> Tuple[float, float]:
    """Mean and factor-correlated variance of a lineup total"""
    if not players:
        return 0.0, 0.0
    model = build_factor_model(players, settings)
    corr = correlation_matrix(model)
    sd = np.array([p.sd for p in players])
    mean = float(sum(p.mean for p in players))
    return mean, float(sd @ corr @ sd)
