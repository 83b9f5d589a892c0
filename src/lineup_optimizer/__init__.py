"""Weekly Lineup Optimizer - maximize probability of beating this week's opponent"""

from .models import (ESPN_PPR_2025, FLEX_POSITIONS, POSITIONS, Candidate, GameInfo,
                     InfeasibleRosterError, LineupState, OptimizationDiagnostics, OptimizedLineup,
                     PlayerInfo, PlayerScore, RosterRequirement, SimulationResult,
                     roster_from_dataframe)
from .distribution import (BoundedNormal, FitResult, adjust_for_injury, build_player_score,
                           fit_from_moments, fit_from_quantiles)
from .eligibility import filter_eligible, is_locked, validate_lineup
from .correlation import (CorrelationSettings, FactorModel, build_factor_model,
                          build_joint_factor_model, correlation_matrix, nearest_psd,
                          validate_correlation_matrix)
from .sampling import CopulaSampler
from .candidates import KBestDP
from .opponent import (LeagueAverageOpponent, MixtureOpponent, RosterOpponent,
                       league_opponent_stats, opponent_from_roster, opponent_with_uncertainty)
from .win_probability import MonteCarloEstimator, analytic_win_probability
from .optimizer import LineupOptimizer
from .oracle import oracle_best_lineup
from .config import OptimizerConfig, load_optimizer_config, setup_logging

# Export public API including wrapper functions
__all__ = [
    'PlayerInfo', 'GameInfo', 'PlayerScore', 'RosterRequirement', 'LineupState', 'Candidate',
    'SimulationResult', 'OptimizationDiagnostics', 'OptimizedLineup', 'InfeasibleRosterError',
    'ESPN_PPR_2025', 'POSITIONS', 'FLEX_POSITIONS', 'roster_from_dataframe',
    'BoundedNormal', 'FitResult', 'fit_from_quantiles', 'fit_from_moments', 'build_player_score',
    'adjust_for_injury', 'filter_eligible', 'is_locked', 'validate_lineup',
    'CorrelationSettings', 'FactorModel', 'build_factor_model', 'build_joint_factor_model',
    'correlation_matrix', 'nearest_psd', 'validate_correlation_matrix',
    'CopulaSampler', 'KBestDP',
    'LeagueAverageOpponent', 'RosterOpponent', 'MixtureOpponent', 'league_opponent_stats',
    'opponent_from_roster', 'opponent_with_uncertainty',
    'MonteCarloEstimator', 'analytic_win_probability', 'LineupOptimizer', 'oracle_best_lineup',
    'OptimizerConfig', 'load_optimizer_config', 'setup_logging', 'quick_optimize',
]


def quick_optimize(roster, opponent=None, requirement=ESPN_PPR_2025, **config_overrides):
    """
    One-call lineup optimization with sensible defaults

    Args:
        roster: list of PlayerScore, or a projections DataFrame
        opponent: opponent model; league average (115 +/- 25) if omitted
        requirement: lineup format
        **config_overrides: any OptimizerConfig field
    """
    if hasattr(roster, 'iterrows'):
        roster = roster_from_dataframe(roster)
    if opponent is None:
        opponent = LeagueAverageOpponent()
    config = OptimizerConfig(**config_overrides)
    return LineupOptimizer(config).optimize(roster, opponent, requirement)
