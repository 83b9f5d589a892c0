"""
Exhaustive lineup oracle (development and testing only)

Enumerates every feasible lineup of a small roster and simulates each one
independently, giving the true best lineup to check the DP + Monte Carlo
pipeline against.
"""

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Iterator, Optional, Sequence, Tuple

from .models import ESPN_PPR_2025, PlayerScore, RosterRequirement, SimulationResult
from .win_probability import MonteCarloEstimator

MAX_ORACLE_ROSTER = 20


@dataclass(frozen=True)
class OracleResult:
    lineup: Tuple[PlayerScore, ...]
    result: SimulationResult
    lineups_evaluated: int


def is_feasible_lineup(players: Sequence[PlayerScore], requirement: RosterRequirement) -> bool:
    if len({p.id for p in players}) != len(players):
        return False
    return requirement.is_satisfied_by([p.position for p in players])


def enumerate_feasible_lineups(roster: Sequence[PlayerScore],
                               requirement: RosterRequirement = ESPN_PPR_2025
                               ) -> Iterator[Tuple[PlayerScore, ...]]:
    """Every feasible starter set, in id-sorted combination order"""
    if len(roster) > MAX_ORACLE_ROSTER:
        raise ValueError(f"Oracle enumeration limited to {MAX_ORACLE_ROSTER} players, got {len(roster)}")
    players = sorted((p for p in roster if p.available), key=lambda p: p.id)
    for combo in combinations(players, requirement.total_starters):
        if is_feasible_lineup(combo, requirement):
            yield combo


def oracle_best_lineup(roster: Sequence[PlayerScore], opponent,
                       requirement: RosterRequirement = ESPN_PPR_2025,
                       estimator: Optional[MonteCarloEstimator] = None) -> OracleResult:
    """Simulate every feasible lineup and return the highest win probability"""
    estimator = estimator or MonteCarloEstimator()
    best = None
    count = 0
    for lineup in enumerate_feasible_lineups(roster, requirement):
        result = estimator.evaluate(lineup, opponent)
        count += 1
        if best is None or result.win_probability > best[1].win_probability:
            best = (lineup, result)

    if best is None:
        raise ValueError("Roster has no feasible lineup")
    logging.info(f"Oracle evaluated {count} lineups, best P(win)={best[1].win_probability:.4f}")
    return OracleResult(lineup=best[0], result=best[1], lineups_evaluated=count)
