#!/usr/bin/env python3
"""
Example: pick this week's starters against a known opponent roster

Builds both rosters from projection frames, loads the optimizer config and
compares three opponent views: league average, the opponent's most likely
lineup simulated jointly with ours, and a mixture over their top lineups.
"""

import os
import sys

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lineup_optimizer import (LeagueAverageOpponent, LineupOptimizer, load_optimizer_config,
                              opponent_from_roster, opponent_with_uncertainty, roster_from_dataframe,
                              setup_logging)

GAMES = {
    'KC@BUF': ('BUF', 'KC'),
    'DAL@PHI': ('PHI', 'DAL'),
    'SEA@SF': ('SF', 'SEA'),
}


def _frame(rows):
    records = []
    for pid, name, pos, team, game, p10, p50, p90 in rows:
        home, away = GAMES[game]
        records.append({
            'id': pid, 'name': name, 'position': pos, 'team': team, 'game_id': game,
            'home_team': home, 'away_team': away, 'p10': p10, 'p50': p50, 'p90': p90,
        })
    return pd.DataFrame(records)


MY_ROSTER = _frame([
    ('m1', 'Mahomes', 'QB', 'KC', 'KC@BUF', 14, 22, 31),
    ('m2', 'Prescott', 'QB', 'DAL', 'DAL@PHI', 10, 17, 25),
    ('m3', 'Cook', 'RB', 'BUF', 'KC@BUF', 8, 15, 24),
    ('m4', 'Barkley', 'RB', 'PHI', 'DAL@PHI', 9, 17, 27),
    ('m5', 'McCaffrey', 'RB', 'SF', 'SEA@SF', 8, 16, 26),
    ('m6', 'Walker', 'RB', 'SEA', 'SEA@SF', 4, 10, 17),
    ('m7', 'Lamb', 'WR', 'DAL', 'DAL@PHI', 8, 16, 26),
    ('m8', 'Rice', 'WR', 'KC', 'KC@BUF', 6, 13, 21),
    ('m9', 'Smith-Njigba', 'WR', 'SEA', 'SEA@SF', 5, 12, 20),
    ('m10', 'Aiyuk', 'WR', 'SF', 'SEA@SF', 4, 10, 18),
    ('m11', 'Kelce', 'TE', 'KC', 'KC@BUF', 4, 10, 16),
    ('m12', 'Goedert', 'TE', 'PHI', 'DAL@PHI', 3, 8, 14),
    ('m13', 'Bass', 'K', 'BUF', 'KC@BUF', 4, 8, 13),
    ('m14', 'Eagles D/ST', 'DST', 'PHI', 'DAL@PHI', 1, 7, 14),
])

OPPONENT_ROSTER = _frame([
    ('o1', 'Allen', 'QB', 'BUF', 'KC@BUF', 15, 23, 32),
    ('o2', 'Hurts', 'QB', 'PHI', 'DAL@PHI', 13, 21, 30),
    ('o3', 'Pacheco', 'RB', 'KC', 'KC@BUF', 5, 11, 18),
    ('o4', 'Pollard', 'RB', 'DAL', 'DAL@PHI', 5, 11, 18),
    ('o5', 'Mason', 'RB', 'SF', 'SEA@SF', 3, 8, 14),
    ('o6', 'Brown', 'WR', 'PHI', 'DAL@PHI', 7, 15, 25),
    ('o7', 'Metcalf', 'WR', 'SEA', 'SEA@SF', 5, 12, 21),
    ('o8', 'Deebo', 'WR', 'SF', 'SEA@SF', 5, 11, 19),
    ('o9', 'Kincaid', 'TE', 'BUF', 'KC@BUF', 3, 8, 14),
    ('o10', 'Butker', 'K', 'KC', 'KC@BUF', 4, 9, 14),
    ('o11', 'Cowboys D/ST', 'DST', 'DAL', 'DAL@PHI', 1, 6, 13),
])


def _print_lineup(title, best):
    print(f"\n{title}")
    print("-" * len(title))
    for p in best.starters:
        print(f"  {p.position:<4} {p.player.name:<15} mean {p.mean:5.1f}  sd {p.sd:4.1f}")
    r = best.result
    d = best.diagnostics
    print(f"  P(win) {r.win_probability:.3f} +/- {r.std_error:.3f} ({r.n_sims} sims, joint={r.joint})")
    print(f"  analytic screen {d.analytic_win_probability:.3f}, "
          f"{d.candidates_evaluated}/{d.candidates_generated} candidates simulated")
    print("  margin ladder: " + ", ".join(f"{k}={v:+.1f}" for k, v in r.percentiles.items()))


def main():
    setup_logging()
    config = load_optimizer_config()
    optimizer = LineupOptimizer(config)

    mine = roster_from_dataframe(MY_ROSTER)
    theirs = roster_from_dataframe(OPPONENT_ROSTER)

    _print_lineup("vs league average", optimizer.optimize(mine, LeagueAverageOpponent.for_league('PPR', 12)))
    _print_lineup("vs opponent's projected starters (joint)", optimizer.optimize(mine, opponent_from_roster(theirs)))
    _print_lineup("vs opponent's likely lineups", optimizer.optimize(mine, opponent_with_uncertainty(theirs)))


if __name__ == "__main__":
    main()
