"""
End-to-end tests for the lineup optimizer pipeline
"""

import os
import random
import sys
from datetime import datetime, timezone

import pandas as pd
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import BEST_BY_MEAN, make_player
from lineup_optimizer import quick_optimize
from lineup_optimizer.config import OptimizerConfig
from lineup_optimizer.models import ESPN_PPR_2025, InfeasibleRosterError
from lineup_optimizer.opponent import LeagueAverageOpponent, RosterOpponent
from lineup_optimizer.optimizer import LineupOptimizer
from lineup_optimizer.oracle import enumerate_feasible_lineups, oracle_best_lineup


@pytest.fixture
def fast_config():
    return OptimizerConfig(max_mc_candidates=10, target_se=0.01, min_sims=1000, max_sims=4000)


class TestScenario:
    """15-player roster against a league-average opponent"""

    def test_full_lineup_returned(self, roster):
        """Test complete lineup with increasing margin ladder"""
        opponent = LeagueAverageOpponent(115.0, 25.0)
        best = LineupOptimizer().optimize(roster, opponent, ESPN_PPR_2025)

        assert len(best.starters) == ESPN_PPR_2025.total_starters
        assert ESPN_PPR_2025.is_satisfied_by([p.position for p in best.starters])
        assert len(best.bench) == len(roster) - ESPN_PPR_2025.total_starters
        assert 0.0 < best.win_probability < 1.0

        ladder = [best.result.percentiles[k] for k in ('p5', 'p25', 'p50', 'p75', 'p95')]
        assert all(a < b for a, b in zip(ladder, ladder[1:]))

    def test_picks_best_by_mean_lineup(self, roster):
        """Test clear favourite lineup is selected"""
        best = LineupOptimizer().optimize(roster, LeagueAverageOpponent())
        assert best.starter_ids == BEST_BY_MEAN

    def test_diagnostics(self, roster, fast_config):
        """Test diagnostics and ranking contents"""
        best = LineupOptimizer(fast_config).optimize(roster, LeagueAverageOpponent())
        diag = best.diagnostics
        assert diag.mc_win_probability == best.win_probability
        assert 0.0 < diag.analytic_win_probability < 1.0
        assert diag.opponent_mean == 115.0
        assert diag.opponent_var == 625.0
        assert diag.candidates_evaluated <= fast_config.max_mc_candidates
        assert diag.candidates_evaluated <= diag.candidates_screened == diag.candidates_generated
        assert diag.n_sims == best.result.n_sims
        assert len(best.ranking) == diag.candidates_evaluated
        assert best.ranking[0][0] == best.starter_ids

    def test_starters_in_slot_order(self, roster, fast_config):
        """Test starters listed QB first, DST last"""
        best = LineupOptimizer(fast_config).optimize(roster, LeagueAverageOpponent())
        assert best.starters[0].position == 'QB'
        assert best.starters[-1].position == 'DST'


class TestDeterminism:
    """Order invariance and idempotence"""

    def test_roster_order_invariance(self, roster, fast_config):
        """Test shuffled roster gives the same lineup"""
        shuffled = list(roster)
        random.Random(11).shuffle(shuffled)
        opponent = LeagueAverageOpponent()
        a = LineupOptimizer(fast_config).optimize(roster, opponent)
        b = LineupOptimizer(fast_config).optimize(shuffled, opponent)
        assert a.starter_ids == b.starter_ids
        assert abs(a.win_probability - b.win_probability) < 0.02

    def test_idempotent_with_same_seed(self, roster, fast_config):
        """Test identical results on rerun"""
        opponent = LeagueAverageOpponent()
        a = LineupOptimizer(fast_config).optimize(roster, opponent)
        b = LineupOptimizer(fast_config).optimize(roster, opponent)
        assert a.result == b.result
        assert a.diagnostics == b.diagnostics

    def test_without_common_random_numbers(self, roster):
        """Test determinism with lineup-specific seeds"""
        config = OptimizerConfig(max_mc_candidates=5, max_sims=3000, common_random_numbers=False)
        a = LineupOptimizer(config).optimize(roster, LeagueAverageOpponent())
        b = LineupOptimizer(config).optimize(roster, LeagueAverageOpponent())
        assert a.result == b.result


class TestInputHandling:
    """Infeasible rosters and health status"""

    def test_missing_position_fails_fast(self, roster):
        """Test missing TE raises with shortages"""
        no_te = [p for p in roster if p.position != 'TE']
        with pytest.raises(InfeasibleRosterError) as exc_info:
            LineupOptimizer().optimize(no_te, LeagueAverageOpponent())
        assert exc_info.value.shortages == {'TE': 1}

    def test_missing_flex_depth(self, roster):
        """Test missing FLEX depth raises"""
        keep = BEST_BY_MEAN - {'wr3'}
        with pytest.raises(InfeasibleRosterError) as exc_info:
            LineupOptimizer().optimize([p for p in roster if p.id in keep], LeagueAverageOpponent())
        assert exc_info.value.shortages == {'FLEX': 1}

    def test_injured_players_benched(self, roster, fast_config):
        """Test OUT players go to the bench"""
        roster = [p for p in roster if p.id != 'qb1']
        roster.append(make_player('qb1', 'QB', 'KC', 22.0, 5.0, status='OUT'))
        best = LineupOptimizer(fast_config).optimize(roster, LeagueAverageOpponent())
        assert 'qb1' not in best.starter_ids
        assert 'qb2' in best.starter_ids
        assert 'qb1' in {p.id for p in best.bench}

    def test_all_qbs_out(self, roster):
        """Test no available QB raises"""
        roster = [p for p in roster if p.position != 'QB']
        roster.append(make_player('qb9', 'QB', 'KC', 22.0, 5.0, status='IR'))
        with pytest.raises(InfeasibleRosterError):
            LineupOptimizer().optimize(roster, LeagueAverageOpponent())

    def test_roster_opponent_uses_joint_simulation(self, roster, opponent_roster, fast_config):
        """Test known opponent roster is simulated jointly"""
        opponent = RosterOpponent(opponent_roster[:9])
        best = LineupOptimizer(fast_config).optimize(roster, opponent)
        assert best.result.joint
        assert len(best.starters) == 9

    def test_quick_optimize_from_dataframe(self):
        """Test one-call wrapper on a projections frame"""
        rows = []
        for pid, pos, team, mean in [
            ('a', 'QB', 'KC', 21), ('b', 'RB', 'BUF', 16), ('c', 'RB', 'KC', 12),
            ('d', 'WR', 'BUF', 15), ('e', 'WR', 'KC', 14), ('f', 'WR', 'BUF', 9),
            ('g', 'TE', 'KC', 8), ('h', 'K', 'BUF', 8), ('i', 'DEF', 'KC', 6),
        ]:
            rows.append({'id': pid, 'name': pid.upper(), 'team': team, 'position': pos,
                         'game_id': 'G1', 'home_team': 'BUF', 'away_team': 'KC', 'mean': mean})
        best = quick_optimize(pd.DataFrame(rows), max_sims=2000, max_mc_candidates=3)
        assert best.starter_ids == frozenset('abcdefghi')


class TestOracleAgreement:
    """DP + MC recovers the exhaustive best"""

    def test_feasible_enumeration_count(self, roster):
        """Test number of feasible lineups"""
        # 2 QBs x (RB,WR,TE) splits 2-2-2 (60) + 2-3-1 (120) + 3-2-1 (80)
        lineups = list(enumerate_feasible_lineups(roster, ESPN_PPR_2025))
        assert len(lineups) == 520
        assert all(len(l) == 9 for l in lineups)

    def test_oracle_rejects_large_roster(self, roster):
        """Test enumeration size guard"""
        extra = [make_player(f'x{i}', 'WR', 'SEA', 3.0, 1.0) for i in range(6)]
        with pytest.raises(ValueError):
            list(enumerate_feasible_lineups(roster + extra, ESPN_PPR_2025))

    def test_matches_oracle(self, roster):
        """Test pipeline agrees with exhaustive search"""
        config = OptimizerConfig(target_se=0.0, min_sims=2000, max_sims=2000, max_mc_candidates=25)
        optimizer = LineupOptimizer(config)
        opponent = LeagueAverageOpponent(115.0, 25.0)

        best = optimizer.optimize(roster, opponent)
        oracle = oracle_best_lineup(roster, opponent, ESPN_PPR_2025, estimator=optimizer.estimator)

        assert oracle.lineups_evaluated == 520
        oracle_ids = frozenset(p.id for p in oracle.lineup)
        assert oracle_ids == best.starter_ids or \
            abs(oracle.result.win_probability - best.win_probability) < 0.01


class TestInjuryRisk:
    """Health designations priced into projections"""

    def test_doubtful_starter_loses_slot(self, roster, fast_config):
        """Test a DOUBTFUL QB sits behind a healthy backup"""
        roster = [p for p in roster if p.id != 'qb1']
        roster.append(make_player('qb1', 'QB', 'KC', 22.0, 5.0, status='DOUBTFUL'))
        best = LineupOptimizer(fast_config).optimize(roster, LeagueAverageOpponent())
        assert 'qb2' in best.starter_ids
        assert 'qb1' not in best.starter_ids
        assert 'qb1' in {p.id for p in best.bench}

    def test_adjustment_can_be_disabled(self, roster):
        """Test injury_adjustment=False simulates the designation as healthy"""
        roster = [p for p in roster if p.id != 'qb1']
        roster.append(make_player('qb1', 'QB', 'KC', 22.0, 5.0, status='DOUBTFUL'))
        config = OptimizerConfig(max_mc_candidates=10, max_sims=3000, injury_adjustment=False)
        best = LineupOptimizer(config).optimize(roster, LeagueAverageOpponent())
        assert 'qb1' in best.starter_ids

    def test_questionable_starter_projection_lowered(self, roster):
        """Test eligible players carry the adjusted mean"""
        roster = [p for p in roster if p.id != 'wr1']
        roster.append(make_player('wr1', 'WR', 'KC', 17.0, 5.0, status='QUESTIONABLE'))
        eligible = {p.id: p for p in LineupOptimizer().eligible_players(roster)}
        assert eligible['wr1'].mean < 17.0
        assert eligible['wr2'].mean == pytest.approx(next(p.mean for p in roster if p.id == 'wr2'))


class TestLineupLocks:
    """Locked, excluded and kicked-off players"""

    def test_locked_player_starts(self, roster, fast_config):
        """Test a locked bench player is forced into the lineup"""
        best = LineupOptimizer(fast_config).optimize(roster, LeagueAverageOpponent(), locked={'wr4'})
        assert 'wr4' in best.starter_ids
        assert ESPN_PPR_2025.is_satisfied_by([p.position for p in best.starters])

    def test_excluded_player_sits(self, roster, fast_config):
        """Test an excluded starter is replaced"""
        best = LineupOptimizer(fast_config).optimize(roster, LeagueAverageOpponent(), excluded={'qb1'})
        assert 'qb1' not in best.starter_ids
        assert 'qb2' in best.starter_ids
        assert 'qb1' in {p.id for p in best.bench}

    def test_kicked_off_players_only_start_when_locked(self, roster, fast_config):
        """Test players in a started game are frozen out unless locked"""
        now = datetime(2025, 9, 7, 18, 0, tzinfo=timezone.utc)  # G1 (BUF/KC) under way
        best = LineupOptimizer(fast_config).optimize(
            roster, LeagueAverageOpponent(), locked={'qb1', 'k1'}, now_utc=now)
        assert {'qb1', 'k1'} <= best.starter_ids
        assert not best.starter_ids & {'rb1', 'wr1', 'wr3', 'te2'}

    def test_kicked_off_without_lock_is_infeasible(self, roster):
        """Test losing the only kicker to a started game fails fast"""
        now = datetime(2025, 9, 7, 18, 0, tzinfo=timezone.utc)
        with pytest.raises(InfeasibleRosterError) as exc_info:
            LineupOptimizer().optimize(roster, LeagueAverageOpponent(), now_utc=now)
        assert exc_info.value.shortages['K'] == 1

    def test_bye_team_skipped(self, roster, fast_config):
        """Test players on a bye team never start"""
        best = LineupOptimizer(fast_config).optimize(roster, LeagueAverageOpponent(), bye_teams={'KC'})
        assert not best.starter_ids & {'qb1', 'wr1', 'te2'}

    def test_conflicting_locks(self, roster):
        """Test two locked QBs cannot both start"""
        with pytest.raises(InfeasibleRosterError):
            LineupOptimizer().optimize(roster, LeagueAverageOpponent(), locked={'qb1', 'qb2'})

    def test_lock_and_exclude_same_player(self, roster):
        """Test contradictory lock and exclusion rejected"""
        with pytest.raises(ValueError):
            LineupOptimizer().optimize(roster, LeagueAverageOpponent(), locked={'qb1'}, excluded={'qb1'})
