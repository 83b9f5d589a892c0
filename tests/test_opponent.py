"""
Tests for opponent scoring models
"""

import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lineup_optimizer.models import ESPN_PPR_2025
from lineup_optimizer.opponent import (LeagueAverageOpponent, MixtureOpponent, RosterOpponent,
                                       league_opponent_stats, opponent_from_roster,
                                       opponent_with_uncertainty)


class TestLeagueStats:
    """League-average baselines"""

    @pytest.mark.parametrize("scoring,teams,expected", [
        ('PPR', 12, (115.0, 25.0)),
        ('STANDARD', 10, (105.0, 24.0)),
        ('HALF_PPR', 14, (103.0, 21.5)),
        ('ppr', 14, (110.0, 23.0)),
    ])
    def test_adjustments(self, scoring, teams, expected):
        """Test scoring and league-size adjustments"""
        assert league_opponent_stats(scoring, teams) == pytest.approx(expected)

    def test_unknown_scoring(self):
        """Test unknown scoring type rejected"""
        with pytest.raises(ValueError):
            league_opponent_stats('SUPERFLEX', 12)


class TestLeagueAverageOpponent:
    """Closed-form variant"""

    def test_moments_and_sampling(self):
        """Test league-average moments and draws"""
        opp = LeagueAverageOpponent(115.0, 25.0)
        assert opp.kind == 'league_average'
        assert opp.variance() == pytest.approx(625.0)
        draws = opp.sample(np.random.default_rng(0), 20000)
        assert draws.mean() == pytest.approx(115.0, abs=1.0)
        assert draws.std() == pytest.approx(25.0, abs=1.0)

    def test_for_league(self):
        """Test league constructor"""
        opp = LeagueAverageOpponent.for_league('STANDARD', 12)
        assert (opp.mean(), opp.sd()) == pytest.approx((100.0, 22.0))

    def test_rejects_non_positive_sd(self):
        """Test non-positive spread rejected"""
        with pytest.raises(ValueError):
            LeagueAverageOpponent(115.0, 0.0)


class TestRosterOpponent:
    """Known starters sampled through the copula"""

    def test_moments(self, opponent_roster):
        """Test roster opponent moments include correlation"""
        starters = opponent_roster[:9]
        opp = RosterOpponent(starters)
        assert opp.kind == 'roster'
        assert opp.mean() == pytest.approx(sum(p.mean for p in starters))
        draws = opp.sample(np.random.default_rng(5), 10000)
        assert draws.mean() == pytest.approx(opp.mean(), abs=1.0)
        assert draws.var() == pytest.approx(opp.variance(), rel=0.25)

    def test_requires_starters(self):
        """Test empty starter list rejected"""
        with pytest.raises(ValueError):
            RosterOpponent([])

    def test_from_roster_picks_best_by_mean(self, opponent_roster):
        """Test likely starters are the best lineup by mean"""
        opp = opponent_from_roster(opponent_roster, ESPN_PPR_2025)
        ids = {p.id for p in opp.starters}
        assert len(ids) == ESPN_PPR_2025.total_starters
        assert {'o_qb1', 'o_rb1', 'o_rb2', 'o_wr1', 'o_wr2', 'o_wr3', 'o_te1', 'o_k1', 'o_dst1'} == ids

    def test_from_roster_skips_injured(self, opponent_roster):
        """Test OUT players never start for the opponent"""
        from conftest import make_player
        roster = [p for p in opponent_roster if p.id != 'o_qb1']
        roster.append(make_player('o_qb1', 'QB', 'BUF', 20.0, 5.0, status='OUT'))
        opp = opponent_from_roster(roster, ESPN_PPR_2025)
        assert 'o_qb2' in {p.id for p in opp.starters}

    def test_from_roster_infeasible(self, opponent_roster):
        """Test infeasible opponent roster rejected"""
        with pytest.raises(ValueError):
            opponent_from_roster([p for p in opponent_roster if p.position != 'K'])


class TestMixtureOpponent:
    """Law of total variance over components"""

    def test_moments(self):
        """Test mixture mean and law-of-total-variance"""
        mix = MixtureOpponent([LeagueAverageOpponent(100.0, 10.0), LeagueAverageOpponent(130.0, 10.0)])
        assert mix.kind == 'mixture'
        assert mix.mean() == pytest.approx(115.0)
        assert mix.variance() == pytest.approx(100.0 + 225.0)
        draws = mix.sample(np.random.default_rng(1), 20000)
        assert draws.mean() == pytest.approx(115.0, abs=1.0)
        assert draws.var() == pytest.approx(325.0, rel=0.1)

    def test_weights_normalized(self):
        """Test weights normalized to one"""
        mix = MixtureOpponent([LeagueAverageOpponent(100.0, 10.0), LeagueAverageOpponent(130.0, 10.0)],
                              weights=[3, 1])
        np.testing.assert_allclose(mix.weights, [0.75, 0.25])
        assert mix.mean() == pytest.approx(107.5)

    def test_bad_weights(self):
        """Test negative or mismatched weights rejected"""
        with pytest.raises(ValueError):
            MixtureOpponent([LeagueAverageOpponent()], weights=[-1.0])
        with pytest.raises(ValueError):
            MixtureOpponent([])

    def test_with_uncertainty(self, opponent_roster):
        """Test mixture over the opponent's top lineups"""
        best = opponent_from_roster(opponent_roster)
        mix = opponent_with_uncertainty(opponent_roster, ESPN_PPR_2025, top_k=5)
        assert isinstance(mix, MixtureOpponent)
        assert len(mix.components) == 5
        assert mix.mean() <= best.mean() + 1e-9
        assert {p.id for p in mix.starters} == {p.id for p in best.starters}

    def test_with_uncertainty_falls_back(self, opponent_roster):
        """Test fallback to league average"""
        opp = opponent_with_uncertainty([p for p in opponent_roster if p.position != 'DST'])
        assert isinstance(opp, LeagueAverageOpponent)
        assert opp.mean() == 115.0
