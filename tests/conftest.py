"""Shared roster fixtures for lineup optimizer tests"""

import os
import sys

import pytest

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from lineup_optimizer.distribution import POSITION_BOUNDS, BoundedNormal
from lineup_optimizer.models import GameInfo, PlayerInfo, PlayerScore

GAMES = {
    'G1': GameInfo('G1', '2025-09-07T17:00:00Z', home_team='BUF', away_team='KC'),
    'G2': GameInfo('G2', '2025-09-07T20:25:00Z', home_team='PHI', away_team='DAL'),
    'G3': GameInfo('G3', '2025-09-08T00:20:00Z', home_team='SF', away_team='SEA'),
}
TEAM_GAME = {'BUF': 'G1', 'KC': 'G1', 'PHI': 'G2', 'DAL': 'G2', 'SF': 'G3', 'SEA': 'G3'}

# (id, position, team, mu, sigma); means are well separated so the best lineup is unambiguous
ROSTER_SPEC = [
    ('qb1', 'QB', 'KC', 22.0, 5.0),
    ('qb2', 'QB', 'DAL', 15.0, 5.0),
    ('rb1', 'RB', 'BUF', 18.0, 5.0),
    ('rb2', 'RB', 'PHI', 14.0, 5.0),
    ('rb3', 'RB', 'SF', 9.0, 4.0),
    ('rb4', 'RB', 'SEA', 5.0, 3.0),
    ('wr1', 'WR', 'KC', 17.0, 5.0),
    ('wr2', 'WR', 'DAL', 15.0, 5.0),
    ('wr3', 'WR', 'BUF', 12.0, 4.0),
    ('wr4', 'WR', 'SEA', 8.0, 3.0),
    ('wr5', 'WR', 'PHI', 4.0, 2.0),
    ('te1', 'TE', 'SF', 10.0, 3.0),
    ('te2', 'TE', 'KC', 6.0, 3.0),
    ('k1', 'K', 'BUF', 8.0, 3.0),
    ('dst1', 'DST', 'PHI', 7.0, 4.0),
]

BEST_BY_MEAN = frozenset({'qb1', 'rb1', 'rb2', 'wr1', 'wr2', 'wr3', 'te1', 'k1', 'dst1'})


def make_player(pid, position, team, mu, sigma, status='HEALTHY', name=None):
    lower, upper = POSITION_BOUNDS[position]
    return PlayerScore(
        player=PlayerInfo(id=pid, name=name or pid.upper(), team=team, position=position, status=status),
        game=GAMES[TEAM_GAME[team]],
        dist=BoundedNormal(mu, sigma, lower, upper),
    )


@pytest.fixture
def roster():
    """15-player roster: 2 QB, 4 RB, 5 WR, 2 TE, 1 K, 1 DST"""
    return [make_player(*row) for row in ROSTER_SPEC]


@pytest.fixture
def opponent_roster():
    """Opposing roster spread over the same games"""
    rows = [
        ('o_qb1', 'QB', 'BUF', 20.0, 5.0),
        ('o_qb2', 'QB', 'SEA', 14.0, 5.0),
        ('o_rb1', 'RB', 'KC', 16.0, 5.0),
        ('o_rb2', 'RB', 'DAL', 13.0, 4.0),
        ('o_rb3', 'RB', 'BUF', 8.0, 3.0),
        ('o_wr1', 'WR', 'PHI', 16.0, 5.0),
        ('o_wr2', 'WR', 'SF', 14.0, 4.0),
        ('o_wr3', 'WR', 'KC', 11.0, 4.0),
        ('o_wr4', 'WR', 'DAL', 7.0, 3.0),
        ('o_te1', 'TE', 'PHI', 9.0, 3.0),
        ('o_k1', 'K', 'SF', 8.0, 3.0),
        ('o_dst1', 'DST', 'KC', 7.0, 4.0),
    ]
    return [make_player(*row) for row in rows]
