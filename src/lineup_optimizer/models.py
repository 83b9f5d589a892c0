"""
Domain types shared across the lineup optimizer

Player scores, roster requirements, DP states and candidates, and the
result records handed back to callers.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

if TYPE_CHECKING:
    from .distribution import BoundedNormal

POSITIONS = ('QB', 'RB', 'WR', 'TE', 'K', 'DST')
FLEX_POSITIONS = frozenset({'RB', 'WR', 'TE'})
HEALTH_STATUSES = ('HEALTHY', 'QUESTIONABLE', 'DOUBTFUL', 'GTD', 'OUT', 'IR')
UNAVAILABLE_STATUSES = frozenset({'OUT', 'IR'})


class InfeasibleRosterError(ValueError):
    """Roster cannot fill the lineup requirement"""

    def __init__(self, message: str, shortages: Optional[Dict[str, int]] = None):
        super().__init__(message)
        self.shortages = dict(shortages or {})


@dataclass(frozen=True)
class PlayerInfo:
    id: str
    name: str
    team: str
    position: str
    status: str = 'HEALTHY'

    def __post_init__(self):
        if self.position not in POSITIONS:
            raise ValueError(f"Unknown position {self.position!r} for {self.name}")
        if self.status not in HEALTH_STATUSES:
            raise ValueError(f"Unknown health status {self.status!r} for {self.name}")


@dataclass(frozen=True)
class GameInfo:
    game_id: str
    kickoff_utc: str
    home_team: str
    away_team: str

    def opponent_of(self, team: str) -> Optional[str]:
        """Team on the other side of this game, None if team is not playing"""
        if team == self.home_team:
            return self.away_team
        if team == self.away_team:
            return self.home_team
        return None

    def kickoff(self) -> Optional[datetime]:
        """Kickoff as an aware UTC datetime, None when unscheduled"""
        if not self.kickoff_utc:
            return None
        # fromisoformat only accepts a trailing Z from 3.11 on
        ts = datetime.fromisoformat(self.kickoff_utc.replace('Z', '+00:00'))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(timezone.utc)

    def has_started(self, now_utc: datetime) -> bool:
        """Whether kickoff is at or before now_utc (naive times are read as UTC)"""
        kickoff = self.kickoff()
        if kickoff is None:
            return False
        if now_utc.tzinfo is None:
            now_utc = now_utc.replace(tzinfo=timezone.utc)
        return kickoff <= now_utc


@dataclass(frozen=True)
class PlayerScore:
    """
    One player's weekly scoring distribution

    A fresh instance is built whenever projections are refreshed; the
    distribution is never mutated in place.
    """
    player: PlayerInfo
    game: GameInfo
    dist: 'BoundedNormal'

    @property
    def id(self) -> str:
        return self.player.id

    @property
    def position(self) -> str:
        return self.player.position

    @property
    def team(self) -> str:
        return self.player.team

    @property
    def mean(self) -> float:
        return self.dist.mean()

    @property
    def sd(self) -> float:
        return self.dist.sd()

    @property
    def lower(self) -> float:
        return self.dist.lower

    @property
    def upper(self) -> float:
        return self.dist.upper

    @property
    def available(self) -> bool:
        return self.player.status not in UNAVAILABLE_STATUSES


@dataclass(frozen=True)
class RosterRequirement:
    """
    Static lineup format for a league

    Args:
        primary: starters required per primary position, as a mapping or
            (position, count) pairs; stored as pairs in canonical order
        flex: number of FLEX starters
        flex_positions: positions allowed in FLEX
        bench: bench size (not filled by the optimizer)
    """
    primary: Tuple[Tuple[str, int], ...]
    flex: int = 1
    flex_positions: FrozenSet[str] = FLEX_POSITIONS
    bench: int = 7

    def __post_init__(self):
        pairs = dict(self.primary.items() if isinstance(self.primary, Mapping) else self.primary)
        for pos, count in pairs.items():
            if pos not in POSITIONS:
                raise ValueError(f"Unknown position in requirement: {pos}")
            if count < 0:
                raise ValueError(f"Negative requirement for {pos}: {count}")
        if self.flex < 0 or self.bench < 0:
            raise ValueError("FLEX and bench counts must be non-negative")
        object.__setattr__(self, 'primary',
                           tuple((pos, int(pairs[pos])) for pos in POSITIONS if pos in pairs))
        object.__setattr__(self, 'flex_positions', frozenset(self.flex_positions))

    @property
    def slots(self) -> Tuple[str, ...]:
        """Primary positions in canonical order"""
        return tuple(pos for pos, count in self.primary if count > 0)

    @property
    def total_starters(self) -> int:
        return sum(count for _, count in self.primary) + self.flex

    def count(self, position: str) -> int:
        for pos, count in self.primary:
            if pos == position:
                return count
        return 0

    def is_satisfied_by(self, positions: Sequence[str]) -> bool:
        """Check whether a list of starter positions fills the requirement exactly"""
        if len(positions) != self.total_starters:
            return False
        counts = {pos: 0 for pos in POSITIONS}
        for pos in positions:
            counts[pos] += 1

        for pos in POSITIONS:
            required = self.count(pos)
            if pos in self.flex_positions:
                if counts[pos] < required:
                    return False
            elif counts[pos] != required:
                return False

        flex_pool = sum(counts[pos] for pos in self.flex_positions)
        flex_required = sum(self.count(pos) for pos in self.flex_positions) + self.flex
        return flex_pool == flex_required

    def shortages(self, players: Sequence[PlayerScore]) -> Dict[str, int]:
        """Positions the roster cannot fill, mapped to the missing count"""
        have = {pos: 0 for pos in POSITIONS}
        for p in players:
            have[p.position] += 1

        short = {}
        for pos in self.slots:
            if have[pos] < self.count(pos):
                short[pos] = self.count(pos) - have[pos]

        spare_flex = sum(max(0, have[pos] - self.count(pos)) for pos in self.flex_positions)
        if spare_flex < self.flex:
            short['FLEX'] = self.flex - spare_flex
        return short

    @classmethod
    def from_dict(cls, slots: Dict[str, int]) -> 'RosterRequirement':
        """Build from a flat mapping such as {'QB': 1, ..., 'FLEX': 1, 'BENCH': 7}"""
        slots = dict(slots)
        flex = int(slots.pop('FLEX', 0))
        bench = int(slots.pop('BENCH', 0))
        # DEF is the common alias in league configs
        if 'DEF' in slots:
            slots['DST'] = slots.pop('DEF')
        return cls(primary={k: int(v) for k, v in slots.items()}, flex=flex, bench=bench)


# ESPN 2025 PPR default: 2 WR, not 3
ESPN_PPR_2025 = RosterRequirement(
    primary={'QB': 1, 'RB': 2, 'WR': 2, 'TE': 1, 'K': 1, 'DST': 1},
    flex=1,
    bench=7,
)


@dataclass(frozen=True)
class LineupState:
    """Counts filled so far per primary slot plus FLEX fill count"""
    counts: Tuple[int, ...]
    flex: int = 0

    def is_terminal(self, requirement: RosterRequirement) -> bool:
        targets = tuple(requirement.count(pos) for pos in requirement.slots)
        return self.counts == targets and self.flex == requirement.flex


@dataclass(frozen=True)
class Candidate:
    """A (partial or complete) lineup tracked by the DP"""
    mask: int
    players: Tuple[PlayerScore, ...]
    value: float
    state: LineupState

    @property
    def player_ids(self) -> FrozenSet[str]:
        return frozenset(p.id for p in self.players)


@dataclass(frozen=True)
class SimulationResult:
    win_probability: float
    expected_margin: float
    margin_sd: float
    percentiles: Dict[str, float]
    std_error: float
    n_sims: int
    converged: bool
    method: str = 'lhs'
    joint: bool = False


@dataclass(frozen=True)
class OptimizationDiagnostics:
    analytic_win_probability: float
    mc_win_probability: float
    lineup_mean: float
    lineup_var: float
    opponent_mean: float
    opponent_var: float
    n_sims: int
    std_error: float
    candidates_generated: int
    candidates_screened: int
    candidates_evaluated: int


@dataclass(frozen=True)
class OptimizedLineup:
    starters: Tuple[PlayerScore, ...]
    bench: Tuple[PlayerScore, ...]
    result: SimulationResult
    diagnostics: OptimizationDiagnostics
    ranking: List[Tuple[FrozenSet[str], float]] = field(default_factory=list)

    @property
    def win_probability(self) -> float:
        return self.result.win_probability

    @property
    def starter_ids(self) -> FrozenSet[str]:
        return frozenset(p.id for p in self.starters)


def roster_from_dataframe(df: pd.DataFrame) -> List[PlayerScore]:
    """
    Convert a projections frame into PlayerScore instances

    Expected columns: id, name, team, position, game_id, home_team, away_team.
    Optional: status, kickoff_utc, p10, p50, p90, mean, cv, lower, upper.
    Rows with p10/p90 are fit from quantiles, otherwise from mean (+ cv).
    """
    from .distribution import build_player_score

    required = ['id', 'name', 'team', 'position', 'game_id', 'home_team', 'away_team']
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise KeyError(f"Projection frame missing columns: {missing}")

    def _opt(row, col):
        if col not in row.index or pd.isna(row[col]):
            return None
        return float(row[col])

    def _text(row, col, default):
        if col not in row.index or pd.isna(row[col]):
            return default
        return str(row[col])

    players = []
    for _, row in df.iterrows():
        info = PlayerInfo(
            id=str(row['id']),
            name=str(row['name']),
            team=str(row['team']),
            position=str(row['position']).upper().replace('DEF', 'DST'),
            status=_text(row, 'status', 'HEALTHY').upper(),
        )
        game = GameInfo(
            game_id=str(row['game_id']),
            kickoff_utc=_text(row, 'kickoff_utc', ''),
            home_team=str(row['home_team']),
            away_team=str(row['away_team']),
        )
        players.append(build_player_score(
            info, game,
            p10=_opt(row, 'p10'), p50=_opt(row, 'p50'), p90=_opt(row, 'p90'),
            mean=_opt(row, 'mean'), cv=_opt(row, 'cv'),
            lower=_opt(row, 'lower'), upper=_opt(row, 'upper'),
        ))
    return players
