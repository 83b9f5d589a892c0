"""
K-best dynamic programming over roster slot occupancy

States count the starters placed per primary position plus FLEX fills,
flattened into a single mixed-radix integer. Each state keeps its K best
partial lineups, identified by a membership bitmask over the id-sorted
roster.
"""

import logging
import math
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from .models import Candidate, LineupState, PlayerScore, RosterRequirement
from .seeding import stable_hash

DEFAULT_RISK_LAMBDAS = (-0.5, -0.25, 0.0, 0.25, 0.5)
UNDERDOG_SHIFT = 0.3
TIEBREAK_SCALE = 1e-6


def player_tiebreak(player_id: str, seed: int = 0) -> float:
    """Deterministic jitter in [0, 1) from a keyed hash of the player id"""
    return stable_hash(player_id, key=seed) / 2 ** 64


class _StateCodec:
    """Mixed-radix encoding of (per-slot counts, flex count)"""

    def __init__(self, requirement: RosterRequirement):
        self.requirement = requirement
        self.slots = requirement.slots
        self.slot_index = {pos: i for i, pos in enumerate(self.slots)}
        self.limits = [requirement.count(pos) for pos in self.slots] + [requirement.flex]
        self.strides = []
        stride = 1
        for limit in self.limits:
            self.strides.append(stride)
            stride *= limit + 1
        self.flex_stride = self.strides[-1]
        self.terminal = sum(limit * s for limit, s in zip(self.limits, self.strides))

    def decode(self, key: int) -> Tuple[int, ...]:
        return tuple((key // s) % (limit + 1) for s, limit in zip(self.strides, self.limits))

    def state(self, key: int) -> LineupState:
        parts = self.decode(key)
        return LineupState(counts=parts[:-1], flex=parts[-1])

    def transitions(self, key: int, position: str) -> List[int]:
        """Successor keys when adding a player at position (primary, then FLEX)"""
        parts = self.decode(key)
        out = []
        i = self.slot_index.get(position)
        if i is not None and parts[i] < self.limits[i]:
            out.append(key + self.strides[i])
        if position in self.requirement.flex_positions and parts[-1] < self.limits[-1]:
            out.append(key + self.flex_stride)
        return out

    def can_complete(self, key: int, remaining: Dict[str, int]) -> bool:
        """Whether the players still to come can fill every open slot"""
        parts = self.decode(key)
        flex_need = self.limits[-1] - parts[-1]
        flex_have = 0
        for pos, i in self.slot_index.items():
            need = self.limits[i] - parts[i]
            if need > remaining.get(pos, 0):
                return False
            if pos in self.requirement.flex_positions:
                flex_need += need
        for pos in self.requirement.flex_positions:
            flex_have += remaining.get(pos, 0)
        return flex_need <= flex_have


class KBestDP:
    """
    Enumerates the K best feasible lineups under a linear objective

    Args:
        k: candidates retained per state
        max_global: cap on retained candidates across all states
    """

    def __init__(self, k: int = 50, max_global: int = 4000):
        if k < 1 or max_global < 1:
            raise ValueError("k and max_global must be positive")
        self.k = k
        self.max_global = max_global

    def _trim(self, by_mask: Dict[int, Tuple[float, Tuple[int, ...]]]) -> List[Tuple[float, int, Tuple[int, ...]]]:
        ranked = sorted(((v, m, idx) for m, (v, idx) in by_mask.items()),
                        key=lambda c: (-c[0], c[1]))
        return ranked[:self.k]

    def optimize_candidates(self, roster: Sequence[PlayerScore], requirement: RosterRequirement,
                            value_fn: Callable[[PlayerScore], float],
                            required_ids: Iterable[str] = ()) -> List[Candidate]:
        """
        Best feasible lineups by summed value_fn, highest first

        Players in required_ids are never skipped, so every returned lineup
        contains them. Returns an empty list when the roster cannot fill the
        requirement.
        """
        required = frozenset(required_ids)
        players = sorted(roster, key=lambda p: p.id)
        ids = [p.id for p in players]
        if len(set(ids)) != len(ids):
            raise ValueError("Roster contains duplicate player ids")

        codec = _StateCodec(requirement)
        values = [float(value_fn(p)) for p in players]

        remaining = {}
        for p in players:
            remaining[p.position] = remaining.get(p.position, 0) + 1

        # state key -> list of (value, mask, player indices)
        dp: Dict[int, List[Tuple[float, int, Tuple[int, ...]]]] = {0: [(0.0, 0, ())]}

        for idx, player in enumerate(players):
            remaining[player.position] -= 1
            bit = 1 << idx
            nxt: Dict[int, Dict[int, Tuple[float, Tuple[int, ...]]]] = {}

            def push(key, value, mask, members):
                bucket = nxt.setdefault(key, {})
                prev = bucket.get(mask)
                if prev is None or value > prev[0]:
                    bucket[mask] = (value, members)

            for key, entries in dp.items():
                successors = codec.transitions(key, player.position)
                for value, mask, members in entries:
                    if player.id not in required:
                        push(key, value, mask, members)
                    for new_key in successors:
                        push(new_key, value + values[idx], mask | bit, members + (idx,))

            dp = {}
            for key, bucket in nxt.items():
                if codec.can_complete(key, remaining):
                    dp[key] = self._trim(bucket)

            total = sum(len(v) for v in dp.values())
            if total > self.max_global:
                keep = math.ceil(self.max_global / self.k)
                ranked = sorted(dp.items(), key=lambda kv: (-kv[1][0][0], kv[0]))
                dp = dict(ranked[:keep])

        terminal = dp.get(codec.terminal, [])
        best: Dict[int, Tuple[float, Tuple[int, ...]]] = {}
        for value, mask, members in terminal:
            if mask not in best or value > best[mask][0]:
                best[mask] = (value, members)

        state = codec.state(codec.terminal)
        out = [
            Candidate(mask=mask, players=tuple(players[i] for i in members), value=value, state=state)
            for mask, (value, members) in best.items()
        ]
        out.sort(key=lambda c: (-c.value, c.mask))
        return out[:self.max_global]

    def generate_diverse_candidates(self, roster: Sequence[PlayerScore], requirement: RosterRequirement,
                                    risk_lambdas: Sequence[float] = DEFAULT_RISK_LAMBDAS,
                                    underdog_bias: float = 0.0,
                                    tiebreak_seed: int = 0,
                                    required_ids: Iterable[str] = ()) -> List[Candidate]:
        """
        Union of K-best pools over a sweep of risk preferences

        Each sweep scores players by mean + lambda * sd (lambda shifted up by
        0.3 * underdog_bias) plus a tiny id hash. The best value seen per
        lineup is kept.
        """
        pool: Dict[int, Candidate] = {}
        for lam in risk_lambdas:
            shifted = lam + UNDERDOG_SHIFT * underdog_bias

            def value_fn(p, shifted=shifted):
                return p.mean + shifted * p.sd + TIEBREAK_SCALE * player_tiebreak(p.id, tiebreak_seed)

            sweep = self.optimize_candidates(roster, requirement, value_fn, required_ids)
            logging.debug(f"Risk sweep lambda={shifted:+.2f}: {len(sweep)} candidates")
            for cand in sweep:
                prev = pool.get(cand.mask)
                if prev is None or cand.value > prev.value:
                    pool[cand.mask] = cand

        out = sorted(pool.values(), key=lambda c: (-c.value, c.mask))
        logging.info(f"Generated {len(out)} unique candidate lineups from {len(risk_lambdas)} risk sweeps")
        return out
