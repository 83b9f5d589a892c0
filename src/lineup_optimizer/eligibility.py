"""
Lineup eligibility: locks, exclusions, byes and kickoff times

Once a player's game kicks off, that player can no longer be moved into the
lineup. Locked ids must start (players already playing in a starting slot),
excluded ids never do.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from .models import PlayerScore, RosterRequirement


def is_locked(score: PlayerScore, now_utc: Optional[datetime]) -> bool:
    """Whether the player's game has started; never locked when now_utc is None"""
    return now_utc is not None and score.game.has_started(now_utc)


def filter_eligible(roster: Sequence[PlayerScore], now_utc: Optional[datetime] = None,
                    locked: Iterable[str] = (), excluded: Iterable[str] = (),
                    bye_teams: Iterable[str] = ()) -> List[PlayerScore]:
    """
    Players the optimizer may place in the lineup

    Locked players are always kept, even when injured or already playing.
    Everyone else is dropped if excluded, on a bye, OUT/IR, or kicked off.

    Raises:
        ValueError: a locked id is not on the roster or is also excluded
    """
    locked = frozenset(locked)
    excluded = frozenset(excluded)
    bye_teams = frozenset(bye_teams)

    unknown = sorted(locked - {p.id for p in roster})
    if unknown:
        raise ValueError(f"Locked players not on roster: {unknown}")
    clash = sorted(locked & excluded)
    if clash:
        raise ValueError(f"Players both locked and excluded: {clash}")

    eligible = []
    for p in roster:
        if p.id in excluded:
            logging.info(f"Excluding {p.player.name} by request")
        elif p.id in locked:
            eligible.append(p)
        elif p.team in bye_teams:
            logging.info(f"Skipping {p.player.name} ({p.team} on bye)")
        elif not p.available:
            logging.info(f"Skipping {p.player.name} ({p.position}, {p.player.status})")
        elif is_locked(p, now_utc):
            logging.info(f"Skipping {p.player.name} (game already started)")
        else:
            eligible.append(p)
    return eligible


def validate_lineup(starters: Sequence[PlayerScore], requirement: RosterRequirement,
                    locked: Iterable[str] = ()) -> List[str]:
    """Problems with a finished lineup; empty when it is valid"""
    problems = []
    ids = [p.id for p in starters]
    dupes = sorted(pid for pid, n in Counter(ids).items() if n > 1)
    if dupes:
        problems.append(f"duplicate players {dupes}")
    if not requirement.is_satisfied_by([p.position for p in starters]):
        problems.append("positions do not match the lineup requirement")
    missing = sorted(frozenset(locked) - set(ids))
    if missing:
        problems.append(f"locked players missing {missing}")
    return problems
