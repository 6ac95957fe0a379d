"""Experience ladder: xp total -> level, progress toward the next level.

Pure functions over a fixed ascending table; nothing here mutates state.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(slots=True, frozen=True)
class Level:
    level: int
    title: str
    threshold: int           # xp required to reach this level
    unlocks: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class Progress:
    level: Level
    next_level: Optional[Level]
    progress_percent: int
    xp_to_next: int


LEVELS: tuple[Level, ...] = (
    Level(1, "Initiate", 0, ("View leaderboard", "Follow up to 3 masters")),
    Level(2, "Apprentice", 100, ("Unlimited follows", "View full reasoning on bets")),
    Level(3, "Student", 500, ("Auto-copy apprenticeships",)),
    Level(4, "Journeyman", 1500, ("Place own bets", "Appear on mini-leaderboard")),
)


def level_for(xp: int, ladder: Sequence[Level] = LEVELS) -> Level:
    """Highest level whose threshold is <= xp (first level if none)."""
    current = ladder[0]
    for lvl in ladder:
        if lvl.threshold <= xp:
            current = lvl
        else:
            break
    return current


def next_level(current: Level, ladder: Sequence[Level] = LEVELS) -> Optional[Level]:
    for idx, lvl in enumerate(ladder):
        if lvl.level == current.level:
            return ladder[idx + 1] if idx + 1 < len(ladder) else None
    return None


def progress(xp: int, ladder: Sequence[Level] = LEVELS) -> Progress:
    current = level_for(xp, ladder)
    upcoming = next_level(current, ladder)
    if upcoming is None:
        return Progress(level=current, next_level=None, progress_percent=100, xp_to_next=0)

    span = upcoming.threshold - current.threshold
    pct = math.floor((xp - current.threshold) / span * 100)
    return Progress(
        level=current,
        next_level=upcoming,
        progress_percent=min(100, max(0, pct)),
        xp_to_next=upcoming.threshold - max(xp, current.threshold),
    )
