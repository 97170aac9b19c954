from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TraderLevel:
    level: int
    title: str
    min_xp: int

    def to_dict(self) -> dict:
        return {"level": self.level, "title": self.title, "min_xp": self.min_xp}


TRADER_LEVELS: list[TraderLevel] = [
    TraderLevel(1, "Rookie", 0),
    TraderLevel(2, "Apprentice", 100),
    TraderLevel(3, "Novice Trader", 250),
    TraderLevel(4, "Journeyman", 500),
    TraderLevel(5, "Skilled Trader", 850),
    TraderLevel(6, "Experienced", 1300),
    TraderLevel(7, "Veteran", 1900),
    TraderLevel(8, "Expert Trader", 2600),
    TraderLevel(9, "Master Trader", 3500),
    TraderLevel(10, "Elite Trader", 4600),
    TraderLevel(11, "Champion", 6000),
    TraderLevel(12, "Legend", 7700),
    TraderLevel(13, "Grandmaster", 9700),
    TraderLevel(14, "Trading Sage", 12000),
    TraderLevel(15, "Market Wizard", 15000),
]


def level_for_xp(total_xp: int) -> TraderLevel:
    for level in reversed(TRADER_LEVELS):
        if total_xp >= level.min_xp:
            return level
    return TRADER_LEVELS[0]


def next_level(current: TraderLevel) -> Optional[TraderLevel]:
    return next((l for l in TRADER_LEVELS if l.level == current.level + 1), None)


def level_progress(total_xp: int) -> int:
    """Percent of the way from the current level to the next, 100 at max level."""
    current = level_for_xp(total_xp)
    nxt = next_level(current)
    if nxt is None:
        return 100
    pct = (total_xp - current.min_xp) / (nxt.min_xp - current.min_xp) * 100
    return min(100, math.floor(pct + 0.5))


def xp_to_next_level(total_xp: int) -> int:
    nxt = next_level(level_for_xp(total_xp))
    return nxt.min_xp - total_xp if nxt else 0


def check_level_up(previous_xp: int, new_xp: int) -> Optional[TraderLevel]:
    new = level_for_xp(new_xp)
    return new if new.level > level_for_xp(previous_xp).level else None


def level_summary(total_xp: int) -> dict:
    current = level_for_xp(total_xp)
    nxt = next_level(current)
    return {
        "total_xp": total_xp,
        "level": current.to_dict(),
        "next_level": nxt.to_dict() if nxt else None,
        "progress": level_progress(total_xp),
        "xp_to_next_level": xp_to_next_level(total_xp),
    }
