"""
Leaderboard ranking across users.

Trades are windowed on entry date relative to ``now`` (rolling, not
calendar-aligned). Users are listed unless they opted out of both public
visibility and stat sharing, and need a minimum number of closed trades.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from tradelog.analytics.statistics import closed_trades
from tradelog.journal.journal_models import LeagueTier, Profile, Trade
from tradelog.utils.config import get_settings
from tradelog.utils.logger import get_logger

logger = get_logger(__name__)


class LeaderboardMetric(str, Enum):
    TOTAL_PNL = "total_pnl"
    WIN_RATE = "win_rate"
    AVG_R_MULTIPLE = "avg_r_multiple"
    CONSISTENCY = "consistency"
    TRADE_COUNT = "trade_count"


class LeaderboardPeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    ALL_TIME = "all_time"


ALL_TIME_START = datetime(2000, 1, 1)

LEAGUE_THRESHOLDS: list[tuple[float, LeagueTier]] = [
    (10000, LeagueTier.DIAMOND),
    (5000, LeagueTier.PLATINUM),
    (2000, LeagueTier.GOLD),
    (500, LeagueTier.SILVER),
]


def league_tier(total_pnl: float) -> LeagueTier:
    """Step function on total P&L; each threshold is inclusive."""
    for threshold, tier in LEAGUE_THRESHOLDS:
        if total_pnl >= threshold:
            return tier
    return LeagueTier.BRONZE


def consistency_score(r_multiples: Sequence[float]) -> float:
    """max(0, 100 - population std of R x 20); 100 with fewer than two values."""
    if len(r_multiples) < 2:
        return 100.0
    std = float(np.std(np.asarray(r_multiples, dtype=float)))
    return max(0.0, 100.0 - std * 20)


def _minus_one_month(moment: datetime) -> datetime:
    year, month = (moment.year, moment.month - 1) if moment.month > 1 else (moment.year - 1, 12)
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def window_start(period: LeaderboardPeriod, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now()
    if period == LeaderboardPeriod.WEEK:
        return now - timedelta(days=7)
    if period == LeaderboardPeriod.MONTH:
        return _minus_one_month(now)
    return ALL_TIME_START


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    metric_value: float
    total_pnl: float
    total_trades: int
    win_count: int
    league_tier: LeagueTier
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    anonymous_mode: bool = False
    is_current_user: bool = False

    def to_dict(self) -> dict:
        hidden = self.anonymous_mode and not self.is_current_user
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "username": None if hidden else self.username,
            "display_name": "Anonymous Trader" if hidden else self.display_name,
            "avatar_url": None if hidden else self.avatar_url,
            "anonymous_mode": self.anonymous_mode,
            "league_tier": self.league_tier.value,
            "metric_value": round(self.metric_value, 2),
            "total_pnl": round(self.total_pnl, 2),
            "total_trades": self.total_trades,
            "win_count": self.win_count,
            "is_current_user": self.is_current_user,
        }


@dataclass
class Leaderboard:
    metric: LeaderboardMetric
    period: LeaderboardPeriod
    entries: list[LeaderboardEntry] = field(default_factory=list)
    current_user: Optional[LeaderboardEntry] = None

    def to_dict(self) -> dict:
        return {
            "metric": self.metric.value,
            "period": self.period.value,
            "entries": [e.to_dict() for e in self.entries],
            "current_user": self.current_user.to_dict() if self.current_user else None,
        }


def _visible(profile: Optional[Profile]) -> bool:
    if profile is None:
        return True
    return profile.is_public or profile.show_stats


def build_leaderboard(
    trades: Sequence[Trade],
    profiles: Sequence[Profile],
    metric: LeaderboardMetric = LeaderboardMetric.TOTAL_PNL,
    period: LeaderboardPeriod = LeaderboardPeriod.WEEK,
    now: Optional[datetime] = None,
    current_user_id: Optional[str] = None,
    min_trades: Optional[int] = None,
    max_entries: Optional[int] = None,
) -> Leaderboard:
    settings = get_settings()
    min_trades = settings.leaderboard_min_trades if min_trades is None else min_trades
    max_entries = settings.leaderboard_max_entries if max_entries is None else max_entries
    start = window_start(period, now)
    profile_map = {p.id: p for p in profiles}

    stats: dict[str, dict] = {}
    for t in closed_trades(trades):
        if _compare_start(t.entry_date, start) < 0:
            continue
        profile = profile_map.get(t.user_id)
        if not _visible(profile):
            continue
        s = stats.setdefault(t.user_id, {"pnl": 0.0, "trades": 0, "wins": 0, "rs": []})
        s["trades"] += 1
        s["pnl"] += t.net_pnl
        if t.net_pnl > 0:
            s["wins"] += 1
        if t.r_multiple is not None:
            s["rs"].append(t.r_multiple)

    entries = []
    for user_id, s in stats.items():
        if s["trades"] < min_trades:
            continue
        profile = profile_map.get(user_id)
        values = {
            LeaderboardMetric.TOTAL_PNL: s["pnl"],
            LeaderboardMetric.WIN_RATE: s["wins"] / s["trades"] * 100,
            LeaderboardMetric.AVG_R_MULTIPLE: sum(s["rs"]) / len(s["rs"]) if s["rs"] else 0.0,
            LeaderboardMetric.CONSISTENCY: consistency_score(s["rs"]),
            LeaderboardMetric.TRADE_COUNT: float(s["trades"]),
        }
        entries.append(LeaderboardEntry(
            rank=0,
            user_id=user_id,
            metric_value=values[metric],
            total_pnl=s["pnl"],
            total_trades=s["trades"],
            win_count=s["wins"],
            league_tier=league_tier(s["pnl"]),
            username=profile.username if profile else None,
            display_name=profile.display_name if profile else None,
            avatar_url=profile.avatar_url if profile else None,
            anonymous_mode=profile.anonymous_mode if profile else False,
            is_current_user=user_id == current_user_id,
        ))

    # higher is better for every metric, including the consistency score
    entries.sort(key=lambda e: e.metric_value, reverse=True)
    for i, entry in enumerate(entries):
        entry.rank = i + 1

    current = next((e for e in entries if e.is_current_user), None)
    logger.info("leaderboard_built", metric=metric.value, period=period.value,
                qualified=len(entries))
    return Leaderboard(metric=metric, period=period, entries=entries[:max_entries],
                       current_user=current)


def _naive_local(moment: datetime) -> datetime:
    return moment.astimezone().replace(tzinfo=None) if moment.tzinfo else moment


def _compare_start(entry_date: datetime, start: datetime) -> int:
    """Compare an entry date to the window start; a naive/aware mix is compared in server-local time."""
    if (entry_date.tzinfo is None) != (start.tzinfo is None):
        entry_date = _naive_local(entry_date)
        start = _naive_local(start)
    return (entry_date > start) - (entry_date < start)
