"""
Day-level aggregation: daily P&L, trading-day streaks, green days, calendar.

A trade belongs to the calendar day of its exit date, or its entry date
when it has no exit. Timezone-aware datetimes are converted to the
trader's timezone before the date is taken; naive ones are used as-is.
"""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from tradelog.analytics.statistics import closed_trades
from tradelog.journal.journal_models import Trade


def local_date(moment: datetime, tz: Optional[str] = None) -> date:
    if tz and moment.tzinfo is not None:
        moment = moment.astimezone(ZoneInfo(tz))
    return moment.date()


def day_key(trade: Trade, tz: Optional[str] = None) -> date:
    return local_date(trade.day_date, tz)


@dataclass
class DaySummary:
    date: date
    pnl: float = 0.0
    trades: int = 0
    wins: int = 0
    losses: int = 0
    trade_ids: list[str] = field(default_factory=list)

    @property
    def is_green(self) -> bool:
        return self.pnl > 0

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "pnl": round(self.pnl, 2), "trades": self.trades,
                "wins": self.wins, "losses": self.losses, "trade_ids": list(self.trade_ids)}


def daily_pnl(trades: Sequence[Trade], tz: Optional[str] = None) -> list[DaySummary]:
    """Closed trades grouped by day, ascending."""
    days: dict[date, DaySummary] = {}
    for t in closed_trades(trades):
        key = day_key(t, tz)
        summary = days.setdefault(key, DaySummary(date=key))
        summary.pnl += t.net_pnl
        summary.trades += 1
        summary.trade_ids.append(t.id)
        if t.net_pnl > 0:
            summary.wins += 1
        elif t.net_pnl < 0:
            summary.losses += 1
    return [days[k] for k in sorted(days)]


def green_days(trades: Sequence[Trade], tz: Optional[str] = None) -> int:
    return sum(1 for d in daily_pnl(trades, tz) if d.is_green)


def day_win_rate(trades: Sequence[Trade], tz: Optional[str] = None) -> float:
    """Profitable days / days with at least one trade x 100."""
    days = daily_pnl(trades, tz)
    if not days:
        return 0.0
    return sum(1 for d in days if d.is_green) / len(days) * 100


def average_winning_day(days: Sequence[DaySummary]) -> float:
    winners = [d.pnl for d in days if d.pnl > 0]
    return sum(winners) / len(winners) if winners else 0.0


def average_losing_day(days: Sequence[DaySummary]) -> float:
    losers = [d.pnl for d in days if d.pnl < 0]
    return sum(losers) / len(losers) if losers else 0.0


# ── Streaks ──────────────────────────────────────────────────

def trading_days(trades: Sequence[Trade], tz: Optional[str] = None) -> list[date]:
    """Sorted distinct days that carry at least one closed trade."""
    return sorted({day_key(t, tz) for t in closed_trades(trades)})


def longest_streak(days: Iterable[date]) -> int:
    ordered = sorted(set(days))
    if not ordered:
        return 0
    best = run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        if (cur - prev).days == 1:
            run += 1
            best = max(best, run)
        else:
            run = 1
    return best


def current_streak(days: Iterable[date], today: Optional[date] = None) -> int:
    """Trailing run of consecutive days, alive only if it ends today or yesterday."""
    ordered = sorted(set(days))
    if not ordered:
        return 0
    today = today or date.today()
    if (today - ordered[-1]).days > 1:
        return 0
    run = 1
    for i in range(len(ordered) - 1, 0, -1):
        if (ordered[i] - ordered[i - 1]).days == 1:
            run += 1
        else:
            break
    return run


# ── Calendar ─────────────────────────────────────────────────

def calendar_month(trades: Sequence[Trade], year: int, month: int,
                   tz: Optional[str] = None) -> dict:
    """Per-day and per-week P&L for one calendar month (weeks start Sunday)."""
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    days = {d.date: d for d in daily_pnl(trades, tz) if first <= d.date <= last}

    weeks: dict[int, dict] = defaultdict(lambda: {"pnl": 0.0, "trades": 0, "days": 0})
    offset = (first.weekday() + 1) % 7
    for d in days.values():
        week_index = (d.date.day - 1 + offset) // 7
        weeks[week_index]["pnl"] += d.pnl
        weeks[week_index]["trades"] += d.trades
        weeks[week_index]["days"] += 1

    month_pnl = sum(d.pnl for d in days.values())
    return {
        "year": year,
        "month": month,
        "days": [days[k].to_dict() for k in sorted(days)],
        "weeks": [{"week": i + 1, "pnl": round(w["pnl"], 2), "trades": w["trades"],
                   "trading_days": w["days"]} for i, w in sorted(weeks.items())],
        "total_pnl": round(month_pnl, 2),
        "trading_days": len(days),
        "green_days": sum(1 for d in days.values() if d.is_green),
        "red_days": sum(1 for d in days.values() if d.pnl < 0),
    }


def week_start(day: date) -> date:
    """Sunday on or before *day*."""
    return day - timedelta(days=(day.weekday() + 1) % 7)
