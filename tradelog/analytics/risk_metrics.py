"""
Risk Metrics — equity, drawdown and the risk overview
=====================================================

  drawdown_curve    — day-level equity / peak / drawdown series
  drawdown_summary  — max, current and average drawdown of a curve
  equity_curve      — trade-level equity series by exit time
  drawdown_periods  — peak-to-recovery episodes of an equity curve
  risk_overview     — everything the risk page shows, in one dict
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from tradelog.analytics.daily import (
    average_losing_day, average_winning_day, daily_pnl, day_key, week_start,
)
from tradelog.analytics.statistics import average_r_multiple, closed_trades, sharpe_ratio
from tradelog.journal.journal_models import Account, Profile, Trade
from tradelog.utils.config import get_settings


@dataclass
class DrawdownPoint:
    date: date
    equity: float
    peak: float
    drawdown: float
    drawdown_percent: float

    def to_dict(self) -> dict:
        d = asdict(self)
        d["date"] = self.date.isoformat()
        for k in ("equity", "peak", "drawdown", "drawdown_percent"):
            d[k] = round(d[k], 2)
        return d


@dataclass
class EquityPoint:
    date: datetime
    equity: float
    trade_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "equity": round(self.equity, 2), "trade_id": self.trade_id}


@dataclass
class DrawdownPeriod:
    start_date: object
    end_date: object
    peak_equity: float
    trough_equity: float
    drawdown_amount: float
    drawdown_percent: float
    duration: timedelta
    is_ongoing: bool

    def to_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "peak_equity": round(self.peak_equity, 2),
            "trough_equity": round(self.trough_equity, 2),
            "drawdown_amount": round(self.drawdown_amount, 2),
            "drawdown_percent": round(self.drawdown_percent, 2),
            "duration_days": self.duration.days,
            "is_ongoing": self.is_ongoing,
        }


def resolve_starting_balance(account: Optional[Account] = None,
                             profile: Optional[Profile] = None) -> float:
    """Account starting balance, else profile account size, else the configured default."""
    if account is not None and account.starting_balance:
        return account.starting_balance
    if profile is not None and profile.account_size:
        return profile.account_size
    return get_settings().default_starting_balance


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# DRAWDOWN
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def drawdown_from_daily(daily: Sequence[tuple[date, float]],
                        starting_balance: float) -> list[DrawdownPoint]:
    """Accumulate day P&L onto the balance, tracking the running peak.

    The peak starts at the starting balance, so a losing first day is
    already a drawdown.
    """
    equity = peak = starting_balance
    curve = []
    for day, pnl in daily:
        equity += pnl
        peak = max(peak, equity)
        drawdown = peak - equity
        pct = drawdown / peak * 100 if peak > 0 else 0.0
        curve.append(DrawdownPoint(day, equity, peak, drawdown, pct))
    return curve


def drawdown_curve(trades: Sequence[Trade], starting_balance: float,
                   tz: Optional[str] = None) -> list[DrawdownPoint]:
    days = daily_pnl(trades, tz)
    return drawdown_from_daily([(d.date, d.pnl) for d in days], starting_balance)


def drawdown_summary(curve: Sequence[DrawdownPoint]) -> dict:
    if not curve:
        return {"max_drawdown": 0.0, "max_drawdown_percent": 0.0, "current_drawdown": 0.0,
                "current_drawdown_percent": 0.0, "average_drawdown_percent": 0.0}
    last = curve[-1]
    return {
        "max_drawdown": round(max(p.drawdown for p in curve), 2),
        "max_drawdown_percent": round(max(p.drawdown_percent for p in curve), 2),
        "current_drawdown": round(last.drawdown, 2),
        "current_drawdown_percent": round(last.drawdown_percent, 2),
        "average_drawdown_percent": round(sum(p.drawdown_percent for p in curve) / len(curve), 2),
    }


def equity_curve(trades: Sequence[Trade], starting_balance: float,
                 now: Optional[datetime] = None) -> list[EquityPoint]:
    """Trade-by-trade equity ordered by exit, with an anchor point the day before the first exit."""
    closed = sorted((t for t in closed_trades(trades) if t.exit_date is not None),
                    key=lambda t: t.exit_date)
    if not closed:
        return [EquityPoint(now or datetime.now(), starting_balance)]

    curve = [EquityPoint(closed[0].exit_date - timedelta(days=1), starting_balance)]
    equity = starting_balance
    for t in closed:
        equity += t.net_pnl
        curve.append(EquityPoint(t.exit_date, equity, t.id))
    return curve


def drawdown_periods(curve: Sequence) -> list[DrawdownPeriod]:
    """Split a curve (EquityPoint or DrawdownPoint items) into drawdown episodes.

    An episode opens at the last peak when equity first drops below it and
    closes on the first point that sets a new high. An episode still open
    at the end of the curve is reported as ongoing.
    """
    if len(curve) < 2:
        return []

    periods: list[DrawdownPeriod] = []
    peak, peak_date = curve[0].equity, curve[0].date
    current: Optional[dict] = None

    for point in curve[1:]:
        if point.equity > peak:
            if current is not None:
                periods.append(_close_period(current, point.date, False))
                current = None
            peak, peak_date = point.equity, point.date
        elif point.equity < peak:
            if current is None:
                current = {"start": peak_date, "peak": peak, "trough": point.equity}
            elif point.equity < current["trough"]:
                current["trough"] = point.equity

    if current is not None:
        periods.append(_close_period(current, curve[-1].date, True))
    return periods


def _close_period(current: dict, end, ongoing: bool) -> DrawdownPeriod:
    amount = current["peak"] - current["trough"]
    pct = amount / current["peak"] * 100 if current["peak"] > 0 else 0.0
    return DrawdownPeriod(
        start_date=current["start"],
        end_date=None if ongoing else end,
        peak_equity=current["peak"],
        trough_equity=current["trough"],
        drawdown_amount=amount,
        drawdown_percent=pct,
        duration=end - current["start"],
        is_ongoing=ongoing,
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RISK OVERVIEW
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def risk_overview(trades: Sequence[Trade], starting_balance: float,
                  current_balance: Optional[float] = None,
                  today: Optional[date] = None, tz: Optional[str] = None) -> dict:
    today = today or date.today()
    closed = closed_trades(trades)
    days = daily_pnl(closed, tz)
    curve = drawdown_from_daily([(d.date, d.pnl) for d in days], starting_balance)

    total = sum(t.net_pnl for t in closed)
    balance = current_balance if current_balance else starting_balance + total
    peak = curve[-1].peak if curve else starting_balance
    current_dd_pct = (peak - balance) / peak * 100 if peak > 0 else 0.0

    start_of_week = week_start(today)
    start_of_month = today.replace(day=1)
    today_summary = next((d for d in days if d.date == today), None)

    return {
        "starting_balance": round(starting_balance, 2),
        "current_balance": round(balance, 2),
        "total_pnl": round(total, 2),
        "total_return": round(total / starting_balance * 100, 2) if starting_balance > 0 else 0.0,
        "weekly_pnl": round(sum(t.net_pnl for t in closed if day_key(t, tz) >= start_of_week), 2),
        "monthly_pnl": round(sum(t.net_pnl for t in closed if day_key(t, tz) >= start_of_month), 2),
        "daily_pnl": round(today_summary.pnl, 2) if today_summary else 0.0,
        "trades_today": today_summary.trades if today_summary else 0,
        "max_drawdown": round(max((p.drawdown_percent for p in curve), default=0.0), 2),
        "current_drawdown": round(current_dd_pct, 2),
        "avg_winning_day": round(average_winning_day(days), 2),
        "avg_losing_day": round(average_losing_day(days), 2),
        "profitable_days": sum(1 for d in days if d.is_green),
        "total_trading_days": len(days),
        "largest_win": round(max((t.net_pnl for t in closed), default=0.0), 2),
        "largest_loss": round(min((t.net_pnl for t in closed), default=0.0), 2),
        "avg_r_multiple": round(average_r_multiple(closed), 2),
        "sharpe_ratio": round(sharpe_ratio(closed), 2),
        "drawdown_curve": [p.to_dict() for p in curve],
        "max_drawdown_limit": get_settings().max_drawdown_limit_pct,
    }
