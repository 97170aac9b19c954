"""
Trade Statistics — win rate, profit factor, expectancy, R, runs
================================================================

Pure functions over lists of trades. Only closed trades with a net P&L
take part; anything else is ignored. Empty or degenerate input always
yields 0 instead of NaN or an exception.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Optional, Sequence

import numpy as np

from tradelog.journal.journal_models import Trade


def closed_trades(trades: Sequence[Trade]) -> list[Trade]:
    return [t for t in trades if t.is_closed and t.net_pnl is not None]


def _pnls(trades: Sequence[Trade]) -> list[float]:
    return [t.net_pnl for t in closed_trades(trades)]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CORE RATIOS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def win_rate(trades: Sequence[Trade]) -> float:
    """Winners / closed trades x 100. Breakeven trades count toward the total only."""
    pnls = _pnls(trades)
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls) * 100


def average_winner(trades: Sequence[Trade]) -> float:
    wins = [p for p in _pnls(trades) if p > 0]
    return sum(wins) / len(wins) if wins else 0.0


def average_loser(trades: Sequence[Trade]) -> float:
    """Magnitude of the average losing trade."""
    losses = [p for p in _pnls(trades) if p < 0]
    return abs(sum(losses) / len(losses)) if losses else 0.0


def profit_factor(trades: Sequence[Trade]) -> float:
    """(avg win x wins) / (avg loss x losses); 0 when there are no losses."""
    pnls = _pnls(trades)
    win_count = sum(1 for p in pnls if p > 0)
    loss_count = sum(1 for p in pnls if p < 0)
    if loss_count == 0:
        return 0.0
    gross_loss = average_loser(trades) * loss_count
    if gross_loss == 0:
        return 0.0
    return (average_winner(trades) * win_count) / gross_loss


def expectancy(trades: Sequence[Trade]) -> float:
    pnls = _pnls(trades)
    return sum(pnls) / len(pnls) if pnls else 0.0


def win_loss_ratio(trades: Sequence[Trade]) -> float:
    avg_loss = average_loser(trades)
    return average_winner(trades) / avg_loss if avg_loss else 0.0


def total_pnl(trades: Sequence[Trade]) -> float:
    return sum(_pnls(trades))


def average_r_multiple(trades: Sequence[Trade]) -> float:
    """Mean R over trades that have one. Trades without a stop are excluded, not zeroed."""
    rs = [t.r_multiple for t in closed_trades(trades) if t.r_multiple is not None]
    return sum(rs) / len(rs) if rs else 0.0


def best_trade(trades: Sequence[Trade]) -> Optional[Trade]:
    closed = closed_trades(trades)
    return max(closed, key=lambda t: t.net_pnl) if closed else None


def worst_trade(trades: Sequence[Trade]) -> Optional[Trade]:
    closed = closed_trades(trades)
    return min(closed, key=lambda t: t.net_pnl) if closed else None


def consecutive_runs(trades: Sequence[Trade]) -> tuple[int, int]:
    """Longest (winning, losing) runs in entry-date order. Breakeven breaks both."""
    ordered = sorted(closed_trades(trades), key=lambda t: t.entry_date)
    max_wins = max_losses = cur_wins = cur_losses = 0
    for t in ordered:
        if t.net_pnl > 0:
            cur_wins += 1
            cur_losses = 0
        elif t.net_pnl < 0:
            cur_losses += 1
            cur_wins = 0
        else:
            cur_wins = cur_losses = 0
        max_wins = max(max_wins, cur_wins)
        max_losses = max(max_losses, cur_losses)
    return max_wins, max_losses


def sharpe_ratio(trades: Sequence[Trade], risk_free_rate: float = 0.02,
                 periods_per_year: int = 252) -> float:
    """Annualised per-trade Sharpe using the population standard deviation."""
    pnls = _pnls(trades)
    if len(pnls) < 2:
        return 0.0
    arr = np.asarray(pnls, dtype=float)
    std = float(arr.std())
    if std == 0:
        return 0.0
    annual_return = float(arr.mean()) * periods_per_year
    annual_std = std * math.sqrt(periods_per_year)
    return (annual_return - risk_free_rate) / annual_std


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FULL SUMMARY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class TradeStatistics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    breakeven_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    average_winner: float = 0.0
    average_loser: float = 0.0
    win_loss_ratio: float = 0.0
    total_pnl: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    average_r_multiple: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    best_trade_id: Optional[str] = None
    worst_trade_id: Optional[str] = None
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    def to_dict(self) -> dict:
        d = asdict(self)
        return {k: round(v, 2) if isinstance(v, float) else v for k, v in d.items()}


def trade_statistics(trades: Sequence[Trade]) -> TradeStatistics:
    closed = closed_trades(trades)
    if not closed:
        return TradeStatistics()

    pnls = [t.net_pnl for t in closed]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    best, worst = best_trade(closed), worst_trade(closed)
    max_wins, max_losses = consecutive_runs(closed)

    return TradeStatistics(
        total_trades=len(closed),
        winning_trades=len(wins),
        losing_trades=len(losses),
        breakeven_trades=len(closed) - len(wins) - len(losses),
        win_rate=win_rate(closed),
        profit_factor=profit_factor(closed),
        expectancy=expectancy(closed),
        average_winner=average_winner(closed),
        average_loser=average_loser(closed),
        win_loss_ratio=win_loss_ratio(closed),
        total_pnl=sum(pnls),
        gross_profit=sum(wins),
        gross_loss=abs(sum(losses)),
        average_r_multiple=average_r_multiple(closed),
        largest_win=max(wins) if wins else 0.0,
        largest_loss=min(losses) if losses else 0.0,
        best_trade_id=best.id if best else None,
        worst_trade_id=worst.id if worst else None,
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
    )
