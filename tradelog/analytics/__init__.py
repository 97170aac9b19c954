"""
Metrics Engine
==============

Pure, I/O-free aggregation over in-memory trade records. Every page-level
view (dashboard, risk, calendar, leaderboard, setups, achievements,
challenges, discipline) is computed from these functions.

  statistics.py    — win rate, profit factor, expectancy, R, runs, Sharpe
  daily.py         — day grouping, green days, trading-day streaks, calendar
  risk_metrics.py  — equity / drawdown curves and the risk overview
  leaderboard.py   — cross-user ranking, consistency score, league tiers
  achievements.py  — achievement catalog and progress
  challenges.py    — rotating daily / weekly challenges
  leveling.py      — XP levels
  discipline.py    — rule streaks and discipline XP
  setups.py        — per-setup performance
  breakdowns.py    — P&L by weekday, hour, session, symbol, emotion
"""

from tradelog.analytics.statistics import (
    TradeStatistics,
    average_r_multiple,
    closed_trades,
    expectancy,
    profit_factor,
    sharpe_ratio,
    trade_statistics,
    win_rate,
)
from tradelog.analytics.daily import (
    current_streak,
    daily_pnl,
    day_win_rate,
    green_days,
    longest_streak,
    trading_days,
)
from tradelog.analytics.risk_metrics import (
    drawdown_curve,
    drawdown_periods,
    drawdown_summary,
    equity_curve,
    risk_overview,
)
from tradelog.analytics.leaderboard import (
    LeaderboardMetric,
    LeaderboardPeriod,
    build_leaderboard,
    consistency_score,
    league_tier,
)
from tradelog.analytics.leveling import level_for_xp, level_progress, xp_to_next_level

__all__ = [
    # Statistics
    "TradeStatistics", "trade_statistics", "closed_trades", "win_rate", "profit_factor",
    "expectancy", "average_r_multiple", "sharpe_ratio",
    # Days & streaks
    "daily_pnl", "green_days", "day_win_rate", "trading_days", "current_streak", "longest_streak",
    # Risk
    "drawdown_curve", "drawdown_summary", "equity_curve", "drawdown_periods", "risk_overview",
    # Ranking & progression
    "LeaderboardMetric", "LeaderboardPeriod", "build_leaderboard", "consistency_score",
    "league_tier", "level_for_xp", "level_progress", "xp_to_next_level",
]
