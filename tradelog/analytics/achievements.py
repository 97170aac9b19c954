"""
Achievements — a fixed catalog scored against aggregated journal stats.

progress = min(100, value / requirement x 100); unlocked at 100.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional, Sequence

from tradelog.analytics.daily import current_streak, green_days, longest_streak, trading_days
from tradelog.analytics.statistics import closed_trades
from tradelog.journal.journal_models import DailyJournal, Setup, Trade, TradeScreenshot


@dataclass
class AchievementStats:
    total_trades: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_pnl: float = 0.0
    journal_entries: int = 0
    green_days: int = 0
    perfect_weeks: int = 0
    weekly_reviews: int = 0
    setups: int = 0
    trades_with_screenshots: int = 0
    has_pre_market_note: bool = False
    has_post_market_review: bool = False
    analytics_views: int = 0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["total_pnl"] = round(d["total_pnl"], 2)
        return d


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    requirement: int
    type: str
    tier: str
    stat: str

    def current_value(self, stats: AchievementStats) -> float:
        value = getattr(stats, self.stat)
        if isinstance(value, bool):
            return 1 if value else 0
        return value

    def progress(self, stats: AchievementStats) -> float:
        if self.requirement <= 0:
            return 100.0
        return min(100.0, self.current_value(stats) / self.requirement * 100)

    def is_unlocked(self, stats: AchievementStats) -> bool:
        return self.progress(stats) >= 100


def _a(id, name, description, requirement, type, tier, stat) -> Achievement:
    return Achievement(id, name, description, requirement, type, tier, stat)


ACHIEVEMENTS: list[Achievement] = [
    # trade count
    _a("first_trade", "First Steps", "Log your first trade", 1, "trades", "bronze", "total_trades"),
    _a("trades_10", "Building Habits", "Log 10 trades", 10, "trades", "bronze", "total_trades"),
    _a("trades_50", "Committed Logger", "Log 50 trades", 50, "trades", "silver", "total_trades"),
    _a("trades_100", "Century Club", "Log 100 trades", 100, "trades", "gold", "total_trades"),
    _a("trades_500", "Trading Historian", "Log 500 trades", 500, "trades", "platinum", "total_trades"),
    # streaks
    _a("streak_3", "Momentum", "Log trades 3 days in a row", 3, "streak", "bronze", "longest_streak"),
    _a("streak_7", "Week Warrior", "Log trades 7 days in a row", 7, "streak", "silver", "longest_streak"),
    _a("streak_30", "Monthly Dedication", "Log trades 30 days in a row", 30, "streak", "gold", "longest_streak"),
    _a("streak_100", "Unstoppable", "Log trades 100 days in a row", 100, "streak", "platinum", "longest_streak"),
    # journaling
    _a("journal_1", "Self-Reflection", "Write your first journal entry", 1, "journal", "bronze", "journal_entries"),
    _a("journal_7", "Reflective Trader", "Write 7 journal entries", 7, "journal", "bronze", "journal_entries"),
    _a("journal_30", "Thoughtful Analyst", "Write 30 journal entries", 30, "journal", "silver", "journal_entries"),
    _a("journal_100", "Master Journaler", "Write 100 journal entries", 100, "journal", "gold", "journal_entries"),
    # green days
    _a("green_1", "First Green Day", "Have your first profitable day", 1, "pnl", "bronze", "green_days"),
    _a("green_10", "Double Digits", "Have 10 profitable days", 10, "pnl", "bronze", "green_days"),
    _a("green_25", "Quarter Century", "Have 25 profitable days", 25, "pnl", "silver", "green_days"),
    _a("green_50", "Half Century", "Have 50 profitable days", 50, "pnl", "gold", "green_days"),
    _a("green_100", "Triple Digits", "Have 100 profitable days", 100, "pnl", "platinum", "green_days"),
    # weekly reviews
    _a("weekly_review_1", "Week in Review", "Complete your first weekly review", 1, "consistency", "bronze", "weekly_reviews"),
    _a("weekly_review_4", "Monthly Reviewer", "Complete 4 weekly reviews", 4, "consistency", "silver", "weekly_reviews"),
    _a("weekly_review_12", "Quarterly Commitment", "Complete 12 weekly reviews", 12, "consistency", "gold", "weekly_reviews"),
    # learning
    _a("setup_1", "Setup Student", "Create your first setup", 1, "learning", "bronze", "setups"),
    _a("setup_5", "Strategy Builder", "Create 5 different setups", 5, "learning", "silver", "setups"),
    _a("screenshot_10", "Visual Learner", "Add screenshots to 10 trades", 10, "learning", "bronze", "trades_with_screenshots"),
    _a("screenshot_50", "Chart Archivist", "Add screenshots to 50 trades", 50, "learning", "silver", "trades_with_screenshots"),
    # special
    _a("early_bird", "Early Bird", "Log a pre-market journal note", 1, "special", "bronze", "has_pre_market_note"),
    _a("night_owl", "Night Owl", "Complete a post-market review", 1, "special", "bronze", "has_post_market_review"),
    _a("perfect_week", "Perfect Week", "Journal and log trades every trading day for a week", 1, "special", "gold", "perfect_weeks"),
    _a("data_driven", "Data Driven", "Use the analytics page 10 times", 10, "special", "silver", "analytics_views"),
]


def perfect_weeks(green_day_count: int) -> int:
    """Every five green days count as one perfect week."""
    return green_day_count // 5 if green_day_count >= 5 else 0


def build_achievement_stats(
    trades: Sequence[Trade],
    journals: Sequence[DailyJournal] = (),
    setups: Sequence[Setup] = (),
    screenshots: Sequence[TradeScreenshot] = (),
    today: Optional[date] = None,
    tz: Optional[str] = None,
    analytics_views: int = 0,
) -> AchievementStats:
    closed = closed_trades(trades)
    days = trading_days(closed, tz)
    greens = green_days(closed, tz)

    def _has(text: Optional[str]) -> bool:
        return bool(text and text.strip())

    return AchievementStats(
        total_trades=len(closed),
        current_streak=current_streak(days, today),
        longest_streak=longest_streak(days),
        total_pnl=sum(t.net_pnl for t in closed),
        journal_entries=sum(1 for j in journals if j.has_content),
        green_days=greens,
        perfect_weeks=perfect_weeks(greens),
        weekly_reviews=sum(1 for j in journals if j.has_weekly_review),
        setups=len(setups),
        trades_with_screenshots=len({s.trade_id for s in screenshots}),
        has_pre_market_note=any(_has(j.pre_market_notes) for j in journals),
        has_post_market_review=any(_has(j.post_market_notes) for j in journals),
        analytics_views=analytics_views,
    )


def evaluate_achievements(stats: AchievementStats) -> list[dict]:
    results = []
    for a in ACHIEVEMENTS:
        progress = a.progress(stats)
        results.append({
            "id": a.id,
            "name": a.name,
            "description": a.description,
            "type": a.type,
            "tier": a.tier,
            "requirement": a.requirement,
            "current_value": a.current_value(stats),
            "progress": round(progress, 2),
            "unlocked": a.is_unlocked(stats),
        })
    return results


def achievements_summary(stats: AchievementStats) -> dict:
    evaluated = evaluate_achievements(stats)
    unlocked = [a for a in evaluated if a["unlocked"]]
    return {
        "stats": stats.to_dict(),
        "achievements": evaluated,
        "unlocked_count": len(unlocked),
        "total_count": len(evaluated),
        "completion": round(len(unlocked) / len(evaluated) * 100, 2) if evaluated else 0.0,
    }
