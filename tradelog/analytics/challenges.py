"""
Daily / weekly challenges
=========================

Each challenge maps a ChallengeStats snapshot to a current value and
compares it with a target. Stats are recomputed from data inside the
current window on every load: the day window opens at local midnight,
the week window on Sunday. Nothing is reset explicitly.

The active set rotates deterministically: the catalog is shuffled with a
seed derived from the date (daily) or year/week number (weekly), so every
user sees the same challenges on the same day.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from datetime import date, datetime, time
from typing import Callable, Optional, Sequence, TypeVar

from tradelog.analytics.daily import week_start
from tradelog.journal.journal_models import DailyJournal, Trade

T = TypeVar("T")

DAILY_CHALLENGES_COUNT = 3
WEEKLY_CHALLENGES_COUNT = 4


@dataclass
class ChallengeStats:
    journal_today: bool = False
    journals_this_week: int = 0
    reviewed_trades: int = 0
    reviewed_trades_today: int = 0
    notes_added_today: int = 0
    has_pre_market_note: bool = False
    has_post_market_note: bool = False
    weekly_review_completed: bool = False
    lessons_documented: int = 0
    lessons_documented_today: int = 0
    all_trades_have_notes: bool = False
    trades_with_setup: int = 0
    trades_with_stop_loss: int = 0
    screenshots_added: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Challenge:
    id: str
    name: str
    description: str
    type: str
    target: int
    xp: int
    check: Callable[[ChallengeStats], float]

    def progress_value(self, stats: ChallengeStats) -> float:
        return self.check(stats)

    def percent(self, stats: ChallengeStats) -> float:
        if self.target <= 0:
            return 100.0
        return min(100.0, self.progress_value(stats) / self.target * 100)

    def is_complete(self, stats: ChallengeStats) -> bool:
        return self.percent(stats) >= 100


DAILY_CHALLENGES: list[Challenge] = [
    Challenge("write_journal", "Reflective Trader", "Write a journal entry today", "daily", 1, 15,
              lambda s: 1 if s.journal_today else 0),
    Challenge("add_notes", "Detailed Logger", "Add notes to your trades today", "daily", 1, 20,
              lambda s: min(s.notes_added_today, 1)),
    Challenge("review_trade", "Trade Analyst", "Rate a past trade's entry, exit, or management", "daily", 1, 15,
              lambda s: min(s.reviewed_trades_today, 1)),
    Challenge("pre_market_prep", "Prepared Trader", "Complete your pre-market preparation", "daily", 1, 20,
              lambda s: 1 if s.has_pre_market_note else 0),
    Challenge("post_market_review", "End of Day Review", "Write your post-market analysis", "daily", 1, 20,
              lambda s: 1 if s.has_post_market_note else 0),
    Challenge("document_lesson", "Lesson Learned", "Document a lesson from one of your trades", "daily", 1, 25,
              lambda s: min(s.lessons_documented_today, 1)),
    Challenge("use_setup", "Setup Discipline", "Tag a trade with a setup/strategy", "daily", 1, 15,
              lambda s: min(s.trades_with_setup, 1)),
    Challenge("risk_management", "Risk Manager", "Set a stop loss on a trade", "daily", 1, 20,
              lambda s: min(s.trades_with_stop_loss, 1)),
    Challenge("mindful_trading", "Mindful Trader", "Review 2 past trades to identify patterns", "daily", 2, 25,
              lambda s: min(s.reviewed_trades_today, 2)),
    Challenge("focus_session", "Focused Analysis", "Add detailed notes to 2 trades", "daily", 2, 30,
              lambda s: min(s.notes_added_today, 2)),
]

WEEKLY_CHALLENGES: list[Challenge] = [
    Challenge("weekly_journal", "Weekly Reflection", "Write 3 journal entries this week", "weekly", 3, 40,
              lambda s: s.journals_this_week),
    Challenge("weekly_review", "Week in Review", "Complete your weekly review on the weekend", "weekly", 1, 50,
              lambda s: 1 if s.weekly_review_completed else 0),
    Challenge("review_trades", "Trade Analyst", "Review and rate 5 past trades this week", "weekly", 5, 45,
              lambda s: s.reviewed_trades),
    Challenge("document_lessons", "Continuous Learner", "Document lessons learned from 3 trades", "weekly", 3, 35,
              lambda s: s.lessons_documented),
    Challenge("consistent_logging", "Disciplined Logger", "Log notes on all your trades this week", "weekly", 1, 60,
              lambda s: 1 if s.all_trades_have_notes else 0),
    Challenge("setup_master", "Setup Master", "Tag 5 trades with setups this week", "weekly", 5, 40,
              lambda s: s.trades_with_setup),
    Challenge("risk_discipline", "Risk Discipline", "Set stop losses on 5 trades this week", "weekly", 5, 50,
              lambda s: s.trades_with_stop_loss),
    Challenge("pattern_hunter", "Pattern Hunter", "Review and rate 3 winning AND 3 losing trades", "weekly", 6, 55,
              lambda s: s.reviewed_trades),
]

CHALLENGES_BY_ID: dict[str, Challenge] = {c.id: c for c in DAILY_CHALLENGES + WEEKLY_CHALLENGES}


# ── Rotation ─────────────────────────────────────────────────

def seeded_random(seed: float) -> float:
    x = math.sin(seed) * 10000
    return x - math.floor(x)


def shuffle_with_seed(items: Sequence[T], seed: int) -> list[T]:
    """Deterministic Fisher-Yates shuffle walking from the end."""
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = math.floor(seeded_random(seed + i) * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def _sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def week_number(now: datetime) -> int:
    """Week of year: ceil((days since Jan 1 + weekday of Jan 1 + 1) / 7), weeks starting Sunday."""
    jan1 = datetime(now.year, 1, 1, tzinfo=now.tzinfo)
    elapsed_days = (now - jan1).total_seconds() / 86400
    return math.ceil((elapsed_days + _sunday_based_weekday(jan1.date()) + 1) / 7)


def day_seed(day: date) -> int:
    return day.year * 10000 + day.month * 100 + day.day


def week_seed(now: datetime) -> int:
    return now.year * 100 + week_number(now)


def daily_period_key(now: datetime) -> str:
    return now.date().isoformat()


def weekly_period_key(now: datetime) -> str:
    return f"{now.year}-W{week_number(now):02d}"


def active_daily_challenges(now: datetime) -> list[Challenge]:
    return shuffle_with_seed(DAILY_CHALLENGES, day_seed(now.date()))[:DAILY_CHALLENGES_COUNT]


def active_weekly_challenges(now: datetime) -> list[Challenge]:
    return shuffle_with_seed(WEEKLY_CHALLENGES, week_seed(now))[:WEEKLY_CHALLENGES_COUNT]


# ── Stats ────────────────────────────────────────────────────

def challenge_windows(now: datetime) -> tuple[datetime, datetime]:
    """(start of today, start of this week). Weeks start on Sunday."""
    today = now.date()
    return (datetime.combine(today, time.min, tzinfo=now.tzinfo),
            datetime.combine(week_start(today), time.min, tzinfo=now.tzinfo))


def _filled(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def _on_or_after(moment: datetime, start: datetime) -> bool:
    if (moment.tzinfo is None) != (start.tzinfo is None):
        return moment.replace(tzinfo=None) >= start.replace(tzinfo=None)
    return moment >= start


def build_challenge_stats(trades: Sequence[Trade], journals: Sequence[DailyJournal],
                          now: Optional[datetime] = None, screenshots_added: int = 0) -> ChallengeStats:
    """Aggregate a user's trades and journals for the current day and week.

    "Today's" trades are those created since midnight; "this week's" trades
    are those entered since Sunday.
    """
    now = now or datetime.now()
    day_start, wk_start = challenge_windows(now)

    today_trades = [t for t in trades if _on_or_after(t.created_at, day_start)]
    week_trades = [t for t in trades if _on_or_after(t.entry_date, wk_start)]
    today_journals = [j for j in journals if j.date == day_start.date()]
    week_journals = [j for j in journals if j.date >= wk_start.date()]

    def _journaled_this_week(j: DailyJournal) -> bool:
        return (_filled(j.pre_market_notes) or _filled(j.post_market_notes)
                or j.has_weekly_review)

    return ChallengeStats(
        journal_today=any(_filled(j.pre_market_notes) or _filled(j.post_market_notes)
                          or _filled(j.lessons_learned) for j in today_journals),
        journals_this_week=sum(1 for j in week_journals if _journaled_this_week(j)),
        reviewed_trades=sum(1 for t in week_trades if t.entry_rating is not None),
        reviewed_trades_today=sum(1 for t in today_trades if t.is_reviewed),
        notes_added_today=sum(1 for t in today_trades if _filled(t.notes)),
        has_pre_market_note=any(_filled(j.pre_market_notes) for j in today_journals),
        has_post_market_note=any(_filled(j.post_market_notes) for j in today_journals),
        weekly_review_completed=any(j.has_weekly_review for j in week_journals),
        lessons_documented=sum(1 for t in week_trades if _filled(t.lessons)),
        lessons_documented_today=sum(1 for t in today_trades if _filled(t.lessons)),
        all_trades_have_notes=bool(week_trades) and all(_filled(t.notes) for t in week_trades),
        trades_with_setup=sum(1 for t in week_trades if t.setup_id is not None),
        trades_with_stop_loss=sum(1 for t in week_trades if t.stop_loss is not None),
        screenshots_added=screenshots_added,
    )


def evaluate_challenges(challenges: Sequence[Challenge], stats: ChallengeStats,
                        period_key: str, claimed: set[tuple[str, str]] = frozenset()) -> list[dict]:
    results = []
    for c in challenges:
        results.append({
            "id": c.id,
            "name": c.name,
            "description": c.description,
            "type": c.type,
            "target": c.target,
            "xp": c.xp,
            "progress": c.progress_value(stats),
            "percent": round(c.percent(stats), 2),
            "completed": c.is_complete(stats),
            "claimed": (c.id, period_key) in claimed,
            "period_key": period_key,
        })
    return results
