"""
Discipline rules: per-rule streaks, perfect-day streak and XP.

Checks are evaluated over a trailing 30-day window. Trading days use
Sunday-based weekday numbers (0 = Sunday .. 6 = Saturday).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Optional, Sequence

from tradelog.journal.journal_models import UserRule, UserRuleCheck

HISTORY_DAYS = 30
DEFAULT_TRADING_DAYS = [1, 2, 3, 4, 5]

XP_DAILY_CHECK_IN = 10
XP_PERFECT_DAY = 25
XP_WEEK_STREAK = 100
XP_MONTH_STREAK = 500


@dataclass
class RuleStats:
    rule_id: str
    name: str
    category: str
    current_streak: int = 0
    longest_streak: int = 0
    total_followed: int = 0
    total_checks: int = 0
    checked_today: bool = False
    followed_today: Optional[bool] = None

    @property
    def adherence(self) -> float:
        return self.total_followed / self.total_checks * 100 if self.total_checks else 0.0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["adherence"] = round(self.adherence, 2)
        return d


def history_start(today: date) -> date:
    return today - timedelta(days=HISTORY_DAYS)


def sunday_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def is_trading_day(day: date, trading_days: Sequence[int] = DEFAULT_TRADING_DAYS) -> bool:
    return sunday_weekday(day) in trading_days


def rule_stats(rule: UserRule, checks: Sequence[UserRuleCheck], today: date) -> RuleStats:
    own = sorted((c for c in checks if c.rule_id == rule.id),
                 key=lambda c: c.check_date, reverse=True)

    current = 0
    for c in own:
        if not c.followed:
            break
        current += 1

    longest = current
    run = 0
    for c in reversed(own):
        run = run + 1 if c.followed else 0
        longest = max(longest, run)

    today_check = next((c for c in own if c.check_date == today), None)
    return RuleStats(
        rule_id=rule.id,
        name=rule.name,
        category=rule.category,
        current_streak=current,
        longest_streak=longest,
        total_followed=sum(1 for c in own if c.followed),
        total_checks=len(own),
        checked_today=today_check is not None,
        followed_today=today_check.followed if today_check else None,
    )


def _date_groups(checks: Sequence[UserRuleCheck]) -> dict[date, dict[str, int]]:
    groups: dict[date, dict[str, int]] = defaultdict(lambda: {"total": 0, "followed": 0})
    for c in checks:
        groups[c.check_date]["total"] += 1
        if c.followed:
            groups[c.check_date]["followed"] += 1
    return groups


def _is_perfect(group: dict[str, int], rule_count: int) -> bool:
    return rule_count > 0 and group["total"] == rule_count and group["followed"] == rule_count


def overall_streak(checks: Sequence[UserRuleCheck], rule_count: int) -> int:
    """Consecutive most-recent check dates on which every rule was checked and followed."""
    groups = _date_groups(checks)
    streak = 0
    for day in sorted(groups, reverse=True):
        if not _is_perfect(groups[day], rule_count):
            break
        streak += 1
    return streak


def discipline_xp(checks: Sequence[UserRuleCheck], rule_count: int) -> int:
    groups = _date_groups(checks)
    streak = overall_streak(checks, rule_count)
    xp = len(groups) * XP_DAILY_CHECK_IN
    xp += sum(1 for g in groups.values() if _is_perfect(g, rule_count)) * XP_PERFECT_DAY
    if streak >= 7:
        xp += (streak // 7) * XP_WEEK_STREAK
    if streak >= 30:
        xp += (streak // 30) * XP_MONTH_STREAK
    return xp


def discipline_summary(rules: Sequence[UserRule], checks: Sequence[UserRuleCheck],
                       today: Optional[date] = None,
                       trading_days: Sequence[int] = DEFAULT_TRADING_DAYS) -> dict:
    today = today or date.today()
    active = [r for r in rules if r.is_active]
    active_ids = {r.id for r in active}
    window = [c for c in checks if c.check_date >= history_start(today) and c.rule_id in active_ids]
    per_rule = [rule_stats(r, window, today) for r in active]

    checked_today = sum(1 for s in per_rule if s.checked_today)
    followed_today = sum(1 for s in per_rule if s.followed_today)
    return {
        "today": today.isoformat(),
        "is_trading_day": is_trading_day(today, trading_days),
        "trading_days": list(trading_days),
        "rules": [s.to_dict() for s in per_rule],
        "overall_streak": overall_streak(window, len(active)),
        "total_xp_earned": discipline_xp(window, len(active)),
        "checked_today": checked_today,
        "followed_today": followed_today,
        "completion_today": round(checked_today / len(active) * 100, 2) if active else 0.0,
    }
