"""Discipline rules: streaks, perfect days and XP."""

from datetime import date, timedelta

import pytest

from tradelog.analytics.discipline import (
    discipline_summary,
    discipline_xp,
    history_start,
    is_trading_day,
    overall_streak,
    rule_stats,
)
from tradelog.journal.journal_models import UserRule, UserRuleCheck


TODAY = date(2024, 6, 12)  # Wednesday


def _rule(rule_id, **kw):
    return UserRule(id=rule_id, user_id="user-1", name=rule_id.replace("_", " "), **kw)


def _check(rule_id, days_ago, followed=True):
    return UserRuleCheck(user_id="user-1", rule_id=rule_id,
                         check_date=TODAY - timedelta(days=days_ago), followed=followed)


class TestRuleStats:

    def test_current_streak_stops_at_first_miss(self):
        checks = [_check("stop", 0), _check("stop", 1), _check("stop", 2, followed=False),
                  _check("stop", 3), _check("stop", 4), _check("stop", 5), _check("stop", 6)]
        stats = rule_stats(_rule("stop"), checks, TODAY)
        assert stats.current_streak == 2
        assert stats.longest_streak == 4
        assert stats.total_checks == 7
        assert stats.adherence == pytest.approx(6 / 7 * 100)
        assert stats.checked_today
        assert stats.followed_today is True

    def test_unchecked_today(self):
        stats = rule_stats(_rule("stop"), [_check("stop", 1)], TODAY)
        assert not stats.checked_today
        assert stats.followed_today is None


class TestOverall:

    def test_perfect_days_need_every_rule(self):
        checks = [_check("a", 0), _check("b", 0), _check("a", 1), _check("b", 1),
                  _check("a", 2)]
        assert overall_streak(checks, 2) == 2

    def test_failed_rule_breaks_streak(self):
        checks = [_check("a", 0), _check("b", 0, followed=False), _check("a", 1), _check("b", 1)]
        assert overall_streak(checks, 2) == 0

    def test_no_rules(self):
        assert overall_streak([_check("a", 0)], 0) == 0

    def test_xp_with_week_bonus(self):
        checks = [_check(r, d) for r in ("a", "b") for d in range(7)]
        assert discipline_xp(checks, 2) == 7 * 10 + 7 * 25 + 100

    def test_xp_checked_but_imperfect(self):
        checks = [_check("a", 0), _check("b", 0, followed=False)]
        assert discipline_xp(checks, 2) == 10


class TestTradingDays:

    def test_weekdays_by_default(self):
        assert is_trading_day(TODAY)
        assert not is_trading_day(date(2024, 6, 9))  # Sunday
        assert not is_trading_day(date(2024, 6, 15))  # Saturday

    def test_custom_days(self):
        assert is_trading_day(date(2024, 6, 9), [0])


class TestSummary:

    def test_window_and_inactive_rules(self):
        rules = [_rule("a"), _rule("b"), _rule("old", is_active=False)]
        checks = [_check("a", 0), _check("old", 0), _check("b", 31)]
        summary = discipline_summary(rules, checks, today=TODAY)
        assert [r["rule_id"] for r in summary["rules"]] == ["a", "b"]
        assert summary["rules"][1]["total_checks"] == 0
        assert summary["checked_today"] == 1
        assert summary["followed_today"] == 1
        assert summary["completion_today"] == 50.0
        assert summary["is_trading_day"]
        assert history_start(TODAY) == TODAY - timedelta(days=30)

    def test_no_rules(self):
        summary = discipline_summary([], [], today=TODAY)
        assert summary["completion_today"] == 0.0
        assert summary["total_xp_earned"] == 0
