"""Position sizing and daily / weekly loss limits."""

import pytest

from tradelog.journal.journal_models import Profile
from tradelog.risk.limits import (
    LimitStatus,
    classify,
    daily_limit_status,
    resolve_daily_limit,
    resolve_weekly_limit,
)
from tradelog.risk.position_sizer import dollar_risk, size_position


class TestPositionSize:

    def test_futures_ticks(self):
        result = size_position(50000, 1.0, stop_ticks=8, tick_value=12.5)
        assert result.dollar_risk == 500.0
        assert result.risk_per_unit == 100.0
        assert result.units == 5
        assert result.actual_risk == 500.0
        assert result.actual_risk_percent == pytest.approx(1.0)
        assert not result.is_over_risk

    def test_price_distance(self):
        result = size_position(10000, 2.0, entry_price=100.0, stop_price=97.0)
        assert result.units == 66
        assert result.actual_risk == pytest.approx(198.0)
        assert result.position_value == pytest.approx(6600.0)

    def test_stop_too_wide_gives_zero_units(self):
        result = size_position(1000, 1.0, stop_ticks=40, tick_value=12.5)
        assert result.units == 0
        assert result.has_no_position

    def test_zero_stop_distance(self):
        result = size_position(10000, 1.0, entry_price=50.0, stop_price=50.0)
        assert result.units == 0

    def test_needs_one_input_pair(self):
        with pytest.raises(ValueError):
            size_position(10000, 1.0, stop_ticks=8)

    def test_dollar_risk_non_positive_inputs(self):
        assert dollar_risk(0, 1.0) == 0.0
        assert dollar_risk(10000, -1.0) == 0.0


class TestDailyLimit:

    @pytest.mark.parametrize("progress,status", [
        (0, LimitStatus.SAFE), (49.9, LimitStatus.SAFE), (50, LimitStatus.WARNING),
        (75, LimitStatus.DANGER), (100, LimitStatus.EXCEEDED), (140, LimitStatus.EXCEEDED),
    ])
    def test_classify(self, progress, status):
        assert classify(progress) == status

    def test_loss_progress(self):
        status = daily_limit_status(-300.0, 500.0, trades_today=2, max_trades=5)
        assert status.loss_progress == pytest.approx(60.0)
        assert status.status == LimitStatus.WARNING
        assert status.remaining_risk == 200.0
        assert status.risk_per_remaining_trade == pytest.approx(200.0 / 3)
        assert status.trade_progress == pytest.approx(40.0)

    def test_profit_never_uses_limit(self):
        status = daily_limit_status(800.0, 500.0)
        assert status.loss_progress == 0.0
        assert status.status == LimitStatus.SAFE
        assert status.remaining_risk == 500.0

    def test_exceeded(self):
        status = daily_limit_status(-650.0, 500.0, trades_today=5, max_trades=5)
        assert status.status == LimitStatus.EXCEEDED
        assert status.remaining_risk == 0.0
        assert status.risk_per_remaining_trade == 0.0
        assert status.to_dict()["status"] == "exceeded"


class TestResolveLimits:

    def test_profile_value_wins(self):
        profile = Profile(email="a@b.c", daily_loss_limit=750.0, weekly_loss_limit=1500.0)
        assert resolve_daily_limit(50000, profile) == 750.0
        assert resolve_weekly_limit(50000, profile) == 1500.0

    def test_percent_of_account(self, isolated_settings):
        expected = 50000 * isolated_settings.daily_loss_limit_pct / 100
        assert resolve_daily_limit(50000, Profile(email="a@b.c")) == pytest.approx(expected)
        assert resolve_weekly_limit(50000) == pytest.approx(50000 * isolated_settings.weekly_loss_limit_pct / 100)
