"""Trade statistics: ratios, runs, Sharpe and the summary object."""

from datetime import datetime, timedelta

import pytest

from tradelog.analytics.statistics import (
    average_loser,
    average_r_multiple,
    average_winner,
    closed_trades,
    consecutive_runs,
    expectancy,
    profit_factor,
    sharpe_ratio,
    total_pnl,
    trade_statistics,
    win_loss_ratio,
    win_rate,
)


def _series(trade_factory, pnls, r_multiples=None):
    start = datetime(2024, 3, 4, 9, 30)
    rs = r_multiples or [None] * len(pnls)
    return [trade_factory(net_pnl=p, entry=start + timedelta(days=i), r_multiple=r)
            for i, (p, r) in enumerate(zip(pnls, rs))]


# ============================================================================
# Core ratios
# ============================================================================

class TestCoreRatios:
    """+100 / -50 / +25 is the reference scenario."""

    @pytest.fixture
    def trades(self, trade_factory):
        return _series(trade_factory, [100.0, -50.0, 25.0])

    def test_win_rate(self, trades):
        assert win_rate(trades) == pytest.approx(66.6667, rel=1e-4)

    def test_total_and_expectancy(self, trades):
        assert total_pnl(trades) == pytest.approx(75.0)
        assert expectancy(trades) == pytest.approx(25.0)

    def test_profit_factor(self, trades):
        assert average_winner(trades) == pytest.approx(62.5)
        assert average_loser(trades) == pytest.approx(50.0)
        assert profit_factor(trades) == pytest.approx(2.5)

    def test_win_loss_ratio(self, trades):
        assert win_loss_ratio(trades) == pytest.approx(1.25)

    def test_empty_input_is_zero(self):
        assert win_rate([]) == 0.0
        assert expectancy([]) == 0.0
        assert profit_factor([]) == 0.0
        assert average_r_multiple([]) == 0.0

    def test_profit_factor_without_losses_is_zero(self, trade_factory):
        assert profit_factor(_series(trade_factory, [10.0, 20.0])) == 0.0

    def test_breakeven_counts_in_total_only(self, trade_factory):
        trades = _series(trade_factory, [100.0, 0.0])
        assert win_rate(trades) == pytest.approx(50.0)
        assert average_loser(trades) == 0.0


class TestClosedTrades:

    def test_open_and_cancelled_trades_are_ignored(self, trade_factory):
        trades = [
            trade_factory(net_pnl=100.0),
            trade_factory(net_pnl=None, closed=False),
            trade_factory(net_pnl=-40.0, status="cancelled"),
        ]
        assert len(closed_trades(trades)) == 1
        assert win_rate(trades) == pytest.approx(100.0)

    def test_closed_trade_without_pnl_is_ignored(self, trade_factory):
        trades = [trade_factory(net_pnl=None), trade_factory(net_pnl=-10.0)]
        assert closed_trades(trades)[0].net_pnl == -10.0


# ============================================================================
# R-multiple, runs, Sharpe
# ============================================================================

class TestRMultiple:

    def test_trades_without_stop_are_excluded_not_zeroed(self, trade_factory):
        trades = _series(trade_factory, [100.0, -50.0, 30.0], [2.0, -1.0, None])
        assert average_r_multiple(trades) == pytest.approx(0.5)


class TestConsecutiveRuns:

    def test_runs_follow_entry_order(self, trade_factory):
        trades = _series(trade_factory, [10.0, 20.0, 30.0, -5.0, -5.0, 10.0])
        # shuffled input must not matter
        assert consecutive_runs(list(reversed(trades))) == (3, 2)

    def test_breakeven_resets_both_runs(self, trade_factory):
        trades = _series(trade_factory, [10.0, 0.0, 10.0, -1.0, 0.0, -1.0])
        assert consecutive_runs(trades) == (1, 1)


class TestSharpe:

    def test_needs_two_trades(self, trade_factory):
        assert sharpe_ratio(_series(trade_factory, [100.0])) == 0.0

    def test_zero_variance_is_zero(self, trade_factory):
        assert sharpe_ratio(_series(trade_factory, [50.0, 50.0, 50.0])) == 0.0

    def test_population_std_annualised(self, trade_factory):
        # mean 25, population std 75
        trades = _series(trade_factory, [100.0, -50.0])
        expected = (25 * 252 - 0.02) / (75 * 252 ** 0.5)
        assert sharpe_ratio(trades) == pytest.approx(expected)


class TestTradeStatistics:

    def test_summary_fields(self, trade_factory):
        trades = _series(trade_factory, [100.0, -50.0, 25.0])
        stats = trade_statistics(trades)
        assert stats.total_trades == 3
        assert stats.winning_trades == 2
        assert stats.losing_trades == 1
        assert stats.gross_profit == pytest.approx(125.0)
        assert stats.gross_loss == pytest.approx(50.0)
        assert stats.largest_win == pytest.approx(100.0)
        assert stats.largest_loss == pytest.approx(-50.0)
        assert stats.best_trade_id == trades[0].id
        assert stats.worst_trade_id == trades[1].id

    def test_to_dict_rounds(self, trade_factory):
        d = trade_statistics(_series(trade_factory, [100.0, -50.0, 25.0])).to_dict()
        assert d["win_rate"] == 66.67
        assert d["profit_factor"] == 2.5

    def test_empty(self):
        assert trade_statistics([]).total_trades == 0
