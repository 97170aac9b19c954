from datetime import datetime

import pytest

from tradelog.analytics.breakdowns import (
    breakdowns,
    pnl_by_emotion,
    pnl_by_weekday,
    pnl_distribution,
)
from tradelog.analytics.setups import setup_statistics, setups_overview
from tradelog.journal.journal_models import Setup


@pytest.fixture
def setups():
    return [Setup(id="orb", user_id="user-1", name="ORB"),
            Setup(id="vwap", user_id="user-1", name="VWAP Reclaim"),
            Setup(id="old", user_id="user-1", name="Retired", is_active=False)]


class TestSetupStatistics:

    def test_per_setup_rows(self, setups, trade_factory):
        trades = [
            trade_factory(net_pnl=200.0, setup_id="orb", r_multiple=2.0),
            trade_factory(net_pnl=-100.0, setup_id="orb", r_multiple=-1.0),
            trade_factory(net_pnl=50.0, setup_id="vwap"),
            trade_factory(net_pnl=75.0),
        ]
        rows = {r["id"]: r for r in setup_statistics(setups, trades)}
        assert rows["orb"]["total_trades"] == 2
        assert rows["orb"]["win_rate"] == 50.0
        assert rows["orb"]["profit_factor"] == 2.0
        assert rows["orb"]["avg_r_multiple"] == 0.5
        assert rows["vwap"]["total_pnl"] == 50.0
        assert rows["old"]["total_trades"] == 0

    def test_overview_counts_active_only(self, setups, trade_factory):
        rows = setup_statistics(setups, [trade_factory(net_pnl=10.0, setup_id="old")])
        overview = setups_overview(rows)
        assert overview["active_setups"] == 2
        assert overview["total_trades"] == 0

    def test_overview_empty(self):
        assert setups_overview([])["avg_win_rate"] == 0.0


class TestBreakdowns:

    def test_by_weekday(self, trade_factory):
        trades = [
            trade_factory(net_pnl=100.0, entry=datetime(2024, 3, 4, 9, 30)),   # Monday
            trade_factory(net_pnl=-40.0, entry=datetime(2024, 3, 11, 9, 30)),  # Monday
            trade_factory(net_pnl=25.0, entry=datetime(2024, 3, 8, 9, 30)),    # Friday
        ]
        rows = pnl_by_weekday(trades)
        assert [r["day"] for r in rows] == ["Monday", "Friday"]
        assert rows[0]["trades"] == 2
        assert rows[0]["win_rate"] == 50.0
        assert rows[0]["total_pnl"] == 60.0

    def test_by_emotion_explodes_tags(self, trade_factory):
        trades = [
            trade_factory(net_pnl=100.0, emotions=["calm", "confident"]),
            trade_factory(net_pnl=-80.0, emotions=["fomo"]),
            trade_factory(net_pnl=20.0),
        ]
        rows = {r["emotion"]: r for r in pnl_by_emotion(trades)}
        assert set(rows) == {"calm", "confident", "fomo"}
        assert rows["fomo"]["total_pnl"] == -80.0
        assert rows["calm"]["percentage"] == pytest.approx(33.33)

    def test_distribution_buckets(self, trade_factory):
        trades = [trade_factory(net_pnl=p) for p in (-600.0, -100.0, 0.0, 99.0, 300.0, 900.0)]
        counts = {r["range"]: r["trades"] for r in pnl_distribution(trades)}
        assert counts["< -500"] == 1
        assert counts["-100 to 0"] == 1
        assert counts["0 to 100"] == 2
        assert counts["250 to 500"] == 1
        assert counts["> 500"] == 1

    def test_empty(self):
        result = breakdowns([])
        assert result["by_weekday"] == []
        assert result["by_emotion"] == []
        assert sum(r["trades"] for r in result["distribution"]) == 0
