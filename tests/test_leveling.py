import pytest

from tradelog.analytics.leveling import (
    TRADER_LEVELS,
    check_level_up,
    level_for_xp,
    level_progress,
    level_summary,
    xp_to_next_level,
)


class TestLevels:

    def test_table_is_ascending(self):
        assert [l.level for l in TRADER_LEVELS] == list(range(1, 16))
        assert all(a.min_xp < b.min_xp for a, b in zip(TRADER_LEVELS, TRADER_LEVELS[1:]))

    @pytest.mark.parametrize("xp,level", [(0, 1), (99, 1), (100, 2), (249, 2), (250, 3),
                                          (14999, 14), (15000, 15), (99999, 15)])
    def test_level_for_xp(self, xp, level):
        assert level_for_xp(xp).level == level

    def test_progress_rounds_half_up(self):
        assert level_progress(175) == 50
        # 1/150 of the way is 0.67% and rounds to 1
        assert level_progress(101) == 1
        assert level_progress(0) == 0

    def test_max_level(self):
        assert level_progress(20000) == 100
        assert xp_to_next_level(20000) == 0
        assert level_summary(20000)["next_level"] is None

    def test_xp_to_next(self):
        assert xp_to_next_level(175) == 75


class TestLevelUp:

    def test_crossing_threshold(self):
        assert check_level_up(90, 110).title == "Apprentice"

    def test_same_level(self):
        assert check_level_up(110, 120) is None

    def test_skipping_levels_reports_final(self):
        assert check_level_up(0, 600).level == 4

    def test_summary(self):
        summary = level_summary(300)
        assert summary["level"]["title"] == "Novice Trader"
        assert summary["next_level"]["min_xp"] == 500
        assert summary["progress"] == 20
