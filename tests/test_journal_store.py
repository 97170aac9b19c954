"""
SQLite journal store: ownership scoping, upserts and derived status.
"""

from datetime import date, datetime, timedelta

import pytest

from tradelog.journal.journal_models import (
    Account,
    ChallengeCompletion,
    DailyJournal,
    ImportHistory,
    Profile,
    Setup,
    TradeScreenshot,
    TradeStatus,
    UserRule,
    UserRuleCheck,
)
from tradelog.journal.journal_store import JournalStore
from tradelog.utils.exceptions import DuplicateError, NotFoundError


# ─────────────────────────────────────────────────────────
# Profiles & accounts
# ─────────────────────────────────────────────────────────

class TestProfiles:

    def test_round_trip(self, store, profile):
        loaded = store.get_profile("user-1")
        assert loaded.username == "trader_one"
        assert loaded.account_size == 10000.0

    def test_duplicate_username(self, store, profile):
        with pytest.raises(DuplicateError) as exc:
            store.save_profile(Profile(id="user-2", email="b@example.com", username="Trader_One"))
        assert exc.value.field == "username"
        assert store.get_profile("user-1") is not None
        assert store.get_profile("user-2") is None

    def test_resave_own_username(self, store, profile):
        profile.bio = "Scalper"
        store.save_profile(profile)
        assert store.get_profile("user-1").bio == "Scalper"

    def test_add_xp(self, store, profile):
        assert store.add_xp("user-1", 40).total_xp == 40
        assert store.add_xp("user-1", 15).total_xp == 55

    def test_add_xp_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            store.add_xp("nobody", 10)


class TestAccounts:

    def test_single_default(self, store):
        first = store.save_account(Account(user_id="user-1", name="Apex", is_default=True))
        second = store.save_account(Account(user_id="user-1", name="Topstep", is_default=True))
        defaults = [a.id for a in store.list_accounts("user-1") if a.is_default]
        assert defaults == [second.id]
        assert first.id != second.id

    def test_scoped_by_user(self, store):
        acc = store.save_account(Account(user_id="user-1", name="Apex"))
        assert store.get_account("user-2", acc.id) is None
        assert store.delete_account("user-2", acc.id) is False
        assert store.delete_account("user-1", acc.id) is True
        assert store.list_accounts("user-1") == []


# ─────────────────────────────────────────────────────────
# Trades
# ─────────────────────────────────────────────────────────

class TestTrades:

    def test_status_derived_on_save(self, store, trade_factory):
        open_trade = trade_factory(net_pnl=None, closed=False, status=TradeStatus.CLOSED)
        store.save_trade(open_trade)
        assert store.get_trade("user-1", open_trade.id).status == TradeStatus.OPEN

    def test_query_filters(self, store, trade_factory):
        t1 = store.save_trade(trade_factory(entry=datetime(2024, 3, 1, 10), account_id="a"))
        t2 = store.save_trade(trade_factory(entry=datetime(2024, 3, 5, 10), account_id="b"))
        store.save_trade(trade_factory(entry=datetime(2024, 3, 9, 10), user_id="user-2"))

        assert [t.id for t in store.query_trades(user_id="user-1")] == [t2.id, t1.id]
        assert [t.id for t in store.query_trades(user_id="user-1", account_id="a")] == [t1.id]
        assert [t.id for t in store.query_trades(user_id="user-1", from_date="2024-03-03")] == [t2.id]
        assert len(store.query_trades()) == 3

    def test_unknown_order_falls_back(self, store, trade_factory):
        store.save_trade(trade_factory())
        assert len(store.query_trades(user_id="user-1", order_by="1; DROP TABLE trades")) == 1

    def test_delete_removes_screenshots(self, store, trade_factory):
        t = store.save_trade(trade_factory())
        store.save_trade_screenshot(TradeScreenshot(user_id="user-1", trade_id=t.id,
                                                    file_path="x.png", file_name="x.png", file_size=1))
        assert store.delete_trade("user-1", t.id)
        assert store.list_trade_screenshots("user-1", t.id) == []
        assert store.get_trade("user-1", t.id) is None

    def test_external_ids_and_move(self, store, trade_factory):
        t = store.save_trade(trade_factory(external_id="ES-1", account_id="a"))
        store.save_trade(trade_factory())
        assert store.external_ids("user-1") == {"ES-1"}
        assert store.move_trades_to_account("user-1", [t.id, "missing"], "b") == 1
        assert store.get_trade("user-1", t.id).account_id == "b"


class TestSetups:

    def test_delete_clears_trade_reference(self, store, trade_factory):
        setup = store.save_setup(Setup(user_id="user-1", name="ORB"))
        t = store.save_trade(trade_factory(setup_id=setup.id))
        assert store.delete_setup("user-1", setup.id)
        assert store.get_trade("user-1", t.id).setup_id is None
        assert store.list_setups("user-1") == []


# ─────────────────────────────────────────────────────────
# Journals, rules, challenges
# ─────────────────────────────────────────────────────────

class TestJournals:

    def test_upsert_keeps_one_row_per_day(self, store):
        day = date(2024, 3, 4)
        first = store.save_journal(DailyJournal(user_id="user-1", date=day, pre_market_notes="a"))
        second = store.save_journal(DailyJournal(user_id="user-1", date=day, post_market_notes="b"))
        assert second.id == first.id
        journals = store.list_journals("user-1")
        assert len(journals) == 1
        assert journals[0].post_market_notes == "b"

    def test_range(self, store):
        for i in range(5):
            store.save_journal(DailyJournal(user_id="user-1", date=date(2024, 3, 1) + timedelta(days=i)))
        rows = store.list_journals("user-1", from_date=date(2024, 3, 2), to_date=date(2024, 3, 4))
        assert [j.date.day for j in rows] == [2, 3, 4]


class TestRules:

    def test_check_upsert_and_cascade(self, store):
        rule = store.save_rule(UserRule(user_id="user-1", name="Use a stop", category="risk"))
        day = date(2024, 3, 4)
        store.save_rule_check(UserRuleCheck(user_id="user-1", rule_id=rule.id, check_date=day))
        store.save_rule_check(UserRuleCheck(user_id="user-1", rule_id=rule.id, check_date=day,
                                            followed=False))
        checks = store.list_rule_checks("user-1")
        assert len(checks) == 1
        assert checks[0].followed is False

        assert store.delete_rule("user-1", rule.id)
        assert store.list_rule_checks("user-1") == []


class TestChallengeCompletions:

    def test_claim_once_per_period(self, store):
        store.record_challenge_completion(ChallengeCompletion(
            user_id="user-1", challenge_id="write_journal", period_key="2024-03-04", xp_earned=15))
        with pytest.raises(DuplicateError):
            store.record_challenge_completion(ChallengeCompletion(
                user_id="user-1", challenge_id="write_journal", period_key="2024-03-04"))
        store.record_challenge_completion(ChallengeCompletion(
            user_id="user-1", challenge_id="write_journal", period_key="2024-03-05"))

        rows = store.list_challenge_completions("user-1", ["2024-03-04"])
        assert [r.xp_earned for r in rows] == [15]
        assert store.list_challenge_completions("user-1", []) == []


class TestAdmin:

    def test_import_history_and_counts(self, store, profile, trade_factory):
        store.save_trade(trade_factory())
        store.save_import_history(ImportHistory(user_id="user-1", file_name="trades.csv",
                                                trades_imported=1))
        assert store.list_import_history("user-1")[0].file_name == "trades.csv"
        counts = store.table_counts()
        assert counts["profiles"] == 1
        assert counts["trades"] == 1


def test_creates_parent_directory(tmp_path):
    s = JournalStore(db_path=str(tmp_path / "nested" / "dir" / "journal.db"))
    assert (tmp_path / "nested" / "dir").is_dir()
    s.close()
