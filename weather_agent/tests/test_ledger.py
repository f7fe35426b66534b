"""
Tests for the trade ledger and derived stats.
"""

import json
from datetime import date

import pytest

from weather_agent.errors import LedgerError
from weather_agent.models import LedgerEntry, Outcome, Side, Stats
from weather_agent.trading.ledger import (
    JsonLedgerStore,
    latest_pending,
    recompute_stats,
    replace_entry,
)

TODAY = date(2026, 10, 18)
TODAY_TS = "2026-10-18T20:00:00+00:00"      # 16:00 Eastern
YESTERDAY_TS = "2026-10-17T15:00:00+00:00"
LATE_UTC_TS = "2026-10-19T02:00:00+00:00"    # still the 18th in Eastern time


def _entry(outcome=Outcome.PENDING, price=40, shares=1, settled_at=TODAY_TS,
           ticker="KXHIGHNY-26OCT18-T39", order_id="ord-1", timestamp="2026-10-18T14:00:00+00:00"):
    return LedgerEntry(
        timestamp=timestamp,
        ticker=ticker,
        side=Side.YES,
        shares=shares,
        price_cents=price,
        outcome=outcome,
        order_id=order_id,
        settled_at=settled_at if outcome is not Outcome.PENDING else None,
    )


W = lambda price=40, **kw: _entry(Outcome.WON, price, **kw)  # noqa: E731
L = lambda price=30, **kw: _entry(Outcome.LOST, price, **kw)  # noqa: E731
V = lambda **kw: _entry(Outcome.VOID, **kw)  # noqa: E731
P = lambda **kw: _entry(Outcome.PENDING, **kw)  # noqa: E731


class TestLedgerEntry:
    """Tests for per-entry P&L and transitions."""

    def test_won_pnl(self):
        assert W(price=35, shares=2).realized_pnl_cents == 130

    def test_lost_pnl(self):
        assert L(price=35, shares=2).realized_pnl_cents == -70

    def test_void_and_pending_pnl_zero(self):
        assert V().realized_pnl_cents == 0
        assert P().realized_pnl_cents == 0

    def test_settle_pending(self):
        settled = P().settle(Outcome.WON, TODAY_TS)
        assert settled.outcome is Outcome.WON
        assert settled.settled_at == TODAY_TS

    def test_terminal_outcome_is_final(self):
        with pytest.raises(LedgerError):
            W().settle(Outcome.LOST)

    def test_settle_requires_terminal_outcome(self):
        with pytest.raises(LedgerError):
            P().settle(Outcome.PENDING)

    def test_stored_pnl_is_ignored_on_load(self):
        data = W(price=40).to_dict()
        assert data["pnl_cents"] == 60
        data["pnl_cents"] = 9999
        assert LedgerEntry.from_dict(data).realized_pnl_cents == 60


class TestRecomputeStats:
    """Tests for the stats fold."""

    def test_empty_ledger(self):
        assert recompute_stats([], today=TODAY) == Stats()

    def test_counts_and_totals(self):
        stats = recompute_stats([W(price=40, shares=2), L(price=30), V(), P()], today=TODAY)
        assert stats.total_trades == 4
        assert (stats.wins, stats.losses, stats.voids, stats.pending) == (1, 1, 1, 1)
        assert stats.win_rate == pytest.approx(0.5)
        assert stats.total_pnl_cents == 90
        assert stats.avg_win_cents == pytest.approx(120.0)
        assert stats.avg_loss_cents == pytest.approx(-30.0)

    def test_idempotent(self):
        entries = [W(), L(), L(), V(), W(), P()]
        assert recompute_stats(entries, today=TODAY) == recompute_stats(entries, today=TODAY)

    def test_losing_streak(self):
        stats = recompute_stats([W(), L(), L()], today=TODAY)
        assert stats.current_streak == -2
        assert stats.losing_streak == 2

    def test_streak_follows_ledger_order(self):
        assert recompute_stats([L(), L(), W()], today=TODAY).current_streak == 1

    def test_void_and_pending_do_not_break_streak(self):
        stats = recompute_stats([L(), V(), P(), L()], today=TODAY)
        assert stats.current_streak == -2

    def test_today_pnl_uses_settlement_day(self):
        entries = [L(price=30, settled_at=TODAY_TS), W(price=40, settled_at=YESTERDAY_TS)]
        stats = recompute_stats(entries, today=TODAY)
        assert stats.today_pnl_cents == -30
        assert stats.realized_loss_today_cents == 30

    def test_today_is_eastern_time(self):
        stats = recompute_stats([L(price=30, settled_at=LATE_UTC_TS)], today=TODAY)
        assert stats.today_pnl_cents == -30

    def test_max_drawdown(self):
        stats = recompute_stats([W(price=40), L(price=40), L(price=40)], today=TODAY)
        # cumulative 60, 20, -20 against a peak of 60
        assert stats.max_drawdown_cents == 80


class TestLedgerHelpers:
    """Tests for latest_pending and replace_entry."""

    def test_latest_pending(self):
        entries = [P(order_id="a"), W(), P(order_id="b"), L()]
        assert latest_pending(entries) == 2

    def test_no_pending(self):
        assert latest_pending([W(), L()]) is None

    def test_replace_entry_allows_outcome_change(self):
        entries = [P()]
        updated = replace_entry(entries, 0, entries[0].settle(Outcome.WON, TODAY_TS))
        assert updated[0].outcome is Outcome.WON
        assert entries[0].outcome is Outcome.PENDING

    def test_replace_entry_rejects_identity_change(self):
        entries = [P(order_id="a")]
        with pytest.raises(LedgerError):
            replace_entry(entries, 0, P(order_id="b"))


class TestJsonLedgerStore:
    """Tests for the JSON file store."""

    @pytest.fixture
    def store(self, tmp_path):
        return JsonLedgerStore(str(tmp_path / "data"))

    def test_missing_ledger_reads_empty(self, store):
        assert store.read() == []

    def test_append_then_read(self, store):
        store.append(P(order_id="a"))
        entries = store.append(W(order_id="b"))
        assert len(entries) == 2
        assert store.read() == entries

    def test_appended_entry_read_back_field_for_field(self, store):
        store.append(W(order_id="a"))
        entry = LedgerEntry(
            timestamp="2026-10-18T14:05:09.123456+00:00",
            ticker="KXHIGHNY-26OCT18-B40.5",
            side=Side.NO,
            shares=2,
            price_cents=47,
            outcome=Outcome.VOID,
            order_id="paper-1792332309123",
            settled_at="2026-10-19T06:00:00+00:00",
            paper=True,
        )
        store.append(entry)
        assert store.read()[-1] == entry

    def test_ledger_is_json_array(self, store):
        store.append(P())
        raw = json.loads(store.ledger_path.read_text())
        assert isinstance(raw, list)
        assert raw[0]["ticker"] == "KXHIGHNY-26OCT18-T39"
        assert raw[0]["outcome"] == "pending"

    def test_save_keeps_backup_of_previous_version(self, store):
        store.append(P(order_id="a"))
        store.append(P(order_id="b"))
        backup = json.loads(store.backup_path.read_text())
        assert [e["order_id"] for e in backup] == ["a"]

    def test_corrupt_ledger_falls_back_to_backup(self, store):
        store.append(P(order_id="a"))
        store.append(P(order_id="b"))
        store.ledger_path.write_text("{not json")
        entries = store.read()
        assert [e.order_id for e in entries] == ["a"]

    def test_non_array_ledger_falls_back_to_backup(self, store):
        store.append(P(order_id="a"))
        store.append(P(order_id="b"))
        store.ledger_path.write_text('{"ticker": "x"}')
        assert [e.order_id for e in store.read()] == ["a"]

    def test_corrupt_ledger_without_backup_raises(self, store):
        store.data_dir.mkdir(parents=True)
        store.ledger_path.write_text("garbage")
        with pytest.raises(LedgerError):
            store.read()

    def test_both_corrupt_raises(self, store):
        store.data_dir.mkdir(parents=True)
        store.ledger_path.write_text("garbage")
        store.backup_path.write_text("also garbage")
        with pytest.raises(LedgerError):
            store.read()

    def test_missing_main_reads_backup(self, store):
        store.append(P(order_id="a"))
        store.append(P(order_id="b"))
        store.ledger_path.unlink()
        assert [e.order_id for e in store.read()] == ["a"]

    def test_no_temp_files_left_behind(self, store):
        store.append(P())
        store.append(W(order_id="b"))
        assert not list(store.data_dir.glob("*.tmp"))

    def test_write_stats(self, store):
        store.write_stats(recompute_stats([W(), L()], today=TODAY))
        data = json.loads(store.stats_path.read_text())
        assert data["wins"] == 1
        assert data["losses"] == 1
        assert data["current_streak"] == -1
        assert "updated_at" in data
