from __future__ import annotations

from typing import Sequence

from tradelog.analytics.statistics import (
    average_r_multiple, closed_trades, expectancy, profit_factor, win_rate,
)
from tradelog.journal.journal_models import Setup, Trade


def setup_statistics(setups: Sequence[Setup], trades: Sequence[Trade]) -> list[dict]:
    """Per-setup performance computed on read from the user's closed trades."""
    closed = closed_trades(trades)
    by_setup: dict[str, list[Trade]] = {}
    for t in closed:
        if t.setup_id:
            by_setup.setdefault(t.setup_id, []).append(t)

    rows = []
    for s in setups:
        own = by_setup.get(s.id, [])
        rows.append({
            **s.to_dict(),
            "total_trades": len(own),
            "winning_trades": sum(1 for t in own if t.net_pnl > 0),
            "win_rate": round(win_rate(own), 2),
            "total_pnl": round(sum(t.net_pnl for t in own), 2),
            "profit_factor": round(profit_factor(own), 2),
            "expectancy": round(expectancy(own), 2),
            "avg_r_multiple": round(average_r_multiple(own), 2),
        })
    return rows


def setups_overview(rows: Sequence[dict]) -> dict:
    """Totals across active setups; rates are plain means of the per-setup values."""
    active = [r for r in rows if r.get("is_active")]
    n = len(active)
    return {
        "active_setups": n,
        "total_trades": sum(r["total_trades"] for r in active),
        "avg_win_rate": round(sum(r["win_rate"] for r in active) / n, 2) if n else 0.0,
        "avg_profit_factor": round(sum(r["profit_factor"] for r in active) / n, 2) if n else 0.0,
    }
