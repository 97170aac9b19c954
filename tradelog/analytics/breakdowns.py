"""
Performance breakdowns used by the analytics page.

Each breakdown groups closed trades by one attribute and reports trade
count, wins, win rate, total and average P&L per bucket. Built on pandas
groupby, the same way the rest of the reporting code slices frames.
"""

from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd

from tradelog.analytics.daily import local_date
from tradelog.analytics.statistics import closed_trades
from tradelog.journal.journal_models import Trade

WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

PNL_BUCKETS = [-float("inf"), -500, -250, -100, 0, 100, 250, 500, float("inf")]
PNL_BUCKET_LABELS = ["< -500", "-500 to -250", "-250 to -100", "-100 to 0",
                     "0 to 100", "100 to 250", "250 to 500", "> 500"]


def trades_frame(trades: Sequence[Trade], tz: Optional[str] = None) -> pd.DataFrame:
    rows = []
    for t in closed_trades(trades):
        entry = t.entry_date
        rows.append({
            "id": t.id,
            "symbol": t.symbol,
            "side": t.side.value,
            "net_pnl": t.net_pnl,
            "r_multiple": t.r_multiple,
            "weekday": local_date(entry, tz).weekday(),
            "hour": entry.hour,
            "session": t.session or "unspecified",
            "emotions": list(t.emotions),
            "mistakes": list(t.mistakes),
        })
    return pd.DataFrame(rows, columns=["id", "symbol", "side", "net_pnl", "r_multiple", "weekday",
                                       "hour", "session", "emotions", "mistakes"])


def _summarise(df: pd.DataFrame, key: str) -> list[dict]:
    if df.empty:
        return []
    grouped = df.groupby(key, sort=True)["net_pnl"]
    out = []
    for bucket, pnl in grouped:
        trades = int(pnl.count())
        wins = int((pnl > 0).sum())
        out.append({
            key: bucket if not hasattr(bucket, "item") else bucket.item(),
            "trades": trades,
            "wins": wins,
            "win_rate": round(wins / trades * 100, 2) if trades else 0.0,
            "total_pnl": round(float(pnl.sum()), 2),
            "avg_pnl": round(float(pnl.mean()), 2) if trades else 0.0,
        })
    return out


def pnl_by_weekday(trades: Sequence[Trade], tz: Optional[str] = None) -> list[dict]:
    rows = _summarise(trades_frame(trades, tz), "weekday")
    for r in rows:
        r["day"] = WEEKDAY_NAMES[r["weekday"]]
    return rows


def pnl_by_hour(trades: Sequence[Trade]) -> list[dict]:
    return _summarise(trades_frame(trades), "hour")


def pnl_by_session(trades: Sequence[Trade]) -> list[dict]:
    return _summarise(trades_frame(trades), "session")


def pnl_by_symbol(trades: Sequence[Trade]) -> list[dict]:
    return sorted(_summarise(trades_frame(trades), "symbol"), key=lambda r: r["total_pnl"], reverse=True)


def _by_tag(trades: Sequence[Trade], column: str, label: str) -> list[dict]:
    df = trades_frame(trades)
    if df.empty:
        return []
    exploded = df.explode(column).dropna(subset=[column])
    if exploded.empty:
        return []
    exploded = exploded.rename(columns={column: label})
    total_tagged = len(exploded)
    rows = _summarise(exploded, label)
    for r in rows:
        r["percentage"] = round(r["trades"] / total_tagged * 100, 2)
    return sorted(rows, key=lambda r: r["total_pnl"], reverse=True)


def pnl_by_emotion(trades: Sequence[Trade]) -> list[dict]:
    return _by_tag(trades, "emotions", "emotion")


def pnl_by_mistake(trades: Sequence[Trade]) -> list[dict]:
    return _by_tag(trades, "mistakes", "mistake")


def pnl_distribution(trades: Sequence[Trade]) -> list[dict]:
    df = trades_frame(trades)
    counts = {label: 0 for label in PNL_BUCKET_LABELS}
    if not df.empty:
        buckets = pd.cut(df["net_pnl"], bins=PNL_BUCKETS, labels=PNL_BUCKET_LABELS, right=False)
        for label, n in buckets.value_counts().items():
            counts[str(label)] = int(n)
    return [{"range": label, "trades": counts[label]} for label in PNL_BUCKET_LABELS]


def breakdowns(trades: Sequence[Trade], tz: Optional[str] = None) -> dict:
    return {
        "by_weekday": pnl_by_weekday(trades, tz),
        "by_hour": pnl_by_hour(trades),
        "by_session": pnl_by_session(trades),
        "by_symbol": pnl_by_symbol(trades),
        "by_emotion": pnl_by_emotion(trades),
        "by_mistake": pnl_by_mistake(trades),
        "distribution": pnl_distribution(trades),
    }
