from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence, TypeVar

from tradelog.journal.journal_models import Trade, TradeSide, TradeStatus

T = TypeVar("T")


@dataclass
class TradeFilters:
    """Trade list filters. Empty values mean "no constraint"."""

    account_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    symbol: Optional[str] = None
    side: Optional[TradeSide] = None
    setup_id: Optional[str] = None
    status: Optional[TradeStatus] = None
    search: str = ""

    def is_empty(self) -> bool:
        return not any([self.account_id, self.date_from, self.date_to, self.symbol,
                        self.side, self.setup_id, self.status, self.search.strip()])

    def matches(self, trade: Trade) -> bool:
        if self.account_id and trade.account_id != self.account_id:
            return False
        entry_day = trade.entry_date.date()
        if self.date_from and entry_day < self.date_from:
            return False
        if self.date_to and entry_day > self.date_to:
            return False
        if self.symbol and trade.symbol != self.symbol.strip().upper():
            return False
        if self.side and trade.side != self.side:
            return False
        if self.setup_id and trade.setup_id != self.setup_id:
            return False
        if self.status and trade.status != self.status:
            return False
        needle = self.search.strip().lower()
        if needle:
            haystacks = (trade.symbol.lower(), (trade.notes or "").lower())
            if not any(needle in h for h in haystacks):
                return False
        return True


def filter_trades(trades: Sequence[Trade], filters: Optional[TradeFilters] = None) -> list[Trade]:
    if filters is None or filters.is_empty():
        return list(trades)
    return [t for t in trades if filters.matches(t)]


@dataclass
class Page:
    items: list
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size)) if self.page_size else 1

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() if hasattr(i, "to_dict") else i for i in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


def paginate(items: Sequence[T], page: int = 1, page_size: int = 25) -> Page:
    """Slice an already-filtered list. Pages are 1-based."""
    page = max(1, page)
    page_size = max(1, page_size)
    start = (page - 1) * page_size
    return Page(items=list(items[start:start + page_size]), total=len(items),
                page=page, page_size=page_size)


def to_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])
