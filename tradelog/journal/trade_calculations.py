"""
Trade field derivation: tick math, net P&L, R-multiple, status.

Derived fields are recomputed on every save so stored rows always satisfy
  net = gross - commission - fees        (when entry and exit prices exist)
  r   = net / dollar risk                (only when a stop-loss is set)
  closed <=> exit price and exit date present
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tradelog.journal.journal_models import Trade, TradeSide, TradeStatus
from tradelog.utils.config import get_settings


@dataclass(frozen=True)
class FuturesInstrument:
    symbol: str
    name: str
    tick_size: float
    tick_value: float
    exchange: str = "CME"

    @property
    def point_value(self) -> float:
        return self.tick_value / self.tick_size

DEFAULT_FUTURES_INSTRUMENTS: dict[str, FuturesInstrument] = {
    i.symbol: i for i in (
        FuturesInstrument("ES", "E-mini S&P 500", 0.25, 12.5),
        FuturesInstrument("NQ", "E-mini Nasdaq-100", 0.25, 5.0),
        FuturesInstrument("YM", "E-mini Dow", 1.0, 5.0, "CBOT"),
        FuturesInstrument("RTY", "E-mini Russell 2000", 0.1, 5.0),
        FuturesInstrument("MES", "Micro E-mini S&P 500", 0.25, 1.25),
        FuturesInstrument("MNQ", "Micro E-mini Nasdaq-100", 0.25, 0.5),
        FuturesInstrument("MYM", "Micro E-mini Dow", 1.0, 0.5, "CBOT"),
        FuturesInstrument("M2K", "Micro E-mini Russell 2000", 0.1, 0.5),
        FuturesInstrument("CL", "Crude Oil", 0.01, 10.0, "NYMEX"),
        FuturesInstrument("GC", "Gold", 0.1, 10.0, "COMEX"),
        FuturesInstrument("NG", "Natural Gas", 0.001, 10.0, "NYMEX"),
        FuturesInstrument("6E", "Euro FX", 0.00005, 6.25),
    )
}


def resolve_instrument(symbol: str) -> FuturesInstrument:
    """Look up a futures contract by root symbol, falling back to the configured default."""
    root = (symbol or "").strip().upper()
    if root in DEFAULT_FUTURES_INSTRUMENTS:
        return DEFAULT_FUTURES_INSTRUMENTS[root]
    # contract months like ESZ5 / NQH26
    for length in (3, 2):
        if root[:length] in DEFAULT_FUTURES_INSTRUMENTS:
            return DEFAULT_FUTURES_INSTRUMENTS[root[:length]]
    s = get_settings()
    return FuturesInstrument(root or "ES", root or "ES", s.default_tick_size, s.default_tick_value)


def price_difference(side: TradeSide, entry_price: float, exit_price: float) -> float:
    if side == TradeSide.LONG:
        return exit_price - entry_price
    return entry_price - exit_price


def calculate_gross_pnl(side: TradeSide, entry_price: float, exit_price: float,
                        contracts: float, instrument: FuturesInstrument) -> float:
    ticks = price_difference(side, entry_price, exit_price) / instrument.tick_size
    return ticks * instrument.tick_value * contracts


def calculate_dollar_risk(entry_price: float, stop_loss: float, contracts: float,
                          instrument: FuturesInstrument) -> float:
    ticks_at_risk = abs(entry_price - stop_loss) / instrument.tick_size
    return ticks_at_risk * instrument.tick_value * contracts


def calculate_r_multiple(net_pnl: Optional[float], entry_price: float,
                         stop_loss: Optional[float], contracts: float,
                         instrument: FuturesInstrument) -> Optional[float]:
    if net_pnl is None or stop_loss is None:
        return None
    risk = calculate_dollar_risk(entry_price, stop_loss, contracts, instrument)
    if risk <= 0:
        return None
    return net_pnl / risk


def derive_status(trade: Trade) -> TradeStatus:
    if trade.status == TradeStatus.CANCELLED:
        return TradeStatus.CANCELLED
    if trade.exit_price is not None and trade.exit_date is not None:
        return TradeStatus.CLOSED
    return TradeStatus.OPEN


def derive_trade_fields(trade: Trade, instrument: Optional[FuturesInstrument] = None,
                        use_tick_math: bool = True) -> Trade:
    """Recompute gross/net P&L, R-multiple and status on a copy of *trade*.

    With ``use_tick_math`` false the stored gross P&L is kept (imports carry
    broker-reported P&L) and only net / R / status are derived.
    """
    inst = instrument or resolve_instrument(trade.symbol)
    data = trade.model_dump()
    contracts = trade.exit_contracts or trade.entry_contracts

    if trade.exit_price is not None:
        if use_tick_math or trade.gross_pnl is None:
            data["gross_pnl"] = round(calculate_gross_pnl(
                trade.side, trade.entry_price, trade.exit_price, contracts, inst), 2)
        data["net_pnl"] = round(data["gross_pnl"] - trade.commission - trade.fees, 2)
    else:
        data["gross_pnl"] = None
        data["net_pnl"] = None

    data["r_multiple"] = calculate_r_multiple(
        data["net_pnl"], trade.entry_price, trade.stop_loss, contracts, inst)
    if data["r_multiple"] is not None:
        data["r_multiple"] = round(data["r_multiple"], 2)

    derived = Trade.model_validate(data)
    derived.status = derive_status(derived)
    return derived
