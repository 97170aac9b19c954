"""
CSV trade import.

Broker exports (Tradovate "Performance" files and most generic trade
lists) are read with pandas, their headers mapped onto trade fields, and
each row turned into a Trade. Rows without both an exit price and an
exit date come in as open trades. Rows that fail validation are
reported, rows whose order id was already imported are skipped.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Iterable, Optional

import pandas as pd

from tradelog.journal.journal_models import Trade, TradeSide, TradeStatus
from tradelog.journal.trade_calculations import (
    DEFAULT_FUTURES_INSTRUMENTS,
    calculate_gross_pnl,
    derive_status,
    resolve_instrument,
)
from tradelog.utils.exceptions import DataError, ValidationError
from tradelog.utils.logger import get_logger

logger = get_logger(__name__)

IGNORE = "ignore"

# Header aliases per trade field, matched as substrings in either direction
COLUMN_NAME_MAPPINGS: dict[str, list[str]] = {
    "symbol": ["symbol", "instrument", "ticker", "contract", "product", "productdescription",
               "product description"],
    "side": ["side", "direction", "action", "buy/sell", "b/s", "buysell"],
    "entry_date": ["entry date", "date", "trade date", "entry_date", "entrydate", "open date",
                   "boughttimestamp", "bought timestamp", "filltime", "fill time", "timestamp",
                   "time", "entrytime"],
    "entry_time": ["entry time", "entry_time", "entrytime", "open time"],
    "entry_price": ["entry price", "entry", "entry_price", "entryprice", "open price", "avg entry",
                    "buyprice", "buy price", "avgprice", "avg fill price", "avgfillprice",
                    "avg price", "fillprice", "fill price"],
    "entry_contracts": ["quantity", "qty", "contracts", "size", "lots", "entry_contracts", "volume",
                        "filledqty", "filled qty", "filledquantity"],
    "exit_date": ["exit date", "close date", "exit_date", "exitdate", "soldtimestamp",
                  "sold timestamp", "closetime", "close time"],
    "exit_time": ["exit time", "close time", "exit_time", "exittime"],
    "exit_price": ["exit price", "exit", "exit_price", "exitprice", "close price", "avg exit",
                   "sellprice", "sell price", "closeprice"],
    "exit_contracts": ["exit qty", "close qty", "exit_contracts", "exit quantity"],
    "stop_loss": ["stop loss", "stop", "sl", "stop_loss", "stoploss", "stopprice", "stop price"],
    "take_profit": ["take profit", "target", "tp", "take_profit", "takeprofit", "profit target",
                    "limitprice", "limit price"],
    "commission": ["commission", "comm", "trading fees"],
    "fees": ["fees", "fee"],
    "pnl": ["pnl", "p&l", "profit", "profit/loss", "net p&l", "gross p&l", "realized p&l",
            "realizedpnl", "realized pnl", "netpnl"],
    "order_id": ["orderid", "order id", "ordernumber", "order number", "buyfillid", "sellfillid"],
    "account": ["account", "accountid", "account id", "accountnumber", "account number"],
    "status": ["status", "orderstatus", "order status", "state"],
    "notes": ["notes", "comments", "memo", "description", "text"],
}

IGNORE_PATTERNS = ("priceformat", "ticksize", "formattype", "version", "spreaddef")

NUMERIC_FIELDS = ("entry_price", "exit_price", "entry_contracts", "exit_contracts", "stop_loss",
                  "take_profit", "commission", "fees", "pnl")

LONG_VALUES = ("long", "buy", "b", "1")
SHORT_VALUES = ("short", "sell", "s", "-1")

CONTRACT_PATTERN = re.compile(r"^([A-Z]+[A-Z0-9]*?)([FGHJKMNQUVXZ])(\d{1,4})$")

DATETIME_FORMATS = (
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
)
MARKET_OPEN = time(9, 30)


# ── Header mapping ───────────────────────────────────────────

def detect_column(column_name: str) -> str:
    """Map one CSV header to a trade field, or ``"ignore"``."""
    normalized = column_name.lower().strip()
    if not normalized or normalized.startswith("_"):
        return IGNORE
    if any(p in normalized for p in IGNORE_PATTERNS):
        return IGNORE

    # Tradovate headers first so "soldTimestamp" never lands on the generic "timestamp"
    if "sold" in normalized and "timestamp" in normalized:
        return "exit_date"
    if "bought" in normalized and "timestamp" in normalized:
        return "entry_date"
    if "sell" in normalized and "price" in normalized:
        return "exit_price"
    if "buy" in normalized and "price" in normalized:
        return "entry_price"

    # exact alias before substring, otherwise "exit date" is caught by the generic "date"
    for app_field, aliases in COLUMN_NAME_MAPPINGS.items():
        if normalized in aliases:
            return app_field
    for app_field, aliases in COLUMN_NAME_MAPPINGS.items():
        if any(alias in normalized or normalized in alias for alias in aliases):
            return app_field
    return IGNORE


def auto_detect_mapping(columns: Iterable[str]) -> dict[str, str]:
    """CSV column -> trade field for every header in the file."""
    return {col: detect_column(col) for col in columns}


# ── Value parsing ────────────────────────────────────────────

def normalize_symbol(symbol: str) -> str:
    """Strip contract month/year codes from a futures symbol: MESZ4 -> MES, NQM2024 -> NQ."""
    upper = (symbol or "").strip().upper()
    if upper in DEFAULT_FUTURES_INSTRUMENTS:
        return upper

    match = CONTRACT_PATTERN.match(upper)
    if match and match.group(1) in DEFAULT_FUTURES_INSTRUMENTS:
        return match.group(1)

    for cut in range(2, 6):
        if len(upper) > cut and upper[:-cut] in DEFAULT_FUTURES_INSTRUMENTS:
            return upper[:-cut]
    return upper


def parse_number(value: Optional[str]) -> Optional[float]:
    """Parse ``123.45``, ``$1,234.50``, ``(45.00)`` (negative) or ``-12``."""
    if value is None or not str(value).strip():
        return None
    text = str(value)
    negative = "(" in text and ")" in text
    cleaned = re.sub(r"[$,()]", "", text).strip()
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    return -abs(parsed) if negative else parsed


def parse_date(value: Optional[str]) -> Optional[datetime]:
    if value is None or not str(value).strip():
        return None
    text = str(value).strip()

    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text[:19] if "T" in fmt else text, fmt)
        except ValueError:
            continue

    # date only: assume the cash open
    try:
        return datetime.combine(datetime.strptime(text, "%m/%d/%Y").date(), MARKET_OPEN)
    except ValueError:
        pass

    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def determine_side(values: dict[str, str]) -> TradeSide:
    """Explicit side column first, then buy < sell means long, else long."""
    side = (values.get("side") or "").strip().lower()
    if side in LONG_VALUES:
        return TradeSide.LONG
    if side in SHORT_VALUES:
        return TradeSide.SHORT

    buy = parse_number(values.get("entry_price"))
    sell = parse_number(values.get("exit_price"))
    if buy is not None and sell is not None:
        return TradeSide.LONG if buy < sell else TradeSide.SHORT
    return TradeSide.LONG


def validate_row(values: dict[str, str]) -> list[str]:
    errors = []
    if not (values.get("symbol") or "").strip():
        errors.append("Missing required field: Symbol/Contract")
    if not (values.get("entry_contracts") or "").strip():
        errors.append("Missing required field: Quantity/Contracts")

    has_price = any((values.get(f) or "").strip() for f in ("entry_price", "exit_price", "pnl"))
    if not has_price:
        errors.append("Need at least one price (entry or exit) or P&L")
    if not any((values.get(f) or "").strip() for f in ("entry_date", "exit_date")):
        errors.append("Need at least one date (entry or exit)")

    for name in NUMERIC_FIELDS:
        raw = values.get(name)
        if raw and raw.strip() and parse_number(raw) is None:
            errors.append(f"Invalid number for {name}: {raw}")
    return errors


# ── Import ───────────────────────────────────────────────────

@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)
    mapping: dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
            "mapping": dict(self.mapping),
        }


def read_csv(content: bytes | str) -> pd.DataFrame:
    """Load every column as text; empty cells stay empty strings."""
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig")
    if not content.strip():
        raise DataError("CSV file is empty")
    try:
        return pd.read_csv(io.StringIO(content), dtype=str, keep_default_na=False,
                           skipinitialspace=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DataError(f"Could not parse CSV: {e}") from e


def _mapped_values(row: pd.Series, mapping: dict[str, str]) -> dict[str, str]:
    values: dict[str, str] = {}
    for column, app_field in mapping.items():
        if app_field == IGNORE or app_field in values:
            continue
        values[app_field] = str(row.get(column, "") or "").strip()
    return values


def build_trade(values: dict[str, str], user_id: str, account_id: Optional[str] = None,
                commission_per_contract: float = 0.0, commission_per_trade: float = 0.0,
                source: str = "csv") -> Trade:
    """Turn one mapped row into a trade; closed only when the exit price and date are both set."""
    entry_date = parse_date(values.get("entry_date"))
    exit_date = parse_date(values.get("exit_date"))
    entry_price = parse_number(values.get("entry_price")) or 0.0
    exit_price = parse_number(values.get("exit_price"))
    contracts = parse_number(values.get("entry_contracts")) or 0.0
    stop_loss = parse_number(values.get("stop_loss"))
    side = determine_side(values)

    # Performance exports put the buy in the entry columns; a short sold first
    if side == TradeSide.SHORT and entry_date and exit_date:
        entry_date, exit_date = exit_date, entry_date
        entry_price, exit_price = (exit_price or 0.0), entry_price

    csv_commission = parse_number(values.get("commission"))
    csv_fees = parse_number(values.get("fees"))
    if csv_commission is not None or csv_fees is not None:
        commission = csv_commission or 0.0
        fees = csv_fees or 0.0
    else:
        # round trip: both sides pay
        commission = commission_per_contract * contracts * 2 + commission_per_trade * 2
        fees = 0.0

    gross = parse_number(values.get("pnl"))
    symbol = normalize_symbol(values.get("symbol", ""))
    if gross is None and entry_price and exit_price is not None and contracts > 0:
        gross = round(calculate_gross_pnl(side, entry_price, exit_price, contracts,
                                          resolve_instrument(symbol)), 2)
    net = gross - commission - fees if gross is not None else None

    # open trades carry no P&L, matching what every later save derives
    if exit_price is None or exit_date is None:
        gross = net = None

    r_multiple = None
    if stop_loss and entry_price and net is not None and contracts > 0:
        total_risk = abs(entry_price - stop_loss) * contracts
        if total_risk > 0:
            r_multiple = round(net / total_risk, 2)

    trade = Trade.from_dict({
        "user_id": user_id,
        "account_id": account_id,
        "symbol": symbol,
        "side": side,
        "status": TradeStatus.OPEN,
        "entry_date": entry_date or exit_date or datetime.now(),
        "entry_price": entry_price,
        "entry_contracts": contracts,
        "exit_date": exit_date,
        "exit_price": exit_price,
        "exit_contracts": parse_number(values.get("exit_contracts")),
        "stop_loss": stop_loss,
        "take_profit": parse_number(values.get("take_profit")),
        "commission": commission,
        "fees": fees,
        "gross_pnl": gross,
        "net_pnl": net,
        "r_multiple": r_multiple,
        "notes": values.get("notes") or None,
        "import_source": source,
        "external_id": values.get("order_id") or None,
    })
    trade.status = derive_status(trade)
    return trade


def import_trades(
    content: bytes | str,
    user_id: str,
    account_id: Optional[str] = None,
    existing_external_ids: Optional[set[str]] = None,
    commission_per_contract: float = 0.0,
    commission_per_trade: float = 0.0,
    source: str = "csv",
    mapping: Optional[dict[str, str]] = None,
) -> ImportResult:
    """Parse a CSV export into trades. Nothing is written; the caller saves ``result.trades``."""
    frame = read_csv(content)
    mapping = mapping or auto_detect_mapping(frame.columns)
    if "symbol" not in mapping.values():
        raise ValidationError("CSV has no symbol column", field="symbol")

    seen = set(existing_external_ids or ())
    result = ImportResult(mapping=mapping)

    for index, row in frame.iterrows():
        row_no = int(index) + 2  # header is line 1
        values = _mapped_values(row, mapping)
        problems = validate_row(values)
        if problems:
            result.errors.append(f"Row {row_no}: {'; '.join(problems)}")
            continue

        external_id = values.get("order_id") or None
        if external_id and external_id in seen:
            result.skipped += 1
            continue

        try:
            trade = build_trade(values, user_id, account_id, commission_per_contract,
                                commission_per_trade, source)
        except ValidationError as e:
            result.errors.append(f"Row {row_no}: {e.message}")
            continue

        if external_id:
            seen.add(external_id)
        result.trades.append(trade)
        result.imported += 1

    logger.info("csv_parsed", user_id=user_id, rows=len(frame), imported=result.imported,
                skipped=result.skipped, failed=result.failed)
    return result
