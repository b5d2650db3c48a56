"""
Contract parser — turns raw CBOE quote records into typed option contracts.

Symbols follow the OCC-style layout ``<root><YYMMDD><C|P><strike*1000>``,
e.g. ``SPXW240119C04750000``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from core.errors import ParseError

logger = logging.getLogger(__name__)

# Type letter, whole-dollar strike digits, then the three fractional digits
SYMBOL_PATTERN = re.compile(r"\d([CP])(\d+)\d{3}")


class OptionType(str, Enum):
    CALL = "C"
    PUT = "P"


@dataclass(frozen=True)
class OptionContract:
    option: str
    type: Optional[OptionType]
    strike: Optional[int]
    gamma: Optional[float] = None
    volume: Optional[float] = None
    open_interest: Optional[float] = None
    last_trade_time: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Symbol parsing
# ---------------------------------------------------------------------------

def parse_symbol(symbol: str) -> tuple[OptionType, int]:
    """
    Extract (type, strike) from an option symbol.

    The strike is the embedded whole-dollar part; the three trailing
    fractional digits are dropped, so ``C04750500`` gives 4750.
    """
    match = SYMBOL_PATTERN.search(symbol or "")
    if not match:
        raise ParseError(f"Unrecognised option symbol: {symbol!r}")
    return OptionType(match.group(1)), int(match.group(2))


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def parse_contract(raw: dict) -> OptionContract:
    """Build an OptionContract; unparseable symbols get type/strike None."""
    symbol = raw.get("option") or ""
    try:
        option_type, strike = parse_symbol(symbol)
    except ParseError as exc:
        logger.debug("Excluding contract from strike buckets: %s", exc)
        option_type, strike = None, None

    return OptionContract(
        option=symbol,
        type=option_type,
        strike=strike,
        gamma=_to_float(raw.get("gamma")),
        volume=_to_float(raw.get("volume")),
        open_interest=_to_float(raw.get("open_interest")),
        last_trade_time=_to_datetime(raw.get("last_trade_time")),
    )


def parse_contracts(raw_options: list[dict]) -> list[OptionContract]:
    return [parse_contract(raw) for raw in raw_options]


# ---------------------------------------------------------------------------
# Front-cycle selection
# ---------------------------------------------------------------------------

def symbol_root(ticker: str) -> str:
    """``_SPX`` -> ``SPX``."""
    return ticker.replace("_", "")


def is_front_cycle(symbol: str, ticker: str, date_code: str) -> bool:
    """True for weekly (``SPXW240119...``) or monthly (``SPX240119...``) symbols of date_code."""
    root = symbol_root(ticker)
    return symbol.startswith(f"{root}W{date_code}") or symbol.startswith(f"{root}{date_code}")


def get_trading_day(now: Optional[date] = None) -> str:
    """Return the YYMMDD code of the current trading day (weekends roll to Monday)."""
    day = now or date.today()
    if day.weekday() == 5:
        day += timedelta(days=2)
    elif day.weekday() == 6:
        day += timedelta(days=1)
    return day.strftime("%y%m%d")
