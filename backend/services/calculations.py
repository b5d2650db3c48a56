"""
Calculation service — per-contract GEX/VEX, strike grid, strike aggregation
and legend summaries.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

import pandas as pd

from core.config import BILLIONS, CONTRACT_MULTIPLIER, STRIKE_RANGE, STRIKE_STEP
from core.errors import InvalidPriceError
from services.contract_parser import OptionContract, OptionType

# exposure field selector -> ExposureRecord attribute
FIELDS = {
    "gex": "gamma_exposure",
    "vex": "vega_exposure",
}
MODES = ("net", "split")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ---------------------------------------------------------------------------
# GEX / VEX
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExposureRecord:
    contract: OptionContract
    gamma_exposure: float
    vega_exposure: float

    @property
    def strike(self) -> Optional[int]:
        return self.contract.strike

    @property
    def type(self) -> Optional[OptionType]:
        return self.contract.type


def calculate_exposure(contract: OptionContract, price: float) -> ExposureRecord:
    """
    Standard GEX calculation ($ per 1% move).
    Multiplier = 100 * spot^2 * 0.01, puts signed negative.
    VEX uses traded volume in place of open interest.
    """
    multiplier = CONTRACT_MULTIPLIER * ((price or 0) ** 2) * 0.01
    sign = -1 if contract.type is OptionType.PUT else 1
    gamma = contract.gamma or 0
    return ExposureRecord(
        contract=contract,
        gamma_exposure=gamma * (contract.open_interest or 0) * multiplier * sign,
        vega_exposure=gamma * (contract.volume or 0) * multiplier * sign,
    )


def calculate_exposures(contracts: Iterable[OptionContract], price: float) -> list[ExposureRecord]:
    return [calculate_exposure(c, price) for c in contracts]


# ---------------------------------------------------------------------------
# Strike grid
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StrikeGrid:
    strikes: tuple[int, ...]
    index: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "index", {s: i for i, s in enumerate(self.strikes)})

    def __len__(self) -> int:
        return len(self.strikes)

    def label(self, position: int) -> str:
        """Tick label for a grid position (empty outside the grid)."""
        if 0 <= position < len(self.strikes):
            return str(self.strikes[position])
        return ""

    def nearest_index(self, price: float) -> int:
        """Index of the strike closest to price; ties go to the lower strike."""
        closest = min(self.strikes, key=lambda s: abs(s - price))
        return self.index[closest]


def build_strike_grid(price: Optional[float], step: int = STRIKE_STEP) -> StrikeGrid:
    """Strikes 0, step, ... up to round(2 * price / step) * step inclusive."""
    if price is None or price <= 0:
        raise InvalidPriceError(f"Cannot build strike grid for price {price!r}")
    top = round_half_up(price * 2 / step) * step
    return StrikeGrid(strikes=tuple(range(0, top + 1, step)))


# ---------------------------------------------------------------------------
# Strike aggregation
# ---------------------------------------------------------------------------

@dataclass
class AggregateSeries:
    """
    Per-strike totals in billions, each series indexed by strike ascending.
    Net mode holds ``net``; split mode holds ``calls`` and ``puts`` (negated).
    """
    mode: str
    series: dict[str, pd.Series]

    @property
    def names(self) -> list[str]:
        return list(self.series)

    def aligned(self, name: str, grid: StrikeGrid) -> pd.Series:
        """Series reindexed onto every grid strike, gaps filled with 0."""
        return self.series[name].reindex(list(grid.strikes), fill_value=0.0)

    def max_abs(self) -> float:
        values = [s.abs().max() for s in self.series.values() if not s.empty]
        return float(max(values, default=0.0))


def _check_selector(field_name: str, mode: str) -> str:
    if field_name not in FIELDS:
        raise ValueError(f"Unknown exposure field: {field_name}. Valid: {', '.join(FIELDS)}")
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode}. Valid: {', '.join(MODES)}")
    return FIELDS[field_name]


def _strike_frame(records: Iterable[ExposureRecord], column: str) -> pd.DataFrame:
    rows = [
        {"strike": r.strike, "type": r.type.value, "value": getattr(r, column)}
        for r in records
        if r.strike is not None and r.type is not None
    ]
    frame = pd.DataFrame(rows, columns=["strike", "type", "value"])
    return frame.astype({"strike": "int64", "value": "float64"})


def _by_strike(frame: pd.DataFrame) -> pd.Series:
    return (frame["value"] / BILLIONS).groupby(frame["strike"]).sum().sort_index()


def aggregate_strikes(
    records: Iterable[ExposureRecord], field_name: str, mode: str, price: float
) -> AggregateSeries:
    """
    Bucket exposure by strike inside [0.92 * price, 1.08 * price].

    Only strikes that received contributions are reported; grid alignment
    is left to the chart.
    """
    column = _check_selector(field_name, mode)
    frame = _strike_frame(records, column)

    lower = price * STRIKE_RANGE["lower"]
    upper = price * STRIKE_RANGE["upper"]
    frame = frame[frame["strike"].between(lower, upper)]

    if mode == "net":
        return AggregateSeries(mode=mode, series={"net": _by_strike(frame)})

    frame = frame.assign(value=frame["value"].abs())
    calls = _by_strike(frame[frame["type"] == OptionType.CALL.value])
    puts = _by_strike(frame[frame["type"] == OptionType.PUT.value])
    return AggregateSeries(mode=mode, series={"calls": calls, "puts": -puts})


# ---------------------------------------------------------------------------
# Legend summaries
# ---------------------------------------------------------------------------

def _summary_frame(records: Iterable[ExposureRecord]) -> pd.DataFrame:
    rows = [
        {
            "strike": r.strike,
            "type":   r.type.value if r.type is not None else None,
            "gex":    r.gamma_exposure,
            "vex":    r.vega_exposure,
        }
        for r in records
    ]
    frame = pd.DataFrame(rows, columns=["strike", "type", "gex", "vex"])
    return frame.astype({"strike": "float64", "gex": "float64", "vex": "float64"})


def summarize(records: Iterable[ExposureRecord], price: float, mode: str) -> dict:
    """
    Legend totals in billions for both fields.

    net:   {"gex": {"total", "below", "above"}, "vex": {...}}
    split: {"gex": {"calls", "puts"}, "vex": {...}}  (magnitudes)
    """
    _check_selector("gex", mode)
    frame = _summary_frame(records)

    if mode == "net":
        # an unparsed strike compares as 0, so it lands below any live price
        strikes = frame["strike"].fillna(0)
        below = strikes < price
        above = strikes >= price
        return {
            name: {
                "total": float(frame[name].sum() / BILLIONS),
                "below": float(frame.loc[below, name].sum() / BILLIONS),
                "above": float(frame.loc[above, name].sum() / BILLIONS),
            }
            for name in FIELDS
        }

    calls = frame["type"] == OptionType.CALL.value
    puts = frame["type"] == OptionType.PUT.value
    return {
        name: {
            "calls": float(frame.loc[calls, name].abs().sum() / BILLIONS),
            "puts":  float(frame.loc[puts, name].abs().sum() / BILLIONS),
        }
        for name in FIELDS
    }


def latest_trade_time(records: Iterable[ExposureRecord]) -> Optional[str]:
    """Most recent last-trade time across records, as 'YYYY-MM-DD HH:MM:SS'."""
    times = [r.contract.last_trade_time for r in records if r.contract.last_trade_time]
    if not times:
        return None
    return max(times).strftime("%Y-%m-%d %H:%M:%S")
