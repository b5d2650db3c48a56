"""Shared pytest fixtures for the GEX dashboard tests."""
import os
import tempfile

# Keep log files and the scheduler out of the way before any backend import
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="gex-logs-"))
os.environ.setdefault("AUTO_FETCH", "false")

import pytest

import store
from services.cboe_service import GexSnapshot
from services.chart_backend import ChartContainer

TICKER = "_SPX"
DATE_CODE = "240119"


def option_symbol(strike: int, option_type: str = "C", date_code: str = DATE_CODE, root: str = "SPXW") -> str:
    """Build an OCC-style symbol, e.g. SPXW240119C00100000."""
    return f"{root}{date_code}{option_type}{strike * 1000:08d}"


def raw_option(
    strike: int,
    option_type: str = "C",
    gamma: float = 0.05,
    open_interest: float = 1000,
    volume: float = 500,
    date_code: str = DATE_CODE,
    root: str = "SPXW",
    last_trade_time: str = "2024-01-19T15:59:00",
) -> dict:
    """Factory for a raw CBOE quote record."""
    return {
        "option":          option_symbol(strike, option_type, date_code, root),
        "gamma":           gamma,
        "volume":          volume,
        "open_interest":   open_interest,
        "last_trade_time": last_trade_time,
    }


def quotes(price: float, options: list, timestamp: str = "2024-01-19 20:15:00") -> dict:
    """Factory for a full feed payload."""
    return {
        "timestamp": timestamp,
        "data": {"current_price": price, "options": options},
    }


@pytest.fixture
def make_raw_option():
    return raw_option


@pytest.fixture
def make_quotes():
    return quotes


@pytest.fixture
def make_snapshot():
    def _make(price: float = 100.0, options: list = None) -> GexSnapshot:
        if options is None:
            options = [
                raw_option(95, "P", gamma=0.02, open_interest=2000, volume=300),
                raw_option(100, "C", gamma=0.05, open_interest=1000, volume=500),
                raw_option(100, "P", gamma=0.04, open_interest=500, volume=200),
                raw_option(105, "C", gamma=0.03, open_interest=1500, volume=800),
            ]
        return GexSnapshot.from_quotes(quotes(price, options), TICKER, DATE_CODE)
    return _make


@pytest.fixture
def sample_quotes():
    """Front-cycle weekly and monthly contracts, one later expiry, one bad symbol."""
    return quotes(100.0, [
        raw_option(100, "C"),
        raw_option(100, "P", gamma=0.04, open_interest=800, root="SPX"),
        raw_option(105, "C", date_code="240126"),
        {"option": "GARBAGE", "gamma": 0.1, "volume": 10, "open_interest": 10, "last_trade_time": None},
    ])


@pytest.fixture
def container():
    return ChartContainer(width=1000, height=600)


@pytest.fixture(autouse=True)
def reset_store():
    store.reset()
    yield
    store.reset()
