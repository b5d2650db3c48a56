"""
CBOE quote service — fetches the delayed-quotes option chain and turns it
into a GexSnapshot with front-cycle exposure records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import requests

from core.config import API_URL, FEED_TIMEOUT_SECS
from core.errors import FeedError
from services.calculations import (
    AggregateSeries,
    ExposureRecord,
    aggregate_strikes,
    calculate_exposures,
    latest_trade_time,
    summarize,
)
from services.contract_parser import (
    OptionContract,
    get_trading_day,
    is_front_cycle,
    parse_contracts,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


# ---------------------------------------------------------------------------
# API fetch
# ---------------------------------------------------------------------------

def fetch_quotes(ticker: str, base_url: str = API_URL, timeout: int = FEED_TIMEOUT_SECS) -> dict:
    """
    GET <base_url>/<ticker> and return the decoded JSON body.

    Raises:
        FeedError: on non-2xx status, transport failure or a non-JSON body.
    """
    url = f"{base_url.rstrip('/')}/{ticker}"
    headers = {"Accept": "application/json"}

    try:
        response = requests.get(url, headers=headers, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.HTTPError as exc:
        raise FeedError(f"Failed to fetch data ({exc.response.status_code})") from exc
    except requests.exceptions.RequestException as exc:
        raise FeedError(f"API Error: {exc}") from exc

    try:
        return response.json()
    except ValueError as exc:
        raise FeedError(f"Feed returned invalid JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass
class GexSnapshot:
    ticker: str
    date_code: str
    current_price: float
    timestamp: Optional[datetime]
    contracts: list[OptionContract] = field(default_factory=list)
    records: list[ExposureRecord] = field(default_factory=list)
    front_records: list[ExposureRecord] = field(default_factory=list)

    @classmethod
    def from_quotes(cls, quotes: dict, ticker: str, date_code: str) -> "GexSnapshot":
        try:
            data = quotes["data"]
            price = data["current_price"]
            raw_options = data["options"]
        except (KeyError, TypeError) as exc:
            raise FeedError(f"Malformed quote payload, missing {exc}") from exc
        if not isinstance(raw_options, list) or not all(isinstance(o, dict) for o in raw_options):
            raise FeedError("Malformed quote payload, data.options must be a list of records")

        timestamp = None
        if quotes.get("timestamp"):
            try:
                timestamp = datetime.strptime(quotes["timestamp"], TIMESTAMP_FORMAT)
            except ValueError:
                logger.warning("Unparseable feed timestamp: %r", quotes["timestamp"])

        contracts = parse_contracts(raw_options)
        records = calculate_exposures(contracts, price)
        front = [r for r in records if is_front_cycle(r.contract.option, ticker, date_code)]

        logger.info(
            "Parsed %s snapshot: price=%s contracts=%d front-cycle=%d",
            ticker, price, len(records), len(front),
        )
        return cls(
            ticker=ticker,
            date_code=date_code,
            current_price=price,
            timestamp=timestamp,
            contracts=contracts,
            records=records,
            front_records=front,
        )

    def strike_data(self, field_name: str, mode: str) -> AggregateSeries:
        return aggregate_strikes(self.front_records, field_name, mode, self.current_price)

    def summary(self, mode: str) -> dict:
        return summarize(self.front_records, self.current_price, mode)

    def last_trade_time(self) -> Optional[str]:
        return latest_trade_time(self.front_records)

    def formatted_timestamp(self) -> Optional[str]:
        return self.timestamp.strftime(TIMESTAMP_FORMAT) if self.timestamp else None


def load_snapshot(ticker: str, date_code: Optional[str] = None, base_url: str = API_URL) -> GexSnapshot:
    """Fetch and parse a snapshot for the given trading-day code (default: today's)."""
    if date_code is None:
        date_code = get_trading_day()
    quotes = fetch_quotes(ticker, base_url=base_url)
    return GexSnapshot.from_quotes(quotes, ticker, date_code)
