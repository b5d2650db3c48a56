"""
In-memory data store — holds the last applied snapshot per ticker and the
dashboard session that renders it.
"""

from __future__ import annotations

from typing import Optional

# { ticker: {"snapshot": GexSnapshot, "sequence": int} }
_store: dict = {}
_dashboard = None


def set_snapshot(ticker: str, snapshot, sequence: int = 0) -> None:
    _store[ticker] = {"snapshot": snapshot, "sequence": sequence}


def get_snapshot(ticker: str):
    entry = _store.get(ticker)
    return entry["snapshot"] if entry else None


def get_sequence(ticker: str) -> Optional[int]:
    entry = _store.get(ticker)
    return entry["sequence"] if entry else None


def has_snapshot(ticker: str) -> bool:
    return ticker in _store and _store[ticker]["snapshot"] is not None


def get_dashboard():
    """Return the session dashboard, creating it on first use."""
    global _dashboard
    if _dashboard is None:
        from services.dashboard_service import Dashboard
        _dashboard = Dashboard()
    return _dashboard


def set_dashboard(dashboard) -> None:
    global _dashboard
    _dashboard = dashboard


def reset() -> None:
    global _dashboard
    _store.clear()
    _dashboard = None
