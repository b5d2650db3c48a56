"""
Data router — manual refresh, auto-fetch toggle, status and legend data.
Routes:
  POST /api/fetch
  POST /api/auto-fetch
  GET  /api/status
  GET  /api/summary
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

import store
from core.config import DEFAULT_TAB, TABS
from core.errors import FeedError, InvalidPriceError
from services import fetcher_service

router = APIRouter(prefix="/api", tags=["data"])


# ---------------------------------------------------------------------------
# Refresh now
# ---------------------------------------------------------------------------

@router.post("/fetch")
async def fetch_data():
    """Fetch a fresh snapshot and render it (unless a newer one landed first)."""
    dashboard = store.get_dashboard()
    try:
        result = await dashboard.refresh()
    except FeedError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except InvalidPriceError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return {
        "success":   True,
        "ticker":    dashboard.ticker,
        "sequence":  result.sequence,
        "applied":   result.applied,
        "price":     result.snapshot.current_price,
        "timestamp": result.snapshot.formatted_timestamp(),
        "contracts": len(result.snapshot.front_records),
    }


# ---------------------------------------------------------------------------
# Auto-fetch toggle
# ---------------------------------------------------------------------------

class AutoFetchRequest(BaseModel):
    enabled: bool


@router.post("/auto-fetch")
async def auto_fetch(body: AutoFetchRequest):
    fetcher_service.set_auto_fetch(body.enabled, store.get_dashboard())
    return {"success": True, "enabled": fetcher_service.is_running()}


# ---------------------------------------------------------------------------
# Status / legend
# ---------------------------------------------------------------------------

@router.get("/status")
async def status():
    dashboard = store.get_dashboard()
    return {
        "ticker":      dashboard.ticker,
        "mode":        dashboard.mode,
        "active_tab":  dashboard.active_tab,
        "auto_fetch":  fetcher_service.is_running(),
        "hasData":     store.has_snapshot(dashboard.ticker),
        "sequence":    store.get_sequence(dashboard.ticker),
        "last_error":  dashboard.last_error,
        "charts": {
            tab: chart.state.value if chart else None
            for tab, chart in dashboard.charts.items()
        },
    }


@router.get("/summary")
async def summary(tab: str = DEFAULT_TAB):
    """Legend totals, snapshot timestamp and last trade time for a tab."""
    if tab not in TABS:
        raise HTTPException(status_code=404, detail=f"Unknown tab: {tab}")
    legend = store.get_dashboard().legend(tab)
    if legend is None:
        raise HTTPException(status_code=404, detail="No data loaded yet")
    return legend
