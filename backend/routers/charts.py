"""
Charts router — returns Plotly JSON for the strike charts and forwards the
host's view events (mode switch, recenter, resize) to the chart state.

Routes:
  GET  /api/charts/{tab}
  POST /api/charts/mode
  POST /api/charts/recenter
  POST /api/charts/{tab}/resize

Handlers are async so chart state is only mutated on the event loop, the
same thread the refresh job renders on.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

import store
from core.config import MODES, TABS
from core.errors import InvalidPriceError

router = APIRouter(prefix="/api", tags=["charts"])


def _check_tab(tab: str) -> None:
    if tab not in TABS:
        raise HTTPException(status_code=404, detail=f"Unknown tab: {tab}")


class ModeRequest(BaseModel):
    mode: str


class ResizeRequest(BaseModel):
    width: int
    height: int


@router.post("/charts/mode")
async def set_mode(body: ModeRequest):
    """Switch between net and split (calls/puts) display."""
    if body.mode not in MODES:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown mode. Valid: {', '.join(MODES)}",
        )
    dashboard = store.get_dashboard()
    try:
        dashboard.set_mode(body.mode)
    except InvalidPriceError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"success": True, "mode": dashboard.mode}


@router.post("/charts/recenter")
async def recenter():
    """Re-centre every open chart on the current price strike."""
    dashboard = store.get_dashboard()
    dashboard.recenter_charts()
    return {
        "success": True,
        "centered": {
            tab: chart.price_strike_idx if chart else None
            for tab, chart in dashboard.charts.items()
        },
    }


@router.post("/charts/{tab}/resize")
async def resize(tab: str, body: ResizeRequest):
    """Host container changed size."""
    _check_tab(tab)
    store.get_dashboard().resize(tab, body.width, body.height)
    return {"success": True, "tab": tab, "width": body.width, "height": body.height}


@router.get("/charts/{tab}")
async def get_chart(tab: str):
    """Return the Plotly JSON string and marker state for a tab's chart."""
    _check_tab(tab)
    dashboard = store.get_dashboard()
    if dashboard.snapshot is None:
        raise HTTPException(status_code=404, detail="No data loaded yet")

    chart = dashboard.select_tab(tab)
    label = chart.price_label

    # Return as a plain string; the frontend will JSON.parse() it
    return {
        "tab":            tab,
        "mode":           dashboard.mode,
        "state":          chart.state.value,
        "centered_index": chart.price_strike_idx,
        "price_label": {
            "text":    label.text,
            "left":    label.left,
            "visible": label.visible,
        } if label else None,
        "figure": chart.to_json(),
    }
