"""
Charting backend — the narrow surface the chart state engine draws through
(series CRUD, ordinal visible range, index -> pixel transform, range
subscriptions), plus a Plotly implementation whose figure JSON the
frontend renders with Plotly.js.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import plotly.graph_objects as go

from core.config import COLORS
from core.errors import BackendOperationError

logger = logging.getLogger(__name__)

RangeListener = Callable[[Optional[tuple[float, float]]], None]

MARGIN = dict(l=50, r=50, t=30, b=60)
LINE_DASH = {0: "solid", 1: "dot", 2: "dash", 3: "longdash"}
TICK_EVERY = 10


# ---------------------------------------------------------------------------
# Host primitives
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class PriceLabel:
    """Floating text element laid over the x-axis."""
    text: str
    left: Optional[float] = None
    visible: bool = False
    class_name: str = "x-axis-marker"


@dataclass
class ChartContainer:
    """Host element the chart is mounted in: pixel size plus overlay children."""
    width: int = 0
    height: int = 0
    elements: list = field(default_factory=list)

    def append(self, element) -> None:
        self.elements.append(element)

    def remove(self, element) -> None:
        if element not in self.elements:
            raise BackendOperationError("Element is not attached to this container")
        self.elements.remove(element)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------

class ChartBackend(ABC):
    """Abstract rendering surface indexed by contiguous ordinal positions."""

    @abstractmethod
    def add_histogram_series(self, **options) -> int:
        pass

    @abstractmethod
    def add_line_series(self, **options) -> int:
        pass

    @abstractmethod
    def remove_series(self, handle: int) -> None:
        """
        Raises:
            BackendOperationError: if the series does not exist.
        """
        pass

    @abstractmethod
    def set_series_data(self, handle: int, points: Iterable[dict]) -> None:
        """Replace a series' points: dicts with ``time``, ``value`` and optional ``color``."""
        pass

    @abstractmethod
    def set_visible_range(self, start: float, end: float) -> None:
        pass

    @abstractmethod
    def get_visible_range(self) -> Optional[tuple[float, float]]:
        pass

    @abstractmethod
    def index_to_coordinate(self, index: float) -> Optional[float]:
        """Pixel x-offset of an index, or None when it is not visible."""
        pass

    @abstractmethod
    def subscribe_visible_range_change(self, callback: RangeListener) -> None:
        pass

    @abstractmethod
    def unsubscribe_visible_range_change(self, callback: RangeListener) -> None:
        pass

    @abstractmethod
    def resize(self, width: int, height: int) -> None:
        pass

    @abstractmethod
    def to_json(self, overlays: Iterable = ()) -> str:
        """Serialise the surface, with overlay elements, for the frontend."""
        pass


# ---------------------------------------------------------------------------
# Plotly implementation
# ---------------------------------------------------------------------------

class PlotlyChartBackend(ChartBackend):

    def __init__(self, width: int, height: int, tick_formatter: Optional[Callable[[int], str]] = None):
        self.width = width
        self.height = height
        self.tick_formatter = tick_formatter or str
        self._series: dict[int, dict] = {}
        self._ids = itertools.count(1)
        self._visible_range: Optional[tuple[float, float]] = None
        self._listeners: list[RangeListener] = []

    # -- series -------------------------------------------------------------

    def _add(self, kind: str, options: dict) -> int:
        handle = next(self._ids)
        self._series[handle] = {"kind": kind, "options": options, "data": []}
        return handle

    def _get(self, handle: int) -> dict:
        try:
            return self._series[handle]
        except KeyError:
            raise BackendOperationError(f"Series {handle} does not exist") from None

    def add_histogram_series(self, **options) -> int:
        return self._add("histogram", options)

    def add_line_series(self, **options) -> int:
        return self._add("line", options)

    def remove_series(self, handle: int) -> None:
        self._get(handle)
        del self._series[handle]

    def set_series_data(self, handle: int, points: Iterable[dict]) -> None:
        self._get(handle)["data"] = [dict(p) for p in points]

    @property
    def series_handles(self) -> list[int]:
        return list(self._series)

    def series_data(self, handle: int) -> list[dict]:
        return list(self._get(handle)["data"])

    def series_kind(self, handle: int) -> str:
        return self._get(handle)["kind"]

    # -- time scale -----------------------------------------------------------

    def set_visible_range(self, start: float, end: float) -> None:
        self._visible_range = (float(start), float(end))
        for listener in list(self._listeners):
            listener(self._visible_range)

    def get_visible_range(self) -> Optional[tuple[float, float]]:
        return self._visible_range

    def index_to_coordinate(self, index: float) -> Optional[float]:
        if self._visible_range is None:
            return None
        start, end = self._visible_range
        if end <= start or not start <= index <= end:
            return None
        plot_width = max(self.width - MARGIN["l"] - MARGIN["r"], 0)
        return MARGIN["l"] + (index - start) / (end - start) * plot_width

    def subscribe_visible_range_change(self, callback: RangeListener) -> None:
        self._listeners.append(callback)

    def unsubscribe_visible_range_change(self, callback: RangeListener) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            raise BackendOperationError("Callback is not subscribed") from None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def resize(self, width: int, height: int) -> None:
        self.width = width
        self.height = height

    # -- rendering ------------------------------------------------------------

    def _base_layout(self) -> dict:
        return dict(
            paper_bgcolor=COLORS["background"],
            plot_bgcolor=COLORS["background"],
            font=dict(color=COLORS["text"], family="'Inter', sans-serif", size=11),
            margin=MARGIN,
            width=self.width or None,
            height=self.height or None,
            showlegend=False,
            barmode="overlay",
            bargap=0.1,
            xaxis=dict(
                gridcolor=COLORS["grid"],
                linecolor=COLORS["border"],
                zeroline=False,
                tickangle=-45,
                tickfont=dict(size=10),
            ),
            yaxis=dict(
                side="right",
                gridcolor=COLORS["grid"],
                linecolor=COLORS["border"],
                zeroline=True,
                zerolinecolor=COLORS["border"],
                ticksuffix="B",
                tickformat=".2f",
                tickfont=dict(size=10),
            ),
        )

    def to_figure(self, overlays: Iterable = ()) -> go.Figure:
        fig = go.Figure()
        y_range = None
        last_index = -1

        for handle, spec in self._series.items():
            options = spec["options"]
            xs = [p["time"] for p in spec["data"]]
            ys = [p["value"] for p in spec["data"]]
            last_index = max([last_index, *xs])

            if spec["kind"] == "histogram":
                colors = [p.get("color", options.get("color")) for p in spec["data"]]
                if all(c is None for c in colors):
                    colors = None
                fig.add_trace(go.Bar(
                    x=xs, y=ys, marker_color=colors, name=options.get("title", f"series-{handle}"),
                    hovertemplate="%{y:.2f}B<extra></extra>",
                ))
            else:
                fig.add_trace(go.Scatter(
                    x=xs, y=ys, mode="lines", hoverinfo="skip",
                    name=options.get("title", f"series-{handle}"),
                    line=dict(
                        color=options.get("color"),
                        width=options.get("line_width", 1),
                        dash=LINE_DASH.get(options.get("line_style", 0), "solid"),
                    ),
                ))
                if options.get("autoscale_range"):
                    y_range = list(options["autoscale_range"])

        layout = self._base_layout()
        if self._visible_range is not None:
            layout["xaxis"]["range"] = list(self._visible_range)
        if last_index >= 0:
            tickvals = list(range(0, last_index + 1, TICK_EVERY))
            layout["xaxis"]["tickmode"] = "array"
            layout["xaxis"]["tickvals"] = tickvals
            layout["xaxis"]["ticktext"] = [self.tick_formatter(i) for i in tickvals]
        if y_range is not None:
            layout["yaxis"]["range"] = y_range

        fig.update_layout(**layout)

        for element in overlays:
            if isinstance(element, PriceLabel) and element.visible and element.left is not None:
                fig.add_annotation(
                    x=element.left / self.width if self.width else 0,
                    xref="paper", y=0, yref="paper", yanchor="top",
                    text=element.text, showarrow=False,
                    font=dict(color=COLORS["background"], size=10),
                    bgcolor=COLORS["price_line"],
                )
        return fig

    def to_json(self, overlays: Iterable = ()) -> str:
        return self.to_figure(overlays).to_json()
