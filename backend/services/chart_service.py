"""
Chart service — owns one strike chart's state across data refreshes.

Every series is expressed on the strike grid's ordinal positions, never on
raw strikes. A refresh clears and rebuilds the series because the grid can
change length between snapshots.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from core.config import (
    COLORS,
    DEFAULT_CHART_HEIGHT,
    MARKER_EXTENT,
    MARKER_FLOOR,
    MARKER_PADDING,
    VISIBLE_HALF_WINDOW,
)
from core.errors import BackendOperationError, ChartStateError
from services.calculations import AggregateSeries, StrikeGrid, build_strike_grid, round_half_up
from services.chart_backend import ChartBackend, ChartContainer, PlotlyChartBackend, PriceLabel

logger = logging.getLogger(__name__)

BackendFactory = Callable[..., ChartBackend]

# series name -> bar colour in split mode
SIDE_COLORS = {
    "calls": COLORS["positive"],
    "puts":  COLORS["negative"],
}


class ChartState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    UPDATED = "updated"


def _histogram_options(color: Optional[str] = None, title: str = "") -> dict:
    return dict(
        color=color,
        title=title,
        price_format="billions",
        price_scale_id="right",
        last_value_visible=False,
    )


class StrikeChart:

    def __init__(self, container: ChartContainer, backend_factory: BackendFactory = PlotlyChartBackend):
        self.container = container
        self.backend_factory = backend_factory
        self.backend: Optional[ChartBackend] = None
        self.state = ChartState.UNINITIALIZED
        self.mode: Optional[str] = None
        self.grid: Optional[StrikeGrid] = None
        self.series: list[int] = []
        self.series_values: dict[str, list[float]] = {}
        self.price_line: Optional[int] = None
        self.price_label: Optional[PriceLabel] = None
        self.price_strike_idx: Optional[int] = None
        self._label_listener = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, grid: StrikeGrid, mode: str) -> None:
        """Allocate a fresh rendering surface bound to the container; no series yet."""
        self.grid = grid
        self.mode = mode
        self.backend = self.backend_factory(
            self.container.width,
            self.container.height or DEFAULT_CHART_HEIGHT,
            tick_formatter=self._format_strike,
        )
        self.state = ChartState.INITIALIZED
        logger.debug("Chart created: %d strikes, mode=%s", len(grid), mode)

    def _format_strike(self, position: int) -> str:
        return self.grid.label(position) if self.grid else ""

    def _require_backend(self) -> ChartBackend:
        if self.backend is None:
            raise ChartStateError("Chart has not been created")
        return self.backend

    def load_initial(self, data: AggregateSeries) -> None:
        """Create the mode's value series and push the grid-aligned data once."""
        backend = self._require_backend()
        self.mode = data.mode
        self.series_values = {}

        if data.mode == "net":
            self._render_net(backend, data)
        else:
            self._render_calls_puts(backend, data)

    def _render_net(self, backend: ChartBackend, data: AggregateSeries) -> None:
        values = data.aligned("net", self.grid).tolist()
        handle = backend.add_histogram_series(**_histogram_options(title="Net"))
        self.series.append(handle)

        backend.set_series_data(handle, [
            {
                "time":  i,
                "value": value,
                "color": COLORS["positive"] if value >= 0 else COLORS["negative"],
            }
            for i, value in enumerate(values)
        ])
        self.series_values["net"] = values

    def _render_calls_puts(self, backend: ChartBackend, data: AggregateSeries) -> None:
        handles = {}
        for name in ("calls", "puts"):
            handles[name] = backend.add_histogram_series(
                **_histogram_options(SIDE_COLORS[name], title=name.title())
            )
            self.series.append(handles[name])

        for name, handle in handles.items():
            values = data.aligned(name, self.grid).tolist()
            backend.set_series_data(handle, [
                {"time": i, "value": value} for i, value in enumerate(values)
            ])
            self.series_values[name] = values

    def set_data(self, data: AggregateSeries, current_price: float) -> None:
        self.create(build_strike_grid(current_price), data.mode)
        self.load_initial(data)

    def update(self, data: AggregateSeries, current_price: float, grid: Optional[StrikeGrid] = None) -> None:
        """Rebuild the grid, clear every series and re-render around the new price."""
        if self.state is ChartState.UNINITIALIZED:
            raise ChartStateError("update() called before create()")
        # built before teardown so an invalid price leaves the surface as it was
        grid = grid or build_strike_grid(current_price)

        self.clear_series()
        self.grid = grid
        self.load_initial(data)
        self.place_price_marker(current_price)
        self.state = ChartState.UPDATED

    def clear_series(self) -> None:
        """Best-effort removal of value series and the price line."""
        backend = self._require_backend()
        for handle in self.series:
            try:
                backend.remove_series(handle)
            except BackendOperationError as exc:
                logger.debug("Ignoring series removal failure: %s", exc)
        self.series = []
        self.series_values = {}

        if self.price_line is not None:
            try:
                backend.remove_series(self.price_line)
            except BackendOperationError as exc:
                logger.debug("Ignoring price line removal failure: %s", exc)
            self.price_line = None

    # ------------------------------------------------------------------
    # Price marker
    # ------------------------------------------------------------------

    def max_abs_value(self) -> float:
        values = [abs(v) for series in self.series_values.values() for v in series]
        return max([*values, MARKER_FLOOR])

    def center_on(self, strike_idx: int) -> None:
        self._require_backend().set_visible_range(
            strike_idx - VISIBLE_HALF_WINDOW, strike_idx + VISIBLE_HALF_WINDOW
        )

    def place_price_marker(self, price: float) -> None:
        if not price or self.grid is None or not len(self.grid):
            return

        self.price_strike_idx = self.grid.nearest_index(price)

        self.center_on(self.price_strike_idx)
        self._add_price_line(self.price_strike_idx)
        self._add_price_label(self.price_strike_idx, price)

    def _add_price_line(self, strike_idx: int) -> None:
        backend = self._require_backend()
        if self.price_line is not None:
            try:
                backend.remove_series(self.price_line)
            except BackendOperationError as exc:
                logger.debug("Ignoring price line removal failure: %s", exc)
            self.price_line = None

        max_val = self.max_abs_value()
        padded = max_val * MARKER_PADDING

        self.price_line = backend.add_line_series(
            title="Price",
            color=COLORS["price_line"],
            line_width=1,
            line_style=2,
            price_line_visible=False,
            last_value_visible=False,
            crosshair_marker_visible=False,
            price_scale_id="right",
            autoscale_range=(-padded, padded),
        )

        # two points at one index draw a vertical line
        extent = padded * MARKER_EXTENT
        backend.set_series_data(self.price_line, [
            {"time": strike_idx, "value": -extent},
            {"time": strike_idx, "value": extent},
        ])

    def _remove_price_label(self) -> None:
        if self._label_listener is not None and self.backend is not None:
            try:
                self.backend.unsubscribe_visible_range_change(self._label_listener)
            except BackendOperationError as exc:
                logger.debug("Ignoring unsubscribe failure: %s", exc)
        self._label_listener = None

        if self.price_label is not None:
            try:
                self.container.remove(self.price_label)
            except BackendOperationError as exc:
                logger.debug("Ignoring price label removal failure: %s", exc)
            self.price_label = None

    def _add_price_label(self, strike_idx: int, price: float) -> None:
        self._remove_price_label()
        backend = self._require_backend()

        label = PriceLabel(text=str(round_half_up(price)))
        self.container.append(label)
        self.price_label = label

        def update_position(_visible_range=None):
            x = backend.index_to_coordinate(strike_idx)
            label.visible = x is not None
            if x is not None:
                label.left = x

        update_position()
        backend.subscribe_visible_range_change(update_position)
        self._label_listener = update_position

    # ------------------------------------------------------------------
    # Host callbacks
    # ------------------------------------------------------------------

    def recenter(self) -> None:
        if self.price_strike_idx is not None:
            self.center_on(self.price_strike_idx)

    def resize(self) -> None:
        if self.backend is None:
            return
        self.backend.resize(self.container.width, self.container.height)
        # pixel offsets depend on the width, so re-place the label
        if self._label_listener is not None:
            self._label_listener(self.backend.get_visible_range())

    def to_json(self) -> str:
        backend = self._require_backend()
        return backend.to_json(self.container.elements)


def create_chart(
    container: ChartContainer,
    data: AggregateSeries,
    current_price: float,
    backend_factory: BackendFactory = PlotlyChartBackend,
) -> StrikeChart:
    chart = StrikeChart(container, backend_factory)
    chart.set_data(data, current_price)
    chart.place_price_marker(current_price)
    return chart
