"""
Dashboard service — one display session: a strike chart per tab, the view
mode, and the refresh cycle that feeds them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import store
from core.config import (
    DEFAULT_MODE,
    DEFAULT_TAB,
    DEFAULT_TICKER,
    MODES,
    REFRESH_SEQUENCING,
    TABS,
)
from core.errors import GexError
from services.calculations import build_strike_grid
from services.cboe_service import GexSnapshot, load_snapshot
from services.chart_backend import ChartContainer, PlotlyChartBackend
from services.chart_service import BackendFactory, StrikeChart, create_chart

logger = logging.getLogger(__name__)


class RefreshSequencer:
    """
    Numbers refreshes in issue order and rejects responses older than the
    last one applied. With ``enabled=False`` any response is applied, so the
    last one to arrive wins.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.issued = 0
        self.applied = 0

    def issue(self) -> int:
        self.issued += 1
        return self.issued

    def is_stale(self, sequence: int) -> bool:
        return self.enabled and sequence <= self.applied

    def mark_applied(self, sequence: int) -> None:
        self.applied = sequence


@dataclass
class RefreshResult:
    sequence: int
    applied: bool
    snapshot: GexSnapshot


class Dashboard:

    def __init__(
        self,
        ticker: str = DEFAULT_TICKER,
        mode: str = DEFAULT_MODE,
        active_tab: str = DEFAULT_TAB,
        backend_factory: BackendFactory = PlotlyChartBackend,
        loader: Optional[Callable[[str], GexSnapshot]] = None,
        sequencing: bool = REFRESH_SEQUENCING,
        width: int = 0,
        height: int = 0,
    ):
        self.ticker = ticker
        self.mode = self._check_mode(mode)
        self.active_tab = self._check_tab(active_tab)
        self.backend_factory = backend_factory
        self.loader = loader or load_snapshot
        self.sequencer = RefreshSequencer(sequencing)
        self.containers = {tab: ChartContainer(width, height) for tab in TABS}
        self.charts: dict[str, Optional[StrikeChart]] = {tab: None for tab in TABS}
        self.snapshot: Optional[GexSnapshot] = None
        self.last_error: Optional[str] = None

    @staticmethod
    def _check_mode(mode: str) -> str:
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}. Valid: {', '.join(MODES)}")
        return mode

    @staticmethod
    def _check_tab(tab: str) -> str:
        if tab not in TABS:
            raise ValueError(f"Unknown tab: {tab}. Valid: {', '.join(TABS)}")
        return tab

    @property
    def has_charts(self) -> bool:
        return any(chart is not None for chart in self.charts.values())

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, snapshot: GexSnapshot, mode: Optional[str] = None) -> None:
        """First render creates the active tab's chart; later ones update every chart."""
        mode = self._check_mode(mode or self.mode)
        grid = build_strike_grid(snapshot.current_price)

        if self.has_charts:
            for tab, chart in self.charts.items():
                if chart is not None:
                    data = snapshot.strike_data(TABS[tab], mode)
                    chart.update(data, snapshot.current_price, grid)
        else:
            self.create_chart_for_tab(self.active_tab, snapshot, mode)

        self.snapshot = snapshot
        self.mode = mode

    def create_chart_for_tab(self, tab: str, snapshot: GexSnapshot, mode: str) -> StrikeChart:
        if self.charts[tab] is not None:
            return self.charts[tab]

        data = snapshot.strike_data(TABS[tab], mode)
        self.charts[tab] = create_chart(
            self.containers[tab], data, snapshot.current_price, self.backend_factory
        )
        logger.info("Created %s chart for %s (%s)", tab, snapshot.ticker, mode)
        return self.charts[tab]

    def select_tab(self, tab: str) -> Optional[StrikeChart]:
        self.active_tab = self._check_tab(tab)
        if self.snapshot is None:
            return None
        chart = self.create_chart_for_tab(tab, self.snapshot, self.mode)
        chart.recenter()
        return chart

    def set_mode(self, mode: str) -> None:
        self._check_mode(mode)
        if self.snapshot is not None:
            self.render(self.snapshot, mode)
        else:
            self.mode = mode

    def recenter_charts(self) -> None:
        for chart in self.charts.values():
            if chart is not None:
                chart.recenter()

    def resize(self, tab: str, width: int, height: int) -> None:
        container = self.containers[self._check_tab(tab)]
        container.width = width
        container.height = height
        chart = self.charts[tab]
        if chart is not None:
            chart.resize()

    def legend(self, tab: str) -> Optional[dict]:
        field_name = TABS[self._check_tab(tab)]
        if self.snapshot is None:
            return None
        return {
            "tab":             tab,
            "mode":            self.mode,
            "price":           self.snapshot.current_price,
            "summary":         self.snapshot.summary(self.mode)[field_name],
            "timestamp":       self.snapshot.formatted_timestamp(),
            "last_trade_time": self.snapshot.last_trade_time(),
        }

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    async def refresh(self) -> RefreshResult:
        """
        Fetch a snapshot off the event loop and apply it unless a newer
        refresh has already been applied. Failures keep the current render.
        """
        sequence = self.sequencer.issue()
        logger.info("Refresh #%d issued for %s", sequence, self.ticker)

        try:
            snapshot = await asyncio.to_thread(self.loader, self.ticker)
        except GexError as exc:
            self.last_error = str(exc)
            logger.error("Refresh #%d failed: %s", sequence, exc)
            raise

        applied = self.apply(sequence, snapshot)
        return RefreshResult(sequence=sequence, applied=applied, snapshot=snapshot)

    def apply(self, sequence: int, snapshot: GexSnapshot) -> bool:
        if self.sequencer.is_stale(sequence):
            logger.warning(
                "Discarding stale refresh #%d (already applied #%d)",
                sequence, self.sequencer.applied,
            )
            return False

        try:
            self.render(snapshot)
        except GexError as exc:
            self.last_error = str(exc)
            logger.error("Refresh #%d could not be rendered: %s", sequence, exc)
            raise

        self.sequencer.mark_applied(sequence)
        store.set_snapshot(self.ticker, snapshot, sequence)
        self.last_error = None
        logger.info(
            "Applied refresh #%d: %s @ %s", sequence, self.ticker, snapshot.current_price
        )
        return True
