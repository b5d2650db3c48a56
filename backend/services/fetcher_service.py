"""
Fetcher service — periodic snapshot refresh on an APScheduler interval job.

Runs may overlap: a slow fetch does not hold back the next tick, and the
dashboard's refresh sequencing decides which response is rendered.
"""

from __future__ import annotations

import logging
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import LOG_DIR, MAX_OVERLAPPING_REFRESHES, REFRESH_INTERVAL_SECS
from core.errors import GexError

# Setup simple logging to both console and file
LOG_FILE = Path(LOG_DIR) / "fetcher.log"
Path(LOG_DIR).mkdir(parents=True, exist_ok=True)

logger = logging.getLogger("fetcher")
logger.setLevel(logging.INFO)

# Avoid adding multiple handlers if the module is reloaded
if not logger.handlers:
    c_handler = logging.StreamHandler()
    c_handler.setFormatter(logging.Formatter('%(asctime)s - FETCH - %(levelname)s - %(message)s'))
    logger.addHandler(c_handler)

    f_handler = logging.FileHandler(LOG_FILE)
    f_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    logger.addHandler(f_handler)

logger.propagate = False

JOB_ID = "refresh_snapshot"

_scheduler: AsyncIOScheduler | None = None


async def _refresh_job(dashboard):
    """Scheduled task: refresh the dashboard snapshot."""
    try:
        result = await dashboard.refresh()
    except GexError as exc:
        logger.error("Auto-fetch failed for %s: %s", dashboard.ticker, exc)
        return

    if result.applied:
        logger.info("Auto-fetch #%d applied (price %s)", result.sequence, result.snapshot.current_price)
    else:
        logger.warning("Auto-fetch #%d arrived stale and was dropped", result.sequence)


def is_running() -> bool:
    return _scheduler is not None and _scheduler.running


def start(dashboard, interval_secs: int = REFRESH_INTERVAL_SECS) -> None:
    """Start the periodic refresh. Must be called with a running event loop."""
    global _scheduler
    if is_running():
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _refresh_job,
        trigger=IntervalTrigger(seconds=interval_secs),
        args=[dashboard],
        id=JOB_ID,
        name="Option Chain Refresh",
        replace_existing=True,
        max_instances=MAX_OVERLAPPING_REFRESHES,
    )
    _scheduler.start()
    logger.info("Starting auto-fetcher for %s. Interval: %ds.", dashboard.ticker, interval_secs)


def stop() -> None:
    """Shutdown the scheduler cleanly."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Auto-fetcher stopped.")
    _scheduler = None


def set_auto_fetch(enabled: bool, dashboard) -> None:
    stop()
    if enabled:
        start(dashboard)
