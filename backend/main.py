"""
FastAPI entry point — mounts the routers, starts the refresh scheduler, and
serves the frontend.
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Ensure the 'backend' directory is in the path for internal imports
sys.path.append(str(Path(__file__).parent))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

import store
from core.config import AUTO_FETCH
from core.errors import GexError
from routers import charts, data
from services import fetcher_service

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger("gex_dashboard")


# ---------------------------------------------------------------------------
# Lifespan: initial load, then start/stop the auto-fetcher with the app
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    dashboard = store.get_dashboard()
    logger.info("Starting GEX dashboard for %s…", dashboard.ticker)
    try:
        await dashboard.refresh()
    except GexError as exc:
        logger.error("Initial load failed: %s", exc)

    if AUTO_FETCH:
        fetcher_service.start(dashboard)
    else:
        logger.info("Auto-fetch is disabled in config.")
    yield
    fetcher_service.stop()
    logger.info("GEX dashboard stopped.")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Front-cycle Gamma Exposure API",
    description="Strike-bucketed gamma/volume exposure charts for a single index",
    version="1.0.0",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS — allow browser requests from any origin (dev convenience)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(data.router)
app.include_router(charts.router)

# ---------------------------------------------------------------------------
# Health check  (must be BEFORE the static file mount)
# ---------------------------------------------------------------------------
@app.get("/api/health")
def health():
    return {"status": "ok", "service": "GEX Dashboard API"}


# ---------------------------------------------------------------------------
# Serve frontend static files (catch-all — must be LAST)
# ---------------------------------------------------------------------------
FRONTEND_DIR = Path(__file__).parent.parent / "frontend"

if FRONTEND_DIR.exists():
    app.mount("/", StaticFiles(directory=str(FRONTEND_DIR), html=True), name="frontend")
