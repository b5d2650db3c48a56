import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Base log directory (inside backend)
LOG_DIR = os.getenv("LOG_DIR", str(Path(__file__).resolve().parent.parent / "logs"))

# ---------------------------------------------------------------------------
# Quote feed: CBOE delayed-quotes endpoint
# ---------------------------------------------------------------------------
API_URL: str = os.getenv("API_URL", "https://cdn.cboe.com/api/global/delayed_quotes/options")
DEFAULT_TICKER: str = os.getenv("DEFAULT_TICKER", "_SPX")
FEED_TIMEOUT_SECS: int = int(os.getenv("FEED_TIMEOUT_SECS", "15"))

# ---------------------------------------------------------------------------
# Auto-Fetch Configuration
# ---------------------------------------------------------------------------
AUTO_FETCH: bool = os.getenv("AUTO_FETCH", "true").lower() in ("1", "true", "yes")
REFRESH_INTERVAL_SECS: int = int(os.getenv("REFRESH_INTERVAL_SECS", "60"))
MAX_OVERLAPPING_REFRESHES: int = int(os.getenv("MAX_OVERLAPPING_REFRESHES", "3"))
# False = apply whichever response lands last, regardless of issue order
REFRESH_SEQUENCING: bool = os.getenv("REFRESH_SEQUENCING", "true").lower() in ("1", "true", "yes")

# ---------------------------------------------------------------------------
# Display / calculation constants
# ---------------------------------------------------------------------------
CONTRACT_MULTIPLIER = 100
STRIKE_STEP = 5
STRIKE_RANGE = {"lower": 0.92, "upper": 1.08}
BILLIONS = 1e9

VISIBLE_HALF_WINDOW = 100   # grid positions either side of the price strike
MARKER_FLOOR = 0.1          # minimum half-height of the price line
MARKER_PADDING = 1.1
MARKER_EXTENT = 100
DEFAULT_CHART_HEIGHT = 640

MODES = ("net", "split")
DEFAULT_MODE = "net"

# tab -> exposure field
TABS: dict[str, str] = {
    "oi":  "gex",
    "vol": "vex",
}
DEFAULT_TAB = "oi"

# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------
COLORS: dict[str, str] = {
    "background": "#0F172A",
    "text":       "#CBD5E1",
    "grid":       "rgba(255,255,255,0.04)",
    "border":     "#334155",
    "positive":   "#6366F1",   # Indigo (Call / +GEX)
    "negative":   "#F43F5E",   # Rose (Put / -GEX)
    "price_line": "#F59E0B",   # Spot (Amber)
}
