"""
Static configuration for Odds Chart.

The tracked instrument is fixed; only the feed URL and a few display /
logging knobs can be changed at startup (env var or CLI flags).
"""

from __future__ import annotations

import os
from dataclasses import dataclass

# Tracked instrument (CLOB token id) and its parent market
TARGET_ASSET = "82282239328474018205105491929033644496357668579127643134512317986090887443137"
TARGET_MARKET = "0x1e17e60a28b3f9ddb668c5fac7b225095a5734a3825cf013659166045e94322f"
MARKET_LABEL = "Will X be banned in the UK by March 31?"

# Endpoints
DEFAULT_WS_URL = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
HISTORY_URL = "https://clob.polymarket.com/prices-history"
WS_URL_ENV = "POLYMARKET_WS_URL"

# Feed supervision
HEARTBEAT_INTERVAL_SEC = 30.0
RECONNECT_DELAY_SEC = 3.0

# Reduction
MAX_SPREAD = 0.499      # Wider book snapshots are dropped
HISTORY_SPREAD = 0.01   # Synthetic spread for backfilled points
HISTORY_FIDELITY = 11   # Minutes per historical point

# Display
RENDER_INTERVAL_SEC = 0.5
DEFAULT_WINDOW_HOURS = 24.0
DEFAULT_BACKFILL_HOURS = 24.0
DEFAULT_LOG_FILE = "logs/odds_chart.log"


@dataclass
class Settings:
    """Runtime settings assembled from defaults, environment and CLI."""
    ws_url: str = DEFAULT_WS_URL
    asset_id: str = TARGET_ASSET
    market_id: str = TARGET_MARKET
    market_label: str = MARKET_LABEL
    history_url: str = HISTORY_URL
    window_hours: float = DEFAULT_WINDOW_HOURS
    backfill_hours: float = DEFAULT_BACKFILL_HOURS
    log_file: str = DEFAULT_LOG_FILE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(ws_url=env.get(WS_URL_ENV) or DEFAULT_WS_URL)
