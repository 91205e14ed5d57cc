"""
Odds Chart - Live terminal price chart for one prediction-market instrument.

Architecture:
- datafeed/: WebSocket feed supervision, REST history backfill, event reduction
- engine/: In-memory time series of reduced samples
- ui/: ASCII chart rasterizer + fixed-interval terminal render loop
"""

__version__ = "0.1.0"
