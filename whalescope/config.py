# whalescope/config.py
"""Runtime settings read from the environment."""

import logging
import os


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Database URL, defaults to local SQLite
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./whalescope.db")

# Liquidation estimation
MAINTENANCE_MARGIN_RATIO = _env_float("MAINTENANCE_MARGIN_RATIO", 0.03)
AT_RISK_PERCENT = _env_float("AT_RISK_PERCENT", 10.0)

# Heatmap bucketing
HEATMAP_STEP_PERCENT = _env_float("HEATMAP_STEP_PERCENT", 0.5)
HEATMAP_WINDOW = _env_float("HEATMAP_WINDOW", 0.5)  # +/- 50% around mark
CLUSTER_THRESHOLD = _env_float("CLUSTER_THRESHOLD", 0.1)

# Whale tracking
DORMANT_AFTER_DAYS = _env_float("DORMANT_AFTER_DAYS", 7.0)
PROFIT_HISTORY_LIMIT = int(_env_float("PROFIT_HISTORY_LIMIT", 1000))
STALE_POSITION_HOURS = _env_float("STALE_POSITION_HOURS", 24.0)

# Copy-trading detection
COPY_PRICE_TOLERANCE = _env_float("COPY_PRICE_TOLERANCE", 0.001)
COPY_NOTIONAL_TOLERANCE = _env_float("COPY_NOTIONAL_TOLERANCE", 0.01)
COPY_MATCH_WINDOW_SECONDS = _env_float("COPY_MATCH_WINDOW_SECONDS", 300.0)
COPY_HISTORY_HOURS = _env_float("COPY_HISTORY_HOURS", 24.0)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging for scripts embedding the engine."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
