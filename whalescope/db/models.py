# whalescope/db/models.py
"""
SQLModel definitions for tracked whales and their positions.
Designed for SQLite locally, PostgreSQL in production.
"""

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field


class WhaleRecord(SQLModel, table=True):
    """Latest aggregate metrics for a tracked address."""
    __tablename__ = "whale"

    address: str = Field(primary_key=True)
    first_seen: datetime = Field()
    last_updated: Optional[datetime] = Field(default=None)
    last_active: Optional[datetime] = Field(default=None, index=True)

    total_trades: int = Field(default=0)
    realized_pnl: float = Field(default=0.0)
    unrealized_pnl: float = Field(default=0.0)
    total_pnl: float = Field(default=0.0, index=True)
    margin_used: float = Field(default=0.0)
    roi: float = Field(default=0.0)
    win_rate: float = Field(default=0.0)
    winning_closes: int = Field(default=0)
    closing_events: int = Field(default=0)
    active_positions: int = Field(default=0)
    largest_position: float = Field(default=0.0)
    risk_score: float = Field(default=0.0)

    dormant: bool = Field(default=False)
    dormant_since: Optional[datetime] = Field(default=None)


class PositionRecord(SQLModel, table=True):
    """Current open position (materialized latest), keyed by (address, asset)."""
    __tablename__ = "position"

    address: str = Field(primary_key=True)
    asset: str = Field(primary_key=True, index=True)

    side: str = Field()  # LONG or SHORT
    size: float = Field()  # signed
    entry_price: float = Field()
    leverage: float = Field(default=1.0)
    margin_used: float = Field(default=0.0)
    liquidation_price: float = Field(default=0.0)
    unrealized_pnl: float = Field(default=0.0)
    notional: float = Field(default=0.0)

    tracked_since: datetime = Field()
    updated_at: datetime = Field(index=True)


class PositionSnapshotRecord(SQLModel, table=True):
    """Append-only history of position states."""
    __tablename__ = "position_snapshot"

    id: Optional[int] = Field(default=None, primary_key=True)
    address: str = Field(index=True)
    asset: str = Field(index=True)
    side: str = Field()
    size: float = Field()
    entry_price: float = Field()
    leverage: float = Field(default=1.0)
    notional: float = Field(default=0.0)
    liquidation_price: float = Field(default=0.0)
    created_at: datetime = Field(index=True)


class PositionEventRecord(SQLModel, table=True):
    """Position lifecycle events (opened, reduced, closed, liquidated, ...)."""
    __tablename__ = "position_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    event_type: str = Field(index=True)
    address: str = Field(index=True)
    asset: str = Field(index=True)
    from_size: float = Field(default=0.0)
    to_size: float = Field(default=0.0)
    notional: float = Field(default=0.0)
    liquidation_price: float = Field(default=0.0)
    created_at: datetime = Field(index=True)


class CopyTradingPairRecord(SQLModel, table=True):
    """Detected copy-trading relationship, keyed by (copy_trader, original_trader)."""
    __tablename__ = "copy_trading_pair"

    copy_trader: str = Field(primary_key=True)
    original_trader: str = Field(primary_key=True, index=True)
    asset: str = Field()
    side: str = Field()
    first_detected: datetime = Field()
    last_seen: datetime = Field(index=True)
    occurrences: int = Field(default=1)
    liquidation_price: float = Field(default=0.0)
    notional: float = Field(default=0.0)
