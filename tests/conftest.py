# tests/conftest.py
"""Test configuration and fixtures."""

from datetime import datetime

import pytest
import pytz
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from whalescope.db.models import WhaleRecord, PositionRecord  # noqa: F401  (registers tables)
from whalescope.domain.models import Fill, Position, BUY, SELL
from whalescope.io.hyperliquid_parser import HyperliquidParser


@pytest.fixture(name="session")
def session_fixture():
    """Create in-memory SQLite test database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture(name="t0")
def t0_fixture():
    return datetime(2025, 1, 1, 12, 0, 0, tzinfo=pytz.UTC)


@pytest.fixture(name="make_fill")
def make_fill_fixture(t0):
    """Build fills with sensible defaults."""
    def _make(side, size, price, fee=0.0, asset="BTC", at=None):
        return Fill(
            asset=asset,
            side=BUY if side == "B" else SELL,
            size=size,
            price=price,
            fee=fee,
            timestamp=at or t0,
        )
    return _make


@pytest.fixture(name="make_position")
def make_position_fixture():
    def _make(asset="BTC", size=1.0, entry=100.0, leverage=1.0, liq=0.0, address="0xabc"):
        return Position(
            address=address,
            asset=asset,
            size=size,
            entry_price=entry,
            leverage=leverage,
            liquidation_price=liq,
        )
    return _make


@pytest.fixture(name="raw_fills")
def raw_fills_fixture():
    """Provide a sample userFills payload (newest first, as the API returns it)."""
    return [
        {
            "coin": "BTC", "px": "46000.0", "sz": "5.5", "side": "A",
            "time": 1735740000000, "fee": "10.0", "tid": 1002,
            "dir": "Close Long", "closedPnl": "5500.0",
        },
        {
            "coin": "BTC", "px": "45000.0", "sz": "5.5", "side": "B",
            "time": 1735736400000, "fee": "0", "tid": 1001,
            "dir": "Open Long", "closedPnl": "0.0",
        },
        {
            "coin": "ETH", "px": "not-a-number", "sz": "2", "side": "?",
            "time": 1735736500000, "fee": "1",
        },
    ]


@pytest.fixture(name="raw_snapshot")
def raw_snapshot_fixture():
    """Provide a sample clearinghouseState payload."""
    return {
        "assetPositions": [
            {
                "type": "oneWay",
                "position": {
                    "coin": "ETH",
                    "szi": "-10.0",
                    "entryPx": "2000.0",
                    "leverage": {"type": "cross", "value": 5},
                    "marginUsed": "4000.0",
                    "liquidationPx": "2350.5",
                    "unrealizedPnl": "-150.0",
                    "positionValue": "20150.0",
                },
            },
            {
                "type": "oneWay",
                "position": {
                    "coin": "SOL",
                    "szi": "100",
                    "entryPx": "150",
                    "leverage": {"type": "isolated", "value": "10"},
                    "marginUsed": "1500",
                    "liquidationPx": None,
                    "unrealizedPnl": "250",
                },
            },
        ],
        "marginSummary": {
            "accountValue": "50000.0",
            "totalMarginUsed": "5500.0",
        },
    }


@pytest.fixture(name="parsed_snapshot")
def parsed_snapshot_fixture(raw_snapshot):
    return HyperliquidParser.parse_snapshot(raw_snapshot)
