# tests/test_parser.py
from __future__ import annotations

from datetime import datetime

import pytz

from whalescope.domain.models import BUY, SELL, EPOCH
from whalescope.io.hyperliquid_parser import HyperliquidParser, to_float


def test_parse_fills_smoke(raw_fills):
    fills = HyperliquidParser.parse_fills(raw_fills)

    # Unknown side dropped, remaining sorted oldest first
    assert len(fills) == 2

    f0 = fills[0]
    assert f0.asset == "BTC"
    assert f0.side == BUY
    assert f0.size == 5.5
    assert f0.price == 45000.0
    assert f0.fee == 0.0
    assert f0.fill_id == "1001"
    assert f0.timestamp.tzinfo is not None
    assert f0.timestamp == datetime(2025, 1, 1, 13, 0, 0, tzinfo=pytz.UTC)

    f1 = fills[1]
    assert f1.side == SELL
    assert f1.fee == 10.0
    assert f1.closed_pnl == 5500.0
    assert f1.signed_size == -5.5


def test_parse_fill_defaults_invalid_numbers_to_zero():
    fill = HyperliquidParser.parse_fill({"asset": "ETH", "side": "SELL", "size": None, "price": "abc"})
    assert fill is not None
    assert fill.size == 0.0
    assert fill.price == 0.0
    assert fill.fee == 0.0
    assert fill.timestamp == EPOCH


def test_to_float():
    assert to_float("1.5") == 1.5
    assert to_float(None) == 0.0
    assert to_float("") == 0.0
    assert to_float("nan") == 0.0
    assert to_float(True) == 0.0
    assert to_float(3) == 3.0


def test_to_timestamp_variants():
    expected = datetime(2025, 1, 1, 13, 0, 0, tzinfo=pytz.UTC)
    assert HyperliquidParser.to_timestamp(1735736400000) == expected
    assert HyperliquidParser.to_timestamp(1735736400) == expected
    assert HyperliquidParser.to_timestamp("2025-01-01T13:00:00Z") == expected
    assert HyperliquidParser.to_timestamp(datetime(2025, 1, 1, 13, 0, 0)) == expected
    assert HyperliquidParser.to_timestamp("garbage") == EPOCH


def test_parse_snapshot(raw_snapshot):
    snapshot = HyperliquidParser.parse_snapshot(raw_snapshot)

    assert len(snapshot.positions) == 2
    eth, sol = snapshot.positions
    assert eth.asset == "ETH"
    assert eth.size == -10.0
    assert eth.leverage == 5.0
    assert eth.liquidation_price == 2350.5
    assert eth.unrealized_pnl == -150.0

    # missing liquidation price parses to zero (estimated later)
    assert sol.liquidation_price == 0.0
    assert sol.leverage == 10.0

    assert snapshot.margin_used == 5500.0
    assert snapshot.account_value == 50000.0
    assert snapshot.unrealized_pnl == 100.0


def test_parse_snapshot_none_stays_none():
    assert HyperliquidParser.parse_snapshot(None) is None


def test_parse_snapshot_drops_flat_and_sums_margin():
    snapshot = HyperliquidParser.parse_snapshot({
        "assetPositions": [
            {"position": {"coin": "BTC", "szi": "0.0", "entryPx": "1"}},
            {"position": {"coin": "ETH", "szi": "1", "entryPx": "2000", "marginUsed": "200"}},
            {"position": {"coin": "SOL", "szi": "-5", "entryPx": "100", "marginUsed": "50"}},
        ],
    })
    assert [p.asset for p in snapshot.positions] == ["ETH", "SOL"]
    assert snapshot.margin_used == 250.0
    # leverage missing -> 1x
    assert snapshot.positions[0].leverage == 1.0


def test_parse_prices():
    prices = HyperliquidParser.parse_prices({"BTC": "97000.5", "ETH": "0", "SOL": "bad"})
    assert prices == {"BTC": 97000.5}
