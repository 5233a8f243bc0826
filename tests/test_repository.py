# tests/test_repository.py
from __future__ import annotations

from datetime import timedelta

from sqlmodel import select

from whalescope.db.models import PositionEventRecord, PositionSnapshotRecord
from whalescope.db.repository import WhaleRepository
from whalescope.domain.copy_trading import CopyTradingDetector, CopyTradingPair
from whalescope.domain.models import PositionEvent, PositionKey, Whale


def test_whale_round_trip(session, t0):
    whale = Whale(
        address="0xabc", first_seen=t0, total_trades=4, realized_pnl=120.5,
        unrealized_pnl=-20.0, total_pnl=100.5, margin_used=1000.0, roi=10.05,
        win_rate=0.5, winning_closes=1, closing_events=2, last_active=t0,
        dormant=True, dormant_since=t0 - timedelta(days=8),
    )
    WhaleRepository.save_whale(session, whale)

    whale.total_trades = 5
    WhaleRepository.save_whale(session, whale)

    loaded = WhaleRepository.get_whale(session, "0xabc")
    assert loaded.total_trades == 5
    assert loaded.realized_pnl == 120.5
    assert loaded.win_rate == 0.5
    assert loaded.dormant
    assert loaded.first_seen == t0
    assert loaded.dormant_since == t0 - timedelta(days=8)
    assert loaded.last_active.tzinfo is not None

    assert WhaleRepository.get_whale(session, "0xmissing") is None


def test_save_positions_upserts_and_deletes(session, make_position, t0):
    btc = make_position(asset="BTC", size=1.0, entry=100.0, liq=90.0)
    eth = make_position(asset="ETH", size=-2.0, entry=50.0)

    assert WhaleRepository.save_positions(session, "0xabc", [btc, eth], now=t0) == (2, 0)

    btc.size = 3.0
    saved, deleted = WhaleRepository.save_positions(
        session, "0xabc", [btc], now=t0 + timedelta(minutes=1)
    )
    assert (saved, deleted) == (1, 1)

    loaded = WhaleRepository.load_positions(session, "0xabc")
    assert [p.asset for p in loaded] == ["BTC"]
    assert loaded[0].size == 3.0
    assert loaded[0].liquidation_price == 90.0
    assert loaded[0].last_updated == t0 + timedelta(minutes=1)

    history = session.exec(select(PositionSnapshotRecord)).all()
    assert len(history) == 3


def test_load_positions_across_addresses(session, make_position, t0):
    WhaleRepository.save_positions(session, "0xb", [make_position(asset="SOL", address="0xb")], now=t0)
    WhaleRepository.save_positions(session, "0xa", [make_position(asset="BTC", address="0xa")], now=t0)

    assert [p.key for p in WhaleRepository.load_positions(session)] == [
        PositionKey("0xa", "BTC"),
        PositionKey("0xb", "SOL"),
    ]


def test_record_events(session, t0):
    events = [
        PositionEvent(kind="OPENED", key=PositionKey("0xa", "BTC"), from_size=0.0,
                      to_size=1.0, notional=100.0, at=t0),
        PositionEvent(kind="LIQUIDATED", key=PositionKey("0xa", "BTC"), from_size=1.0,
                      to_size=0.0, notional=90.0, at=t0 + timedelta(hours=1), liquidation_price=88.0),
    ]
    assert WhaleRepository.record_events(session, events) == 2
    assert WhaleRepository.record_events(session, []) == 0

    rows = session.exec(select(PositionEventRecord)).all()
    assert sorted(r.event_type for r in rows) == ["LIQUIDATED", "OPENED"]
    assert {r.event_type: r.liquidation_price for r in rows}["LIQUIDATED"] == 88.0


def test_copy_trading_pairs_round_trip(session, t0):
    pair = CopyTradingPair(
        copy_trader="0xfollower", original_trader="0xleader", asset="BTC", side="LONG",
        first_detected=t0, last_seen=t0, occurrences=1, liquidation_price=90.0, notional=85.0,
    )
    assert WhaleRepository.save_copy_trading_pairs(session, [pair]) == 1

    pair.occurrences = 2
    pair.last_seen = t0 + timedelta(hours=1)
    WhaleRepository.save_copy_trading_pairs(session, [pair])

    (loaded,) = WhaleRepository.load_copy_trading_pairs(session)
    assert loaded.occurrences == 2
    assert loaded.first_detected == t0
    assert loaded.last_seen == t0 + timedelta(hours=1)

    detector = CopyTradingDetector(pairs=[loaded])
    assert detector.get_stats()["total_pairs"] == 1
