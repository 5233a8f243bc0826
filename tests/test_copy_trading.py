# tests/test_copy_trading.py
from __future__ import annotations

from datetime import timedelta

import pytest

from whalescope.domain.copy_trading import (
    CopyTradingDetector,
    LiquidationRecord,
    BEING_COPIED,
    COPY_TRADER,
)
from whalescope.domain.models import AccountSnapshot, SnapshotPosition
from whalescope.domain.tracker import WhaleTracker, LIQUIDATED


def _liq(address, at, price=90.0, notional=1000.0, asset="BTC", side="LONG"):
    return LiquidationRecord(
        address=address, asset=asset, side=side,
        liquidation_price=price, notional=notional, liquidated_at=at,
    )


def test_identical_liquidations_within_tolerance(t0):
    detector = CopyTradingDetector()
    base = _liq("0xa", t0)

    assert detector.is_identical(_liq("0xb", t0 + timedelta(minutes=4), price=90.05, notional=1005.0), base)
    assert not detector.is_identical(_liq("0xb", t0, price=90.2), base)
    assert not detector.is_identical(_liq("0xb", t0, notional=1020.0), base)
    assert not detector.is_identical(_liq("0xb", t0 + timedelta(minutes=6)), base)
    assert not detector.is_identical(_liq("0xb", t0, side="SHORT"), base)
    assert not detector.is_identical(_liq("0xb", t0, asset="ETH"), base)
    assert not detector.is_identical(_liq("0xb", t0), _liq("0xa", t0, price=0.0))


def test_later_liquidation_is_the_copy_trader(t0):
    detector = CopyTradingDetector()
    assert detector.analyze_liquidation(_liq("0xleader", t0), now=t0) is None

    match = detector.analyze_liquidation(_liq("0xfollower", t0 + timedelta(minutes=2)), now=t0)

    assert match.is_copy_trader
    assert match.copy_trader == "0xfollower"
    assert match.original_trader == "0xleader"
    assert match.pair.occurrences == 1
    assert match.confidence == pytest.approx(0.8)


def test_earlier_liquidation_marks_existing_as_copy_trader(t0):
    detector = CopyTradingDetector()
    detector.analyze_liquidation(_liq("0xfollower", t0 + timedelta(minutes=2)), now=t0)

    match = detector.analyze_liquidation(_liq("0xleader", t0), now=t0)

    assert not match.is_copy_trader
    assert match.copy_trader == "0xfollower"
    assert match.original_trader == "0xleader"


def test_same_address_never_matches_itself(t0):
    detector = CopyTradingDetector()
    detector.analyze_liquidation(_liq("0xa", t0), now=t0)
    assert detector.analyze_liquidation(_liq("0xa", t0 + timedelta(minutes=1), price=90.01), now=t0) is None


def test_repeats_raise_confidence_and_keep_first_detected(t0):
    detector = CopyTradingDetector()
    for i in range(3):
        at = t0 + timedelta(hours=i)
        detector.analyze_liquidation(_liq("0xleader", at, price=90.0 + i), now=at)
        match = detector.analyze_liquidation(_liq("0xfollower", at + timedelta(minutes=1), price=90.0 + i), now=at)

    assert match.pair.occurrences == 3
    assert match.pair.first_detected == t0
    assert match.confidence == pytest.approx(1.0)


def test_copy_trading_info_from_both_sides(t0):
    detector = CopyTradingDetector()
    detector.analyze_liquidation(_liq("0xleader", t0), now=t0)
    detector.analyze_liquidation(_liq("0xfollower", t0 + timedelta(minutes=1)), now=t0)

    (follower,) = detector.get_copy_trading_info("0xfollower", now=t0)
    assert follower.kind == COPY_TRADER
    assert follower.target == "0xleader"

    # no recent activity: recency bonus is gone
    (leader,) = detector.get_copy_trading_info("0xleader", now=t0 + timedelta(days=2))
    assert leader.kind == BEING_COPIED
    assert leader.target == "0xfollower"
    assert leader.confidence == pytest.approx(0.6)

    assert detector.get_copy_trading_info("0xnobody", now=t0) == []


def test_cleanup_history_and_stats(t0):
    detector = CopyTradingDetector()
    detector.analyze_liquidation(_liq("0xleader", t0), now=t0)
    detector.analyze_liquidation(_liq("0xfollower", t0 + timedelta(minutes=1)), now=t0)
    detector.analyze_liquidation(_liq("0xother", t0 + timedelta(hours=20), asset="ETH"), now=t0)

    assert detector.cleanup_history(now=t0 + timedelta(hours=25)) == 2
    assert detector.get_stats() == {
        "total_pairs": 1,
        "unique_copy_traders": 1,
        "unique_original_traders": 1,
        "liquidation_history_size": 1,
    }


def test_fed_by_tracker_liquidation_events(t0):
    tracker = WhaleTracker()
    position = SnapshotPosition(
        asset="BTC", size=1.0, entry_price=100.0, leverage=10.0,
        margin_used=10.0, liquidation_price=90.0,
    )
    for address in ("0xleader", "0xfollower"):
        tracker.update_whale(address, [], AccountSnapshot(positions=[position]), now=t0)
    tracker.mark_prices({"BTC": 85.0})

    tracker.update_whale("0xleader", [], AccountSnapshot(), now=t0 + timedelta(minutes=1))
    tracker.update_whale("0xfollower", [], AccountSnapshot(), now=t0 + timedelta(minutes=3))

    events = tracker.drain_position_events()
    liquidations = [e for e in events if e.kind == LIQUIDATED]
    assert [e.liquidation_price for e in liquidations] == [90.0, 90.0]

    detector = CopyTradingDetector()
    (match,) = detector.analyze_events(events, now=t0 + timedelta(minutes=3))
    assert match.copy_trader == "0xfollower"
    assert match.original_trader == "0xleader"
    assert match.pair.side == "LONG"
    assert match.pair.notional == pytest.approx(85.0)
