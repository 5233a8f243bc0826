# whalescope/domain/copy_trading.py
"""
Copy-trading detection.
Matches liquidations of different addresses that share asset, side,
liquidation price and notional within a short window, and keeps the
resulting follower/leader pairs with a confidence score.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import pytz

from whalescope import config
from whalescope.domain.models import PositionEvent, LONG, SHORT
from whalescope.domain.tracker import LIQUIDATED

logger = logging.getLogger(__name__)

COPY_TRADER = "copy_trader"
BEING_COPIED = "being_copied"


@dataclass
class LiquidationRecord:
    """One observed liquidation."""
    address: str
    asset: str
    side: str
    liquidation_price: float
    notional: float
    liquidated_at: datetime

    @property
    def key(self) -> Tuple[str, str, str, float, float]:
        return (self.address, self.asset, self.side, self.liquidation_price, self.notional)

    @classmethod
    def from_event(cls, event: PositionEvent) -> "LiquidationRecord":
        return cls(
            address=event.key.address,
            asset=event.key.asset,
            side=LONG if event.from_size > 0 else SHORT,
            liquidation_price=event.liquidation_price,
            notional=event.notional,
            liquidated_at=event.at,
        )


@dataclass
class CopyTradingPair:
    """A follower/leader relationship, keyed by (copy_trader, original_trader)."""
    copy_trader: str
    original_trader: str
    asset: str
    side: str
    first_detected: datetime
    last_seen: datetime
    occurrences: int
    liquidation_price: float
    notional: float


@dataclass
class CopyTradingMatch:
    is_copy_trader: bool  # True when the new liquidation is the follower's
    copy_trader: str
    original_trader: str
    pair: CopyTradingPair
    confidence: float


@dataclass
class CopyTradingRelation:
    """A pair seen from one address."""
    kind: str  # COPY_TRADER or BEING_COPIED
    target: str
    confidence: float
    occurrences: int
    last_seen: datetime


def calculate_confidence(pair: CopyTradingPair, now: datetime) -> float:
    """0.5 base, up to +0.3 for repeats, +0.2 when seen in the last day."""
    confidence = 0.5
    confidence += min(pair.occurrences * 0.1, 0.3)
    if now - pair.last_seen < timedelta(days=1):
        confidence += 0.2
    return min(confidence, 1.0)


class CopyTradingDetector:
    """Finds addresses whose liquidations mirror another address."""

    def __init__(
        self,
        price_tolerance: float = config.COPY_PRICE_TOLERANCE,
        notional_tolerance: float = config.COPY_NOTIONAL_TOLERANCE,
        match_window: timedelta = timedelta(seconds=config.COPY_MATCH_WINDOW_SECONDS),
        pairs: Optional[Iterable[CopyTradingPair]] = None,
    ):
        self.price_tolerance = price_tolerance
        self.notional_tolerance = notional_tolerance
        self.match_window = match_window
        self.history: Dict[Tuple, LiquidationRecord] = {}
        self.pairs: Dict[Tuple[str, str], CopyTradingPair] = {
            (p.copy_trader, p.original_trader): p for p in pairs or []
        }

    def is_identical(self, record: LiquidationRecord, other: LiquidationRecord) -> bool:
        """Same asset and side, price and notional within tolerance, close in time."""
        if record.asset != other.asset or record.side != other.side:
            return False
        if other.liquidation_price <= 0 or other.notional <= 0:
            return False

        price_diff = abs(record.liquidation_price - other.liquidation_price) / other.liquidation_price
        if price_diff > self.price_tolerance:
            return False

        notional_diff = abs(record.notional - other.notional) / other.notional
        if notional_diff > self.notional_tolerance:
            return False

        return abs(record.liquidated_at - other.liquidated_at) <= self.match_window

    def find_identical(self, record: LiquidationRecord) -> List[LiquidationRecord]:
        return [
            other
            for other in self.history.values()
            if other.address != record.address and self.is_identical(record, other)
        ]

    def analyze_liquidation(
        self,
        record: LiquidationRecord,
        now: Optional[datetime] = None,
    ) -> Optional[CopyTradingMatch]:
        """Store a liquidation and return a match if another address mirrors it."""
        now = now or datetime.now(pytz.UTC)
        self.history[record.key] = record

        identical = self.find_identical(record)
        if not identical:
            return None
        return self._detect(record, identical, now)

    def analyze_events(
        self,
        events: Iterable[PositionEvent],
        now: Optional[datetime] = None,
    ) -> List[CopyTradingMatch]:
        """Feed drained tracker events; only liquidations are considered."""
        matches = []
        for event in events:
            if event.kind != LIQUIDATED:
                continue
            match = self.analyze_liquidation(LiquidationRecord.from_event(event), now)
            if match is not None:
                matches.append(match)
        return matches

    def _detect(
        self,
        record: LiquidationRecord,
        identical: List[LiquidationRecord],
        now: datetime,
    ) -> CopyTradingMatch:
        # The earliest liquidation is taken as the original trader
        original = min(identical, key=lambda r: r.liquidated_at)
        is_copy_trader = record.liquidated_at > original.liquidated_at
        if is_copy_trader:
            copy_trader, original_trader = record.address, original.address
        else:
            copy_trader, original_trader = original.address, record.address

        existing = self.pairs.get((copy_trader, original_trader))
        pair = CopyTradingPair(
            copy_trader=copy_trader,
            original_trader=original_trader,
            asset=record.asset,
            side=record.side,
            first_detected=existing.first_detected if existing else now,
            last_seen=now,
            occurrences=(existing.occurrences if existing else 0) + 1,
            liquidation_price=record.liquidation_price,
            notional=record.notional,
        )
        self.pairs[(copy_trader, original_trader)] = pair
        logger.info("Copy trading detected: %s following %s on %s", copy_trader, original_trader, record.asset)

        return CopyTradingMatch(
            is_copy_trader=is_copy_trader,
            copy_trader=copy_trader,
            original_trader=original_trader,
            pair=pair,
            confidence=calculate_confidence(pair, now),
        )

    def get_copy_trading_info(self, address: str, now: Optional[datetime] = None) -> List[CopyTradingRelation]:
        """Every pair the address takes part in, from its point of view."""
        now = now or datetime.now(pytz.UTC)
        relations = []
        for pair in self.pairs.values():
            if pair.copy_trader == address:
                kind, target = COPY_TRADER, pair.original_trader
            elif pair.original_trader == address:
                kind, target = BEING_COPIED, pair.copy_trader
            else:
                continue
            relations.append(
                CopyTradingRelation(
                    kind=kind,
                    target=target,
                    confidence=calculate_confidence(pair, now),
                    occurrences=pair.occurrences,
                    last_seen=pair.last_seen,
                )
            )
        return relations

    def cleanup_history(
        self,
        now: Optional[datetime] = None,
        max_age: timedelta = timedelta(hours=config.COPY_HISTORY_HOURS),
    ) -> int:
        """Forget liquidations older than max_age. Pairs are kept."""
        now = now or datetime.now(pytz.UTC)
        expired = [key for key, r in self.history.items() if now - r.liquidated_at > max_age]
        for key in expired:
            del self.history[key]
        return len(expired)

    def get_stats(self) -> Dict:
        pairs = list(self.pairs.values())
        return {
            "total_pairs": len(pairs),
            "unique_copy_traders": len({p.copy_trader for p in pairs}),
            "unique_original_traders": len({p.original_trader for p in pairs}),
            "liquidation_history_size": len(self.history),
        }
