# whalescope/io/hyperliquid_parser.py
"""
Hyperliquid payload parser.
Normalizes raw fills, clearinghouse snapshots and mid prices into strict records.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional
import pytz

from whalescope.domain.models import (
    AccountSnapshot,
    Fill,
    SnapshotPosition,
    BUY,
    SELL,
    EPOCH,
    LOT_EPSILON,
)

logger = logging.getLogger(__name__)


def to_float(value: Any) -> float:
    """Parse a number; missing or invalid values become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return 0.0
    return parsed


def _first(raw: Mapping, *names: str) -> Any:
    for name in names:
        if name in raw and raw[name] is not None:
            return raw[name]
    return None


class HyperliquidParser:
    """Parse Hyperliquid info API payloads."""

    # Fill side codes: "B" = bid (buy), "A" = ask (sell)
    SIDE_CODES = {
        "B": BUY,
        "BUY": BUY,
        "BID": BUY,
        "LONG": BUY,
        "A": SELL,
        "S": SELL,
        "SELL": SELL,
        "ASK": SELL,
        "SHORT": SELL,
    }

    # Accepted ISO-like timestamp formats
    TIMESTAMP_FORMATS = [
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d %H:%M:%S",
    ]

    @staticmethod
    def to_timestamp(value: Any) -> datetime:
        """
        Convert an exchange timestamp to an aware UTC datetime.

        Accepts epoch milliseconds (Hyperliquid), epoch seconds, ISO strings
        and datetimes. Anything unparseable maps to the epoch.
        """
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return pytz.UTC.localize(value)
            return value.astimezone(pytz.UTC)

        if isinstance(value, str):
            stripped = value.strip()
            for fmt in HyperliquidParser.TIMESTAMP_FORMATS:
                try:
                    dt = datetime.strptime(stripped.replace("Z", "+0000"), fmt)
                except ValueError:
                    continue
                return HyperliquidParser.to_timestamp(dt)

        number = to_float(value)
        if number <= 0:
            return EPOCH
        # Values this large can only be milliseconds
        if number > 1e11:
            number = number / 1000.0
        try:
            return datetime.fromtimestamp(number, tz=pytz.UTC)
        except (OverflowError, OSError, ValueError):
            return EPOCH

    @staticmethod
    def parse_side(value: Any) -> Optional[str]:
        if value is None:
            return None
        return HyperliquidParser.SIDE_CODES.get(str(value).strip().upper())

    @staticmethod
    def parse_fill(raw: Mapping) -> Optional[Fill]:
        """
        Parse one fill.

        Returns None when the side cannot be determined; every numeric field
        that is missing or invalid becomes 0.
        """
        if not isinstance(raw, Mapping):
            logger.warning("Skipping non-mapping fill: %r", raw)
            return None

        side = HyperliquidParser.parse_side(raw.get("side"))
        if side is None:
            logger.warning("Skipping fill with unknown side: %r", raw.get("side"))
            return None

        asset = str(_first(raw, "coin", "asset", "symbol") or "").strip()
        fill_id = _first(raw, "tid", "hash", "fill_id", "id")

        return Fill(
            asset=asset,
            side=side,
            size=abs(to_float(_first(raw, "sz", "size"))),
            price=to_float(_first(raw, "px", "price")),
            fee=to_float(raw.get("fee")),
            timestamp=HyperliquidParser.to_timestamp(_first(raw, "time", "timestamp")),
            fill_id=str(fill_id) if fill_id is not None else None,
            closed_pnl=to_float(raw.get("closedPnl")),
        )

    @staticmethod
    def parse_fills(raws: Optional[Iterable[Mapping]]) -> List[Fill]:
        """Parse a fill feed, dropping unusable entries and ordering by time."""
        if not raws:
            return []
        fills = []
        for raw in raws:
            fill = HyperliquidParser.parse_fill(raw)
            if fill is not None:
                fills.append(fill)
        # Stable: fills sharing a timestamp keep feed order
        fills.sort(key=lambda f: f.timestamp)
        return fills

    @staticmethod
    def parse_position(raw: Mapping) -> Optional[SnapshotPosition]:
        """Parse one entry of clearinghouseState.assetPositions."""
        if not isinstance(raw, Mapping):
            return None
        pos = raw.get("position", raw)
        if not isinstance(pos, Mapping):
            return None

        size = to_float(_first(pos, "szi", "size"))
        if abs(size) < LOT_EPSILON:
            return None

        leverage_raw = pos.get("leverage")
        if isinstance(leverage_raw, Mapping):
            leverage = to_float(leverage_raw.get("value"))
        else:
            leverage = to_float(leverage_raw)

        return SnapshotPosition(
            asset=str(_first(pos, "coin", "asset") or "").strip(),
            size=size,
            entry_price=to_float(_first(pos, "entryPx", "entry_price")),
            leverage=leverage if leverage > 0 else 1.0,
            margin_used=to_float(_first(pos, "marginUsed", "margin_used")),
            liquidation_price=to_float(_first(pos, "liquidationPx", "liquidation_price")),
            unrealized_pnl=to_float(_first(pos, "unrealizedPnl", "unrealized_pnl")),
        )

    @staticmethod
    def parse_snapshot(raw: Optional[Mapping]) -> Optional[AccountSnapshot]:
        """
        Parse a clearinghouseState payload.

        A missing payload stays None so callers can leave metrics untouched.
        """
        if raw is None:
            return None
        if not isinstance(raw, Mapping):
            logger.warning("Ignoring malformed snapshot of type %s", type(raw).__name__)
            return None

        positions = []
        for entry in raw.get("assetPositions") or []:
            parsed = HyperliquidParser.parse_position(entry)
            if parsed is not None:
                positions.append(parsed)

        summary = raw.get("marginSummary") or {}
        if not isinstance(summary, Mapping):
            summary = {}

        if "totalMarginUsed" in summary:
            margin_used = to_float(summary.get("totalMarginUsed"))
        else:
            margin_used = sum(p.margin_used for p in positions)

        return AccountSnapshot(
            positions=positions,
            margin_used=margin_used,
            account_value=to_float(summary.get("accountValue")),
        )

    @staticmethod
    def parse_prices(raw: Optional[Mapping]) -> Dict[str, float]:
        """Parse an allMids-style {asset: price} mapping."""
        prices = {}
        if not raw:
            return prices
        for asset, value in raw.items():
            price = to_float(value)
            if price > 0:
                prices[str(asset)] = price
        return prices
