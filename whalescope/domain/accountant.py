# whalescope/domain/accountant.py
"""
Cost-basis accounting from an ordered fill history.
Implements weighted-average lots, partial closes, flips, and realized P&L.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from whalescope.domain.models import Fill, Lot, EPOCH, LOT_EPSILON

logger = logging.getLogger(__name__)


@dataclass
class FillResult:
    """Effect of one fill on its lot."""
    asset: str
    from_size: float
    to_size: float
    realized: float = 0.0
    is_close: bool = False

    @property
    def is_win(self) -> bool:
        return self.is_close and self.realized > 0


class PositionAccountant:
    """Maintains one lot per asset for a single address."""

    def __init__(self):
        self.lots: Dict[str, Lot] = {}
        self.realized_pnl = 0.0
        self.closing_events = 0
        self.winning_closes = 0
        self.total_trades = 0
        self.last_fill_time: Optional[datetime] = None

    @property
    def win_rate(self) -> float:
        """Fraction of closing fills whose net contribution was positive."""
        if self.closing_events == 0:
            return 0.0
        return self.winning_closes / self.closing_events

    def lot(self, asset: str) -> Lot:
        if asset not in self.lots:
            self.lots[asset] = Lot()
        return self.lots[asset]

    def open_lots(self) -> Dict[str, Lot]:
        return {asset: lot for asset, lot in self.lots.items() if not lot.is_flat}

    def reset_lot(self, asset: str) -> None:
        """Drop cost basis for an asset the exchange no longer reports."""
        if asset in self.lots:
            self.lots[asset].reset()

    def apply_fills(self, fills: Iterable[Fill]) -> List[FillResult]:
        """
        Apply a batch of fills in order.

        A fill that cannot be applied is logged and skipped; the rest of the
        batch is still processed. Fills without a known time (EPOCH) are
        applied in feed order and never count as out of order.
        """
        results = []
        for fill in fills:
            if (
                fill.timestamp != EPOCH
                and self.last_fill_time is not None
                and fill.timestamp < self.last_fill_time
            ):
                logger.warning(
                    "Skipping out-of-order fill %s %s at %s (last applied %s)",
                    fill.asset, fill.side, fill.timestamp, self.last_fill_time,
                )
                continue
            try:
                result = self.apply_fill(fill)
            except (ValueError, TypeError, ArithmeticError) as e:
                logger.warning("Skipping fill %s %s: %s", fill.asset, fill.side, e)
                continue
            results.append(result)
        return results

    def apply_fill(self, fill: Fill) -> FillResult:
        """Apply a single fill to its lot and update realized P&L."""
        lot = self.lot(fill.asset)
        delta = fill.signed_size
        from_size = lot.signed_size

        if lot.signed_size != 0 and delta * lot.signed_size < 0:
            # Opposite direction: reducing, closing or flipping
            closing_size = min(abs(delta), abs(lot.signed_size))
            direction = 1.0 if lot.signed_size > 0 else -1.0
            contribution = closing_size * (fill.price - lot.avg_entry_price) * direction - fill.fee

            self.realized_pnl += contribution
            self.closing_events += 1
            if contribution > 0:
                self.winning_closes += 1

            lot.signed_size += delta
            if abs(lot.signed_size) < LOT_EPSILON:
                lot.reset()
            elif lot.signed_size * direction < 0:
                # Flipped: remainder opens a fresh lot at the fill price
                lot.avg_entry_price = fill.price
                lot.total_cost = abs(lot.signed_size) * fill.price
            else:
                lot.total_cost = lot.avg_entry_price * abs(lot.signed_size)

            result = FillResult(
                asset=fill.asset,
                from_size=from_size,
                to_size=lot.signed_size,
                realized=contribution,
                is_close=True,
            )
        else:
            # Opening or adding in the same direction
            lot.total_cost += abs(delta) * fill.price
            lot.signed_size += delta
            if lot.is_flat:
                lot.reset()
            else:
                lot.avg_entry_price = lot.total_cost / abs(lot.signed_size)
            self.realized_pnl -= fill.fee

            result = FillResult(
                asset=fill.asset,
                from_size=from_size,
                to_size=lot.signed_size,
                realized=-fill.fee,
            )

        self.total_trades += 1
        if fill.timestamp != EPOCH:
            self.last_fill_time = fill.timestamp
        return result


def compute_realized_pnl(fills: Iterable[Fill]) -> float:
    """Realized P&L of a standalone fill history."""
    accountant = PositionAccountant()
    accountant.apply_fills(fills)
    return accountant.realized_pnl


def compute_roi(total_pnl: float, margin_used: float) -> float:
    """ROI in percent of margin used."""
    if margin_used > 0:
        return total_pnl / margin_used * 100
    return 0.0


