# whalescope/domain/models.py
"""Domain value objects."""

from typing import Optional, List, NamedTuple
from dataclasses import dataclass, field
from datetime import datetime

import pytz

BUY = "BUY"
SELL = "SELL"
LONG = "LONG"
SHORT = "SHORT"

# A close leaving less than this snaps the lot to flat
LOT_EPSILON = 1e-4

EPOCH = datetime(1970, 1, 1, tzinfo=pytz.UTC)


class PositionKey(NamedTuple):
    """Identity of one open position."""
    address: str
    asset: str


@dataclass
class Fill:
    """A single trade fill for one address."""
    asset: str
    side: str  # BUY or SELL
    size: float
    price: float
    fee: float = 0.0
    timestamp: datetime = EPOCH
    fill_id: Optional[str] = None
    closed_pnl: float = 0.0  # exchange-reported, informational only

    @property
    def signed_size(self) -> float:
        return self.size if self.side == BUY else -self.size


@dataclass
class Lot:
    """Cost-basis working state for one address+asset."""
    signed_size: float = 0.0
    avg_entry_price: float = 0.0
    total_cost: float = 0.0

    @property
    def is_flat(self) -> bool:
        return self.signed_size == 0

    def reset(self):
        """Return the lot to the flat state."""
        self.signed_size = 0.0
        self.avg_entry_price = 0.0
        self.total_cost = 0.0


@dataclass
class SnapshotPosition:
    """One position as reported by the exchange."""
    asset: str
    size: float  # signed
    entry_price: float
    leverage: float = 1.0
    margin_used: float = 0.0
    liquidation_price: float = 0.0  # 0 when the exchange did not report one
    unrealized_pnl: float = 0.0


@dataclass
class AccountSnapshot:
    """Normalized exchange state for one address."""
    positions: List[SnapshotPosition] = field(default_factory=list)
    margin_used: float = 0.0
    account_value: float = 0.0

    @property
    def unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self.positions)


@dataclass
class Position:
    """Current open exposure of an address on one asset."""
    address: str
    asset: str
    size: float  # Positive for LONG, negative for SHORT
    entry_price: float
    leverage: float = 1.0
    margin_used: float = 0.0
    liquidation_price: float = 0.0
    unrealized_pnl: float = 0.0
    mark_price: Optional[float] = None
    tracked_since: datetime = EPOCH
    last_updated: datetime = EPOCH

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.address, self.asset)

    @property
    def side(self) -> str:
        return LONG if self.size > 0 else SHORT

    @property
    def position_value(self) -> float:
        return abs(self.size * self.entry_price)

    @property
    def notional(self) -> float:
        price = self.mark_price if self.mark_price else self.entry_price
        return abs(self.size * price)

    def notional_at(self, price: float) -> float:
        return abs(self.size * price)


@dataclass
class Whale:
    """Aggregate state of one tracked address."""
    address: str
    first_seen: datetime
    total_trades: int = 0
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0
    total_pnl: float = 0.0
    margin_used: float = 0.0
    roi: float = 0.0
    win_rate: float = 0.0
    winning_closes: int = 0
    closing_events: int = 0
    active_positions: int = 0
    largest_position: float = 0.0
    risk_score: float = 0.0
    last_active: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    dormant: bool = False
    dormant_since: Optional[datetime] = None


@dataclass
class WakeEvent:
    """Raised once when a dormant whale opens new exposure."""
    address: str
    woke_at: datetime
    dormant_since: Optional[datetime]
    active_positions: int


@dataclass
class PositionEvent:
    """Lifecycle transition of a tracked position."""
    kind: str  # OPENED, INCREASED, REDUCED, FLIPPED, CLOSED, LIQUIDATED
    key: PositionKey
    from_size: float
    to_size: float
    notional: float
    at: datetime
    liquidation_price: float = 0.0


@dataclass
class ProfitPoint:
    """One entry of a whale's PnL history."""
    timestamp: datetime
    total_pnl: float
    realized_pnl: float
    unrealized_pnl: float
    margin_used: float
    roi: float
