# whalescope/domain/tracker.py
"""
Whale tracking.
Owns per-address accounting state, reconciles positions against exchange
snapshots, and tracks dormancy and wake-ups.
"""

import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Deque, Dict, Iterable, List, Mapping, Optional

import pytz

from whalescope import config
from whalescope.domain.accountant import PositionAccountant, compute_roi
from whalescope.domain.liquidation import LiquidationAnalyzer, largest_position
from whalescope.domain.models import (
    AccountSnapshot,
    Fill,
    Position,
    PositionEvent,
    PositionKey,
    ProfitPoint,
    WakeEvent,
    Whale,
    LONG,
    LOT_EPSILON,
)

logger = logging.getLogger(__name__)

DORMANT_AFTER = timedelta(days=config.DORMANT_AFTER_DAYS)

OPENED = "OPENED"
INCREASED = "INCREASED"
REDUCED = "REDUCED"
FLIPPED = "FLIPPED"
CLOSED = "CLOSED"
LIQUIDATED = "LIQUIDATED"


def is_dormant(whale: Whale, now: datetime, dormant_after: timedelta = DORMANT_AFTER) -> bool:
    """No open positions and no activity for at least dormant_after."""
    if whale.active_positions > 0 or whale.last_active is None:
        return False
    return now - whale.last_active >= dormant_after


def _size_change_kind(from_size: float, to_size: float) -> Optional[str]:
    if from_size == 0:
        return OPENED
    if from_size * to_size < 0:
        return FLIPPED
    if abs(to_size) > abs(from_size) + LOT_EPSILON:
        return INCREASED
    if abs(to_size) < abs(from_size) - LOT_EPSILON:
        return REDUCED
    return None


@dataclass
class AddressState:
    """Everything tracked for one address; never shared across addresses."""
    whale: Whale
    accountant: PositionAccountant = field(default_factory=PositionAccountant)
    positions: Dict[str, Position] = field(default_factory=dict)
    profit_history: Deque[ProfitPoint] = field(
        default_factory=lambda: deque(maxlen=config.PROFIT_HISTORY_LIMIT)
    )


class WhaleTracker:
    """Tracks whales, their open positions, and lifecycle events."""

    def __init__(
        self,
        analyzer: Optional[LiquidationAnalyzer] = None,
        dormant_after: timedelta = DORMANT_AFTER,
    ):
        self.analyzer = analyzer or LiquidationAnalyzer()
        self.dormant_after = dormant_after
        self._states: Dict[str, AddressState] = {}
        self._wake_events: Deque[WakeEvent] = deque()
        self._position_events: List[PositionEvent] = []

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def state_for(self, address: str, now: Optional[datetime] = None) -> AddressState:
        if address not in self._states:
            now = now or datetime.now(pytz.UTC)
            self._states[address] = AddressState(whale=Whale(address=address, first_seen=now))
            logger.info("Tracking new whale %s", address)
        return self._states[address]

    def update_whale(
        self,
        address: str,
        fills: Iterable[Fill],
        snapshot: Optional[AccountSnapshot],
        now: Optional[datetime] = None,
    ) -> Whale:
        """
        Run one accounting pass for an address.

        Fills are applied first, then positions are reconciled against the
        snapshot. A None snapshot leaves snapshot-derived metrics untouched.
        """
        now = now or datetime.now(pytz.UTC)
        state = self.state_for(address, now)
        whale = state.whale

        previous_active = whale.active_positions
        was_dormant = whale.dormant or is_dormant(whale, now, self.dormant_after)

        results = state.accountant.apply_fills(fills)

        if snapshot is None:
            self._sync_from_lots(state, [r.asset for r in results], now)
        else:
            self._sync_from_snapshot(state, snapshot, now)

        accountant = state.accountant
        whale.total_trades = accountant.total_trades
        whale.realized_pnl = accountant.realized_pnl
        whale.winning_closes = accountant.winning_closes
        whale.closing_events = accountant.closing_events
        whale.win_rate = accountant.win_rate

        if snapshot is not None:
            whale.unrealized_pnl = snapshot.unrealized_pnl
            whale.margin_used = snapshot.margin_used

        open_positions = list(state.positions.values())
        whale.active_positions = len(open_positions)
        whale.total_pnl = whale.realized_pnl + whale.unrealized_pnl
        whale.roi = compute_roi(whale.total_pnl, whale.margin_used)
        whale.largest_position = largest_position(open_positions)
        whale.risk_score = self.analyzer.risk_score(open_positions)
        whale.last_updated = now

        has_activity = bool(results) or whale.active_positions > 0
        if has_activity:
            whale.last_active = now
            if was_dormant and whale.active_positions > previous_active:
                self._wake(whale, now)
            elif whale.dormant:
                # Fresh fills end dormancy without counting as a wake-up
                whale.dormant = False
                whale.dormant_since = None
        elif not whale.dormant and is_dormant(whale, now, self.dormant_after):
            whale.dormant = True
            whale.dormant_since = whale.last_active
            logger.info("Whale %s dormant since %s", address, whale.dormant_since)

        state.profit_history.append(
            ProfitPoint(
                timestamp=now,
                total_pnl=whale.total_pnl,
                realized_pnl=whale.realized_pnl,
                unrealized_pnl=whale.unrealized_pnl,
                margin_used=whale.margin_used,
                roi=whale.roi,
            )
        )
        return whale

    def _wake(self, whale: Whale, now: datetime) -> None:
        event = WakeEvent(
            address=whale.address,
            woke_at=now,
            dormant_since=whale.dormant_since or whale.last_active,
            active_positions=whale.active_positions,
        )
        whale.dormant = False
        whale.dormant_since = None
        self._wake_events.append(event)
        logger.info("Whale %s woke up with %d open positions", whale.address, whale.active_positions)

    def _sync_from_lots(self, state: AddressState, assets: Iterable[str], now: datetime) -> None:
        """Follow cost-basis lots for assets touched by fills."""
        address = state.whale.address
        for asset in dict.fromkeys(assets):
            lot = state.accountant.lot(asset)
            existing = state.positions.get(asset)

            if lot.is_flat:
                if existing is not None:
                    self._remove_position(state, existing, now)
                continue

            if existing is None:
                position = Position(
                    address=address,
                    asset=asset,
                    size=lot.signed_size,
                    entry_price=lot.avg_entry_price,
                    tracked_since=now,
                    last_updated=now,
                )
                state.positions[asset] = position
                self._record(OPENED, position, 0.0, position.size, now)
                continue

            from_size = existing.size
            existing.size = lot.signed_size
            existing.entry_price = lot.avg_entry_price
            existing.last_updated = now
            kind = _size_change_kind(from_size, existing.size)
            if kind is not None:
                self._record(kind, existing, from_size, existing.size, now)

    def _sync_from_snapshot(self, state: AddressState, snapshot: AccountSnapshot, now: datetime) -> None:
        """Exchange snapshot is authoritative for which positions exist."""
        address = state.whale.address
        reported = {p.asset: p for p in snapshot.positions}

        for asset, existing in list(state.positions.items()):
            if asset not in reported:
                self._remove_position(state, existing, now)
        for asset in state.accountant.open_lots():
            if asset not in reported:
                state.accountant.reset_lot(asset)

        for asset, snap in reported.items():
            existing = state.positions.get(asset)
            from_size = existing.size if existing is not None else 0.0

            if existing is None:
                existing = Position(
                    address=address,
                    asset=asset,
                    size=snap.size,
                    entry_price=snap.entry_price,
                    tracked_since=now,
                )
                state.positions[asset] = existing

            existing.size = snap.size
            existing.entry_price = snap.entry_price
            existing.leverage = snap.leverage
            existing.margin_used = snap.margin_used
            existing.liquidation_price = snap.liquidation_price
            existing.unrealized_pnl = snap.unrealized_pnl
            existing.last_updated = now

            kind = _size_change_kind(from_size, existing.size)
            if kind is not None:
                self._record(kind, existing, from_size, existing.size, now)

    def _remove_position(self, state: AddressState, position: Position, now: datetime) -> None:
        kind = CLOSED
        mark = position.mark_price
        if mark:
            liq_price = self.analyzer.liquidation_price(position)
            if position.side == LONG and mark <= liq_price:
                kind = LIQUIDATED
            elif position.side != LONG and mark >= liq_price:
                kind = LIQUIDATED

        del state.positions[position.asset]
        state.accountant.reset_lot(position.asset)
        self._record(kind, position, position.size, 0.0, now)
        logger.info("Position %s %s %s", position.address, position.asset, kind.lower())

    def _record(self, kind: str, position: Position, from_size: float, to_size: float, now: datetime) -> None:
        self._position_events.append(
            PositionEvent(
                kind=kind,
                key=position.key,
                from_size=from_size,
                to_size=to_size,
                notional=position.notional,
                at=now,
                liquidation_price=self.analyzer.liquidation_price(position),
            )
        )

    def mark_prices(self, prices: Mapping[str, float]) -> None:
        """Apply current mark prices to every open position."""
        for state in self._states.values():
            for position in state.positions.values():
                price = prices.get(position.asset)
                if price and price > 0:
                    position.mark_price = price

    def cleanup_stale_positions(
        self,
        now: Optional[datetime] = None,
        max_age: timedelta = timedelta(hours=config.STALE_POSITION_HOURS),
    ) -> int:
        """Close positions that have not been refreshed within max_age."""
        now = now or datetime.now(pytz.UTC)
        removed = 0
        for state in self._states.values():
            for position in list(state.positions.values()):
                if now - position.last_updated > max_age:
                    self._remove_position(state, position, now)
                    removed += 1
            state.whale.active_positions = len(state.positions)
        if removed:
            logger.info("Removed %d stale positions", removed)
        return removed

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def just_woke_up(self, address: str) -> bool:
        return any(e.address == address for e in self._wake_events)

    def woken_whales(self) -> List[Whale]:
        seen = dict.fromkeys(e.address for e in self._wake_events)
        return [self._states[address].whale for address in seen]

    def drain_wake_events(self) -> List[WakeEvent]:
        """Return and clear all pending wake-up events."""
        events = list(self._wake_events)
        self._wake_events.clear()
        return events

    def clear_wake_up(self, address: str) -> None:
        self._wake_events = deque(e for e in self._wake_events if e.address != address)

    def drain_position_events(self) -> List[PositionEvent]:
        events = self._position_events
        self._position_events = []
        return events

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_whale(self, address: str) -> Optional[Whale]:
        state = self._states.get(address)
        return state.whale if state else None

    def whales(self) -> List[Whale]:
        return [state.whale for state in self._states.values()]

    def addresses(self) -> List[str]:
        return list(self._states.keys())

    def get_position(self, key: PositionKey) -> Optional[Position]:
        state = self._states.get(key.address)
        if state is None:
            return None
        return state.positions.get(key.asset)

    def open_positions(self) -> List[Position]:
        """Copies of all open positions, safe to hand to pure analytics."""
        return [
            copy.copy(position)
            for state in self._states.values()
            for position in state.positions.values()
        ]

    def positions_by_side(self, side: str) -> List[Position]:
        return [p for p in self.open_positions() if p.side == side]

    def dormant_whales(self, now: Optional[datetime] = None) -> List[Whale]:
        now = now or datetime.now(pytz.UTC)
        dormant = [w for w in self.whales() if w.dormant or is_dormant(w, now, self.dormant_after)]
        return sorted(dormant, key=lambda w: w.last_active or now)

    def profit_history(self, address: str) -> List[ProfitPoint]:
        state = self._states.get(address)
        return list(state.profit_history) if state else []
