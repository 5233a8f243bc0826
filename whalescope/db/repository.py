# whalescope/db/repository.py
"""Idempotent persistence of whales, positions, position events and copy-trading pairs."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import pytz
from sqlmodel import Session, select

from whalescope.db.models import (
    CopyTradingPairRecord,
    PositionEventRecord,
    PositionRecord,
    PositionSnapshotRecord,
    WhaleRecord,
)
from whalescope.domain.copy_trading import CopyTradingPair
from whalescope.domain.models import Position, PositionEvent, Whale

logger = logging.getLogger(__name__)

_WHALE_FIELDS = [
    "first_seen", "last_updated", "last_active", "total_trades", "realized_pnl",
    "unrealized_pnl", "total_pnl", "margin_used", "roi", "win_rate",
    "winning_closes", "closing_events", "active_positions", "largest_position",
    "risk_score", "dormant", "dormant_since",
]

_PAIR_FIELDS = [
    "asset", "side", "first_detected", "last_seen", "occurrences",
    "liquidation_price", "notional",
]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


class WhaleRepository:
    """Reads and writes tracker state."""

    @staticmethod
    def save_whale(session: Session, whale: Whale) -> None:
        """Insert or update one whale row."""
        record = session.get(WhaleRecord, whale.address)
        if record is None:
            record = WhaleRecord(address=whale.address, first_seen=whale.first_seen)
        for name in _WHALE_FIELDS:
            setattr(record, name, getattr(whale, name))
        session.add(record)
        session.commit()
        logger.debug("Saved whale %s", whale.address)

    @staticmethod
    def get_whale(session: Session, address: str) -> Optional[Whale]:
        record = session.get(WhaleRecord, address)
        if record is None:
            return None
        whale = Whale(address=record.address, first_seen=_as_utc(record.first_seen))
        for name in _WHALE_FIELDS:
            value = getattr(record, name)
            if isinstance(value, datetime):
                value = _as_utc(value)
            setattr(whale, name, value)
        return whale

    @staticmethod
    def save_positions(
        session: Session,
        address: str,
        positions: Iterable[Position],
        now: Optional[datetime] = None,
    ) -> Tuple[int, int]:
        """
        Replace the current positions of an address.

        Upserts every open position, appends a history snapshot for each,
        and deletes rows the address no longer holds.

        Returns:
            (positions_saved, positions_deleted)
        """
        now = now or datetime.now(pytz.UTC)
        stmt = select(PositionRecord).where(PositionRecord.address == address)
        existing = {row.asset: row for row in session.exec(stmt).all()}

        saved = 0
        seen = set()
        for position in positions:
            if position.address != address:
                continue
            seen.add(position.asset)

            record = existing.get(position.asset)
            if record is None:
                record = PositionRecord(
                    address=address,
                    asset=position.asset,
                    side=position.side,
                    size=position.size,
                    entry_price=position.entry_price,
                    tracked_since=position.tracked_since,
                    updated_at=now,
                )
            record.side = position.side
            record.size = position.size
            record.entry_price = position.entry_price
            record.leverage = position.leverage
            record.margin_used = position.margin_used
            record.liquidation_price = position.liquidation_price
            record.unrealized_pnl = position.unrealized_pnl
            record.notional = position.notional
            record.updated_at = now
            session.add(record)

            session.add(
                PositionSnapshotRecord(
                    address=address,
                    asset=position.asset,
                    side=position.side,
                    size=position.size,
                    entry_price=position.entry_price,
                    leverage=position.leverage,
                    notional=position.notional,
                    liquidation_price=position.liquidation_price,
                    created_at=now,
                )
            )
            saved += 1

        deleted = 0
        for asset, record in existing.items():
            if asset not in seen:
                session.delete(record)
                deleted += 1

        session.commit()
        logger.debug("Saved %d positions for %s, deleted %d", saved, address, deleted)
        return saved, deleted

    @staticmethod
    def load_positions(session: Session, address: Optional[str] = None) -> List[Position]:
        """Current positions, optionally for a single address."""
        stmt = select(PositionRecord)
        if address is not None:
            stmt = stmt.where(PositionRecord.address == address)
        stmt = stmt.order_by(PositionRecord.address, PositionRecord.asset)

        return [
            Position(
                address=row.address,
                asset=row.asset,
                size=row.size,
                entry_price=row.entry_price,
                leverage=row.leverage,
                margin_used=row.margin_used,
                liquidation_price=row.liquidation_price,
                unrealized_pnl=row.unrealized_pnl,
                tracked_since=_as_utc(row.tracked_since),
                last_updated=_as_utc(row.updated_at),
            )
            for row in session.exec(stmt).all()
        ]

    @staticmethod
    def record_events(session: Session, events: Iterable[PositionEvent]) -> int:
        """Append position events. Returns the number written."""
        written = 0
        for event in events:
            session.add(
                PositionEventRecord(
                    event_type=event.kind,
                    address=event.key.address,
                    asset=event.key.asset,
                    from_size=event.from_size,
                    to_size=event.to_size,
                    notional=event.notional,
                    liquidation_price=event.liquidation_price,
                    created_at=event.at,
                )
            )
            written += 1
        if written:
            session.commit()
        return written

    @staticmethod
    def save_copy_trading_pairs(session: Session, pairs: Iterable[CopyTradingPair]) -> int:
        """Upsert detected copy-trading pairs. Returns the number saved."""
        saved = 0
        for pair in pairs:
            record = session.get(CopyTradingPairRecord, (pair.copy_trader, pair.original_trader))
            if record is None:
                record = CopyTradingPairRecord(
                    copy_trader=pair.copy_trader,
                    original_trader=pair.original_trader,
                    asset=pair.asset,
                    side=pair.side,
                    first_detected=pair.first_detected,
                    last_seen=pair.last_seen,
                )
            for name in _PAIR_FIELDS:
                setattr(record, name, getattr(pair, name))
            session.add(record)
            saved += 1
        if saved:
            session.commit()
        return saved

    @staticmethod
    def load_copy_trading_pairs(session: Session) -> List[CopyTradingPair]:
        rows = session.exec(select(CopyTradingPairRecord)).all()
        return [
            CopyTradingPair(
                copy_trader=row.copy_trader,
                original_trader=row.original_trader,
                asset=row.asset,
                side=row.side,
                first_detected=_as_utc(row.first_detected),
                last_seen=_as_utc(row.last_seen),
                occurrences=row.occurrences,
                liquidation_price=row.liquidation_price,
                notional=row.notional,
            )
            for row in rows
        ]
