# whalescope/domain/liquidation.py
"""Liquidation price estimation, distance-to-liquidation and cascade simulation."""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence

from whalescope import config
from whalescope.domain.models import Position, LONG

CRITICAL = "CRITICAL"
HIGH = "HIGH"
MEDIUM = "MEDIUM"
LOW = "LOW"


@dataclass
class LiquidationDistance:
    liquidation_price: float
    distance_percent: float
    is_at_risk: bool
    price_move: float  # signed % move from current price to liquidation
    risk_level: str


@dataclass
class PositionRisk:
    """A position annotated with its liquidation risk at the current price."""
    position: Position
    current_price: float
    liquidation_price: float
    distance_percent: float
    is_at_risk: bool
    price_move: float
    risk_level: str
    notional: float
    unrealized_pnl_percent: float

    @property
    def address(self) -> str:
        return self.position.address

    @property
    def asset(self) -> str:
        return self.position.asset

    @property
    def side(self) -> str:
        return self.position.side


@dataclass
class AssetRisk:
    asset: str
    current_price: float
    total_long_notional: float = 0.0
    total_short_notional: float = 0.0
    at_risk_long_notional: float = 0.0
    at_risk_short_notional: float = 0.0
    positions_count: int = 0
    at_risk_count: int = 0


@dataclass
class AssetCascade:
    asset: str
    liquidated_notional: float = 0.0
    liquidated_count: int = 0


@dataclass
class CascadeResult:
    """Outcome of a hypothetical uniform price move."""
    price_change: float
    total_liquidated_notional: float = 0.0
    liquidated_positions: List[Position] = field(default_factory=list)
    affected_assets: List[AssetCascade] = field(default_factory=list)

    @property
    def liquidated_count(self) -> int:
        return len(self.liquidated_positions)


class LiquidationAnalyzer:
    """Liquidation risk for open positions."""

    def __init__(
        self,
        maintenance_margin_ratio: float = config.MAINTENANCE_MARGIN_RATIO,
        at_risk_percent: float = config.AT_RISK_PERCENT,
    ):
        self.maintenance_margin_ratio = maintenance_margin_ratio
        self.at_risk_percent = at_risk_percent

    def liquidation_price(self, position: Position) -> float:
        """
        Liquidation price of a position.

        An exchange-reported price is authoritative. Otherwise:
            LONG:  entry * (1 - (1/leverage - mmr))
            SHORT: entry * (1 + (1/leverage - mmr))
        clamped at zero.
        """
        if position.liquidation_price and position.liquidation_price > 0:
            return position.liquidation_price

        leverage = position.leverage if position.leverage and position.leverage > 0 else 1.0
        multiplier = (1 / leverage) - self.maintenance_margin_ratio

        if position.side == LONG:
            price = position.entry_price * (1 - multiplier)
        else:
            price = position.entry_price * (1 + multiplier)

        return max(price, 0.0)

    def classify(self, distance_percent: float) -> str:
        if distance_percent < 2:
            return CRITICAL
        if distance_percent < 5:
            return HIGH
        if distance_percent < self.at_risk_percent:
            return MEDIUM
        return LOW

    def distance(self, position: Position, current_price: float) -> LiquidationDistance:
        """Distance from the current price to liquidation, in percent."""
        liq_price = self.liquidation_price(position)

        if current_price <= 0:
            return LiquidationDistance(
                liquidation_price=liq_price,
                distance_percent=float("inf"),
                is_at_risk=False,
                price_move=0.0,
                risk_level=LOW,
            )

        distance_percent = abs(current_price - liq_price) / current_price * 100
        if position.side == LONG:
            price_move = (liq_price - current_price) / current_price * 100
        else:
            price_move = (current_price - liq_price) / current_price * 100

        return LiquidationDistance(
            liquidation_price=liq_price,
            distance_percent=distance_percent,
            is_at_risk=distance_percent < self.at_risk_percent,
            price_move=price_move,
            risk_level=self.classify(distance_percent),
        )

    @staticmethod
    def current_price_for(position: Position, prices: Mapping[str, float]) -> float:
        price = prices.get(position.asset)
        if price and price > 0:
            return price
        return position.entry_price

    def analyze_positions(
        self,
        positions: Sequence[Position],
        prices: Mapping[str, float],
    ) -> List[PositionRisk]:
        """
        Annotate positions with liquidation distance.

        Returned list is sorted ascending by distance_percent (closest to
        liquidation first); alerting consumers rely on this order.
        """
        analysis = []
        for position in positions:
            current_price = self.current_price_for(position, prices)
            dist = self.distance(position, current_price)

            if position.entry_price > 0:
                pnl_percent = (current_price - position.entry_price) / position.entry_price * 100
                if position.side != LONG:
                    pnl_percent = -pnl_percent
            else:
                pnl_percent = 0.0

            analysis.append(
                PositionRisk(
                    position=position,
                    current_price=current_price,
                    liquidation_price=dist.liquidation_price,
                    distance_percent=dist.distance_percent,
                    is_at_risk=dist.is_at_risk,
                    price_move=dist.price_move,
                    risk_level=dist.risk_level,
                    notional=position.notional_at(current_price),
                    unrealized_pnl_percent=pnl_percent,
                )
            )

        analysis.sort(key=lambda r: r.distance_percent)
        return analysis

    def risk_by_asset(
        self,
        positions: Sequence[Position],
        prices: Mapping[str, float],
    ) -> List[AssetRisk]:
        """Long/short and at-risk notional per asset."""
        by_asset: Dict[str, AssetRisk] = {}

        for position in positions:
            current_price = self.current_price_for(position, prices)
            dist = self.distance(position, current_price)

            if position.asset not in by_asset:
                by_asset[position.asset] = AssetRisk(
                    asset=position.asset, current_price=current_price
                )
            risk = by_asset[position.asset]
            notional = position.notional_at(current_price)

            risk.positions_count += 1
            if position.side == LONG:
                risk.total_long_notional += notional
                if dist.is_at_risk:
                    risk.at_risk_long_notional += notional
            else:
                risk.total_short_notional += notional
                if dist.is_at_risk:
                    risk.at_risk_short_notional += notional
            if dist.is_at_risk:
                risk.at_risk_count += 1

        return list(by_asset.values())

    def predict_cascade(
        self,
        positions: Sequence[Position],
        prices: Mapping[str, float],
        percent_move: float,
    ) -> CascadeResult:
        """
        Which positions would be liquidated if every asset moved by percent_move.

        Pure: inputs are not modified.
        """
        result = CascadeResult(price_change=percent_move)
        by_asset: Dict[str, AssetCascade] = {}

        for position in positions:
            current_price = self.current_price_for(position, prices)
            new_price = current_price * (1 + percent_move / 100)
            liq_price = self.liquidation_price(position)

            if position.side == LONG:
                would_liquidate = new_price <= liq_price
            else:
                would_liquidate = new_price >= liq_price

            if not would_liquidate:
                continue

            notional = position.notional_at(current_price)
            result.liquidated_positions.append(position)
            result.total_liquidated_notional += notional

            if position.asset not in by_asset:
                by_asset[position.asset] = AssetCascade(asset=position.asset)
            by_asset[position.asset].liquidated_notional += notional
            by_asset[position.asset].liquidated_count += 1

        result.affected_assets = list(by_asset.values())
        return result

    def risk_score(self, positions: Sequence[Position]) -> float:
        """
        Average 0-100 risk over positions.

        Each position blends leverage risk, entry-to-liquidation distance risk
        and margin size risk.
        """
        if not positions:
            return 0.0

        total = 0.0
        for position in positions:
            leverage_risk = min(position.leverage * 10, 100)

            liquidation_risk = 50.0
            if position.liquidation_price > 0 and position.entry_price > 0:
                gap = abs(position.entry_price - position.liquidation_price) / position.entry_price * 100
                liquidation_risk = max(100 - gap * 2, 0)

            size_risk = min(position.margin_used / 10000 * 50, 50)
            total += (leverage_risk + liquidation_risk + size_risk) / 3

        return total / len(positions)


def largest_position(positions: Sequence[Position]) -> float:
    """Largest entry-valued position, 0 when flat."""
    return max((p.position_value for p in positions), default=0.0)
