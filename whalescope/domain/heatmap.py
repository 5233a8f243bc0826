# whalescope/domain/heatmap.py
"""
Liquidation heatmap aggregation.
Buckets liquidation points by percentage distance from the mark price and
finds contiguous clusters of significant levels.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
import pytz

from whalescope import config
from whalescope.domain.liquidation import LiquidationAnalyzer
from whalescope.domain.models import Position, LONG


@dataclass
class LevelPosition:
    address: str
    size: float
    side: str
    notional: float


@dataclass
class HeatmapLevel:
    level_key: int
    price_level: float
    percent_from_current: float
    total_notional: float = 0.0
    long_notional: float = 0.0
    short_notional: float = 0.0
    position_count: int = 0
    positions: List[LevelPosition] = field(default_factory=list)


@dataclass
class AssetBreakdown:
    asset: str
    notional: float = 0.0
    long_notional: float = 0.0
    short_notional: float = 0.0


@dataclass
class GlobalHeatmapLevel:
    level_key: int
    percent_from_current: float
    total_notional: float = 0.0
    long_notional: float = 0.0
    short_notional: float = 0.0
    position_count: int = 0
    assets: List[AssetBreakdown] = field(default_factory=list)


@dataclass
class Cluster:
    start_price: float
    end_price: float
    start_percent: float
    end_percent: float
    total_notional: float = 0.0
    long_notional: float = 0.0
    short_notional: float = 0.0
    position_count: int = 0
    levels: List[HeatmapLevel] = field(default_factory=list)


@dataclass
class HeatmapSummary:
    total_long_notional: float
    total_short_notional: float
    total_positions: int
    price_range: Tuple[float, float]


@dataclass
class AssetHeatmap:
    asset: str
    current_price: float
    levels: List[HeatmapLevel]
    clusters: List[Cluster]
    summary: HeatmapSummary


@dataclass
class Heatmap:
    timestamp: datetime
    assets: List[AssetHeatmap] = field(default_factory=list)
    global_levels: List[GlobalHeatmapLevel] = field(default_factory=list)

    def asset(self, name: str) -> Optional[AssetHeatmap]:
        for asset_heatmap in self.assets:
            if asset_heatmap.asset == name:
                return asset_heatmap
        return None


@dataclass
class SimplifiedLevel:
    asset: str
    price_level: float
    percent_from_current: float
    long_notional: float
    short_notional: float

    @property
    def total_notional(self) -> float:
        return self.long_notional + self.short_notional


def identify_clusters(
    levels: Sequence[HeatmapLevel],
    threshold: float = config.CLUSTER_THRESHOLD,
    peak_notional: Optional[float] = None,
) -> List[Cluster]:
    """
    Contiguous runs of levels whose significance meets the threshold.

    Levels must be in ascending price order. Significance is a level's total
    notional relative to peak_notional, which defaults to the largest level.
    Clusters are returned largest first.
    """
    if not levels:
        return []

    max_notional = peak_notional or max(level.total_notional for level in levels)
    if max_notional <= 0:
        return []

    clusters = []
    current: Optional[Cluster] = None

    for level in levels:
        significance = level.total_notional / max_notional

        if significance >= threshold:
            if current is None:
                current = Cluster(
                    start_price=level.price_level,
                    end_price=level.price_level,
                    start_percent=level.percent_from_current,
                    end_percent=level.percent_from_current,
                )
            current.end_price = level.price_level
            current.end_percent = level.percent_from_current
            current.total_notional += level.total_notional
            current.long_notional += level.long_notional
            current.short_notional += level.short_notional
            current.position_count += level.position_count
            current.levels.append(level)
        elif current is not None:
            clusters.append(current)
            current = None

    if current is not None:
        clusters.append(current)

    clusters.sort(key=lambda c: c.total_notional, reverse=True)
    return clusters


class HeatmapGenerator:
    """Aggregate open liquidation exposure into price levels."""

    def __init__(
        self,
        step_percent: float = config.HEATMAP_STEP_PERCENT,
        window: float = config.HEATMAP_WINDOW,
        cluster_threshold: float = config.CLUSTER_THRESHOLD,
        analyzer: Optional[LiquidationAnalyzer] = None,
    ):
        if step_percent <= 0:
            raise ValueError(f"step_percent must be positive, got {step_percent}")
        self.step_percent = step_percent
        self.window = window
        self.cluster_threshold = cluster_threshold
        self.analyzer = analyzer or LiquidationAnalyzer()

    def level_key(self, liq_price: float, current_price: float) -> int:
        percent_from_current = (liq_price - current_price) / current_price * 100
        return int(round(percent_from_current / self.step_percent))

    def level_price(self, current_price: float, key: int) -> float:
        """Price of a bucket; depends only on (current_price, step, key)."""
        return current_price * (1 + key * self.step_percent / 100)

    def generate(
        self,
        positions: Sequence[Position],
        prices: Mapping[str, float],
        now: Optional[datetime] = None,
    ) -> Heatmap:
        """
        Build per-asset and global heatmaps.

        Notional is valued at the current mark. Assets without a mark price,
        or without any liquidation point inside the display window, are left out.
        """
        heatmap = Heatmap(timestamp=now or datetime.now(pytz.UTC))

        by_asset: Dict[str, List[Position]] = {}
        for position in positions:
            by_asset.setdefault(position.asset, []).append(position)

        global_levels: Dict[int, GlobalHeatmapLevel] = {}
        global_assets: Dict[int, Dict[str, AssetBreakdown]] = {}

        for asset, asset_positions in by_asset.items():
            current_price = prices.get(asset)
            if not current_price or current_price <= 0:
                continue

            asset_heatmap = self.generate_asset_heatmap(asset, asset_positions, current_price)
            if asset_heatmap is None:
                continue
            heatmap.assets.append(asset_heatmap)

            for level in asset_heatmap.levels:
                key = level.level_key
                if key not in global_levels:
                    global_levels[key] = GlobalHeatmapLevel(
                        level_key=key,
                        percent_from_current=key * self.step_percent,
                    )
                    global_assets[key] = {}

                global_level = global_levels[key]
                global_level.total_notional += level.total_notional
                global_level.long_notional += level.long_notional
                global_level.short_notional += level.short_notional
                global_level.position_count += level.position_count

                breakdown = global_assets[key].setdefault(asset, AssetBreakdown(asset=asset))
                breakdown.notional += level.total_notional
                breakdown.long_notional += level.long_notional
                breakdown.short_notional += level.short_notional

        for key in sorted(global_levels):
            global_level = global_levels[key]
            global_level.assets = list(global_assets[key].values())
            heatmap.global_levels.append(global_level)

        return heatmap

    def generate_asset_heatmap(
        self,
        asset: str,
        positions: Sequence[Position],
        current_price: float,
    ) -> Optional[AssetHeatmap]:
        """Heatmap for one asset, or None when nothing falls in its window."""
        price_min = current_price * (1 - self.window)
        price_max = current_price * (1 + self.window)
        levels: Dict[int, HeatmapLevel] = {}
        in_window = 0

        for position in positions:
            liq_price = self.analyzer.liquidation_price(position)
            if liq_price < price_min or liq_price > price_max:
                continue
            in_window += 1

            key = self.level_key(liq_price, current_price)
            if key not in levels:
                levels[key] = HeatmapLevel(
                    level_key=key,
                    price_level=self.level_price(current_price, key),
                    percent_from_current=key * self.step_percent,
                )

            level = levels[key]
            notional = position.notional_at(current_price)
            level.total_notional += notional
            if position.side == LONG:
                level.long_notional += notional
            else:
                level.short_notional += notional
            level.position_count += 1
            level.positions.append(
                LevelPosition(
                    address=position.address,
                    size=position.size,
                    side=position.side,
                    notional=notional,
                )
            )

        if not levels:
            return None

        sorted_levels = [levels[key] for key in sorted(levels)]

        return AssetHeatmap(
            asset=asset,
            current_price=current_price,
            levels=sorted_levels,
            clusters=identify_clusters(sorted_levels, self.cluster_threshold),
            summary=HeatmapSummary(
                total_long_notional=sum(l.long_notional for l in sorted_levels),
                total_short_notional=sum(l.short_notional for l in sorted_levels),
                total_positions=in_window,
                price_range=(price_min, price_max),
            ),
        )

    def simplified_heatmap(
        self,
        positions: Sequence[Position],
        prices: Mapping[str, float],
        steps: int = 20,
        span: float = 0.3,
    ) -> List[SimplifiedLevel]:
        """
        Fixed grid of price levels across +/- span around each mark.

        A position counts at a level when its liquidation price lies within
        one step of it and the level is on the liquidating side.
        """
        out = []
        for asset, current_price in prices.items():
            asset_positions = [p for p in positions if p.asset == asset]
            if not asset_positions or current_price <= 0:
                continue

            price_range = current_price * span
            step_size = (price_range * 2) / steps

            for i in range(steps):
                price_level = current_price - price_range + step_size * i
                long_notional = 0.0
                short_notional = 0.0

                for position in asset_positions:
                    liq_price = self.analyzer.liquidation_price(position)
                    if position.side == LONG:
                        would_liquidate = price_level <= liq_price
                    else:
                        would_liquidate = price_level >= liq_price

                    if would_liquidate and abs(liq_price - price_level) < step_size:
                        if position.side == LONG:
                            long_notional += position.notional_at(current_price)
                        else:
                            short_notional += position.notional_at(current_price)

                if long_notional > 0 or short_notional > 0:
                    out.append(
                        SimplifiedLevel(
                            asset=asset,
                            price_level=price_level,
                            percent_from_current=(price_level - current_price) / current_price * 100,
                            long_notional=long_notional,
                            short_notional=short_notional,
                        )
                    )

        out.sort(key=lambda l: l.total_notional, reverse=True)
        return out

    @staticmethod
    def levels_frame(heatmap: Heatmap) -> pd.DataFrame:
        """Per-asset levels as a flat table."""
        rows = []
        for asset_heatmap in heatmap.assets:
            for level in asset_heatmap.levels:
                rows.append(
                    {
                        "asset": asset_heatmap.asset,
                        "price_level": level.price_level,
                        "percent_from_current": level.percent_from_current,
                        "total_notional": level.total_notional,
                        "long_notional": level.long_notional,
                        "short_notional": level.short_notional,
                        "position_count": level.position_count,
                    }
                )

        if not rows:
            return pd.DataFrame(
                columns=[
                    "asset", "price_level", "percent_from_current", "total_notional",
                    "long_notional", "short_notional", "position_count",
                ]
            )
        return pd.DataFrame(rows)

    @staticmethod
    def global_levels_frame(heatmap: Heatmap) -> pd.DataFrame:
        """Cross-asset levels with one notional column per asset."""
        if not heatmap.global_levels:
            return pd.DataFrame(
                columns=["percent_from_current", "total_notional", "long_notional", "short_notional", "position_count"]
            )

        rows = []
        for level in heatmap.global_levels:
            row = {
                "percent_from_current": level.percent_from_current,
                "total_notional": level.total_notional,
                "long_notional": level.long_notional,
                "short_notional": level.short_notional,
                "position_count": level.position_count,
            }
            for breakdown in level.assets:
                row[breakdown.asset] = breakdown.notional
            rows.append(row)

        return pd.DataFrame(rows).fillna(0.0)
