# whalescope/domain/metrics.py
"""Metrics and reporting calculations."""

from datetime import datetime
from typing import Dict, Optional, Sequence

import pandas as pd
import pytz

from whalescope.domain.liquidation import PositionRisk
from whalescope.domain.models import ProfitPoint, Whale, LONG
from whalescope.domain.tracker import is_dormant

LEADERBOARD_COLUMNS = [
    "address", "total_pnl", "roi", "margin_used", "active_positions",
    "total_trades", "win_rate", "risk_score", "performance_rank",
    "last_active", "dormant",
]

SORT_KEYS = ("total_pnl", "roi", "risk_score", "margin_used", "win_rate")


class MetricsCalculator:
    """Calculate whale rankings, overview stats and P&L curves."""

    @staticmethod
    def get_leaderboard(
        whales: Sequence[Whale],
        count: int = 20,
        sort_by: str = "total_pnl",
    ) -> pd.DataFrame:
        """
        Top whales sorted descending by sort_by.

        performance_rank is always the rank by total P&L.
        """
        if sort_by not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {sort_by}")

        if not whales:
            return pd.DataFrame(columns=LEADERBOARD_COLUMNS)

        df = pd.DataFrame(
            [
                {
                    "address": w.address,
                    "total_pnl": w.total_pnl,
                    "roi": w.roi,
                    "margin_used": w.margin_used,
                    "active_positions": w.active_positions,
                    "total_trades": w.total_trades,
                    "win_rate": w.win_rate,
                    "risk_score": w.risk_score,
                    "last_active": w.last_active,
                    "dormant": w.dormant,
                }
                for w in whales
            ]
        )
        df["performance_rank"] = (
            df["total_pnl"].rank(ascending=False, method="first").astype(int)
        )

        out = df.sort_values(sort_by, ascending=False, kind="stable").head(count)
        return out[LEADERBOARD_COLUMNS].reset_index(drop=True)

    @staticmethod
    def get_overview_stats(
        whales: Sequence[Whale],
        now: Optional[datetime] = None,
    ) -> Dict:
        """Get overall tracking statistics."""
        now = now or datetime.now(pytz.UTC)

        if not whales:
            return {
                "total_whales": 0,
                "active_whales": 0,
                "dormant_whales": 0,
                "profitable_whales": 0,
                "total_margin_used": 0.0,
                "average_roi": 0.0,
                "average_risk_score": 0.0,
            }

        return {
            "total_whales": len(whales),
            "active_whales": len([w for w in whales if w.active_positions > 0]),
            "dormant_whales": len([w for w in whales if w.dormant or is_dormant(w, now)]),
            "profitable_whales": len([w for w in whales if w.total_pnl > 0]),
            "total_margin_used": sum(w.margin_used for w in whales),
            "average_roi": sum(w.roi for w in whales) / len(whales),
            "average_risk_score": sum(w.risk_score for w in whales) / len(whales),
        }

    @staticmethod
    def get_pnl_curve(history: Sequence[ProfitPoint]) -> pd.DataFrame:
        """
        P&L curve from a whale's profit history.

        Returns DataFrame with columns: timestamp, total_pnl, realized_pnl,
        unrealized_pnl, roi, peak, drawdown
        """
        columns = ["timestamp", "total_pnl", "realized_pnl", "unrealized_pnl", "roi", "peak", "drawdown"]
        if not history:
            return pd.DataFrame(columns=columns)

        rows = []
        peak = None
        for point in sorted(history, key=lambda p: p.timestamp):
            peak = point.total_pnl if peak is None else max(peak, point.total_pnl)
            rows.append(
                {
                    "timestamp": point.timestamp,
                    "total_pnl": point.total_pnl,
                    "realized_pnl": point.realized_pnl,
                    "unrealized_pnl": point.unrealized_pnl,
                    "roi": point.roi,
                    "peak": peak,
                    "drawdown": point.total_pnl - peak,
                }
            )

        return pd.DataFrame(rows, columns=columns)

    @staticmethod
    def get_asset_exposure(risks: Sequence[PositionRisk]) -> pd.DataFrame:
        """Notional and at-risk notional per asset from analyzed positions."""
        columns = [
            "asset", "positions", "long_notional", "short_notional",
            "at_risk_notional", "at_risk_count", "min_distance_percent",
        ]
        if not risks:
            return pd.DataFrame(columns=columns)

        df = pd.DataFrame(
            [
                {
                    "asset": r.asset,
                    "long_notional": r.notional if r.side == LONG else 0.0,
                    "short_notional": r.notional if r.side != LONG else 0.0,
                    "at_risk_notional": r.notional if r.is_at_risk else 0.0,
                    "at_risk": 1 if r.is_at_risk else 0,
                    "distance_percent": r.distance_percent,
                }
                for r in risks
            ]
        )
        out = (
            df.groupby("asset", as_index=False)
            .agg(
                positions=("distance_percent", "size"),
                long_notional=("long_notional", "sum"),
                short_notional=("short_notional", "sum"),
                at_risk_notional=("at_risk_notional", "sum"),
                at_risk_count=("at_risk", "sum"),
                min_distance_percent=("distance_percent", "min"),
            )
            .sort_values("at_risk_notional", ascending=False, kind="stable")
            .reset_index(drop=True)
        )
        return out[columns]
