from typing import Any, Callable, Dict, Iterable, List, Optional
from datetime import datetime

import pandas as pd

from vendops.config.logging import get_logger, log_performance
from vendops.config.thresholds import AnalyticsThresholds, DEFAULT_THRESHOLDS
from vendops.models.records import SaleRecord
from vendops.utils.aggregation import Count, LastSeen, Max, Sum, group_and_aggregate, safe_ratio
from vendops.utils.date_utils import DateUtils

logger = get_logger(__name__)

INFINITE_PCT = "∞%"
ZERO_PCT = "0%"

# Named grouping keys for mover analysis
KEY_FUNCTIONS: Dict[str, Callable[[SaleRecord], str]] = {
    "machine": lambda sale: sale.machine_name,
    "product": lambda sale: sale.product_name,
    "location": lambda sale: sale.location_name,
    "category": lambda sale: sale.category,
    "machine_product": lambda sale: sale.pair_key,
}


def pct_label(curr: float, prev: float) -> str:
    """Percent change label; ``∞%`` when growing from nothing"""
    if prev == 0:
        return INFINITE_PCT if curr > 0 else ZERO_PCT
    return f"{(curr - prev) / prev * 100:.1f}%"


def delta_pct(curr: float, prev: float) -> str:
    """Signed variant of ``pct_label`` used on summary cards"""
    if not prev:
        return INFINITE_PCT if curr else ZERO_PCT
    change = (curr - prev) / prev * 100
    sign = "+" if change > 0 else ""
    return f"{sign}{change:.1f}%"


class SalesService:
    def __init__(self, thresholds: Optional[AnalyticsThresholds] = None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    def _revenue_by(self, sales: Iterable[SaleRecord], key_fn: Callable[[SaleRecord], str]) -> Dict[str, Dict[str, Any]]:
        return group_and_aggregate(
            sales,
            key_fn=key_fn,
            aggregators={"revenue": Sum("revenue"), "tx": Count()},
        )

    @log_performance("vendops.services.sales")
    def get_movers(
        self,
        current_sales: Iterable[SaleRecord],
        previous_sales: Iterable[SaleRecord],
        key_fn: Callable[[SaleRecord], str],
        limit: int = 5,
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Top gainers and decliners by revenue delta between two windows"""
        current = self._revenue_by(current_sales, key_fn)
        previous = self._revenue_by(previous_sales, key_fn)
        zero = {"revenue": 0, "tx": 0}

        entries = []
        for key in set(current) | set(previous):
            curr = current.get(key, zero)
            prev = previous.get(key, zero)
            entries.append({
                "key": key,
                "curr": round(curr["revenue"], 2),
                "prev": round(prev["revenue"], 2),
                "delta": round(curr["revenue"] - prev["revenue"], 2),
                "pct_label": pct_label(curr["revenue"], prev["revenue"]),
                "tx_curr": curr["tx"],
                "tx_prev": prev["tx"],
            })

        gainers = sorted((e for e in entries if e["delta"] > 0), key=lambda e: (-e["delta"], e["key"]))
        decliners = sorted((e for e in entries if e["delta"] < 0), key=lambda e: (e["delta"], e["key"]))
        logger.debug(f"Mover analysis over {len(entries)} keys: {len(gainers)} up, {len(decliners)} down")
        return {"gainers": gainers[:limit], "decliners": decliners[:limit]}

    @log_performance("vendops.services.sales")
    def summarize_machines(
        self,
        current_sales: Iterable[SaleRecord],
        previous_sales: Iterable[SaleRecord],
        now: datetime,
    ) -> List[Dict[str, Any]]:
        """Per-machine revenue vs. previous window, with online/idle/offline status"""
        today = DateUtils.to_utc(now).date()
        current = group_and_aggregate(
            current_sales,
            key_fn=lambda sale: sale.machine_name,
            aggregators={
                "tx": Count(),
                "revenue": Sum("revenue"),
                "location": LastSeen("location_name", by="occurred_at"),
                "last_sale": Max("day"),
            },
        )
        previous = self._revenue_by(previous_sales, lambda sale: sale.machine_name)

        summary = []
        for machine in set(current) | set(previous):
            curr = current.get(machine, {"tx": 0, "revenue": 0, "location": None, "last_sale": None})
            prev_revenue = previous.get(machine, {}).get("revenue", 0)
            last_sale = curr["last_sale"]
            summary.append({
                "machine": machine,
                "location": curr["location"] or "unknown",
                "tx": curr["tx"],
                "revenue": round(curr["revenue"], 2),
                "prev_revenue": round(prev_revenue, 2),
                "delta": round(curr["revenue"] - prev_revenue, 2),
                "pct_label": pct_label(curr["revenue"], prev_revenue),
                "last_sale": last_sale.isoformat() if last_sale else None,
                "status": self._machine_status(last_sale, today),
            })

        summary.sort(key=lambda row: (-row["revenue"], row["machine"]))
        return summary

    def _machine_status(self, last_sale, today) -> str:
        if last_sale is None:
            return "offline"
        idle_days = (today - last_sale).days
        if idle_days <= self.thresholds.machine_online_days:
            return "online"
        if idle_days <= self.thresholds.machine_idle_days:
            return "idle"
        return "offline"

    def get_daily_trend(self, sales: Iterable[SaleRecord]) -> List[Dict[str, Any]]:
        """Revenue, transactions and units per UTC day"""
        df = pd.DataFrame([
            {"date": sale.day, "revenue": sale.revenue, "units": sale.quantity}
            for sale in sales
            if sale.day is not None
        ])
        if df.empty:
            return []

        daily = df.groupby("date").agg(
            revenue=("revenue", "sum"),
            tx=("revenue", "size"),
            units=("units", "sum"),
        ).reset_index().sort_values("date")

        return [
            {
                "date": row.date.isoformat(),
                "revenue": round(float(row.revenue), 2),
                "tx": int(row.tx),
                "units": int(row.units),
            }
            for row in daily.itertuples(index=False)
        ]

    def check_pricing(self, unit_price: float, unit_cost: float = 0.0) -> Dict[str, Any]:
        """Margin check for a unit price/cost pair, amounts in currency units"""
        margin = max(0.0, unit_price - unit_cost)
        margin_pct = safe_ratio(margin, unit_price)
        below_cost = unit_cost > 0 and unit_price < unit_cost
        low_margin = unit_cost > 0 and margin_pct < self.thresholds.min_profit_margin

        if unit_price < self.thresholds.min_price:
            severity = "error"
        elif below_cost:
            severity = "error"
        elif low_margin:
            severity = "warning"
        else:
            severity = "info"

        return {
            "unit_price": unit_price,
            "unit_cost": unit_cost,
            "margin": round(margin, 2),
            "margin_pct": round(margin_pct * 100, 1),
            "below_cost": below_cost,
            "low_margin": low_margin,
            "below_min_price": unit_price < self.thresholds.min_price,
            "is_valid": severity != "error",
            "severity": severity,
        }
