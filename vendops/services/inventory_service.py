# Inventory health service
# Risk scoring, stock-health buckets, restock urgency and days-to-stockout predictions


import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from vendops.config.logging import get_logger, log_performance
from vendops.config.thresholds import AnalyticsThresholds, DEFAULT_THRESHOLDS
from vendops.models.records import InventorySnapshot, SaleRecord, StockHealth, Urgency
from vendops.utils.aggregation import Count, Max, Sum, group_and_aggregate, safe_ratio
from vendops.utils.date_utils import DateUtils

logger = get_logger(__name__)


class InventoryService:
    """Per-item risk scoring and inventory rollups over normalized snapshots"""

    def __init__(self, thresholds: Optional[AnalyticsThresholds] = None):
        self.thresholds = thresholds or DEFAULT_THRESHOLDS

    # ------------------------------------------------------------------
    # Per-item scoring
    # ------------------------------------------------------------------

    def stock_ratio(self, item: InventorySnapshot) -> float:
        par = item.par_level if item.par_level > 0 else 1
        return item.current_qty / par

    def stock_points(self, item: InventorySnapshot) -> int:
        ratio = self.stock_ratio(item)
        for limit, points in self.thresholds.stock_ratio_bands:
            if ratio <= limit:
                return points
        return 0

    def velocity_points(self, item: InventorySnapshot) -> int:
        for limit, points in self.thresholds.velocity_bands:
            if item.sales_velocity > limit:
                return points
        return 0

    def days_of_supply_points(self, item: InventorySnapshot) -> int:
        for limit, points in self.thresholds.days_of_supply_bands:
            if item.days_of_supply < limit:
                return points
        return 0

    def risk_score(self, item: InventorySnapshot) -> int:
        """Additive 0-100 score: stock level + velocity + days of supply"""
        total = self.stock_points(item) + self.velocity_points(item) + self.days_of_supply_points(item)
        return max(0, min(self.thresholds.max_risk_score, total))

    def stock_health(self, item: InventorySnapshot) -> StockHealth:
        """Exactly one bucket per item, first match wins.

        A missing reorder point counts as reorder-triggering and a missing
        par level can never reach "good".
        """
        if item.current_qty == 0:
            return StockHealth.OUT
        if not item.has_reorder_point or item.current_qty <= item.reorder_point:
            return StockHealth.LOW
        if item.has_par_level and item.current_qty >= self.thresholds.good_stock_fraction * item.par_level:
            return StockHealth.GOOD
        return StockHealth.MEDIUM

    def needs_restock(self, item: InventorySnapshot) -> bool:
        return not item.has_reorder_point or item.current_qty <= item.reorder_point

    def restock_urgency(self, item: InventorySnapshot) -> Optional[Urgency]:
        """Urgency for reorder-triggering items, None otherwise"""
        if not self.needs_restock(item):
            return None
        if item.current_qty == 0:
            return Urgency.CRITICAL
        reorder_point = item.reorder_point if item.has_reorder_point else self.thresholds.default_reorder_point
        if item.current_qty <= self.thresholds.high_urgency_fraction * reorder_point:
            return Urgency.HIGH
        return Urgency.MEDIUM

    def score_item(self, item: InventorySnapshot) -> Dict[str, Any]:
        urgency = self.restock_urgency(item)
        return {
            "machine_id": item.machine_id,
            "machine_name": item.machine_name,
            "location_name": item.location_name,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "category": item.category,
            "slot_id": item.slot_id,
            "current_qty": item.current_qty,
            "par_level": item.par_level,
            "reorder_point": item.reorder_point,
            "sales_velocity": round(item.sales_velocity, 2),
            "days_of_supply": round(item.days_of_supply, 1),
            "score": self.risk_score(item),
            "stock_health": self.stock_health(item).value,
            "urgency": urgency.value if urgency else None,
            "needs_restock": self.needs_restock(item),
            "recommended_restock_qty": max(0, int(math.ceil(item.par_level - item.current_qty))),
            "fill_rate": round(safe_ratio(item.current_qty, item.par_level) * 100, 1),
        }

    # ------------------------------------------------------------------
    # Velocity enrichment
    # ------------------------------------------------------------------

    def enrich_with_sales(
        self,
        snapshots: Iterable[InventorySnapshot],
        sales: Iterable[SaleRecord],
        window_days: int = 30,
    ) -> List[InventorySnapshot]:
        """Recompute velocity and days of supply from units sold in the window"""
        units = group_and_aggregate(
            sales,
            key_fn=lambda sale: f"{sale.machine_id}|{sale.product_id}",
            aggregators={"units": Sum("quantity")},
        )

        enriched = []
        for item in snapshots:
            sold = units.get(f"{item.machine_id}|{item.product_id}", {}).get("units", 0)
            velocity = safe_ratio(sold, window_days)
            days_of_supply = (
                item.current_qty / velocity if velocity > 0 else self.thresholds.days_of_supply_sentinel
            )
            enriched.append(replace(item, sales_velocity=velocity, days_of_supply=days_of_supply))
        return enriched

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    @log_performance("vendops.services.inventory")
    def get_inventory_report(self, snapshots: Iterable[InventorySnapshot], top_n: int = 5) -> Dict[str, Any]:
        """Inventory health rollup over all slots"""
        items = list(snapshots)
        if not items:
            return self._empty_report()

        scored = [self.score_item(item) for item in items]
        logger.debug(f"Scored {len(scored)} inventory slots")
        distribution = {bucket.value: 0 for bucket in StockHealth}
        for row in scored:
            distribution[row["stock_health"]] += 1

        finite_supply = [
            item.days_of_supply for item in items
            if item.days_of_supply < self.thresholds.days_of_supply_sentinel
        ]

        critical_items = sorted(
            scored,
            key=lambda row: (-row["score"], row["current_qty"], row["machine_name"], row["product_name"]),
        )[:top_n]

        return {
            "total_items": len(items),
            "stock_distribution": distribution,
            "out_of_stock_count": distribution[StockHealth.OUT.value],
            "low_stock_count": distribution[StockHealth.LOW.value],
            "needs_restock_count": sum(1 for row in scored if row["needs_restock"]),
            "avg_days_of_supply": round(float(np.mean(finite_supply)), 1) if finite_supply else 0,
            "avg_fill_rate": round(float(np.mean([row["fill_rate"] for row in scored])), 1),
            "fast_moving_items": sum(
                1 for item in items if item.sales_velocity > self.thresholds.fast_mover_velocity
            ),
            "slow_moving_items": sum(
                1 for item in items
                if item.sales_velocity < self.thresholds.slow_mover_velocity and item.current_qty > 0
            ),
            "critical_items": critical_items,
            "machines": self._machine_rollup(scored),
            "items": scored,
        }

    def _machine_rollup(self, scored: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        flagged = [
            {
                **row,
                "is_out": int(row["stock_health"] == StockHealth.OUT.value),
                "is_low": int(row["stock_health"] == StockHealth.LOW.value),
                "is_critical": int(row["urgency"] == Urgency.CRITICAL.value),
                "is_high": int(row["urgency"] == Urgency.HIGH.value),
                "is_medium": int(row["urgency"] == Urgency.MEDIUM.value),
            }
            for row in scored
        ]
        rollup = group_and_aggregate(
            flagged,
            key_fn=lambda row: row["machine_id"],
            aggregators={
                "slots": Count(),
                "out_of_stock": Sum("is_out"),
                "low_stock": Sum("is_low"),
                "critical": Sum("is_critical"),
                "high": Sum("is_high"),
                "medium": Sum("is_medium"),
                "max_score": Max("score"),
                "machine_name": Max("machine_name"),
                "location_name": Max("location_name"),
            },
        )

        machines = [{"machine_id": machine_id, **totals} for machine_id, totals in rollup.items()]
        machines.sort(key=lambda row: (-(row["max_score"] or 0), row["machine_id"]))
        return machines

    @log_performance("vendops.services.inventory")
    def get_stockout_predictions(self, snapshots: Iterable[InventorySnapshot], now: datetime) -> List[Dict[str, Any]]:
        """Days-to-stockout per item from current stock and sales velocity"""
        now = DateUtils.to_utc(now)
        predictions = []
        for item in snapshots:
            days = self.days_to_stockout(item)
            restock_by = self.restock_date(now, days)
            predictions.append({
                "machine_id": item.machine_id,
                "machine_name": item.machine_name,
                "location_name": item.location_name,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "par_level": item.par_level,
                "current_qty": item.current_qty,
                "velocity_per_day": round(item.sales_velocity, 2),
                "days_to_stockout": days,
                "restock_by": restock_by,
                "urgency": self.prediction_urgency(days).value,
            })

        predictions.sort(key=lambda row: (
            row["days_to_stockout"] is None,
            row["days_to_stockout"] if row["days_to_stockout"] is not None else 0,
            row["machine_id"],
            row["product_id"],
        ))
        return predictions

    def days_to_stockout(self, item: InventorySnapshot) -> Optional[int]:
        if item.days_to_stockout is not None:
            return int(item.days_to_stockout)
        if item.sales_velocity <= 0:
            return None
        return max(0, int(math.floor(item.current_qty / item.sales_velocity)))

    @staticmethod
    def restock_date(now: datetime, days: Optional[int]) -> Optional[str]:
        """Calendar date ``days`` after ``now``, or None past the last representable date."""
        if days is None:
            return None
        try:
            return (now + timedelta(days=days)).date().isoformat()
        except OverflowError:
            return None

    def prediction_urgency(self, days: Optional[int]) -> Urgency:
        if days is None:
            return Urgency.LOW
        for limit, label in self.thresholds.days_to_stockout_bands:
            if days <= limit:
                return Urgency(label)
        return Urgency.LOW

    def _empty_report(self) -> Dict[str, Any]:
        return {
            "total_items": 0,
            "stock_distribution": {bucket.value: 0 for bucket in StockHealth},
            "out_of_stock_count": 0,
            "low_stock_count": 0,
            "needs_restock_count": 0,
            "avg_days_of_supply": 0,
            "avg_fill_rate": 0,
            "fast_moving_items": 0,
            "slow_moving_items": 0,
            "critical_items": [],
            "machines": [],
            "items": [],
        }
