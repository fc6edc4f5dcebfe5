# vendops/config/thresholds.py
"""
Heuristic thresholds shared by the analytics services.

Bands are ordered tuples of ``(limit, points)`` or ``(limit, label)`` and are
evaluated first match wins, so the order of each tuple matters.
"""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class AnalyticsThresholds:
    """Tunable magic numbers for scoring, detection and KPI windows."""

    # Risk score: stock ratio (currentQty / parLevel), ratio <= limit
    stock_ratio_bands: Tuple[Tuple[float, int], ...] = (
        (0.0, 40),
        (0.2, 35),
        (0.5, 25),
        (0.8, 15),
    )
    # Risk score: sales velocity (units/day), velocity > limit
    velocity_bands: Tuple[Tuple[float, int], ...] = (
        (5.0, 30),
        (3.0, 20),
        (1.0, 10),
    )
    # Risk score: days of supply, days < limit
    days_of_supply_bands: Tuple[Tuple[float, int], ...] = (
        (1.0, 30),
        (3.0, 20),
        (7.0, 10),
    )
    max_risk_score: int = 100

    # Stock health / urgency
    good_stock_fraction: float = 0.8
    high_urgency_fraction: float = 0.5
    default_reorder_point: int = 3
    days_of_supply_sentinel: float = 999.0

    # Days-to-stockout predictions, days <= limit
    days_to_stockout_bands: Tuple[Tuple[int, str], ...] = (
        (1, "critical"),
        (3, "warning"),
        (7, "medium"),
    )
    fast_mover_velocity: float = 0.5
    slow_mover_velocity: float = 0.1

    # Stockout candidate detection
    stockout_min_streak: int = 2
    stockout_min_prev_tx: int = 5
    stockout_min_drop_pct: int = 70
    stockout_critical_streak: int = 7
    stockout_high_streak: int = 3
    stockout_high_drop_pct: int = 90

    # Machine summary recency
    machine_online_days: int = 2
    machine_idle_days: int = 7

    # Pricing
    min_profit_margin: float = 0.15
    min_price: float = 0.01

    # Prospect pipeline
    stalled_prospect_days: int = 30
    new_prospect_short_days: int = 7
    new_prospect_long_days: int = 30
    followup_horizon_days: int = 30
    stalled_list_limit: int = 10


DEFAULT_THRESHOLDS = AnalyticsThresholds()
