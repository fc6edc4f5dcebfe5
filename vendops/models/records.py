# Normalized operational records consumed by the analytics services.
# Instances are built by services.normalizer and never mutated afterwards.

from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, Optional

UNKNOWN = "unknown"


class ProspectStage(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    WON = "won"
    LOST = "lost"

    @property
    def is_closed(self) -> bool:
        return self in (ProspectStage.WON, ProspectStage.LOST)


class StockHealth(str, Enum):
    GOOD = "good"
    MEDIUM = "medium"
    LOW = "low"
    OUT = "out"


class Urgency(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    WARNING = "warning"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class SaleRecord:
    """A point-of-sale transaction"""
    machine_id: str
    product_id: str
    occurred_at: Optional[datetime]
    quantity: int
    unit_price_cents: float
    unit_cost_cents: float = 0.0
    machine_name: str = UNKNOWN
    product_name: str = UNKNOWN
    location_name: str = UNKNOWN
    category: str = UNKNOWN
    extras: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def revenue(self) -> float:
        return self.quantity * self.unit_price_cents / 100

    @property
    def cost(self) -> float:
        return self.quantity * self.unit_cost_cents / 100

    @property
    def day(self) -> Optional[date]:
        return self.occurred_at.date() if self.occurred_at is not None else None

    @property
    def pair_key(self) -> str:
        return f"{self.machine_name} · {self.product_name}"


@dataclass(frozen=True)
class InventorySnapshot:
    """Current stock for one machine+product+slot triple"""
    machine_id: str
    product_id: str
    slot_id: str
    current_qty: int
    par_level: float
    reorder_point: float
    sales_velocity: float
    days_of_supply: float
    has_par_level: bool = True
    has_reorder_point: bool = True
    days_to_stockout: Optional[float] = None
    machine_name: str = UNKNOWN
    product_name: str = UNKNOWN
    location_name: str = UNKNOWN
    category: str = UNKNOWN
    extras: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class RouteRun:
    id: str
    route_name: str
    driver_name: str
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    extras: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class RouteStop:
    run_id: str
    machine_id: str
    miles: float
    service_minutes: float
    extras: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ProspectRecord:
    id: str
    stage: ProspectStage
    raw_stage: str
    stage_recognized: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    won_at: Optional[datetime]
    lost_at: Optional[datetime]
    next_follow_up_at: Optional[datetime]
    estimated_value: float
    source: str
    extras: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def resolved_at(self) -> Optional[datetime]:
        """Won date, falling back to the last update."""
        return self.won_at if self.won_at is not None else self.updated_at
